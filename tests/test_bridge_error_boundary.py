import pytest
from pydantic import ValidationError

from moltstream.bridge.error_boundary import error_code_for, exception_response
from moltstream.bridge.protocol import ErrorCode, SendParams
from moltstream.utils.exceptions import (
    GatewayAuthError,
    GatewayBusyError,
    IdentityError,
    NotConnectedError,
    SessionLogError,
    TransportError,
)


def _validation_error() -> ValidationError:
    with pytest.raises(ValidationError) as exc_info:
        SendParams.model_validate({})
    return exc_info.value


@pytest.mark.parametrize(
    ("exc", "code"),
    [
        (NotConnectedError(), ErrorCode.NOT_CONNECTED),
        (TransportError("eof", operation="read"), ErrorCode.GATEWAY_ERROR),
        (GatewayAuthError("connect rejected"), ErrorCode.GATEWAY_ERROR),
        (GatewayBusyError(), ErrorCode.GATEWAY_ERROR),
        (IdentityError("missing"), ErrorCode.GATEWAY_ERROR),
        (SessionLogError("disk full"), ErrorCode.INTERNAL),
        (RuntimeError("boom"), ErrorCode.INTERNAL),
    ],
)
def test_error_code_mapping(exc, code):
    assert error_code_for(exc) == code


def test_validation_error_maps_to_invalid_params():
    response = exception_response("send", 1, _validation_error())
    assert response.error.code == ErrorCode.INVALID_PARAMS
    assert response.error.message == "invalid params"


def test_message_is_sanitized_and_unprefixed():
    response = exception_response("reconnect", 2, TransportError("dial failed token=abc123", operation="dial"))
    assert response.id == 2
    assert "abc123" not in response.error.message
    assert not response.error.message.startswith("[")
