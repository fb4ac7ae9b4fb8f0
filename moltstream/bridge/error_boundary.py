"""Map exceptions raised while handling a local request to error responses."""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import ValidationError

from moltstream.bridge.protocol import ErrorCode, LocalResponse
from moltstream.bridge.serialization import error_response
from moltstream.utils.exceptions import (
    GatewayError,
    IdentityError,
    MoltstreamError,
    NotConnectedError,
    TransportError,
    error_text,
)


def error_code_for(exc: BaseException) -> ErrorCode:
    if isinstance(exc, ValidationError):
        return ErrorCode.INVALID_PARAMS
    if isinstance(exc, NotConnectedError):
        return ErrorCode.NOT_CONNECTED
    if isinstance(exc, (TransportError, GatewayError, IdentityError)):
        return ErrorCode.GATEWAY_ERROR
    return ErrorCode.INTERNAL


def exception_response(method: str, request_id: Any, exc: Exception) -> LocalResponse:
    """Build the error response for `exc`; unexpected exceptions are logged with traceback."""
    code = error_code_for(exc)
    if code is ErrorCode.INVALID_PARAMS:
        return error_response(request_id, code, "invalid params")
    if isinstance(exc, MoltstreamError):
        logger.warning("Request {} failed with {}: {}", method, exc.code, exc.message)
    else:
        logger.exception("Request {} failed unexpectedly", method)
    return error_response(request_id, code, error_text(exc))
