"""Serialization helpers for local protocol frames."""

from __future__ import annotations

import json
from typing import Any

from moltstream.bridge.protocol import (
    PROTOCOL_VERSION,
    ErrorCode,
    LocalNotification,
    LocalRequest,
    LocalResponse,
    RpcError,
)


class FrameDecodeError(ValueError):
    """Input line could not be turned into a request."""

    def __init__(self, code: ErrorCode, message: str, request_id: Any = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.request_id = request_id


def _valid_id(value: Any) -> bool:
    return isinstance(value, (int, str)) and not isinstance(value, bool)


def decode_request_line(line: str) -> LocalRequest:
    """Decode one input line. Raises FrameDecodeError with the code to report."""
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as e:
        raise FrameDecodeError(ErrorCode.PARSE_ERROR, "parse error") from e
    if not isinstance(payload, dict):
        raise FrameDecodeError(ErrorCode.INVALID_REQUEST, "invalid request")
    req_id = payload.get("id")
    if req_id is not None and not _valid_id(req_id):
        raise FrameDecodeError(ErrorCode.INVALID_REQUEST, "invalid request id")
    method = payload.get("method")
    if not isinstance(method, str) or not method:
        raise FrameDecodeError(ErrorCode.INVALID_REQUEST, "invalid request", request_id=req_id)
    return LocalRequest(method=method, params=payload.get("params"), id=req_id)


def encode_response(response: LocalResponse) -> str:
    frame: dict[str, Any] = {"jsonrpc": PROTOCOL_VERSION, "id": response.id}
    if response.error is not None:
        frame["error"] = {"code": int(response.error.code), "message": response.error.message}
    else:
        frame["result"] = response.result
    return json.dumps(frame)


def encode_notification(notification: LocalNotification) -> str:
    frame = {"jsonrpc": PROTOCOL_VERSION, "method": notification.method, "params": notification.params}
    return json.dumps(frame)


def error_response(request_id: Any, code: ErrorCode, message: str) -> LocalResponse:
    return LocalResponse(id=request_id, error=RpcError(code=int(code), message=message))
