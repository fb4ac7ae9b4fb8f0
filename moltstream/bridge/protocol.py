"""Local line-delimited JSON-RPC protocol spoken with the editor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict

PROTOCOL_VERSION = "2.0"

RequestId = Union[int, str]


class ErrorCode(IntEnum):
    """Stable error codes carried in local error responses."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL = -32603
    NOT_CONNECTED = -32000
    GATEWAY_ERROR = -32001


@dataclass(slots=True)
class RpcError:
    code: int
    message: str


@dataclass(slots=True)
class LocalRequest:
    """Request frame. `id` None means no response is expected."""

    method: str
    params: Any = None
    id: RequestId | None = None


@dataclass(slots=True)
class LocalResponse:
    """Exactly one of `result` / `error` is meaningful."""

    id: RequestId | None
    result: Any = None
    error: RpcError | None = None


@dataclass(slots=True)
class LocalNotification:
    method: str
    params: Any = None


class SendParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: str


class StreamParams(BaseModel):
    delta: str
    done: bool


class StatusResult(BaseModel):
    connected: bool
    gateway: str
    session_id: str = ""
