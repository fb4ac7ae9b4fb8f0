"""Gateway wire frames and their classification into the frame union."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

CHALLENGE_EVENT = "connect.challenge"
CHAT_EVENT = "chat"
TERMINAL_STATES = frozenset({"final", "error", "aborted"})


class FrameKind(str, Enum):
    """Tagged union over inbound gateway frames."""

    CONNECT_CHALLENGE = "connect-challenge"
    CONNECT_RESULT = "connect-result"
    CHAT_EVENT = "chat-event"
    GENERIC_RESULT = "generic-result"
    ERROR = "error"
    OTHER = "other"


class RequestKind(str, Enum):
    """Marker recorded per outbound correlation id, used to route its result."""

    CONNECT = "connect"
    CHAT_SEND = "chat.send"


def _numbers_to_str(value: Any) -> Any:
    """Gateways may send numeric ids and error codes; keep them as strings."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class FrameError(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: str = "UNKNOWN"
    message: str = "gateway error"

    @field_validator("code", mode="before")
    @classmethod
    def code_as_str(cls, value: Any) -> Any:
        return _numbers_to_str(value)


class EventFrame(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["event"]
    event: str
    payload: Any = None
    seq: int | None = None


class ResponseFrame(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["res"]
    id: str
    ok: bool = False
    payload: Any = None
    error: FrameError | None = None

    @field_validator("id", mode="before")
    @classmethod
    def id_as_str(cls, value: Any) -> Any:
        return _numbers_to_str(value)


_RAW_FRAME = TypeAdapter(Annotated[Union[EventFrame, ResponseFrame], Field(discriminator="type")])


@dataclass(slots=True)
class GatewayFrame:
    """Decoded inbound frame: kind, correlation id and tag-specific payload."""

    kind: FrameKind
    correlation_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    request_kind: RequestKind | None = None
    error: FrameError | None = None
    event: str | None = None


class ChatEvent(BaseModel):
    """Payload of a `chat` event. Content is cumulative for the run."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    run_id: str = Field(default="", alias="runId")
    session_key: str | None = Field(default=None, alias="sessionKey")
    state: str = "delta"
    message: Any = None
    error_message: str | None = Field(default=None, alias="errorMessage")
    error: Any = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def text(self) -> str | None:
        """Cumulative reply text, or None when the event carries no message."""
        return extract_message_text(self.message)

    @property
    def error_text(self) -> str:
        if self.error_message:
            return self.error_message
        if isinstance(self.error, dict):
            return str(self.error.get("message") or "run failed")
        if self.error:
            return str(self.error)
        return "run failed"


def extract_message_text(message: Any) -> str | None:
    if message is None:
        return None
    if isinstance(message, str):
        return message
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(str(part.get("text") or ""))
            elif isinstance(part, str):
                parts.append(part)
        return "".join(parts)
    text = message.get("text")
    return text if isinstance(text, str) else None


def decode_frame(raw: str | bytes, pending: Mapping[str, RequestKind]) -> GatewayFrame:
    """Decode one text frame. Raises ValueError on malformed input."""
    data = json.loads(raw)
    frame = _RAW_FRAME.validate_python(data)
    if isinstance(frame, EventFrame):
        payload = frame.payload if isinstance(frame.payload, dict) else {}
        if frame.event == CHALLENGE_EVENT:
            kind = FrameKind.CONNECT_CHALLENGE
        elif frame.event == CHAT_EVENT:
            kind = FrameKind.CHAT_EVENT
        else:
            kind = FrameKind.OTHER
        return GatewayFrame(kind=kind, payload=payload, event=frame.event)

    request_kind = pending.get(frame.id)
    payload = frame.payload if isinstance(frame.payload, dict) else {}
    if not frame.ok:
        return GatewayFrame(
            kind=FrameKind.ERROR,
            correlation_id=frame.id,
            payload=payload,
            request_kind=request_kind,
            error=frame.error or FrameError(),
        )
    kind = FrameKind.CONNECT_RESULT if request_kind is RequestKind.CONNECT else FrameKind.GENERIC_RESULT
    return GatewayFrame(kind=kind, correlation_id=frame.id, payload=payload, request_kind=request_kind)


def encode_request(req_id: str, method: str, params: dict[str, Any]) -> str:
    return json.dumps({"type": "req", "id": req_id, "method": method, "params": params})
