"""Bridge multiplexer: editor requests in, gateway replies and notifications out."""

from __future__ import annotations

import sys
import threading
from typing import Any, BinaryIO, Callable, TextIO

from loguru import logger

from moltstream.bridge.error_boundary import error_code_for, exception_response
from moltstream.bridge.protocol import (
    ErrorCode,
    LocalNotification,
    LocalRequest,
    LocalResponse,
    RequestId,
    SendParams,
    StatusResult,
    StreamParams,
)
from moltstream.bridge.serialization import (
    FrameDecodeError,
    decode_request_line,
    encode_notification,
    encode_response,
    error_response,
)
from moltstream.gateway.base import GatewayClient
from moltstream.session.manager import SessionLogManager
from moltstream.utils.exceptions import (
    GatewayBusyError,
    MoltstreamError,
    NotConnectedError,
    SessionLogError,
    error_text,
)

_DEFERRED = object()

Handler = Callable[[LocalRequest], Any]


class Bridge:
    """
    Reads one request per line and answers each request that carries an id exactly once.

    `send` is answered later, when the gateway reports the run done (or
    failed). Gateway callbacks arrive on the client's reader thread; the
    deferred request id and the output stream are guarded separately.
    """

    def __init__(
        self,
        *,
        client: GatewayClient,
        sessions: SessionLogManager,
        gateway_url: str,
        output: TextIO | None = None,
    ):
        self.client = client
        self.sessions = sessions
        self.gateway_url = gateway_url
        self._output = output if output is not None else sys.stdout
        self._write_lock = threading.Lock()
        self._pending_lock = threading.RLock()
        self._pending_send_id: RequestId | None = None
        self._handlers: dict[str, Handler] = {
            "send": self._handle_send,
            "status": self._handle_status,
            "reconnect": self._handle_reconnect,
            "archive": self._handle_archive,
            "session_path": self._handle_session_path,
        }
        client.on_message(self._on_gateway_message)
        client.on_error(self._on_gateway_error)

    @property
    def pending_send_id(self) -> RequestId | None:
        with self._pending_lock:
            return self._pending_send_id

    def connect(self) -> bool:
        """Initial connection. Failure leaves the bridge running, disconnected."""
        try:
            self.client.connect()
        except MoltstreamError as e:
            logger.error("Gateway connect failed: {}", e.message)
            return False
        self._notify("connected", {"gateway": self.gateway_url})
        return True

    def run(self, stream: TextIO | BinaryIO) -> None:
        """Serve until EOF. Lines are read as bytes; undecodable bytes become U+FFFD."""
        source = getattr(stream, "buffer", stream)
        for line in source:
            if isinstance(line, bytes):
                line = line.decode("utf-8", errors="replace")
            self.handle_line(line)
        logger.info("Input closed, bridge stopping")

    def close(self) -> None:
        self.client.close()

    def handle_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        try:
            request = decode_request_line(line)
        except FrameDecodeError as e:
            logger.warning("Rejected input line: {}", e.message)
            self._write_response(error_response(e.request_id, e.code, e.message))
            return
        self.dispatch(request)

    def dispatch(self, request: LocalRequest) -> None:
        handler = self._handlers.get(request.method)
        if handler is None:
            self._respond(request, error_response(request.id, ErrorCode.METHOD_NOT_FOUND, "method not found"))
            return
        try:
            result = handler(request)
        except Exception as exc:
            self._respond(request, exception_response(request.method, request.id, exc))
            return
        if result is _DEFERRED:
            return
        self._respond(request, LocalResponse(id=request.id, result=result))

    def _handle_send(self, request: LocalRequest) -> Any:
        params = SendParams.model_validate(request.params)
        if not self.client.is_connected():
            raise NotConnectedError()
        with self._pending_lock:
            if self._pending_send_id is not None:
                raise GatewayBusyError()
            self.client.send(params.content)
            self._pending_send_id = request.id
        return _DEFERRED

    def _handle_status(self, request: LocalRequest) -> Any:
        try:
            session_id = self.sessions.session_id()
        except SessionLogError as e:
            logger.warning("Cannot read session id: {}", e.message)
            session_id = ""
        return StatusResult(
            connected=self.client.is_connected(),
            gateway=self.gateway_url,
            session_id=session_id,
        ).model_dump()

    def _handle_reconnect(self, request: LocalRequest) -> Any:
        self._resolve_pending_with_error(ErrorCode.GATEWAY_ERROR, "gateway connection was reset")
        self.client.reconnect()
        self._notify("connected", {"gateway": self.gateway_url})
        return {"status": "reconnected"}

    def _handle_archive(self, request: LocalRequest) -> Any:
        self.sessions.archive()
        path = self.sessions.ensure_session()
        return {"status": "archived", "path": str(path)}

    def _handle_session_path(self, request: LocalRequest) -> Any:
        return {"path": str(self.sessions.ensure_session())}

    def _on_gateway_message(self, delta: str, done: bool) -> None:
        self._notify("stream", StreamParams(delta=delta, done=done).model_dump())
        if not done:
            return
        with self._pending_lock:
            req_id = self._pending_send_id
            self._pending_send_id = None
        if req_id is not None:
            self._write_response(LocalResponse(id=req_id, result={"status": "ok"}))

    def _on_gateway_error(self, exc: Exception) -> None:
        message = error_text(exc)
        self._notify("error", {"message": message})
        if self.client.run_in_flight:
            return
        self._resolve_pending_with_error(error_code_for(exc), message)

    def _resolve_pending_with_error(self, code: ErrorCode, message: str) -> None:
        with self._pending_lock:
            req_id = self._pending_send_id
            self._pending_send_id = None
        if req_id is not None:
            self._write_response(error_response(req_id, code, message))

    def _respond(self, request: LocalRequest, response: LocalResponse) -> None:
        if request.id is None:
            if response.error is not None:
                logger.debug("Dropping error for notification {}: {}", request.method, response.error.message)
            return
        self._write_response(response)

    def _notify(self, method: str, params: Any) -> None:
        self._write(encode_notification(LocalNotification(method=method, params=params)))

    def _write_response(self, response: LocalResponse) -> None:
        self._write(encode_response(response))

    def _write(self, line: str) -> None:
        with self._write_lock:
            try:
                self._output.write(line + "\n")
                self._output.flush()
            except (OSError, ValueError) as e:
                logger.error("Failed to write to output: {}", e)
