"""Direct websocket transport: challenge/sign/connect handshake and chat runs."""

from __future__ import annotations

import functools
import threading
import uuid
from contextlib import ExitStack
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from moltstream.gateway.base import ConnectionState, GatewayClient
from moltstream.gateway.device_auth import build_connect_params
from moltstream.gateway.frames import (
    ChatEvent,
    FrameKind,
    GatewayFrame,
    RequestKind,
    decode_frame,
    encode_request,
)
from moltstream.gateway.runs import RunTracker
from moltstream.infra.device_identity import DeviceIdentity
from moltstream.utils.exceptions import (
    GatewayAuthError,
    GatewayBusyError,
    GatewayError,
    MoltstreamError,
    NotConnectedError,
    ProtocolViolationError,
    TransportError,
)
from moltstream.utils.helpers import now_ms

Connector = Callable[[str, float], Any]

DEFAULT_SCOPES = ["operator.read", "operator.write"]


def websocket_connector(url: str, timeout: float) -> Any:
    """Open a websocket; the opening handshake is bounded by `timeout`.

    The connection is entered as a context manager and released by `close()`.
    """
    from websockets.sync.client import connect

    return ExitStack().enter_context(connect(url, open_timeout=timeout, close_timeout=2, max_size=None))


class _Handshake:
    def __init__(self) -> None:
        self.done = threading.Event()
        self.error: MoltstreamError | None = None

    def succeed(self) -> None:
        self.done.set()

    def fail(self, error: MoltstreamError) -> None:
        if not self.done.is_set():
            self.error = error
            self.done.set()


class SocketGatewayClient(GatewayClient):
    """Authenticated duplex connection to the gateway.

    One lock covers the socket handle, connection state, pending request
    kinds and the run tracker. The reader thread blocks on `recv()` outside
    the lock and processes each frame under it.
    """

    def __init__(
        self,
        *,
        url: str,
        token: str,
        identity: DeviceIdentity,
        session_key: str = "main",
        client_id: str = "cli",
        client_mode: str = "cli",
        role: str = "operator",
        scopes: list[str] | None = None,
        handshake_timeout: float = 10.0,
        connector: Connector | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        super().__init__()
        self.url = url
        self.token = token
        self.identity = identity
        self.session_key = session_key
        self.client_id = client_id
        self.client_mode = client_mode
        self.role = role
        self.scopes = list(scopes if scopes is not None else DEFAULT_SCOPES)
        self.handshake_timeout = handshake_timeout
        self._connector = connector or websocket_connector
        self._clock = clock

        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._ws: Any = None
        self._reader: threading.Thread | None = None
        self._handshake: _Handshake | None = None
        self._pending: dict[str, RequestKind] = {}
        self._runs = RunTracker()

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def active_run_id(self) -> str | None:
        with self._lock:
            return self._runs.active_run_id

    @property
    def run_in_flight(self) -> bool:
        with self._lock:
            return self._runs.busy

    def connect(self) -> None:
        """Dial, answer the challenge and block until authenticated or failed."""
        with self._lock:
            if self._state is ConnectionState.CONNECTED:
                return
            stale = self._ws
            self._teardown_locked()
            handshake = _Handshake()
            self._handshake = handshake
            self._state = ConnectionState.DIALING
        if stale is not None:
            self._close_quietly(stale)

        logger.info("Connecting to gateway {}", self.url)
        try:
            ws = self._connector(self.url, self.handshake_timeout)
        except Exception as e:
            error = TransportError(f"dial {self.url} failed: {e}", operation="dial")
            with self._lock:
                if self._handshake is handshake:
                    self._state = ConnectionState.DISCONNECTED
            self._emit_error(error)
            raise error from e

        with self._lock:
            if self._handshake is not handshake:
                self._close_quietly(ws)
                raise TransportError("connection closed while dialing", operation="dial")
            self._ws = ws
            self._state = ConnectionState.AWAITING_CHALLENGE
            reader = threading.Thread(
                target=self._read_loop, args=(ws, handshake), name="gateway-reader", daemon=True
            )
            self._reader = reader
        reader.start()

        if not handshake.done.wait(self.handshake_timeout):
            error = TransportError(
                f"gateway handshake timed out after {self.handshake_timeout:g}s", operation="handshake"
            )
            handshake.fail(error)
            self._drop_connection(ws, error)
            raise error
        if handshake.error is not None:
            raise handshake.error
        logger.info("Connected to gateway {}", self.url)

    def send(self, content: str) -> None:
        """Transmit a chat send; the reply streams back through on_message."""
        with self._lock:
            if self._state is not ConnectionState.CONNECTED or self._ws is None:
                raise NotConnectedError()
            if self._runs.busy:
                raise GatewayBusyError()
            req_id = uuid.uuid4().hex
            idempotency_key = uuid.uuid4().hex
            params = {
                "sessionKey": self.session_key,
                "message": content,
                "idempotencyKey": idempotency_key,
            }
            self._pending[req_id] = RequestKind.CHAT_SEND
            self._runs.begin_send(req_id, idempotency_key)
            ws = self._ws
            try:
                ws.send(encode_request(req_id, "chat.send", params))
                return
            except Exception as e:
                error = TransportError(f"gateway write failed: {e}", operation="write")
                self._teardown_locked()
        logger.warning("Gateway write failed, disconnected: {}", error.message)
        self._close_quietly(ws)
        self._emit_error(error)
        raise error

    def close(self) -> None:
        with self._lock:
            ws = self._ws
            reader = self._reader
            handshake = self._handshake
            self._teardown_locked()
            self._handshake = None
        if handshake is not None:
            handshake.fail(TransportError("connection closed", operation="close"))
        if ws is not None:
            logger.info("Closing gateway connection")
            self._close_quietly(ws)
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=2.0)

    def _teardown_locked(self) -> None:
        self._ws = None
        self._reader = None
        self._state = ConnectionState.DISCONNECTED
        self._pending.clear()
        self._runs.clear()

    @staticmethod
    def _close_quietly(ws: Any) -> None:
        try:
            ws.close()
        except Exception as e:
            logger.debug("Ignoring error while closing socket: {}", e)

    def _drop_connection(self, ws: Any, error: MoltstreamError) -> None:
        with self._lock:
            if self._ws is not ws:
                return
            self._teardown_locked()
        self._close_quietly(ws)
        self._emit_error(error)

    def _read_loop(self, ws: Any, handshake: _Handshake) -> None:
        while True:
            try:
                raw = ws.recv()
            except Exception as e:
                self._on_read_failure(ws, handshake, e)
                return
            self._handle_raw(ws, handshake, raw)

    def _on_read_failure(self, ws: Any, handshake: _Handshake, exc: Exception) -> None:
        with self._lock:
            if self._ws is not ws:
                return
            self._teardown_locked()
        self._close_quietly(ws)
        if handshake.error is not None:
            logger.debug("Socket closed after rejected handshake: {}", exc)
            return
        error = TransportError(f"gateway connection lost: {exc}", operation="read")
        handshake.fail(error)
        logger.warning("Gateway connection lost: {}", exc)
        self._emit_error(error)

    def _handle_raw(self, ws: Any, handshake: _Handshake, raw: Any) -> None:
        outbox: list[Callable[[], None]] = []
        with self._lock:
            if self._ws is not ws:
                return
            try:
                frame = decode_frame(raw, self._pending)
            except ValueError as e:
                logger.warning("Dropping malformed gateway frame: {}", str(e)[:200])
                return
            if frame.correlation_id is not None:
                self._pending.pop(frame.correlation_id, None)
            try:
                self._handle_frame_locked(ws, handshake, frame, outbox)
            except TransportError as error:
                self._teardown_locked()
                handshake.fail(error)
                outbox.append(functools.partial(self._close_quietly, ws))
                outbox.append(functools.partial(self._emit_error, error))
        for deliver in outbox:
            deliver()

    def _handle_frame_locked(
        self,
        ws: Any,
        handshake: _Handshake,
        frame: GatewayFrame,
        outbox: list[Callable[[], None]],
    ) -> None:
        if frame.kind is FrameKind.CONNECT_CHALLENGE:
            self._answer_challenge_locked(ws, handshake, frame)
        elif frame.kind is FrameKind.CONNECT_RESULT:
            self._state = ConnectionState.CONNECTED
            handshake.succeed()
        elif frame.kind is FrameKind.GENERIC_RESULT:
            if frame.request_kind is RequestKind.CHAT_SEND:
                self._acknowledge_send_locked(frame, outbox)
        elif frame.kind is FrameKind.ERROR:
            self._handle_error_frame_locked(handshake, frame, outbox)
        elif frame.kind is FrameKind.CHAT_EVENT:
            self._handle_chat_event_locked(frame, outbox)
        else:
            logger.debug("Ignoring gateway event {}", frame.event)

    def _answer_challenge_locked(self, ws: Any, handshake: _Handshake, frame: GatewayFrame) -> None:
        if self._state is not ConnectionState.AWAITING_CHALLENGE:
            logger.debug("Ignoring connect challenge in state {}", self._state.value)
            return
        nonce = str(frame.payload.get("nonce") or "").strip()
        if not nonce:
            raise TransportError("connect challenge carried no nonce", operation="handshake")
        req_id = uuid.uuid4().hex
        params = build_connect_params(
            identity=self.identity,
            token=self.token,
            nonce=nonce,
            signed_at_ms=self._clock(),
            client_id=self.client_id,
            client_mode=self.client_mode,
            role=self.role,
            scopes=self.scopes,
        )
        self._pending[req_id] = RequestKind.CONNECT
        self._state = ConnectionState.AUTHENTICATING
        try:
            ws.send(encode_request(req_id, "connect", params))
        except Exception as e:
            raise TransportError(f"gateway write failed: {e}", operation="write") from e

    def _acknowledge_send_locked(self, frame: GatewayFrame, outbox: list[Callable[[], None]]) -> None:
        payload = frame.payload
        if payload.get("ok") is False:
            self._runs.reject(frame.correlation_id or "")
            error = GatewayError(
                str(payload.get("message") or payload.get("status") or "chat.send rejected"),
                remote_code=str(payload.get("code") or "") or None,
            )
            outbox.append(functools.partial(self._emit_error, error))
            return
        run_id = payload.get("runId")
        self._runs.acknowledge(frame.correlation_id or "", str(run_id) if run_id else None)

    def _handle_error_frame_locked(
        self,
        handshake: _Handshake,
        frame: GatewayFrame,
        outbox: list[Callable[[], None]],
    ) -> None:
        remote = frame.error
        code = remote.code if remote else None
        message = remote.message if remote else "gateway error"
        if frame.request_kind is RequestKind.CONNECT:
            error: MoltstreamError = GatewayAuthError(f"connect rejected: {message}", remote_code=code)
            self._state = ConnectionState.AWAITING_CHALLENGE
            handshake.fail(error)
            logger.error("Gateway rejected connect: {} ({})", message, code)
        elif frame.request_kind is RequestKind.CHAT_SEND:
            self._runs.reject(frame.correlation_id or "")
            error = GatewayError(f"chat.send rejected: {message}", remote_code=code)
        else:
            error = GatewayError(message, remote_code=code)
        outbox.append(functools.partial(self._emit_error, error))

    def _handle_chat_event_locked(self, frame: GatewayFrame, outbox: list[Callable[[], None]]) -> None:
        try:
            event = ChatEvent.model_validate(frame.payload)
        except ValidationError as e:
            logger.warning("Dropping malformed chat event: {}", e)
            return
        try:
            update = self._runs.apply(event)
        except ProtocolViolationError as error:
            logger.error("Protocol violation: {}", error.message)
            outbox.append(functools.partial(self._emit_error, error))
            return
        if update is None:
            return
        if update.delta or update.done:
            outbox.append(functools.partial(self._emit_message, update.delta, update.done))
