"""Gateway client contract shared by the socket and relay transports."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable

from loguru import logger

MessageCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[Exception], None]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    DIALING = "dialing"
    AWAITING_CHALLENGE = "awaiting_challenge"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"


class GatewayClient(ABC):
    """One logical link to the gateway.

    Replies arrive asynchronously through `on_message(delta, done)`; failures
    that no caller is blocked on arrive through `on_error(exc)`. Callbacks are
    invoked from the client's reader thread, never while its lock is held.
    """

    def __init__(self) -> None:
        self._on_message: MessageCallback | None = None
        self._on_error: ErrorCallback | None = None

    def on_message(self, callback: MessageCallback) -> None:
        self._on_message = callback

    def on_error(self, callback: ErrorCallback) -> None:
        self._on_error = callback

    @property
    @abstractmethod
    def state(self) -> ConnectionState: ...

    @property
    @abstractmethod
    def run_in_flight(self) -> bool:
        """True from an accepted send until its run ends."""

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def send(self, content: str) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def reconnect(self) -> None:
        self.close()
        self.connect()

    def _emit_message(self, delta: str, done: bool) -> None:
        if self._on_message is None:
            return
        try:
            self._on_message(delta, done)
        except Exception:
            logger.exception("on_message callback failed")

    def _emit_error(self, exc: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(exc)
        except Exception:
            logger.exception("on_error callback failed")
