"""Active-run tracking and cumulative content reduction to deltas.

Not thread-safe on its own; the owning client guards it with its lock.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from moltstream.gateway.frames import ChatEvent
from moltstream.utils.exceptions import ProtocolViolationError


@dataclass(slots=True)
class RunUpdate:
    delta: str
    done: bool


class RunTracker:
    """Owns at most one run: awaiting ack -> active -> cleared on a terminal state."""

    def __init__(self) -> None:
        self.pending_send_id: str | None = None
        self.pending_idempotency_key: str | None = None
        self.active_run_id: str | None = None
        self._last_seen = ""

    @property
    def busy(self) -> bool:
        return self.pending_send_id is not None or self.active_run_id is not None

    @property
    def last_seen(self) -> str:
        return self._last_seen

    def begin_send(self, req_id: str, idempotency_key: str) -> None:
        self.pending_send_id = req_id
        self.pending_idempotency_key = idempotency_key

    def acknowledge(self, req_id: str, run_id: str | None) -> bool:
        """Record the run named by the ack of our chat send. Returns False for stale acks."""
        if req_id != self.pending_send_id:
            return False
        self.active_run_id = run_id or self.pending_idempotency_key
        self.pending_send_id = None
        self.pending_idempotency_key = None
        self._last_seen = ""
        logger.debug("Run {} active", self.active_run_id)
        return True

    def reject(self, req_id: str) -> bool:
        if req_id != self.pending_send_id:
            return False
        self.pending_send_id = None
        self.pending_idempotency_key = None
        return True

    def clear(self) -> None:
        self.pending_send_id = None
        self.pending_idempotency_key = None
        self.active_run_id = None
        self._last_seen = ""

    def apply(self, event: ChatEvent) -> RunUpdate | None:
        """Reduce a chat event to a delta. None when the event is not for the active run.

        Raises ProtocolViolationError (and clears the run) when cumulative
        content does not extend what was last seen.
        """
        if self.active_run_id is None or event.run_id != self.active_run_id:
            logger.debug("Dropping chat event for run {} (active: {})", event.run_id, self.active_run_id)
            return None

        if event.state == "error":
            self.clear()
            return RunUpdate(delta=event.error_text, done=True)

        text = event.text
        if text is None:
            text = self._last_seen
        if not text.startswith(self._last_seen):
            run_id = self.active_run_id
            self.clear()
            raise ProtocolViolationError(
                f"run {run_id} content does not extend the previous update",
                run_id=run_id,
            )
        delta = text[len(self._last_seen):]
        self._last_seen = text
        done = event.terminal
        if done:
            self.clear()
        return RunUpdate(delta=delta, done=done)
