"""Subprocess relay transport: one external CLI invocation per chat send."""

from __future__ import annotations

import shutil
import subprocess
import threading
from collections import deque
from typing import Any, Callable

from loguru import logger

from moltstream.gateway.base import ConnectionState, GatewayClient
from moltstream.utils.exceptions import GatewayBusyError, NotConnectedError, TransportError

STDERR_TAIL_LINES = 20


class _RelayRun:
    def __init__(self, proc: subprocess.Popen[str]):
        self.proc = proc
        self.timed_out = False
        self.stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)


class RelayGatewayClient(GatewayClient):
    """Streams stdout of `<command> agent --session-id <id> --message <text>` as the reply.

    Each stdout line is a delta; process exit ends the run. "Connected" means
    the command resolves on PATH.
    """

    def __init__(
        self,
        *,
        command: str = "openclaw",
        session_id: str = "moltstream",
        timeout: float = 600.0,
        popen: Callable[..., Any] = subprocess.Popen,
        which: Callable[[str], str | None] = shutil.which,
    ):
        super().__init__()
        self.command = command
        self.session_id = session_id
        self.timeout = timeout
        self._popen = popen
        self._which = which
        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._binary: str | None = None
        self._run: _RelayRun | None = None

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def run_in_flight(self) -> bool:
        with self._lock:
            return self._run is not None

    def connect(self) -> None:
        binary = self._which(self.command)
        if not binary:
            with self._lock:
                self._state = ConnectionState.DISCONNECTED
            error = TransportError(f"relay command not found in PATH: {self.command}", operation="dial")
            self._emit_error(error)
            raise error
        with self._lock:
            self._binary = binary
            self._state = ConnectionState.CONNECTED
        logger.info("Relay transport ready ({})", binary)

    def send(self, content: str) -> None:
        with self._lock:
            if self._state is not ConnectionState.CONNECTED or not self._binary:
                raise NotConnectedError()
            if self._run is not None:
                raise GatewayBusyError()
            argv = [self._binary, "agent", "--session-id", self.session_id, "--message", content]
            try:
                proc = self._popen(
                    argv,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    bufsize=1,
                )
            except OSError as e:
                self._state = ConnectionState.DISCONNECTED
                error = TransportError(f"failed to start relay command: {e}", operation="write")
            else:
                run = _RelayRun(proc)
                self._run = run
                threading.Thread(target=self._pump, args=(run,), name="relay-reader", daemon=True).start()
                return
        self._emit_error(error)
        raise error

    def close(self) -> None:
        with self._lock:
            run = self._run
            self._run = None
            self._state = ConnectionState.DISCONNECTED
        if run is not None:
            self._terminate(run.proc)

    @staticmethod
    def _terminate(proc: subprocess.Popen[str]) -> None:
        if proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=2)
        except subprocess.TimeoutExpired:
            proc.kill()

    def _on_timeout(self, run: _RelayRun) -> None:
        run.timed_out = True
        logger.warning("Relay command exceeded {}s, killing", self.timeout)
        run.proc.kill()

    def _drain_stderr(self, run: _RelayRun) -> None:
        if run.proc.stderr is None:
            return
        for line in run.proc.stderr:
            text = line.rstrip("\n")
            if text:
                run.stderr_tail.append(text)
                logger.debug("[relay] {}", text)

    def _owns(self, run: _RelayRun) -> bool:
        with self._lock:
            return self._run is run

    def _pump(self, run: _RelayRun) -> None:
        timer = threading.Timer(self.timeout, self._on_timeout, args=(run,))
        timer.daemon = True
        timer.start()
        stderr_thread = threading.Thread(target=self._drain_stderr, args=(run,), daemon=True)
        stderr_thread.start()
        try:
            if run.proc.stdout is not None:
                for line in run.proc.stdout:
                    if not self._owns(run):
                        return
                    self._emit_message(line.rstrip("\n") + "\n", False)
            returncode = run.proc.wait()
        finally:
            timer.cancel()
        stderr_thread.join(timeout=1.0)

        with self._lock:
            if self._run is not run:
                return
            self._run = None
        if run.timed_out:
            self._emit_message(f"relay command timed out after {self.timeout:g}s", True)
        elif returncode != 0:
            tail = "\n".join(run.stderr_tail).strip()
            self._emit_message(tail or f"relay command exited with status {returncode}", True)
        else:
            self._emit_message("", True)
