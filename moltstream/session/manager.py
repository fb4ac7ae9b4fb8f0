"""Session log management: the on-disk conversation file and its archive."""

from __future__ import annotations

import os
import re
import secrets
import threading
from datetime import datetime
from pathlib import Path

from loguru import logger

from moltstream.utils.exceptions import SessionLogError
from moltstream.utils.helpers import ensure_dir

SESSION_FILENAME = "session.md"
ARCHIVE_DIRNAME = "archive"

_ID_LINE = re.compile(r"^<!-- id: (?P<id>\S+) -->$")


class SessionLogManager:
    """
    Owns `session.md` under the session directory.

    Rotation moves the log into `archive/` under a timestamped name; it never
    truncates or deletes. Other components only ask for paths and rotation.
    """

    def __init__(self, directory: Path, max_size_bytes: int, auto_archive: bool = True):
        self.directory = Path(directory).expanduser()
        self.max_size_bytes = max_size_bytes
        self.auto_archive = auto_archive
        self._lock = threading.Lock()
        try:
            ensure_dir(self.directory)
            ensure_dir(self.archive_dir)
        except OSError as e:
            raise SessionLogError(f"create session directory: {e}", path=str(self.directory)) from e

    @property
    def archive_dir(self) -> Path:
        return self.directory / ARCHIVE_DIRNAME

    def session_path(self) -> Path:
        return self.directory / SESSION_FILENAME

    def ensure_session(self) -> Path:
        """Return the log path, creating it, or rotating it when over the size limit."""
        path = self.session_path()
        with self._lock:
            if not path.exists():
                self._create(path)
                return path
            if self.auto_archive and self._size(path) > self.max_size_bytes:
                logger.info("Session log exceeds {} bytes, rotating", self.max_size_bytes)
                self._archive_locked()
                self._create(path)
        return path

    def archive(self) -> Path | None:
        """Move the current log into the archive. Returns the archived path, or None when absent."""
        with self._lock:
            return self._archive_locked()

    def size(self) -> int:
        return self._size(self.session_path())

    def session_id(self) -> str:
        """Identifier from the current log header, or '' when there is none."""
        path = self.session_path()
        try:
            with open(path, encoding="utf-8") as f:
                for _ in range(5):
                    line = f.readline()
                    if not line:
                        break
                    match = _ID_LINE.match(line.strip())
                    if match:
                        return match.group("id")
        except FileNotFoundError:
            return ""
        except OSError as e:
            raise SessionLogError(f"read session header: {e}", path=str(path)) from e
        return ""

    def archived_sessions(self) -> list[Path]:
        return sorted(self.archive_dir.glob("session-*.md"))

    @staticmethod
    def _size(path: Path) -> int:
        try:
            return path.stat().st_size
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise SessionLogError(f"stat session log: {e}", path=str(path)) from e

    def _create(self, path: Path) -> None:
        now = datetime.now().astimezone()
        header = (
            "<!-- moltstream session -->\n"
            f"<!-- id: {secrets.token_hex(8)} -->\n"
            f"<!-- created: {now.isoformat(timespec='seconds')} -->\n"
            "\n"
        )
        try:
            with open(path, "x", encoding="utf-8") as f:
                f.write(header)
        except FileExistsError:
            return
        except OSError as e:
            raise SessionLogError(f"create session log: {e}", path=str(path)) from e
        logger.info("Created session log {}", path)

    def _archive_target(self) -> Path:
        stamp = datetime.now().strftime("%Y-%m-%d-%H%M%S")
        target = self.archive_dir / f"session-{stamp}.md"
        counter = 1
        while target.exists():
            target = self.archive_dir / f"session-{stamp}-{counter}.md"
            counter += 1
        return target

    def _archive_locked(self) -> Path | None:
        src = self.session_path()
        if not src.exists():
            return None
        try:
            ensure_dir(self.archive_dir)
            dst = self._archive_target()
            os.rename(src, dst)
        except OSError as e:
            raise SessionLogError(f"archive session log: {e}", path=str(src)) from e
        logger.info("Archived session log to {}", dst)
        return dst
