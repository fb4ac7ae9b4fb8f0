"""Loguru helpers: stderr for the editor user, rotating file for diagnostics."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

_SINK_IDS: dict[str, int] = {}


def configure_stderr(level: str = "WARNING") -> None:
    """Replace the default handler. stdout is reserved for protocol frames."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="[moltstream] {level}: {message}",
        backtrace=False,
        diagnose=False,
    )


def ensure_rotating_log_file(name: str, log_dir: Path, level: str = "INFO") -> Path:
    """Ensure a rotating log sink for the given command name."""
    log_path = log_dir / f"{name}.log"
    if name in _SINK_IDS:
        return log_path
    log_dir.mkdir(parents=True, exist_ok=True)
    sink_id = logger.add(
        str(log_path),
        level=level,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    _SINK_IDS[name] = sink_id
    return log_path
