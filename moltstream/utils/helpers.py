"""Small filesystem and time helpers."""

from __future__ import annotations

import time
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def now_ms() -> int:
    return int(time.time() * 1000)
