"""Utility functions for moltstream."""

from moltstream.utils.helpers import ensure_dir, now_ms

__all__ = ["ensure_dir", "now_ms"]
