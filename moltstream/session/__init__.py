"""Session log management."""

from moltstream.session.manager import SessionLogManager

__all__ = ["SessionLogManager"]
