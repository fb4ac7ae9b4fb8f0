"""moltstream - editor bridge for streaming gateway chat."""

__version__ = "0.1.0"
__logo__ = "🦞"
