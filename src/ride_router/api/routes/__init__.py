"""Route group exports."""

from . import health, sessions

__all__ = ["health", "sessions"]
