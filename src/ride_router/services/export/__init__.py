"""Export services."""

from .deep_link import build_deep_link

__all__ = ["build_deep_link"]
