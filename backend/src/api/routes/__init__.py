"""HTTP API route handlers."""

from . import chat, sessions

__all__ = ["chat", "sessions"]
