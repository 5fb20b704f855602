"""Domain errors for the chat orchestration service."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import status


class ChatError(Exception):
    """Base error carrying an HTTP status and a stable error code."""

    code = "internal_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail or {}


class ProviderError(ChatError):
    """Vendor HTTP or stream failure. Fatal to the turn, never retried in the loop."""

    code = "provider_error"
    user_message = "The assistant is temporarily unavailable."

    def __init__(
        self,
        message: str,
        *,
        http_status: Optional[int] = None,
        provider: Optional[str] = None,
        code: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged = dict(detail or {})
        if http_status is not None:
            merged.setdefault("http_status", http_status)
        if provider is not None:
            merged.setdefault("provider", provider)
        super().__init__(message, code=code, detail=merged)
        self.http_status = http_status
        self.provider = provider


class MalformedToolCallError(ChatError):
    """Streamed tool-call arguments never formed a valid JSON object."""

    code = "malformed_tool_call"

    def __init__(self, message: str, *, index: Optional[int] = None, name: Optional[str] = None) -> None:
        super().__init__(message, detail={"index": index, "name": name})
        self.index = index
        self.name = name


class ToolExecutionError(ChatError):
    """A tool's underlying operation failed. Absorbed into the conversation as data."""

    code = "tool_execution_error"


class UnknownToolError(ToolExecutionError):
    """The model asked for a tool that is not registered."""

    code = "unknown_tool"

    def __init__(self, name: str) -> None:
        super().__init__(f"unknown tool: {name}", detail={"name": name})
        self.name = name


class PersistenceError(ChatError):
    """Thread store append/load failure."""

    code = "persistence_error"


class ConfigurationError(ChatError):
    """Missing or invalid deployment configuration (e.g. absent vendor API key)."""

    code = "configuration_error"


class SessionNotFoundError(ChatError):
    """Chat session does not exist."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Chat session not found: {session_id}", detail={"session_id": session_id})
        self.session_id = session_id


class SessionForbiddenError(ChatError):
    """Chat session belongs to another user."""

    code = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, session_id: str) -> None:
        super().__init__("You do not have access to this chat session", detail={"session_id": session_id})
        self.session_id = session_id


class InvalidMessageError(ChatError):
    """Message rejected by thread validation (e.g. tool message without name)."""

    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


__all__ = [
    "ChatError",
    "ProviderError",
    "MalformedToolCallError",
    "ToolExecutionError",
    "UnknownToolError",
    "PersistenceError",
    "ConfigurationError",
    "SessionNotFoundError",
    "SessionForbiddenError",
    "InvalidMessageError",
]
