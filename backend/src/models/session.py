"""Pydantic models for chat sessions."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .chat import ChatMessage

DEFAULT_SESSION_NAME = "Nouvelle conversation"


class ChatSession(BaseModel):
    """A user's conversation and its full message thread."""

    id: str
    user_id: str
    name: str = DEFAULT_SESSION_NAME
    history_limit: int = Field(30, ge=1, le=200)
    thread: List[ChatMessage] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ChatSessionSummary(BaseModel):
    """Session listing entry without the thread body."""

    id: str
    name: str
    history_limit: int
    message_count: int
    created_at: datetime
    updated_at: datetime


class CreateSessionRequest(BaseModel):
    name: str = Field(DEFAULT_SESSION_NAME, min_length=1, max_length=256)
    history_limit: Optional[int] = Field(None, ge=1, le=200)
    initial_message: Optional[str] = Field(None, min_length=1)


class UpdateSessionRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=256)
    history_limit: Optional[int] = Field(None, ge=1, le=200)


class AppendMessageRequest(BaseModel):
    message: ChatMessage


class AppendBatchRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    operation_id: Optional[str] = Field(None, min_length=1, max_length=128)


class AppendResult(BaseModel):
    """Outcome of an append; `applied` is false for a replayed operation_id."""

    session_id: str
    applied: bool
    message_count: int


class SessionListResponse(BaseModel):
    sessions: List[ChatSessionSummary]
    total: int


__all__ = [
    "DEFAULT_SESSION_NAME",
    "ChatSession",
    "ChatSessionSummary",
    "CreateSessionRequest",
    "UpdateSessionRequest",
    "AppendMessageRequest",
    "AppendBatchRequest",
    "AppendResult",
    "SessionListResponse",
]
