"""Chat session endpoints - Session CRUD and thread append/load for the UI."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, status

from ..middleware import AuthContext, get_auth_context
from ...models.chat import ChatMessage, ChatRole
from ...models.session import (
    AppendBatchRequest,
    AppendMessageRequest,
    AppendResult,
    ChatSession,
    CreateSessionRequest,
    SessionListResponse,
    UpdateSessionRequest,
)
from ...services.thread_store import ThreadStore, get_thread_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ui/chat-sessions", tags=["chat-sessions"])


@router.post("", response_model=ChatSession, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: CreateSessionRequest,
    auth: AuthContext = Depends(get_auth_context),
    store: ThreadStore = Depends(get_thread_store),
):
    """Create a session, optionally seeded with a first user message."""
    initial = []
    if request.initial_message:
        initial.append(ChatMessage(role=ChatRole.USER, content=request.initial_message))
    return store.create_session(
        auth.user_id,
        name=request.name,
        history_limit=request.history_limit,
        initial_messages=initial,
    )


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    auth: AuthContext = Depends(get_auth_context),
    store: ThreadStore = Depends(get_thread_store),
):
    sessions = store.list_sessions(auth.user_id)
    return SessionListResponse(sessions=sessions, total=len(sessions))


@router.get("/{session_id}", response_model=ChatSession)
async def get_session(
    session_id: str,
    auth: AuthContext = Depends(get_auth_context),
    store: ThreadStore = Depends(get_thread_store),
):
    return store.get_session(session_id, auth.user_id)


@router.patch("/{session_id}", response_model=ChatSession)
async def update_session(
    session_id: str,
    request: UpdateSessionRequest,
    auth: AuthContext = Depends(get_auth_context),
    store: ThreadStore = Depends(get_thread_store),
):
    """Rename a session or change its history limit."""
    return store.update_session(
        session_id,
        auth.user_id,
        name=request.name,
        history_limit=request.history_limit,
    )


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    auth: AuthContext = Depends(get_auth_context),
    store: ThreadStore = Depends(get_thread_store),
):
    store.delete_session(session_id, auth.user_id)
    return {"success": True, "session_id": session_id}


@router.get("/{session_id}/messages", response_model=List[ChatMessage])
async def get_messages(
    session_id: str,
    auth: AuthContext = Depends(get_auth_context),
    store: ThreadStore = Depends(get_thread_store),
):
    """Return the full thread, ordered by timestamp."""
    return store.load_thread(session_id, auth.user_id)


@router.post("/{session_id}/messages", response_model=AppendResult)
async def append_message(
    session_id: str,
    request: AppendMessageRequest,
    auth: AuthContext = Depends(get_auth_context),
    store: ThreadStore = Depends(get_thread_store),
):
    return store.append_messages(session_id, [request.message], user_id=auth.user_id)


@router.post("/{session_id}/messages/batch", response_model=AppendResult)
async def append_messages_batch(
    session_id: str,
    request: AppendBatchRequest,
    auth: AuthContext = Depends(get_auth_context),
    store: ThreadStore = Depends(get_thread_store),
):
    """
    Append several messages atomically.

    Re-sending the same `operation_id` is a no-op and returns `applied: false`.
    """
    return store.append_messages(
        session_id,
        request.messages,
        operation_id=request.operation_id,
        user_id=auth.user_id,
    )


@router.delete("/{session_id}/messages/{message_id}")
async def truncate_from_message(
    session_id: str,
    message_id: str,
    auth: AuthContext = Depends(get_auth_context),
    store: ThreadStore = Depends(get_thread_store),
):
    """Delete a message and everything after it (used when a message is edited)."""
    removed = store.truncate_from(session_id, message_id, auth.user_id)
    return {"success": True, "session_id": session_id, "removed": removed}


__all__ = ["router"]
