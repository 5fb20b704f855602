"""Thread Store - Chat session storage and message-thread persistence.

Each session row holds its whole thread as a JSON array. Appends are
read-modify-write inside one `BEGIN IMMEDIATE` transaction so concurrent
writers to the same database serialize. `tool_call_id` and `name` on tool
messages round-trip unchanged; a tool message missing either is rejected
instead of being stored.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError

from ..models.chat import ChatMessage, ChatRole
from ..models.session import (
    DEFAULT_SESSION_NAME,
    AppendResult,
    ChatSession,
    ChatSessionSummary,
)
from .database import DatabaseService
from .errors import (
    InvalidMessageError,
    PersistenceError,
    SessionForbiddenError,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)

MessageInput = Union[ChatMessage, Dict[str, Any]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _validate_message(message: MessageInput) -> ChatMessage:
    """Coerce to ChatMessage and enforce the role invariants."""
    if not isinstance(message, ChatMessage):
        try:
            message = ChatMessage.model_validate(message)
        except ValidationError as e:
            raise InvalidMessageError(
                "Invalid chat message",
                detail={"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]},
            ) from e

    if message.tool_calls and message.role != ChatRole.ASSISTANT:
        raise InvalidMessageError(
            "tool_calls are only allowed on assistant messages",
            detail={"message_id": message.id},
        )
    if message.role == ChatRole.TOOL and (not message.tool_call_id or not message.name):
        raise InvalidMessageError(
            "tool messages require tool_call_id and name",
            detail={"message_id": message.id},
        )
    return message


def _dump_thread(thread: Sequence[ChatMessage]) -> str:
    return json.dumps([m.model_dump(mode="json") for m in thread], ensure_ascii=False)


def _load_thread(raw: Optional[str]) -> List[ChatMessage]:
    return [ChatMessage.model_validate(item) for item in json.loads(raw or "[]")]


class ThreadStore:
    """Service for chat session CRUD and thread append/load."""

    def __init__(self, db_service: DatabaseService | None = None, default_history_limit: int = 30):
        self._db = db_service or DatabaseService()
        self.default_history_limit = default_history_limit

    def _connect(self) -> sqlite3.Connection:
        try:
            return self._db.connect()
        except sqlite3.Error as e:
            raise PersistenceError(f"Chat database unavailable: {e}") from e

    @staticmethod
    def _fetch_row(
        conn: sqlite3.Connection, session_id: str, user_id: Optional[str]
    ) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM chat_sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            raise SessionNotFoundError(session_id)
        if user_id is not None and row["user_id"] != user_id:
            raise SessionForbiddenError(session_id)
        return row

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> ChatSession:
        return ChatSession(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            history_limit=row["history_limit"],
            thread=_load_thread(row["thread"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def create_session(
        self,
        user_id: str,
        name: str = DEFAULT_SESSION_NAME,
        history_limit: Optional[int] = None,
        initial_messages: Optional[Sequence[MessageInput]] = None,
    ) -> ChatSession:
        """Create a session, optionally seeded with messages."""
        session_id = str(uuid.uuid4())
        thread = [_validate_message(m) for m in initial_messages or []]
        thread.sort(key=lambda m: m.timestamp)
        now = _now()
        limit = history_limit or self.default_history_limit

        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT INTO chat_sessions (id, user_id, name, history_limit, thread, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (session_id, user_id, name, limit, _dump_thread(thread), now, now),
                )
            logger.info(f"Created chat session {session_id} for user {user_id}")
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to create chat session: {e}") from e
        finally:
            conn.close()

        return ChatSession(
            id=session_id,
            user_id=user_id,
            name=name,
            history_limit=limit,
            thread=thread,
            created_at=datetime.fromisoformat(now),
            updated_at=datetime.fromisoformat(now),
        )

    def get_session(self, session_id: str, user_id: Optional[str] = None) -> ChatSession:
        """Load a session with its thread. Raises SessionNotFoundError / SessionForbiddenError."""
        conn = self._connect()
        try:
            return self._row_to_session(self._fetch_row(conn, session_id, user_id))
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to load chat session {session_id}: {e}") from e
        finally:
            conn.close()

    def list_sessions(self, user_id: str) -> List[ChatSessionSummary]:
        """List a user's sessions, most recently updated first."""
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT id, name, history_limit, thread, created_at, updated_at
                FROM chat_sessions
                WHERE user_id = ?
                ORDER BY updated_at DESC
                """,
                (user_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list chat sessions: {e}") from e
        finally:
            conn.close()

        return [
            ChatSessionSummary(
                id=row["id"],
                name=row["name"],
                history_limit=row["history_limit"],
                message_count=len(json.loads(row["thread"] or "[]")),
                created_at=datetime.fromisoformat(row["created_at"]),
                updated_at=datetime.fromisoformat(row["updated_at"]),
            )
            for row in rows
        ]

    def update_session(
        self,
        session_id: str,
        user_id: Optional[str] = None,
        *,
        name: Optional[str] = None,
        history_limit: Optional[int] = None,
    ) -> ChatSession:
        """Rename a session and/or change its history limit."""
        if history_limit is not None and not 1 <= history_limit <= 200:
            raise InvalidMessageError("history_limit must be between 1 and 200")

        conn = self._connect()
        try:
            with conn:
                row = self._fetch_row(conn, session_id, user_id)
                conn.execute(
                    "UPDATE chat_sessions SET name = ?, history_limit = ?, updated_at = ? WHERE id = ?",
                    (
                        name if name is not None else row["name"],
                        history_limit if history_limit is not None else row["history_limit"],
                        _now(),
                        session_id,
                    ),
                )
                row = self._fetch_row(conn, session_id, user_id)
            return self._row_to_session(row)
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to update chat session {session_id}: {e}") from e
        finally:
            conn.close()

    def delete_session(self, session_id: str, user_id: Optional[str] = None) -> bool:
        conn = self._connect()
        try:
            with conn:
                self._fetch_row(conn, session_id, user_id)
                conn.execute("DELETE FROM applied_operations WHERE session_id = ?", (session_id,))
                cursor = conn.execute("DELETE FROM chat_sessions WHERE id = ?", (session_id,))
            deleted = cursor.rowcount > 0
            if deleted:
                logger.info(f"Deleted chat session {session_id}")
            return deleted
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to delete chat session {session_id}: {e}") from e
        finally:
            conn.close()

    def append_messages(
        self,
        session_id: str,
        messages: Sequence[MessageInput],
        operation_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> AppendResult:
        """Append messages to a session thread.

        The thread stays ordered by timestamp (stable for equal timestamps).
        Messages whose id is already in the thread are skipped. An
        `operation_id` that was already applied makes the call a no-op and
        the result has `applied=False`.
        """
        validated = [_validate_message(m) for m in messages]

        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._fetch_row(conn, session_id, user_id)
                thread = _load_thread(row["thread"])

                if operation_id:
                    cursor = conn.execute(
                        """
                        INSERT OR IGNORE INTO applied_operations (session_id, operation_id, applied_at)
                        VALUES (?, ?, ?)
                        """,
                        (session_id, operation_id, _now()),
                    )
                    if cursor.rowcount == 0:
                        conn.rollback()
                        logger.info(
                            f"Operation {operation_id} already applied to session {session_id}",
                            extra={"session_id": session_id, "operation_id": operation_id},
                        )
                        return AppendResult(
                            session_id=session_id, applied=False, message_count=len(thread)
                        )

                known_ids = {m.id for m in thread}
                new_messages = [m for m in validated if m.id not in known_ids]
                thread = sorted(thread + new_messages, key=lambda m: m.timestamp)

                conn.execute(
                    "UPDATE chat_sessions SET thread = ?, updated_at = ? WHERE id = ?",
                    (_dump_thread(thread), _now(), session_id),
                )
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to append messages to {session_id}: {e}") from e
        finally:
            conn.close()

        logger.info(
            f"Appended {len(new_messages)} message(s) to session {session_id}",
            extra={"session_id": session_id, "operation_id": operation_id},
        )
        return AppendResult(session_id=session_id, applied=True, message_count=len(thread))

    def load_thread(self, session_id: str, user_id: Optional[str] = None) -> List[ChatMessage]:
        """Return the session thread in stored order."""
        return self.get_session(session_id, user_id).thread

    def truncate_from(
        self, session_id: str, message_id: str, user_id: Optional[str] = None
    ) -> int:
        """Remove `message_id` and every later message. Returns the number removed."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._fetch_row(conn, session_id, user_id)
                thread = _load_thread(row["thread"])
                position = next((i for i, m in enumerate(thread) if m.id == message_id), None)
                if position is None:
                    raise InvalidMessageError(
                        f"Message {message_id} not found in session",
                        code="not_found",
                        status_code=404,
                        detail={"message_id": message_id},
                    )
                removed = len(thread) - position
                conn.execute(
                    "UPDATE chat_sessions SET thread = ?, updated_at = ? WHERE id = ?",
                    (_dump_thread(thread[:position]), _now(), session_id),
                )
                conn.commit()
            except BaseException:
                conn.rollback()
                raise
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to truncate session {session_id}: {e}") from e
        finally:
            conn.close()

        logger.info(f"Truncated {removed} message(s) from session {session_id}")
        return removed


# Singleton instance for dependency injection
_thread_store: ThreadStore | None = None


def get_thread_store() -> ThreadStore:
    """Get or create the thread store singleton."""
    global _thread_store
    if _thread_store is None:
        from .config import get_config

        config = get_config()
        _thread_store = ThreadStore(
            DatabaseService(config.database_path),
            default_history_limit=config.default_history_limit,
        )
    return _thread_store


__all__ = ["ThreadStore", "get_thread_store"]
