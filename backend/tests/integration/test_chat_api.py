"""Integration tests for the chat and chat-session HTTP endpoints.

The FastAPI app runs in-process with TestClient. Storage is a temporary
SQLite file; the LLM vendor is replaced by a scripted adapter and the note
tools by an in-memory fake, through `app.dependency_overrides`.
"""

from __future__ import annotations

import asyncio
import json
import threading
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sse_starlette.sse import AppStatus

from backend.src.api.main import app, lifespan
from backend.src.api.middleware import AuthContext, get_auth_service
from backend.src.api.routes.chat import chat_llm
from backend.src.models.agent import DEFAULT_AGENT_MODEL
from backend.src.models.auth import JWTPayload
from backend.src.models.chat import ChatMessage, LLMRequest, ToolDescriptor
from backend.src.models.stream import StreamEvent
from backend.src.services.agent_service import AgentService, get_agent_service
from backend.src.services.auth import AuthService
from backend.src.services.config import AppConfig, get_config
from backend.src.services.database import DatabaseService
from backend.src.services.errors import ConfigurationError
from backend.src.services.providers import ProviderRegistry, get_provider_registry
from backend.src.services.providers.base import ProviderAdapter
from backend.src.services.thread_store import ThreadStore, get_thread_store
from backend.src.services.tool_registry import ToolRegistry, get_tool_registry


class ScriptedProvider(ProviderAdapter):
    """Adapter replaying scripted events; one script consumed per call."""

    name = "scripted"
    default_model = "scripted-model"

    def __init__(self, scripts: List[List[StreamEvent]]) -> None:
        super().__init__("test-key")
        self.scripts = scripts
        self.calls: List[Dict[str, Any]] = []

    async def stream_completion(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> AsyncIterator[StreamEvent]:
        self.calls.append({"messages": list(messages), "tools": tools, "thread": threading.get_ident()})
        for event in self.scripts.pop(0):
            yield event


TOOL_TURN = [
    [
        StreamEvent.tool_call(0, id_delta="call_1", name_delta="create_note", arguments_delta='{"source_'),
        StreamEvent.tool_call(0, arguments_delta='title":"X"}'),
        StreamEvent.done("tool_calls"),
    ],
    [StreamEvent.text("La note X a été créée."), StreamEvent.done("stop")],
]


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse_starlette keeps a process-wide exit event bound to the first loop."""
    AppStatus.should_exit_event = None
    yield
    AppStatus.should_exit_event = None


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        groq_api_key="test-groq-key",
        database_path=tmp_path / "chat.db",
        jwt_secret_key="integration-test-secret-0123456789",
        enable_local_mode=False,
    )


@pytest.fixture
def db(config: AppConfig) -> DatabaseService:
    service = DatabaseService(config.database_path)
    service.initialize()
    return service


@pytest.fixture
def store(db: DatabaseService) -> ThreadStore:
    return ThreadStore(db)


@pytest.fixture
def created_notes() -> List[Dict[str, Any]]:
    return []


@pytest.fixture
def registry(created_notes: List[Dict[str, Any]]) -> ToolRegistry:
    reg = ToolRegistry(timeout_seconds=5.0)

    async def create_note(context, source_title=None, **kwargs):
        created_notes.append({"user": context.user_id, "title": source_title})
        return {"success": True, "note": {"id": "note-1", "source_title": source_title}}

    reg.register(
        ToolDescriptor(
            name="create_note",
            description="Créer une note",
            parameters={
                "type": "object",
                "properties": {"source_title": {"type": "string"}},
                "required": ["source_title"],
            },
        ),
        create_note,
    )
    return reg


@pytest.fixture
def scripts() -> List[List[StreamEvent]]:
    """Event scripts consumed by the provider, one per call."""
    return []


@pytest.fixture
def provider(scripts: List[List[StreamEvent]]) -> ScriptedProvider:
    # Per-call copies share `scripts` and `calls` with this instance
    return ScriptedProvider(scripts)


@pytest.fixture
def providers(provider: ScriptedProvider) -> ProviderRegistry:
    return ProviderRegistry({"groq": provider}, "groq")


@pytest.fixture
def client(config, db, store, registry, providers):
    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_auth_service] = lambda: AuthService(config)
    app.dependency_overrides[get_thread_store] = lambda: store
    app.dependency_overrides[get_agent_service] = lambda: AgentService(db)
    app.dependency_overrides[get_tool_registry] = lambda: registry
    app.dependency_overrides[get_provider_registry] = lambda: providers
    yield TestClient(app)
    app.dependency_overrides = {}


@pytest.fixture
def auth_headers(config: AppConfig) -> Dict[str, str]:
    token = AuthService(config).create_jwt("user-1")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def session_id(client: TestClient, auth_headers: Dict[str, str]) -> str:
    response = client.post("/api/ui/chat-sessions", json={"name": "Test"}, headers=auth_headers)
    assert response.status_code == 201
    return response.json()["id"]


def _chat_body(session_id: str, message: str = "Créer une note 'X'", **extra) -> Dict[str, Any]:
    body = {"message": message, "context": {"sessionId": session_id}}
    body.update(extra)
    return body


def _sse_payloads(text: str) -> List[Dict[str, Any]]:
    return [
        json.loads(line[len("data:"):].strip())
        for line in text.splitlines()
        if line.startswith("data:")
    ]


class TestChatEndpoint:
    """POST /api/chat/llm"""

    def test_plain_answer(self, client, auth_headers, session_id, scripts) -> None:
        scripts.append([StreamEvent.text("Bonjour !"), StreamEvent.done("stop")])

        response = client.post("/api/chat/llm", json=_chat_body(session_id, "Salut"), headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["content"] == "Bonjour !"
        assert data["has_new_tool_calls"] is False
        assert data["is_relance"] is False
        # Default agent targets groq, so its model rides on the prebuilt adapter
        assert data["model_used"] == DEFAULT_AGENT_MODEL

    def test_tool_turn_is_answered_and_persisted(
        self, client, auth_headers, session_id, scripts, created_notes, provider
    ) -> None:
        scripts.extend(TOOL_TURN)

        response = client.post("/api/chat/llm", json=_chat_body(session_id), headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["content"] == "La note X a été créée."
        assert data["has_new_tool_calls"] is False
        assert data["is_relance"] is True
        assert data["tool_calls"][0]["function"]["name"] == "create_note"
        assert data["tool_results"][0]["tool_call_id"] == "call_1"
        assert created_notes == [{"user": "user-1", "title": "X"}]
        assert provider.calls[1]["tools"] is None

        thread = client.get(f"/api/ui/chat-sessions/{session_id}/messages", headers=auth_headers).json()
        assert [m["role"] for m in thread] == ["user", "assistant", "tool", "assistant"]
        assert thread[2]["tool_call_id"] == "call_1"
        assert thread[2]["name"] == "create_note"

    def test_ui_context_reaches_system_prompt(
        self, client, auth_headers, session_id, scripts, provider
    ) -> None:
        scripts.append([StreamEvent.text("ok")])
        body = _chat_body(session_id, "Résume")
        body["context"]["uiContext"] = {"classeurName": "Travail", "noteTitle": "Courses"}

        client.post("/api/chat/llm", json=body, headers=auth_headers)

        system_prompt = provider.calls[0]["messages"][0].content
        assert "- Classeur actuel : Travail" in system_prompt
        assert "- Note actuelle : Courses" in system_prompt

    def test_operation_id_persists_turn_once(
        self, client, auth_headers, session_id, scripts
    ) -> None:
        scripts.append([StreamEvent.text("Premier")])
        scripts.append([StreamEvent.text("Second")])
        body = _chat_body(session_id, "Salut", operationId="op-42")

        assert client.post("/api/chat/llm", json=body, headers=auth_headers).status_code == 200
        assert client.post("/api/chat/llm", json=body, headers=auth_headers).status_code == 200

        thread = client.get(f"/api/ui/chat-sessions/{session_id}/messages", headers=auth_headers).json()
        assert [m["content"] for m in thread] == ["Salut", "Premier"]

    def test_provider_error_persists_nothing(
        self, client, auth_headers, session_id, scripts
    ) -> None:
        scripts.append([StreamEvent.error("groq API error: 429", 429)])

        response = client.post("/api/chat/llm", json=_chat_body(session_id), headers=auth_headers)

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["code"] == "provider_error"
        assert data["detail"]["http_status"] == 429
        thread = client.get(f"/api/ui/chat-sessions/{session_id}/messages", headers=auth_headers).json()
        assert thread == []

    def test_empty_completion_is_an_error(self, client, auth_headers, session_id, scripts) -> None:
        scripts.append([StreamEvent.done("stop")])

        response = client.post("/api/chat/llm", json=_chat_body(session_id), headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["code"] == "empty_completion"

    def test_unknown_session_is_not_found(self, client, auth_headers) -> None:
        response = client.post("/api/chat/llm", json=_chat_body("missing"), headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    def test_empty_message_is_rejected(self, client, auth_headers, session_id) -> None:
        response = client.post("/api/chat/llm", json=_chat_body(session_id, ""), headers=auth_headers)

        assert response.status_code == 422
        data = response.json()
        assert data["code"] == "validation_error"
        assert data["detail"]["errors"]

    def test_missing_token_is_unauthorized(self, client, session_id) -> None:
        response = client.post("/api/chat/llm", json=_chat_body(session_id))

        assert response.status_code == 401
        assert response.json()["code"] == "unauthorized"

    def test_garbage_token_is_rejected(self, client, session_id) -> None:
        response = client.post(
            "/api/chat/llm",
            json=_chat_body(session_id),
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401
        assert response.json()["code"] == "invalid_token"


class TestChatStreamEndpoint:
    """POST /api/chat/llm/stream"""

    def test_stream_chunks_and_persistence(
        self, client, auth_headers, session_id, scripts
    ) -> None:
        scripts.extend(TOOL_TURN)

        response = client.post("/api/chat/llm/stream", json=_chat_body(session_id), headers=auth_headers)

        assert response.status_code == 200
        chunks = _sse_payloads(response.text)
        assert [c["type"] for c in chunks] == ["tool_call", "tool_result", "content", "done"]
        assert chunks[-1]["has_new_tool_calls"] is False
        assert chunks[-1]["is_relance"] is True

        thread = client.get(f"/api/ui/chat-sessions/{session_id}/messages", headers=auth_headers).json()
        assert len(thread) == 4

    def test_stream_persistence_runs_off_the_event_loop(
        self, client, auth_headers, session_id, scripts, store, provider
    ) -> None:
        scripts.append([StreamEvent.text("Bonjour"), StreamEvent.done("stop")])
        append_threads: List[int] = []
        append_messages = store.append_messages

        def recording_append(*args, **kwargs):
            append_threads.append(threading.get_ident())
            return append_messages(*args, **kwargs)

        with patch.object(store, "append_messages", side_effect=recording_append):
            response = client.post("/api/chat/llm/stream", json=_chat_body(session_id), headers=auth_headers)

        assert _sse_payloads(response.text)[-1]["type"] == "done"
        loop_thread = provider.calls[0]["thread"]
        assert len(append_threads) == 1
        assert append_threads[0] != loop_thread

    def test_stream_error_chunk(self, client, auth_headers, session_id, scripts) -> None:
        scripts.append([StreamEvent.text("Je "), StreamEvent.error("groq API error: 503", 503)])

        response = client.post("/api/chat/llm/stream", json=_chat_body(session_id), headers=auth_headers)

        chunks = _sse_payloads(response.text)
        assert chunks[0] == {"type": "content", "content": "Je "}
        assert chunks[-1]["type"] == "error"
        assert chunks[-1]["code"] == "provider_error"
        thread = client.get(f"/api/ui/chat-sessions/{session_id}/messages", headers=auth_headers).json()
        assert thread == []


class TestSessionEndpoints:
    """/api/ui/chat-sessions"""

    def test_create_list_rename_delete(self, client, auth_headers) -> None:
        created = client.post(
            "/api/ui/chat-sessions",
            json={"name": "Projet", "initial_message": "Bonjour"},
            headers=auth_headers,
        ).json()
        session_id = created["id"]
        assert [m["content"] for m in created["thread"]] == ["Bonjour"]

        listing = client.get("/api/ui/chat-sessions", headers=auth_headers).json()
        assert listing["total"] == 1
        assert listing["sessions"][0]["message_count"] == 1

        renamed = client.patch(
            f"/api/ui/chat-sessions/{session_id}",
            json={"name": "Projet 2", "history_limit": 10},
            headers=auth_headers,
        ).json()
        assert renamed["name"] == "Projet 2"
        assert renamed["history_limit"] == 10

        assert client.delete(f"/api/ui/chat-sessions/{session_id}", headers=auth_headers).status_code == 200
        assert client.get(f"/api/ui/chat-sessions/{session_id}", headers=auth_headers).status_code == 404

    def test_batch_append_is_idempotent(self, client, auth_headers, session_id) -> None:
        batch = {
            "operation_id": "op-1",
            "messages": [
                {"role": "user", "content": "Lis la note"},
                {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {"id": "c1", "type": "function", "function": {"name": "get_note", "arguments": "{}"}}
                    ],
                },
                {"role": "tool", "tool_call_id": "c1", "name": "get_note", "content": "{}"},
            ],
        }
        url = f"/api/ui/chat-sessions/{session_id}/messages/batch"

        first = client.post(url, json=batch, headers=auth_headers).json()
        second = client.post(url, json=batch, headers=auth_headers).json()

        assert first["applied"] is True
        assert second["applied"] is False
        assert second["message_count"] == 3

    def test_tool_message_without_name_is_rejected(self, client, auth_headers, session_id) -> None:
        response = client.post(
            f"/api/ui/chat-sessions/{session_id}/messages",
            json={"message": {"role": "tool", "tool_call_id": "c1", "content": "{}"}},
            headers=auth_headers,
        )

        assert response.status_code == 422

    def test_truncate_from_message(self, client, auth_headers, session_id) -> None:
        url = f"/api/ui/chat-sessions/{session_id}/messages"
        client.post(url, json={"message": {"role": "user", "content": "un"}}, headers=auth_headers)
        client.post(url, json={"message": {"role": "assistant", "content": "deux"}}, headers=auth_headers)
        thread = client.get(url, headers=auth_headers).json()

        response = client.delete(f"{url}/{thread[1]['id']}", headers=auth_headers)

        assert response.json()["removed"] == 1
        assert [m["content"] for m in client.get(url, headers=auth_headers).json()] == ["un"]

    def test_other_users_session_is_forbidden(self, client, config, session_id) -> None:
        token = AuthService(config).create_jwt("user-2")

        response = client.get(
            f"/api/ui/chat-sessions/{session_id}", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "healthy"}


class TestStartup:
    """Application lifespan."""

    @pytest.mark.asyncio
    async def test_missing_default_provider_key_stops_startup(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr("backend.src.services.providers._provider_registry", None)
        config = AppConfig(
            deepseek_api_key="sk-test",
            default_provider="groq",
            database_path=tmp_path / "chat.db",
        )

        with patch("backend.src.api.main.get_config", return_value=config):
            with pytest.raises(ConfigurationError) as excinfo:
                async with lifespan(app):
                    pass

        assert "groq" in excinfo.value.message
        assert not (tmp_path / "chat.db").exists()

    @pytest.mark.asyncio
    async def test_adapters_are_built_at_startup(self, tmp_path, monkeypatch, registry) -> None:
        monkeypatch.setattr("backend.src.services.providers._provider_registry", None)
        config = AppConfig(groq_api_key="gsk-test", database_path=tmp_path / "chat.db")

        with patch("backend.src.api.main.get_config", return_value=config), patch(
            "backend.src.api.main.get_tool_registry", return_value=registry
        ):
            async with lifespan(app):
                built = get_provider_registry()

        assert built.default_provider == "groq"
        assert built.names() == ["groq", "groq-responses"]
        assert get_provider_registry() is built


class TestCancellation:
    """A cancelled turn persists nothing."""

    @pytest.mark.asyncio
    async def test_cancelled_turn_leaves_thread_unchanged(self, config, db, store, registry) -> None:
        started = asyncio.Event()

        class BlockingProvider(ScriptedProvider):
            async def stream_completion(self, messages, tools=None):
                yield StreamEvent.text("Bon")
                started.set()
                await asyncio.Event().wait()

        session = store.create_session("user-1", name="Test")
        auth = AuthContext(
            user_id="user-1",
            token="token",
            payload=JWTPayload(sub="user-1", iat=0, exp=2_000_000_000),
        )
        request = LLMRequest(message="Salut", context={"sessionId": session.id})

        task = asyncio.create_task(
            chat_llm(
                request,
                auth=auth,
                config=config,
                agents=AgentService(db),
                store=store,
                registry=registry,
                providers=ProviderRegistry({"groq": BlockingProvider([])}, "groq"),
            )
        )
        await asyncio.wait_for(started.wait(), timeout=1.0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert store.load_thread(session.id) == []
