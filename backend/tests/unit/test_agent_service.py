"""Unit tests for AgentService resolution."""

from pathlib import Path

import pytest

from backend.src.models.agent import AgentConfig
from backend.src.services.agent_service import DEFAULT_AGENT_ID, AgentService, default_agent
from backend.src.services.database import DatabaseService
from backend.src.services.note_tools import DEFAULT_CAPABILITIES


@pytest.fixture
def service(tmp_path: Path) -> AgentService:
    db = DatabaseService(tmp_path / "chat.db")
    db.initialize()
    return AgentService(db)


def _agent(agent_id: str, provider: str = "groq", priority: int = 0, **kwargs) -> AgentConfig:
    return AgentConfig(id=agent_id, name=agent_id.title(), provider=provider, priority=priority, **kwargs)


class TestResolveAgent:
    """Explicit id, then provider, then priority, then built-in default."""

    def test_empty_store_returns_default(self, service: AgentService) -> None:
        agent = service.resolve_agent(provider="deepseek")

        assert agent.id == DEFAULT_AGENT_ID
        assert agent.provider == "deepseek"
        assert agent.capabilities == list(DEFAULT_CAPABILITIES)

    def test_explicit_agent_id_wins(self, service: AgentService) -> None:
        service.upsert_agent(_agent("writer", provider="deepseek"))
        service.upsert_agent(_agent("top", provider="groq", priority=10))

        assert service.resolve_agent(agent_id="writer", provider="groq").id == "writer"

    def test_inactive_explicit_agent_falls_back(self, service: AgentService) -> None:
        service.upsert_agent(_agent("sleepy", is_active=False))
        service.upsert_agent(_agent("awake"))

        assert service.resolve_agent(agent_id="sleepy").id == "awake"

    def test_provider_match_by_priority(self, service: AgentService) -> None:
        service.upsert_agent(_agent("groq-low", provider="groq", priority=1))
        service.upsert_agent(_agent("groq-high", provider="groq", priority=5))
        service.upsert_agent(_agent("deepseek-top", provider="deepseek", priority=50))

        assert service.resolve_agent(provider="groq").id == "groq-high"

    def test_highest_priority_when_no_provider_match(self, service: AgentService) -> None:
        service.upsert_agent(_agent("a", provider="groq", priority=1))
        service.upsert_agent(_agent("b", provider="deepseek", priority=3))

        assert service.resolve_agent(provider="together").id == "b"


class TestAgentStorage:
    """Round-trip through SQLite."""

    def test_empty_capabilities_load_as_default_set(self, service: AgentService) -> None:
        service.upsert_agent(_agent("bare", capabilities=[]))

        assert service.get_agent("bare").capabilities == list(DEFAULT_CAPABILITIES)

    def test_capabilities_round_trip(self, service: AgentService) -> None:
        service.upsert_agent(_agent("reader", capabilities=["get_note", "search_content"]))

        assert service.get_agent("reader").capabilities == ["get_note", "search_content"]

    def test_upsert_replaces(self, service: AgentService) -> None:
        service.upsert_agent(_agent("x", temperature=0.2))
        service.upsert_agent(_agent("x", temperature=0.9))

        agents = service.list_agents()
        assert len(agents) == 1
        assert agents[0].temperature == 0.9

    def test_list_active_only(self, service: AgentService) -> None:
        service.upsert_agent(_agent("on"))
        service.upsert_agent(_agent("off", is_active=False))

        assert [a.id for a in service.list_agents(active_only=True)] == ["on"]

    def test_missing_agent_is_none(self, service: AgentService) -> None:
        assert service.get_agent("ghost") is None

    def test_default_agent_has_default_capabilities(self) -> None:
        assert default_agent().capabilities == list(DEFAULT_CAPABILITIES)
