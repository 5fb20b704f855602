"""Agent Service - Stores agent configurations and resolves one per request."""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import List, Optional

from ..models.agent import AgentConfig
from .database import DatabaseService
from .errors import PersistenceError
from .note_tools import DEFAULT_CAPABILITIES

logger = logging.getLogger(__name__)

DEFAULT_AGENT_ID = "default"


def default_agent(provider: str = "groq") -> AgentConfig:
    """Built-in agent used when no stored agent matches."""
    return AgentConfig(
        id=DEFAULT_AGENT_ID,
        name="Assistant",
        provider=provider,
        capabilities=list(DEFAULT_CAPABILITIES),
    )


class AgentService:
    """CRUD and request-time resolution of agent configurations."""

    def __init__(self, db_service: DatabaseService | None = None):
        self._db = db_service or DatabaseService()

    @staticmethod
    def _row_to_agent(row: sqlite3.Row) -> AgentConfig:
        capabilities = json.loads(row["capabilities"] or "[]")
        return AgentConfig(
            id=row["id"],
            name=row["name"],
            provider=row["provider"],
            model=row["model"],
            temperature=row["temperature"],
            max_tokens=row["max_tokens"],
            system_instructions=row["system_instructions"],
            capabilities=capabilities or list(DEFAULT_CAPABILITIES),
            is_active=bool(row["is_active"]),
            priority=row["priority"],
        )

    def upsert_agent(self, agent: AgentConfig) -> AgentConfig:
        """Insert or replace an agent row."""
        conn = self._db.connect()
        try:
            with conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO agents
                    (id, name, provider, model, temperature, max_tokens,
                     system_instructions, capabilities, is_active, priority)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        agent.id,
                        agent.name,
                        agent.provider,
                        agent.model,
                        agent.temperature,
                        agent.max_tokens,
                        agent.system_instructions,
                        json.dumps(agent.capabilities),
                        int(agent.is_active),
                        agent.priority,
                    ),
                )
            logger.info(f"Saved agent {agent.id} ({agent.provider}/{agent.model})")
            return agent
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to save agent {agent.id}: {e}") from e
        finally:
            conn.close()

    def get_agent(self, agent_id: str) -> Optional[AgentConfig]:
        conn = self._db.connect()
        try:
            row = conn.execute("SELECT * FROM agents WHERE id = ?", (agent_id,)).fetchone()
            return self._row_to_agent(row) if row else None
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to load agent {agent_id}: {e}") from e
        finally:
            conn.close()

    def list_agents(self, active_only: bool = False) -> List[AgentConfig]:
        """List agents, highest priority first."""
        query = "SELECT * FROM agents"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY priority DESC, id"
        conn = self._db.connect()
        try:
            return [self._row_to_agent(row) for row in conn.execute(query).fetchall()]
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list agents: {e}") from e
        finally:
            conn.close()

    def resolve_agent(
        self,
        agent_id: Optional[str] = None,
        provider: Optional[str] = None,
        fallback_provider: str = "groq",
    ) -> AgentConfig:
        """Pick the agent for one request.

        Order: the explicit active `agent_id`, then the highest-priority active
        agent for `provider`, then the highest-priority active agent, then the
        built-in default.
        """
        if agent_id:
            agent = self.get_agent(agent_id)
            if agent and agent.is_active:
                return agent
            logger.warning(f"Agent {agent_id} not found or inactive, falling back")

        active = self.list_agents(active_only=True)
        if provider:
            for agent in active:
                if agent.provider == provider:
                    return agent
        if active:
            return active[0]

        return default_agent(provider or fallback_provider)


# Singleton instance for dependency injection
_agent_service: AgentService | None = None


def get_agent_service() -> AgentService:
    """Get or create the agent service singleton."""
    global _agent_service
    if _agent_service is None:
        from .config import get_config

        _agent_service = AgentService(DatabaseService(get_config().database_path))
    return _agent_service


__all__ = ["AgentService", "get_agent_service", "default_agent", "DEFAULT_AGENT_ID"]
