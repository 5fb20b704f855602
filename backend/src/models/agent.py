"""Pydantic models for agent configuration."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_AGENT_MODEL = "openai/gpt-oss-20b"
DEFAULT_SYSTEM_INSTRUCTIONS = "Tu es un assistant IA utile et compétent."


class AgentConfig(BaseModel):
    """Agent settings injected into one orchestration turn."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=256)
    provider: str = Field("groq", description="Provider key (deepseek, groq, groq-responses, together)")
    model: str = Field(DEFAULT_AGENT_MODEL)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(4000, ge=1, le=100000)
    system_instructions: str = Field(DEFAULT_SYSTEM_INSTRUCTIONS)
    capabilities: List[str] = Field(
        default_factory=list,
        description="Tool names this agent may see; empty means the default set",
    )
    is_active: bool = True
    priority: int = 0


__all__ = ["AgentConfig", "DEFAULT_AGENT_MODEL", "DEFAULT_SYSTEM_INSTRUCTIONS"]
