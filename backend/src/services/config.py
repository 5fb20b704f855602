"""Application configuration helpers."""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

PROJECT_ROOT = Path(__file__).resolve().parents[3]
DEFAULT_DB_PATH = PROJECT_ROOT / "data" / "chat.db"

DEEPSEEK_BASE_URL = "https://api.deepseek.com"
DEEPSEEK_STRICT_BASE_URL = "https://api.deepseek.com/beta"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"
TOGETHER_BASE_URL = "https://api.together.xyz/v1"

_FALSY = {"0", "false", "no"}


class AppConfig(BaseModel):
    """Runtime configuration loaded from environment variables."""

    model_config = ConfigDict(frozen=True)

    deepseek_api_key: Optional[str] = Field(None, description="DeepSeek API key")
    groq_api_key: Optional[str] = Field(None, description="Groq API key")
    together_api_key: Optional[str] = Field(None, description="Together AI API key")
    deepseek_base_url: str = Field(default=DEEPSEEK_BASE_URL)
    groq_base_url: str = Field(default=GROQ_BASE_URL)
    together_base_url: str = Field(default=TOGETHER_BASE_URL)
    default_provider: str = Field(
        default="groq",
        description="Provider used when the request does not name one",
    )
    provider_timeout_seconds: float = Field(
        default=120.0,
        description="Hard ceiling for one vendor call, enforced across the whole stream",
    )
    tool_timeout_seconds: float = Field(
        default=30.0,
        description="Ceiling for a single tool execution",
    )
    notes_api_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the internal notes REST API used by tools",
    )
    database_path: Path = Field(default=DEFAULT_DB_PATH, description="SQLite file for chat sessions")
    default_history_limit: int = Field(default=30, ge=1, le=200)
    jwt_secret_key: Optional[str] = Field(
        default=None,
        description="HMAC secret for JWT validation",
    )
    enable_local_mode: bool = Field(
        default=True,
        description="Allow local-dev token bypass when running locally",
    )
    local_dev_token: Optional[str] = Field(
        default="local-dev-token",
        description="Static token accepted in local mode for development",
    )

    @field_validator("database_path", mode="before")
    @classmethod
    def _normalize_db_path(cls, value: str | Path | None) -> Path:
        if value is None or value == "":
            return DEFAULT_DB_PATH
        path = value if isinstance(value, Path) else Path(value)
        return path.expanduser().resolve()

    @field_validator("provider_timeout_seconds", "tool_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value

    @field_validator("deepseek_api_key", "groq_api_key", "together_api_key", mode="before")
    @classmethod
    def _blank_key_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("jwt_secret_key", mode="before")
    @classmethod
    def _ensure_secret(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        if not cleaned:
            raise ValueError(
                "JWT_SECRET_KEY cannot be empty; unset the variable to disable JWT auth in local mode"
            )
        if len(cleaned) < 16:
            raise ValueError("JWT_SECRET_KEY must be at least 16 characters")
        return cleaned

    def api_key_for(self, provider: str) -> Optional[str]:
        """Return the API key of the vendor behind `provider`."""
        vendor = provider.split("-", 1)[0]
        return {
            "deepseek": self.deepseek_api_key,
            "groq": self.groq_api_key,
            "together": self.together_api_key,
        }.get(vendor)


def _read_env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(key, default)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load and cache application configuration."""
    strict_mode = _read_env("DEEPSEEK_STRICT_MODE", "false").lower() == "true"
    deepseek_default = DEEPSEEK_STRICT_BASE_URL if strict_mode else DEEPSEEK_BASE_URL

    config = AppConfig(
        deepseek_api_key=_read_env("DEEPSEEK_API_KEY"),
        groq_api_key=_read_env("GROQ_API_KEY"),
        together_api_key=_read_env("TOGETHER_API_KEY"),
        deepseek_base_url=_read_env("DEEPSEEK_BASE_URL", deepseek_default),
        groq_base_url=_read_env("GROQ_BASE_URL", GROQ_BASE_URL),
        together_base_url=_read_env("TOGETHER_BASE_URL", TOGETHER_BASE_URL),
        default_provider=_read_env("DEFAULT_PROVIDER", "groq"),
        provider_timeout_seconds=float(_read_env("PROVIDER_TIMEOUT_SECONDS", "120")),
        tool_timeout_seconds=float(_read_env("TOOL_TIMEOUT_SECONDS", "30")),
        notes_api_base_url=_read_env("NOTES_API_BASE_URL", "http://localhost:3000"),
        database_path=_read_env("CHAT_DB_PATH", str(DEFAULT_DB_PATH)),
        default_history_limit=int(_read_env("DEFAULT_HISTORY_LIMIT", "30")),
        jwt_secret_key=_read_env("JWT_SECRET_KEY"),
        enable_local_mode=_read_env("ENABLE_LOCAL_MODE", "true").lower() not in _FALSY,
        local_dev_token=_read_env("LOCAL_DEV_TOKEN", "local-dev-token"),
    )
    return config


def reload_config() -> AppConfig:
    """Clear cached config (useful for tests) and reload."""
    get_config.cache_clear()
    return get_config()


__all__ = ["AppConfig", "get_config", "reload_config", "PROJECT_ROOT", "DEFAULT_DB_PATH"]
