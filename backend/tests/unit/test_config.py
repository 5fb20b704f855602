from pathlib import Path

import pytest

from backend.src.services import config as config_module


@pytest.fixture(autouse=True)
def restore_config_cache():
    """
    Ensure configuration cache is cleared between tests.
    """
    config_module.reload_config()
    yield
    config_module.reload_config()


def test_get_config_allows_missing_jwt_secret(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("JWT_SECRET_KEY", raising=False)
    monkeypatch.setenv("CHAT_DB_PATH", str(tmp_path / "chat.db"))

    cfg = config_module.reload_config()

    assert cfg.jwt_secret_key is None
    assert cfg.database_path == (tmp_path / "chat.db").resolve()


def test_get_config_rejects_short_jwt_secret(monkeypatch) -> None:
    monkeypatch.setenv("JWT_SECRET_KEY", "short")

    with pytest.raises(ValueError):
        config_module.reload_config()


def test_get_config_defaults(monkeypatch) -> None:
    for key in (
        "DEFAULT_PROVIDER",
        "PROVIDER_TIMEOUT_SECONDS",
        "TOOL_TIMEOUT_SECONDS",
        "DEFAULT_HISTORY_LIMIT",
        "DEEPSEEK_STRICT_MODE",
        "DEEPSEEK_BASE_URL",
        "JWT_SECRET_KEY",
    ):
        monkeypatch.delenv(key, raising=False)

    cfg = config_module.reload_config()

    assert cfg.default_provider == "groq"
    assert cfg.provider_timeout_seconds == 120
    assert cfg.tool_timeout_seconds == 30
    assert cfg.default_history_limit == 30
    assert cfg.deepseek_base_url == config_module.DEEPSEEK_BASE_URL
    assert cfg.groq_base_url == "https://api.groq.com/openai/v1"


def test_deepseek_strict_mode_switches_to_beta(monkeypatch) -> None:
    monkeypatch.delenv("DEEPSEEK_BASE_URL", raising=False)
    monkeypatch.setenv("DEEPSEEK_STRICT_MODE", "true")

    cfg = config_module.reload_config()

    assert cfg.deepseek_base_url == "https://api.deepseek.com/beta"


def test_non_positive_provider_timeout_rejected(monkeypatch) -> None:
    monkeypatch.setenv("PROVIDER_TIMEOUT_SECONDS", "0")

    with pytest.raises(ValueError):
        config_module.reload_config()


def test_blank_api_key_is_treated_as_missing(monkeypatch) -> None:
    monkeypatch.setenv("GROQ_API_KEY", "   ")
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-deepseek")

    cfg = config_module.reload_config()

    assert cfg.groq_api_key is None
    assert cfg.api_key_for("groq") is None
    assert cfg.api_key_for("groq-responses") is None
    assert cfg.api_key_for("deepseek") == "sk-deepseek"
    assert cfg.api_key_for("mistral") is None
