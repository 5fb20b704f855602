"""LLM provider adapters.

Each vendor's streaming framing is normalized into `StreamEvent` objects
behind the `ProviderAdapter` interface. Add a vendor by writing one adapter
and registering it in `PROVIDERS`; the orchestration loop never branches on
the vendor.

Usage:
    from .providers import get_provider_registry

    adapter = get_provider_registry().get("deepseek", model="deepseek-chat")
    async for event in adapter.stream_completion(messages, tools):
        ...
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Type

from ..config import AppConfig
from ..errors import ConfigurationError
from .base import ProviderAdapter
from .chat_completions import (
    ChatCompletionsAdapter,
    DeepSeekAdapter,
    GroqAdapter,
    TogetherAdapter,
)
from .groq_responses import GroqResponsesAdapter

logger = logging.getLogger(__name__)

PROVIDERS: Dict[str, Type[ProviderAdapter]] = {
    "deepseek": DeepSeekAdapter,
    "groq": GroqAdapter,
    "groq-responses": GroqResponsesAdapter,
    "together": TogetherAdapter,
}


def _base_url_for(name: str, config: AppConfig) -> Optional[str]:
    vendor = name.split("-", 1)[0]
    return {
        "deepseek": config.deepseek_base_url,
        "groq": config.groq_base_url,
        "together": config.together_base_url,
    }.get(vendor)


def build_provider(
    name: str,
    config: AppConfig,
    *,
    model: Optional[str] = None,
    temperature: float = 0.7,
    max_tokens: int = 4000,
) -> ProviderAdapter:
    """Construct the adapter registered under `name`.

    Raises:
        ConfigurationError: unknown provider name or missing API key
    """
    adapter_cls = PROVIDERS.get(name)
    if adapter_cls is None:
        raise ConfigurationError(
            f"Unknown provider '{name}'",
            detail={"provider": name, "available": sorted(PROVIDERS)},
        )
    return adapter_cls(
        config.api_key_for(name),
        model=model,
        base_url=_base_url_for(name, config),
        timeout_seconds=config.provider_timeout_seconds,
        temperature=temperature,
        max_tokens=max_tokens,
    )


def available_providers(config: AppConfig) -> List[str]:
    """Names of providers whose API key is configured."""
    return [name for name in PROVIDERS if config.api_key_for(name)]


class ProviderRegistry:
    """Adapters built once at startup, one per vendor with a configured key.

    Requests get a copy of the prebuilt adapter carrying their own model,
    temperature and max_tokens; keys are never re-read per request.
    """

    def __init__(self, adapters: Dict[str, ProviderAdapter], default_provider: str) -> None:
        if default_provider not in adapters:
            raise ConfigurationError(
                f"No API key configured for default provider '{default_provider}'",
                detail={"provider": default_provider, "available": sorted(adapters)},
            )
        self._adapters = dict(adapters)
        self.default_provider = default_provider

    @classmethod
    def from_config(cls, config: AppConfig) -> "ProviderRegistry":
        """Build every configured adapter.

        Raises:
            ConfigurationError: `default_provider` is unknown or has no API key
        """
        if config.default_provider not in PROVIDERS:
            raise ConfigurationError(
                f"Unknown default provider '{config.default_provider}'",
                detail={"provider": config.default_provider, "available": sorted(PROVIDERS)},
            )
        adapters = {name: build_provider(name, config) for name in available_providers(config)}
        return cls(adapters, config.default_provider)

    def names(self) -> List[str]:
        return list(self._adapters)

    def has(self, name: str) -> bool:
        return name in self._adapters

    def get(
        self,
        name: Optional[str] = None,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ProviderAdapter:
        """Adapter for `name` (default provider if None) with per-call options.

        Raises:
            ConfigurationError: `name` is unknown or has no API key (HTTP 400)
        """
        name = name or self.default_provider
        adapter = self._adapters.get(name)
        if adapter is None:
            raise ConfigurationError(
                f"Provider '{name}' is not available",
                code="provider_unavailable",
                status_code=400,
                detail={"provider": name, "available": self.names()},
            )
        return adapter.with_options(model=model, temperature=temperature, max_tokens=max_tokens)


# Singleton instance for dependency injection
_provider_registry: Optional[ProviderRegistry] = None


def init_provider_registry(config: AppConfig) -> ProviderRegistry:
    """Build the adapters (startup). Raises ConfigurationError on a missing default key."""
    global _provider_registry
    _provider_registry = ProviderRegistry.from_config(config)
    logger.info(
        f"LLM providers available: {', '.join(_provider_registry.names())} "
        f"(default: {_provider_registry.default_provider})"
    )
    return _provider_registry


def get_provider_registry() -> ProviderRegistry:
    """Get the provider registry, building it on first use."""
    if _provider_registry is None:
        from ..config import get_config

        return init_provider_registry(get_config())
    return _provider_registry


__all__ = [
    "PROVIDERS",
    "ProviderAdapter",
    "ProviderRegistry",
    "ChatCompletionsAdapter",
    "DeepSeekAdapter",
    "GroqAdapter",
    "GroqResponsesAdapter",
    "TogetherAdapter",
    "build_provider",
    "available_providers",
    "init_provider_registry",
    "get_provider_registry",
]
