"""Base class for LLM provider adapters.

An adapter turns one streaming vendor call into a sequence of normalized
`StreamEvent` objects. It does framing only: no semantic validation of
tool-call arguments and no retries.
"""

from __future__ import annotations

import copy
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

from ...models.chat import ChatMessage, ToolDescriptor
from ...models.stream import StreamEvent
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """Abstract base class for one LLM vendor.

    Subclasses define `name`, `default_model` and `default_base_url` and
    implement `stream_completion`.
    """

    name: str = "base"
    default_model: str = ""
    default_base_url: str = ""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: float = 120.0,
        temperature: float = 0.7,
        max_tokens: int = 4000,
    ) -> None:
        if not api_key:
            raise ConfigurationError(
                f"Missing API key for provider '{self.name}'",
                detail={"provider": self.name},
            )
        self.api_key = api_key
        self.model = model or self.default_model
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self.max_tokens = max_tokens

    def with_options(
        self,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> "ProviderAdapter":
        """Return a copy carrying per-call options. The API key is not re-read."""
        adapter = copy.copy(self)
        if model:
            adapter.model = model
        if temperature is not None:
            adapter.temperature = temperature
        if max_tokens is not None:
            adapter.max_tokens = max_tokens
        return adapter

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    @abstractmethod
    def stream_completion(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Open a streaming call and yield normalized events.

        The sequence is lazy, finite and not restartable. It ends with a
        single `done` event on success or a single `error` event when the
        vendor answers non-2xx or the transport fails.
        """

    @staticmethod
    def _decode_sse_data(line: str) -> Optional[Any]:
        """Return the decoded JSON payload of a `data: ` line, or None to skip it."""
        if not line.startswith("data:"):
            return None
        data_str = line[5:].strip()
        if not data_str:
            return None
        if data_str == "[DONE]":
            return "[DONE]"
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            logger.debug(f"Skipping undecodable SSE line: {data_str[:200]}")
            return None
        return data if isinstance(data, dict) else None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"


__all__ = ["ProviderAdapter"]
