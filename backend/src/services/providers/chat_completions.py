"""Adapters for OpenAI-compatible `/chat/completions` streaming APIs.

DeepSeek, Groq and Together share the same SSE framing:

    data: {"choices": [{"delta": {...}, "finish_reason": null}]}
    ...
    data: [DONE]

Tool calls arrive either as the current `tool_calls` array of deltas keyed
by `index`, or as the legacy singular `function_call` delta. Both are
normalized to `tool_call` events; legacy deltas always use index 0.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from ...models.chat import ChatMessage, ChatRole, ToolDescriptor
from ...models.stream import StreamEvent
from ..config import DEEPSEEK_BASE_URL, GROQ_BASE_URL, TOGETHER_BASE_URL
from .base import ProviderAdapter

logger = logging.getLogger(__name__)


class ChatCompletionsAdapter(ProviderAdapter):
    """Shared implementation for chat-completions style vendors."""

    # Delta keys that carry reasoning text, in lookup order
    reasoning_keys: Tuple[str, ...] = ("reasoning_content", "reasoning")

    def serialize_messages(self, messages: List[ChatMessage]) -> List[Dict[str, Any]]:
        """Render the working message list in the vendor's wire format."""
        return [message.to_provider() for message in messages]

    def build_payload(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": self.serialize_messages(messages),
            "stream": True,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        # No tools key at all when tools are omitted: the vendor must not
        # be able to emit new tool calls on the final pass.
        if tools:
            payload["tools"] = [tool.to_openai() for tool in tools]
            payload["tool_choice"] = "auto"
        return payload

    async def stream_completion(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> AsyncIterator[StreamEvent]:
        payload = self.build_payload(messages, tools)
        logger.debug(
            f"{self.name} request: model={self.model} messages={len(payload['messages'])} "
            f"tools={len(payload.get('tools', []))}"
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    headers=self._headers(),
                    json=payload,
                ) as response:
                    if response.is_error:
                        # Streamed bodies are unread until asked for
                        await response.aread()
                    response.raise_for_status()

                    finish_reason: Optional[str] = None
                    async for line in response.aiter_lines():
                        data = self._decode_sse_data(line)
                        if data is None:
                            continue
                        if data == "[DONE]":
                            break

                        if data.get("error"):
                            error = data["error"]
                            message = error.get("message") if isinstance(error, dict) else str(error)
                            logger.error(f"{self.name} stream error: {message}")
                            yield StreamEvent.error(f"{self.name} stream error: {message}")
                            return

                        events, reason = self.parse_chunk(data)
                        if reason:
                            finish_reason = reason
                        for event in events:
                            yield event

                    yield StreamEvent.done(finish_reason)

        except httpx.HTTPStatusError as e:
            logger.error(f"{self.name} API error: {e.response.status_code} - {e.response.text}")
            yield StreamEvent.error(
                f"{self.name} API error: {e.response.status_code}",
                http_status=e.response.status_code,
            )
        except httpx.TimeoutException:
            logger.error(f"{self.name} API timeout")
            yield StreamEvent.error(f"{self.name} API timeout")
        except httpx.HTTPError as e:
            logger.error(f"{self.name} transport error: {e}")
            yield StreamEvent.error(f"{self.name} transport error: {e}")

    def parse_chunk(self, data: Dict[str, Any]) -> Tuple[List[StreamEvent], Optional[str]]:
        """Normalize one decoded SSE chunk into events plus its finish reason."""
        choices = data.get("choices") or []
        if not choices:
            return [], None

        choice = choices[0]
        delta = choice.get("delta") or {}
        events: List[StreamEvent] = []

        content = delta.get("content")
        if content:
            events.append(StreamEvent.text(content))

        for key in self.reasoning_keys:
            reasoning = delta.get(key)
            if reasoning:
                events.append(StreamEvent.reasoning(reasoning))
                break

        for tc in delta.get("tool_calls") or []:
            function = tc.get("function") or {}
            events.append(
                StreamEvent.tool_call(
                    index=tc.get("index", 0),
                    id_delta=tc.get("id") or None,
                    name_delta=function.get("name") or None,
                    arguments_delta=function.get("arguments") or None,
                )
            )

        function_call = delta.get("function_call")
        if function_call:
            events.append(
                StreamEvent.tool_call(
                    index=0,
                    name_delta=function_call.get("name") or None,
                    arguments_delta=function_call.get("arguments") or None,
                )
            )

        return events, choice.get("finish_reason")


class DeepSeekAdapter(ChatCompletionsAdapter):
    """DeepSeek chat API. Reasoning arrives as `reasoning_content`."""

    name = "deepseek"
    default_model = "deepseek-chat"
    default_base_url = DEEPSEEK_BASE_URL
    reasoning_keys = ("reasoning_content",)

    def serialize_messages(self, messages: List[ChatMessage]) -> List[Dict[str, Any]]:
        # DeepSeek rejects assistant tool-call turns without reasoning_content
        serialized = []
        for message in messages:
            wire = message.to_provider()
            if message.role == ChatRole.ASSISTANT and message.tool_calls:
                wire["reasoning_content"] = message.reasoning or ""
            serialized.append(wire)
        return serialized


class GroqAdapter(ChatCompletionsAdapter):
    """Groq chat-completions API (gpt-oss family). Reasoning arrives as `reasoning`."""

    name = "groq"
    default_model = "openai/gpt-oss-20b"
    default_base_url = GROQ_BASE_URL
    reasoning_keys = ("reasoning",)

    def build_payload(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> Dict[str, Any]:
        payload = super().build_payload(messages, tools)
        payload["reasoning_format"] = "parsed"
        return payload


class TogetherAdapter(ChatCompletionsAdapter):
    """Together AI chat-completions API."""

    name = "together"
    default_model = "meta-llama/Llama-3.3-70B-Instruct-Turbo"
    default_base_url = TOGETHER_BASE_URL


__all__ = ["ChatCompletionsAdapter", "DeepSeekAdapter", "GroqAdapter", "TogetherAdapter"]
