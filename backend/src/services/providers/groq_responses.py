"""Adapter for the Groq Responses API (`POST /responses`).

The Responses API streams typed events instead of chat-completions deltas:

    event: response.output_text.delta
    data: {"type": "response.output_text.delta", "delta": "Bon"}

Function calls open with `response.output_item.added` carrying a
`function_call` item, then stream `response.function_call_arguments.delta`
fragments keyed by `output_index`. Each function-call output index is
mapped to a dense tool-call index so the accumulator sees the same shape
as for chat-completions vendors.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ...models.chat import ChatMessage, ChatRole, ToolDescriptor
from ...models.stream import StreamEvent
from ..config import GROQ_BASE_URL
from .base import ProviderAdapter

logger = logging.getLogger(__name__)


class GroqResponsesAdapter(ProviderAdapter):
    """Groq Responses API adapter."""

    name = "groq-responses"
    default_model = "openai/gpt-oss-20b"
    default_base_url = GROQ_BASE_URL

    def build_input(self, messages: List[ChatMessage]) -> List[Dict[str, Any]]:
        """Convert chat messages into Responses `input` items."""
        items: List[Dict[str, Any]] = []
        for message in messages:
            if message.role == ChatRole.TOOL:
                items.append({
                    "type": "function_call_output",
                    "call_id": message.tool_call_id,
                    "output": message.content or "",
                })
                continue

            if message.content:
                items.append({"role": message.role.value, "content": message.content})

            if message.role == ChatRole.ASSISTANT and message.tool_calls:
                for tc in message.tool_calls:
                    items.append({
                        "type": "function_call",
                        "call_id": tc.id,
                        "name": tc.name,
                        "arguments": tc.arguments,
                    })
        return items

    def build_payload(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "input": self.build_input(messages),
            "stream": True,
            "temperature": self.temperature,
            "max_output_tokens": self.max_tokens,
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                }
                for tool in tools
            ]
            payload["tool_choice"] = "auto"
        return payload

    async def stream_completion(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDescriptor]] = None,
    ) -> AsyncIterator[StreamEvent]:
        payload = self.build_payload(messages, tools)
        # output_index -> dense tool-call index
        call_slots: Dict[int, int] = {}

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/responses",
                    headers=self._headers(),
                    json=payload,
                ) as response:
                    if response.is_error:
                        # Streamed bodies are unread until asked for
                        await response.aread()
                    response.raise_for_status()

                    async for line in response.aiter_lines():
                        data = self._decode_sse_data(line)
                        if data is None:
                            continue
                        if data == "[DONE]":
                            break

                        event_type = data.get("type", "")

                        if event_type == "response.output_text.delta":
                            if data.get("delta"):
                                yield StreamEvent.text(data["delta"])

                        elif event_type == "response.reasoning_text.delta":
                            if data.get("delta"):
                                yield StreamEvent.reasoning(data["delta"])

                        elif event_type == "response.output_item.added":
                            item = data.get("item") or {}
                            if item.get("type") != "function_call":
                                continue
                            slot = len(call_slots)
                            call_slots[data.get("output_index", slot)] = slot
                            yield StreamEvent.tool_call(
                                index=slot,
                                id_delta=item.get("call_id") or item.get("id") or None,
                                name_delta=item.get("name") or None,
                                arguments_delta=item.get("arguments") or None,
                            )

                        elif event_type == "response.function_call_arguments.delta":
                            slot = call_slots.get(data.get("output_index"))
                            if slot is None:
                                logger.warning(
                                    f"Arguments delta for unknown output_index {data.get('output_index')}"
                                )
                                continue
                            if data.get("delta"):
                                yield StreamEvent.tool_call(index=slot, arguments_delta=data["delta"])

                        elif event_type == "response.completed":
                            break

                        elif event_type == "response.failed":
                            error = (data.get("response") or {}).get("error") or {}
                            message = error.get("message", "response failed")
                            logger.error(f"{self.name} response failed: {message}")
                            yield StreamEvent.error(f"{self.name} response failed: {message}")
                            return

                        elif event_type == "error":
                            message = data.get("message") or "unknown error"
                            logger.error(f"{self.name} stream error: {message}")
                            yield StreamEvent.error(f"{self.name} stream error: {message}")
                            return

                    yield StreamEvent.done("tool_calls" if call_slots else "stop")

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


__all__ = ["GroqResponsesAdapter"]
