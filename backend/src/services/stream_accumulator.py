"""Stream Accumulator - Assembles provider events into a completed turn.

Consumes normalized `StreamEvent`s and builds the final text, the final
reasoning and the list of complete tool calls. A tool call survives
finalization only if it has a name and its concatenated arguments parse
as JSON; anything else is dropped and never executed.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional

from ..models.chat import ToolCall
from ..models.stream import StreamEvent
from .errors import MalformedToolCallError, ProviderError

logger = logging.getLogger(__name__)


@dataclass
class PendingToolCall:
    """Tool call still being streamed, keyed by its vendor index."""
    index: int
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class AccumulatedTurn:
    """Result of one provider stream."""
    content: str
    reasoning: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    dropped: List[MalformedToolCallError] = field(default_factory=list)
    finish_reason: Optional[str] = None


class StreamAccumulator:
    """Accumulate one provider stream. One instance per provider call."""

    def __init__(self, provider: Optional[str] = None) -> None:
        self.provider = provider
        self._content: List[str] = []
        self._reasoning: List[str] = []
        self._pending: Dict[int, PendingToolCall] = {}
        self._finish_reason: Optional[str] = None
        self._result: Optional[AccumulatedTurn] = None

    @property
    def content(self) -> str:
        return "".join(self._content)

    @property
    def reasoning(self) -> str:
        return "".join(self._reasoning)

    def feed(self, event: StreamEvent) -> None:
        """Apply one event to the buffers.

        Raises:
            ProviderError: on an `error` event (fatal to the turn)
            RuntimeError: if the accumulator was already finalized
        """
        if self._result is not None:
            raise RuntimeError("StreamAccumulator already finalized")

        if event.type == "text":
            self._content.append(event.delta or "")
        elif event.type == "reasoning":
            self._reasoning.append(event.delta or "")
        elif event.type == "tool_call":
            self._feed_tool_call(event)
        elif event.type == "done":
            self._finish_reason = event.finish_reason
        elif event.type == "error":
            raise ProviderError(
                event.message or "Provider stream failed",
                http_status=event.http_status,
                provider=self.provider,
            )

    def _feed_tool_call(self, event: StreamEvent) -> None:
        index = event.index or 0
        pending = self._pending.get(index)
        if pending is None:
            pending = PendingToolCall(index=index)
            self._pending[index] = pending

        if event.name_delta:
            if self._is_name_resend(pending, event):
                logger.debug(f"Ignoring resent tool name {event.name_delta!r} at idx={index}")
            else:
                pending.name += event.name_delta
        if event.id_delta:
            pending.id = event.id_delta
        if event.arguments_delta:
            pending.arguments += event.arguments_delta

        logger.debug(
            f"Tool call delta idx={index} name={pending.name!r} args_len={len(pending.arguments)}"
        )

    @staticmethod
    def _is_name_resend(pending: PendingToolCall, event: StreamEvent) -> bool:
        """True when `event` repeats an already complete name.

        Some vendors resend the full name on every chunk. A name is complete
        once arguments have started, or when the same call id comes back with
        it; before that, an equal fragment is a genuine split ("ab" + "ab").
        """
        if not pending.name or event.name_delta != pending.name:
            return False
        if pending.arguments or event.arguments_delta:
            return True
        return bool(event.id_delta and event.id_delta == pending.id)

    async def consume(self, events: AsyncIterator[StreamEvent]) -> AccumulatedTurn:
        """Feed every event of `events`, then finalize."""
        async for event in events:
            self.feed(event)
        return self.finalize()

    def finalize(self) -> AccumulatedTurn:
        """Close the buffers and return the turn. Idempotent."""
        if self._result is not None:
            return self._result

        tool_calls: List[ToolCall] = []
        dropped: List[MalformedToolCallError] = []

        for index in sorted(self._pending):
            pending = self._pending[index]
            problem = self._check_pending(pending)
            if problem:
                logger.warning(
                    f"Dropping malformed tool call at index {index}: {problem}",
                    extra={"tool": pending.name or None, "index": index},
                )
                dropped.append(MalformedToolCallError(problem, index=index, name=pending.name or None))
                continue

            tool_calls.append(
                ToolCall(
                    id=pending.id or f"call_{uuid.uuid4().hex[:24]}",
                    name=pending.name,
                    arguments=pending.arguments,
                )
            )

        self._result = AccumulatedTurn(
            content=self.content,
            reasoning=self.reasoning,
            tool_calls=tool_calls,
            dropped=dropped,
            finish_reason=self._finish_reason,
        )
        return self._result

    @staticmethod
    def _check_pending(pending: PendingToolCall) -> Optional[str]:
        if not pending.name.strip():
            return "missing tool name"
        if not pending.arguments.strip():
            return f"no arguments streamed for '{pending.name}'"
        try:
            json.loads(pending.arguments)
        except json.JSONDecodeError as e:
            return f"arguments for '{pending.name}' are not valid JSON ({e.msg})"
        return None


__all__ = ["StreamAccumulator", "AccumulatedTurn", "PendingToolCall"]
