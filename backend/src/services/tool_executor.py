"""Tool Call Executor - Runs completed tool calls and builds tool messages.

Calls run strictly in the order the model emitted them, one at a time:
later calls may depend on side effects of earlier ones ("create a note,
then move it"). Every call yields exactly one `tool`-role message; a
failing call never aborts the rest of the batch.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from ..models.chat import ChatMessage, ChatRole, ToolCall, ToolResult
from .tool_registry import ToolContext, ToolRegistry, get_tool_registry

logger = logging.getLogger(__name__)


class ToolCallExecutor:
    """Validate tool calls against the registry and execute them sequentially."""

    def __init__(
        self,
        registry: Optional[ToolRegistry] = None,
        context: Optional[ToolContext] = None,
        allowed_tools: Optional[Iterable[str]] = None,
    ) -> None:
        """
        Args:
            registry: ToolRegistry (default singleton if None)
            context: Caller identity passed to each executor
            allowed_tools: Capability allow-list; None allows every registered tool
        """
        self.registry = registry or get_tool_registry()
        self.context = context
        self.allowed_tools = set(allowed_tools) if allowed_tools is not None else None

    async def execute_one(self, tool_call: ToolCall) -> ToolResult:
        if self.allowed_tools is not None and tool_call.name not in self.allowed_tools:
            logger.warning(
                f"Tool {tool_call.name} not in agent capabilities",
                extra={"tool": tool_call.name},
            )
            return ToolResult.fail(f"unknown tool: {tool_call.name}")
        return await self.registry.execute(tool_call.name, tool_call.arguments, self.context)

    async def execute_all(self, tool_calls: List[ToolCall]) -> List[ChatMessage]:
        """Execute `tool_calls` in order and return one tool message per call.

        `asyncio.CancelledError` is not caught: cancelling the turn stops the
        batch at the in-flight call.
        """
        messages: List[ChatMessage] = []
        for position, tool_call in enumerate(tool_calls, start=1):
            logger.info(
                f"Tool call {position}/{len(tool_calls)}: {tool_call.name}",
                extra={"tool": tool_call.name, "tool_call_id": tool_call.id},
            )
            result = await self.execute_one(tool_call)
            if not result.success:
                logger.info(f"Tool {tool_call.name} failed: {result.error}")
            messages.append(
                ChatMessage(
                    role=ChatRole.TOOL,
                    tool_call_id=tool_call.id,
                    name=tool_call.name,
                    content=result.to_content(),
                )
            )
        return messages


__all__ = ["ToolCallExecutor"]
