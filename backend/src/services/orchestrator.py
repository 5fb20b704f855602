"""Chat Orchestrator - One user turn with at most one round of tool execution.

State machine:

    AWAITING_FIRST_RESPONSE --(no tool calls)--> DONE
    AWAITING_FIRST_RESPONSE --> TOOLS_DETECTED --> EXECUTING_TOOLS
        --> AWAITING_FINAL_RESPONSE --> DONE

The final provider call is made without tools, so a single user turn can
never chain tool rounds. Every result returned to callers has
`has_new_tool_calls=False`.

Agent configuration is injected through the constructor; the loop reads no
global state.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import AsyncGenerator, List, Optional, Sequence, Tuple

from ..models.agent import AgentConfig
from ..models.chat import (
    ChatMessage,
    ChatRole,
    OrchestrationResult,
    ToolDescriptor,
    UIContext,
)
from ..models.stream import ChatStreamChunk
from .errors import ProviderError
from .prompt_loader import UI_CONTEXT_TEMPLATE, PromptLoader, get_prompt_loader
from .providers.base import ProviderAdapter
from .stream_accumulator import AccumulatedTurn, StreamAccumulator
from .tool_executor import ToolCallExecutor
from .tool_registry import ToolContext, ToolRegistry, get_tool_registry

logger = logging.getLogger(__name__)

NOTE_PREVIEW_CHARS = 500


class OrchestrationState(str, Enum):
    AWAITING_FIRST_RESPONSE = "awaiting_first_response"
    TOOLS_DETECTED = "tools_detected"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_FINAL_RESPONSE = "awaiting_final_response"
    DONE = "done"
    FAILED = "failed"


def build_ui_context_block(
    ui_context: Optional[UIContext], loader: Optional[PromptLoader] = None
) -> Optional[str]:
    """Render what the user is looking at as a system-prompt section."""
    if ui_context is None:
        return None
    if not (ui_context.classeur_name or ui_context.note_title or ui_context.note_content):
        return None

    preview = None
    if ui_context.note_content:
        preview = ui_context.note_content[:NOTE_PREVIEW_CHARS]
        if len(ui_context.note_content) > NOTE_PREVIEW_CHARS:
            preview += "..."

    rendered = (loader or get_prompt_loader()).load(
        UI_CONTEXT_TEMPLATE,
        {
            "classeur_name": ui_context.classeur_name,
            "note_title": ui_context.note_title,
            "note_preview": preview,
        },
    )
    return rendered.strip()


def sanitize_history(history: Sequence[ChatMessage]) -> List[ChatMessage]:
    """Make client history safe to send to a vendor.

    - system messages are dropped (the agent prompt is authoritative)
    - an assistant message whose tool calls are not all answered by the
      tool messages right after it is sent without `tool_calls`
    - tool messages not answering the preceding assistant message are dropped
    """
    result: List[ChatMessage] = []
    i = 0
    while i < len(history):
        message = history[i]

        if message.role == ChatRole.SYSTEM:
            i += 1
            continue

        if message.role == ChatRole.TOOL:
            logger.warning(f"Dropping orphan tool message {message.tool_call_id} from history")
            i += 1
            continue

        if message.role == ChatRole.ASSISTANT and message.tool_calls:
            j = i + 1
            answers: List[ChatMessage] = []
            while j < len(history) and history[j].role == ChatRole.TOOL:
                answers.append(history[j])
                j += 1

            expected = {tc.id for tc in message.tool_calls}
            answered = {t.tool_call_id for t in answers}
            if expected <= answered:
                result.append(message)
                for answer in answers:
                    if answer.tool_call_id in expected:
                        result.append(answer)
                    else:
                        logger.warning(
                            f"Dropping orphan tool message {answer.tool_call_id} from history"
                        )
            else:
                logger.warning(
                    f"Assistant message {message.id} has unanswered tool calls; "
                    "sending it without tool_calls"
                )
                result.append(
                    message.model_copy(update={"tool_calls": None, "content": message.content or ""})
                )
                if answers:
                    logger.warning(f"Dropping {len(answers)} tool message(s) of incomplete round")
            i = j
            continue

        result.append(message)
        i += 1
    return result


class ChatOrchestrator:
    """Run one orchestration turn against a single provider."""

    def __init__(
        self,
        provider: ProviderAdapter,
        agent: AgentConfig,
        *,
        registry: Optional[ToolRegistry] = None,
        executor: Optional[ToolCallExecutor] = None,
        tool_context: Optional[ToolContext] = None,
        history_limit: int = 30,
        provider_timeout_seconds: Optional[float] = None,
        session_id: Optional[str] = None,
    ) -> None:
        """
        Args:
            provider: Adapter for the vendor to call
            agent: Resolved agent (system prompt, capabilities)
            registry: Tool registry (default singleton if None)
            executor: Tool-call executor (built from registry + capabilities if None)
            tool_context: Caller identity handed to tool executors
            history_limit: Number of trailing history messages sent to the vendor
            provider_timeout_seconds: Ceiling for each provider call (adapter timeout if None)
            session_id: Session id, for logging only
        """
        self.provider = provider
        self.agent = agent
        self.registry = registry or get_tool_registry()
        self.executor = executor or ToolCallExecutor(
            self.registry, tool_context, allowed_tools=agent.capabilities or None
        )
        self.history_limit = max(1, history_limit)
        self.provider_timeout_seconds = provider_timeout_seconds or provider.timeout_seconds
        self.session_id = session_id
        self.state = OrchestrationState.AWAITING_FIRST_RESPONSE
        self.result: Optional[OrchestrationResult] = None

    # ------------------------------------------------------------------
    # Prompt assembly
    # ------------------------------------------------------------------

    def build_system_prompt(self, ui_context: Optional[UIContext] = None) -> str:
        parts = [self.agent.system_instructions]
        block = build_ui_context_block(ui_context)
        if block:
            parts.append(block)
        return "\n\n".join(parts)

    def build_messages(
        self,
        user_message: str,
        history: Sequence[ChatMessage] = (),
        ui_context: Optional[UIContext] = None,
    ) -> Tuple[List[ChatMessage], ChatMessage]:
        """Return the working message list and the new user message."""
        system = ChatMessage(role=ChatRole.SYSTEM, content=self.build_system_prompt(ui_context))
        recent = sanitize_history(list(history)[-self.history_limit:])
        user = ChatMessage(role=ChatRole.USER, content=user_message)
        return [system, *recent, user], user

    def offered_tools(self) -> List[ToolDescriptor]:
        capabilities = self.agent.capabilities or None
        return self.registry.list(capabilities)

    # ------------------------------------------------------------------
    # Provider passes
    # ------------------------------------------------------------------

    async def _provider_pass(
        self,
        messages: List[ChatMessage],
        tools: Optional[List[ToolDescriptor]],
        accumulator: StreamAccumulator,
    ) -> AsyncGenerator[ChatStreamChunk, None]:
        """Stream one provider call into `accumulator` under a hard deadline."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.provider_timeout_seconds
        events = self.provider.stream_completion(list(messages), tools)
        try:
            while True:
                remaining = deadline - loop.time()
                try:
                    if remaining <= 0:
                        raise asyncio.TimeoutError()
                    event = await asyncio.wait_for(events.__anext__(), timeout=remaining)
                except StopAsyncIteration:
                    break
                except asyncio.TimeoutError as e:
                    logger.error(
                        f"{self.provider.name} call exceeded {self.provider_timeout_seconds:g}s",
                        extra={"session_id": self.session_id},
                    )
                    raise ProviderError(
                        f"{self.provider.name} did not complete within "
                        f"{self.provider_timeout_seconds:g}s",
                        code="provider_timeout",
                        provider=self.provider.name,
                    ) from e

                accumulator.feed(event)
                if event.type == "text" and event.delta:
                    yield ChatStreamChunk(type="content", content=event.delta)
                elif event.type == "reasoning" and event.delta:
                    yield ChatStreamChunk(type="reasoning", content=event.delta)
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

    def _empty_completion(self, phase: str) -> ProviderError:
        self.state = OrchestrationState.FAILED
        logger.error(
            f"{self.provider.name} returned an empty {phase} completion",
            extra={"session_id": self.session_id},
        )
        return ProviderError(
            f"{self.provider.name} returned an empty {phase} completion",
            code="empty_completion",
            provider=self.provider.name,
        )

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def stream(
        self,
        user_message: str,
        history: Sequence[ChatMessage] = (),
        ui_context: Optional[UIContext] = None,
    ) -> AsyncGenerator[ChatStreamChunk, None]:
        """Run the turn, yielding chunks; `self.result` is set before `done`.

        Raises:
            ProviderError: vendor failure, timeout or empty completion
        """
        self.result = None
        self.state = OrchestrationState.AWAITING_FIRST_RESPONSE
        messages, user = self.build_messages(user_message, history, ui_context)
        produced: List[ChatMessage] = [user]
        tools = self.offered_tools()

        logger.info(
            f"Starting turn: {self.provider.name}/{self.provider.model}, "
            f"{len(messages) - 2} history message(s), {len(tools)} tool(s)",
            extra={"session_id": self.session_id, "agent_id": self.agent.id},
        )

        first = StreamAccumulator(self.provider.name)
        try:
            async for chunk in self._provider_pass(messages, tools or None, first):
                yield chunk
        except ProviderError:
            self.state = OrchestrationState.FAILED
            raise
        turn = first.finalize()

        if not turn.tool_calls:
            if not turn.content.strip():
                raise self._empty_completion("first")
            answer = ChatMessage(
                role=ChatRole.ASSISTANT,
                content=turn.content,
                reasoning=turn.reasoning or None,
            )
            produced.append(answer)
            yield self._finish(turn.content, turn.reasoning, turn, [], produced, is_relance=False)
            return

        # Tool round
        self.state = OrchestrationState.TOOLS_DETECTED
        logger.info(
            f"Detected {len(turn.tool_calls)} tool call(s): "
            f"{', '.join(tc.name for tc in turn.tool_calls)}",
            extra={"session_id": self.session_id},
        )
        for tool_call in turn.tool_calls:
            yield ChatStreamChunk(type="tool_call", tool_call=tool_call.to_openai())

        call_message = ChatMessage(
            role=ChatRole.ASSISTANT,
            content=turn.content or None,
            reasoning=turn.reasoning or None,
            tool_calls=turn.tool_calls,
        )
        messages.append(call_message)
        produced.append(call_message)

        self.state = OrchestrationState.EXECUTING_TOOLS
        tool_messages = await self.executor.execute_all(turn.tool_calls)
        for tool_message in tool_messages:
            yield ChatStreamChunk(type="tool_result", tool_result=tool_message.to_provider())
        messages.extend(tool_messages)
        produced.extend(tool_messages)

        # Final pass: tools intentionally omitted
        self.state = OrchestrationState.AWAITING_FINAL_RESPONSE
        final = StreamAccumulator(self.provider.name)
        try:
            async for chunk in self._provider_pass(messages, None, final):
                yield chunk
        except ProviderError:
            self.state = OrchestrationState.FAILED
            raise
        final_turn = final.finalize()

        ignored = len(final_turn.tool_calls) + len(final_turn.dropped)
        if ignored:
            logger.warning(
                f"Ignoring {ignored} tool call(s) emitted on the final pass",
                extra={"session_id": self.session_id},
            )
        if not final_turn.content.strip():
            raise self._empty_completion("final")

        answer = ChatMessage(
            role=ChatRole.ASSISTANT,
            content=final_turn.content,
            reasoning=final_turn.reasoning or None,
        )
        produced.append(answer)
        reasoning = "\n\n".join(r for r in (turn.reasoning, final_turn.reasoning) if r)
        yield self._finish(
            final_turn.content, reasoning, turn, tool_messages, produced, is_relance=True
        )

    def _finish(
        self,
        content: str,
        reasoning: str,
        first_turn: AccumulatedTurn,
        tool_messages: List[ChatMessage],
        produced: List[ChatMessage],
        *,
        is_relance: bool,
    ) -> ChatStreamChunk:
        self.state = OrchestrationState.DONE
        self.result = OrchestrationResult(
            content=content,
            reasoning=reasoning or None,
            tool_calls=list(first_turn.tool_calls) if is_relance else [],
            tool_results=tool_messages,
            has_new_tool_calls=False,
            is_relance=is_relance,
            model_used=self.provider.model,
            messages=produced,
        )
        logger.info(
            f"Turn complete ({'with' if is_relance else 'without'} tool round)",
            extra={"session_id": self.session_id},
        )
        return ChatStreamChunk(
            type="done",
            tool_calls=[tc.to_openai() for tc in self.result.tool_calls] or None,
            has_new_tool_calls=False,
            is_relance=is_relance,
            model_used=self.provider.model,
        )

    async def run(
        self,
        user_message: str,
        history: Sequence[ChatMessage] = (),
        ui_context: Optional[UIContext] = None,
    ) -> OrchestrationResult:
        """Run the turn to completion and return the aggregated result."""
        async for _ in self.stream(user_message, history, ui_context):
            pass
        if self.result is None:
            raise self._empty_completion("first")
        return self.result


__all__ = [
    "ChatOrchestrator",
    "OrchestrationState",
    "build_ui_context_block",
    "sanitize_history",
]
