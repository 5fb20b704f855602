"""Chat API endpoints - One orchestrated LLM turn, aggregated or streamed."""

from __future__ import annotations

import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool
from sse_starlette.sse import EventSourceResponse

from ..middleware import AuthContext, chat_error_body, error_body, get_auth_context
from ...models.chat import LLMRequest, LLMResponse, OrchestrationResult
from ...models.stream import ChatStreamChunk
from ...services.agent_service import AgentService, get_agent_service
from ...services.config import AppConfig, get_config
from ...services.errors import ChatError
from ...services.orchestrator import ChatOrchestrator
from ...services.providers import ProviderRegistry, get_provider_registry
from ...services.thread_store import ThreadStore, get_thread_store
from ...services.tool_registry import ToolContext, ToolRegistry, get_tool_registry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


def _build_orchestrator(
    request: LLMRequest,
    auth: AuthContext,
    *,
    config: AppConfig,
    agents: AgentService,
    store: ThreadStore,
    registry: ToolRegistry,
    providers: ProviderRegistry,
) -> ChatOrchestrator:
    """Resolve session, agent and provider for one turn."""
    session_id = request.context.session_id
    session = store.get_session(session_id, auth.user_id)

    agent = agents.resolve_agent(
        request.agent_id,
        request.provider,
        fallback_provider=config.default_provider,
    )
    if request.provider:
        provider_name = request.provider
    elif providers.has(agent.provider):
        provider_name = agent.provider
    else:
        provider_name = providers.default_provider
    # The agent's model only applies to the vendor it was configured for
    model = agent.model if agent.provider == provider_name else None
    provider = providers.get(
        provider_name,
        model=model,
        temperature=agent.temperature,
        max_tokens=agent.max_tokens,
    )

    logger.info(
        f"Chat turn for user {auth.user_id}: agent={agent.id} provider={provider_name}",
        extra={"session_id": session_id, "agent_id": agent.id},
    )
    return ChatOrchestrator(
        provider,
        agent,
        registry=registry,
        tool_context=ToolContext(user_id=auth.user_id, user_token=auth.token),
        history_limit=session.history_limit,
        provider_timeout_seconds=config.provider_timeout_seconds,
        session_id=session_id,
    )


def _persist_turn(
    store: ThreadStore,
    request: LLMRequest,
    auth: AuthContext,
    result: OrchestrationResult,
) -> None:
    """Append every message of a completed turn in one call."""
    store.append_messages(
        request.context.session_id,
        result.messages,
        operation_id=request.operation_id,
        user_id=auth.user_id,
    )


@router.post("/llm", response_model=LLMResponse, response_model_exclude_none=True)
async def chat_llm(
    request: LLMRequest,
    auth: AuthContext = Depends(get_auth_context),
    config: AppConfig = Depends(get_config),
    agents: AgentService = Depends(get_agent_service),
    store: ThreadStore = Depends(get_thread_store),
    registry: ToolRegistry = Depends(get_tool_registry),
    providers: ProviderRegistry = Depends(get_provider_registry),
):
    """
    Run one chat turn and return the aggregated answer.

    **Request Body:**
    - `message`: The user's message (required)
    - `context.sessionId`: Session the turn belongs to (required)
    - `context.uiContext`: What the user is looking at (optional)
    - `history`: Previous messages (optional)
    - `provider`: deepseek, groq, groq-responses or together (optional)
    - `agentId`: Agent to use (optional)
    - `operationId`: Idempotency key for persistence (optional)

    **Response:**
    - `content`: Final assistant text
    - `tool_calls` / `tool_results`: The tool round, if one ran
    - `has_new_tool_calls`: Always false
    - `is_relance`: True when a tool round ran
    """
    orchestrator = _build_orchestrator(
        request,
        auth,
        config=config,
        agents=agents,
        store=store,
        registry=registry,
        providers=providers,
    )
    ui_context = request.context.ui_context
    result = await orchestrator.run(request.message, request.history, ui_context)
    await run_in_threadpool(_persist_turn, store, request, auth, result)
    return LLMResponse.from_result(result)


@router.post("/llm/stream")
async def chat_llm_stream(
    request: LLMRequest,
    auth: AuthContext = Depends(get_auth_context),
    config: AppConfig = Depends(get_config),
    agents: AgentService = Depends(get_agent_service),
    store: ThreadStore = Depends(get_thread_store),
    registry: ToolRegistry = Depends(get_tool_registry),
    providers: ProviderRegistry = Depends(get_provider_registry),
):
    """
    Run one chat turn as Server-Sent Events.

    Chunk types:
    - `content` / `reasoning`: Text deltas
    - `tool_call`: A completed tool call
    - `tool_result`: The tool message produced for a call
    - `done`: Final chunk (`has_new_tool_calls` is always false)
    - `error`: The turn failed; nothing was persisted

    **Example chunk:**
    ```json
    data: {"type": "content", "content": "J'ai créé la note..."}
    ```
    """
    # Session/agent/provider errors are raised before the stream opens
    orchestrator = _build_orchestrator(
        request,
        auth,
        config=config,
        agents=agents,
        store=store,
        registry=registry,
        providers=providers,
    )

    async def event_generator() -> AsyncGenerator[str, None]:
        """Generate SSE events from the orchestrator stream."""
        try:
            async for chunk in orchestrator.stream(
                request.message, request.history, request.context.ui_context
            ):
                if chunk.type == "done":
                    await run_in_threadpool(_persist_turn, store, request, auth, orchestrator.result)
                yield json.dumps(chunk.model_dump(exclude_none=True), ensure_ascii=False)

        except ChatError as e:
            logger.error(
                f"Chat stream failed: {e.message}",
                extra={"session_id": request.context.session_id, "code": e.code},
            )
            body = chat_error_body(e)
            error_chunk = ChatStreamChunk(type="error", error=body["error"], code=body["code"])
            yield json.dumps(error_chunk.model_dump(exclude_none=True), ensure_ascii=False)

        except Exception:
            logger.exception("Chat streaming failed")
            body = error_body("internal_error", "Internal server error")
            error_chunk = ChatStreamChunk(type="error", error=body["error"], code=body["code"])
            yield json.dumps(error_chunk.model_dump(exclude_none=True), ensure_ascii=False)

    return EventSourceResponse(event_generator())


__all__ = ["router"]
