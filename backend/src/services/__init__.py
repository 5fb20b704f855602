"""Service layer for business logic and external integrations."""

from .agent_service import AgentService, default_agent, get_agent_service
from .auth import AuthError, AuthService
from .config import AppConfig, get_config, reload_config
from .database import DatabaseService, init_database
from .errors import (
    ChatError,
    ConfigurationError,
    MalformedToolCallError,
    PersistenceError,
    ProviderError,
    SessionNotFoundError,
    ToolExecutionError,
    UnknownToolError,
)
from .notes_api import NotesApiClient, NotesApiError
from .orchestrator import ChatOrchestrator, OrchestrationState
from .prompt_loader import PromptLoader, PromptLoaderError, get_prompt_loader
from .providers import ProviderAdapter, available_providers, build_provider
from .stream_accumulator import AccumulatedTurn, StreamAccumulator
from .thread_store import ThreadStore, get_thread_store
from .tool_executor import ToolCallExecutor
from .tool_registry import ToolContext, ToolRegistry, get_tool_registry

__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "DatabaseService",
    "init_database",
    "AuthService",
    "AuthError",
    "ChatError",
    "ConfigurationError",
    "MalformedToolCallError",
    "PersistenceError",
    "ProviderError",
    "SessionNotFoundError",
    "ToolExecutionError",
    "UnknownToolError",
    "NotesApiClient",
    "NotesApiError",
    "ProviderAdapter",
    "build_provider",
    "available_providers",
    "StreamAccumulator",
    "AccumulatedTurn",
    "ToolRegistry",
    "ToolContext",
    "get_tool_registry",
    "ToolCallExecutor",
    "ChatOrchestrator",
    "OrchestrationState",
    "PromptLoader",
    "PromptLoaderError",
    "get_prompt_loader",
    "AgentService",
    "default_agent",
    "get_agent_service",
    "ThreadStore",
    "get_thread_store",
]
