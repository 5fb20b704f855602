"""Pydantic models for data validation and serialization."""

from .agent import AgentConfig
from .auth import JWTPayload
from .chat import (
    ChatContext,
    ChatMessage,
    ChatRole,
    LLMRequest,
    LLMResponse,
    OrchestrationResult,
    ToolCall,
    ToolDescriptor,
    ToolResult,
    UIContext,
)
from .session import (
    AppendBatchRequest,
    AppendMessageRequest,
    AppendResult,
    ChatSession,
    ChatSessionSummary,
    CreateSessionRequest,
    SessionListResponse,
    UpdateSessionRequest,
)
from .stream import ChatStreamChunk, StreamEvent

__all__ = [
    "AgentConfig",
    "JWTPayload",
    "ChatRole",
    "ToolCall",
    "ChatMessage",
    "ToolDescriptor",
    "ToolResult",
    "OrchestrationResult",
    "UIContext",
    "ChatContext",
    "LLMRequest",
    "LLMResponse",
    "StreamEvent",
    "ChatStreamChunk",
    "ChatSession",
    "ChatSessionSummary",
    "CreateSessionRequest",
    "UpdateSessionRequest",
    "AppendMessageRequest",
    "AppendBatchRequest",
    "AppendResult",
    "SessionListResponse",
]
