"""Pydantic models for chat turns, tool calls and orchestration results."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_message_id() -> str:
    return str(uuid.uuid4())


class ChatRole(str, Enum):
    """Role of a participant in a chat thread."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ToolCall(BaseModel):
    """A model-emitted request to invoke a named tool with JSON arguments."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, description="Vendor tool_call_id")
    name: str = Field(..., min_length=1, description="Tool name (e.g., 'create_note')")
    arguments: str = Field(
        "{}",
        alias="argumentsJson",
        description="Complete JSON argument string as emitted by the model",
    )

    def to_openai(self) -> Dict[str, Any]:
        """Render in the chat-completions `tool_calls` wire format."""
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_openai(cls, payload: Dict[str, Any]) -> "ToolCall":
        """Accept both the nested OpenAI shape and the flat `{id, name, arguments}` shape."""
        function = payload.get("function")
        if isinstance(function, dict):
            arguments = function.get("arguments", "{}")
            name = function.get("name", "")
        else:
            arguments = payload.get("arguments", payload.get("argumentsJson", "{}"))
            name = payload.get("name", "")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        return cls(id=payload.get("id", ""), name=name, arguments=arguments)


class ChatMessage(BaseModel):
    """One turn in a conversation thread.

    Immutable once persisted: edits truncate the thread and append new
    messages instead of mutating stored ones.
    """

    id: str = Field(default_factory=_new_message_id)
    role: ChatRole
    content: Optional[str] = Field(None, description="Text; null for tool-call-only assistant turns")
    reasoning: Optional[str] = Field(None, description="Model reasoning text, if any")
    tool_calls: Optional[List[ToolCall]] = Field(
        None, description="Tool calls declared by an assistant message"
    )
    tool_call_id: Optional[str] = Field(
        None, description="For tool results, the id of the call being answered"
    )
    name: Optional[str] = Field(None, description="For tool results, the tool that produced them")
    timestamp: datetime = Field(default_factory=_utcnow)

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="before")
    @classmethod
    def _normalize_tool_calls(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("tool_calls"):
            data = dict(data)
            data["tool_calls"] = [
                tc if isinstance(tc, ToolCall) else ToolCall.from_openai(tc)
                for tc in data["tool_calls"]
            ]
        return data

    @model_validator(mode="after")
    def _check_role_fields(self) -> "ChatMessage":
        if self.tool_calls and self.role != ChatRole.ASSISTANT:
            raise ValueError("tool_calls are only allowed on assistant messages")
        if self.role == ChatRole.TOOL:
            if not self.tool_call_id:
                raise ValueError("tool messages require tool_call_id")
            if not self.name:
                raise ValueError("tool messages require name")
        return self

    def to_provider(self) -> Dict[str, Any]:
        """Render as a chat-completions message dict."""
        message: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.role == ChatRole.ASSISTANT and self.tool_calls:
            message["tool_calls"] = [tc.to_openai() for tc in self.tool_calls]
        if self.role == ChatRole.TOOL:
            message["tool_call_id"] = self.tool_call_id
            message["name"] = self.name
        if self.role != ChatRole.ASSISTANT and message["content"] is None:
            message["content"] = ""
        return message


class ToolDescriptor(BaseModel):
    """Argument contract of a callable tool, as offered to the model."""

    name: str = Field(..., min_length=1)
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema of the arguments object",
    )

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolResult(BaseModel):
    """Outcome of a single tool execution. Failures are data, not exceptions."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    def to_content(self) -> str:
        return json.dumps(self.model_dump(exclude_none=True), default=str, ensure_ascii=False)


class OrchestrationResult(BaseModel):
    """Final outcome of one orchestration turn."""

    content: str
    reasoning: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    tool_results: List[ChatMessage] = Field(default_factory=list)
    has_new_tool_calls: bool = False
    is_relance: bool = False
    model_used: Optional[str] = None
    messages: List[ChatMessage] = Field(
        default_factory=list,
        description="Messages produced by this turn, in thread order",
    )


class UIContext(BaseModel):
    """What the user is looking at in the editor when sending a message."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    classeur_name: Optional[str] = Field(None, alias="classeurName")
    note_title: Optional[str] = Field(None, alias="noteTitle")
    note_content: Optional[str] = Field(None, alias="noteContent")


class ChatContext(BaseModel):
    """Request context; `sessionId` is required, the rest is optional."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    session_id: str = Field(..., min_length=1, alias="sessionId")
    ui_context: Optional[UIContext] = Field(None, alias="uiContext")


class LLMRequest(BaseModel):
    """Body of `POST /api/chat/llm`."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, max_length=100000)
    context: ChatContext
    history: List[ChatMessage] = Field(default_factory=list)
    provider: Optional[str] = Field(None, description="deepseek, groq, groq-responses or together")
    agent_id: Optional[str] = Field(None, alias="agentId")
    operation_id: Optional[str] = Field(
        None, alias="operationId", max_length=128, description="Idempotency key for persisting the turn"
    )


class LLMResponse(BaseModel):
    """Successful non-streaming chat turn."""

    success: bool = True
    content: str
    reasoning: Optional[str] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None
    tool_results: Optional[List[Dict[str, Any]]] = None
    has_new_tool_calls: bool = False
    is_relance: bool = False
    model_used: Optional[str] = None

    @classmethod
    def from_result(cls, result: OrchestrationResult) -> "LLMResponse":
        return cls(
            content=result.content,
            reasoning=result.reasoning,
            tool_calls=[tc.to_openai() for tc in result.tool_calls] or None,
            tool_results=[m.to_provider() for m in result.tool_results] or None,
            has_new_tool_calls=result.has_new_tool_calls,
            is_relance=result.is_relance,
            model_used=result.model_used,
        )


__all__ = [
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
]
