"""Pydantic models for normalized provider stream events and SSE chunks."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class StreamEvent(BaseModel):
    """One normalized event from a provider stream.

    Every vendor framing (chat-completions `tool_calls` deltas, legacy
    `function_call` deltas, Responses API typed events) is reduced to this
    tagged union at the adapter boundary.
    """
    type: Literal["text", "reasoning", "tool_call", "error", "done"] = Field(
        ..., description="Event type"
    )
    delta: Optional[str] = Field(None, description="Text or reasoning fragment")
    index: Optional[int] = Field(None, description="Tool-call slot (tool_call events)")
    id_delta: Optional[str] = Field(None, description="Tool-call id fragment")
    name_delta: Optional[str] = Field(None, description="Tool name fragment")
    arguments_delta: Optional[str] = Field(None, description="JSON arguments fragment")
    message: Optional[str] = Field(None, description="Error message (error events only)")
    http_status: Optional[int] = Field(None, description="Vendor HTTP status (error events only)")
    finish_reason: Optional[str] = Field(None, description="Vendor finish reason (done events only)")

    @classmethod
    def text(cls, delta: str) -> "StreamEvent":
        return cls(type="text", delta=delta)

    @classmethod
    def reasoning(cls, delta: str) -> "StreamEvent":
        return cls(type="reasoning", delta=delta)

    @classmethod
    def tool_call(
        cls,
        index: int,
        id_delta: Optional[str] = None,
        name_delta: Optional[str] = None,
        arguments_delta: Optional[str] = None,
    ) -> "StreamEvent":
        return cls(
            type="tool_call",
            index=index,
            id_delta=id_delta,
            name_delta=name_delta,
            arguments_delta=arguments_delta,
        )

    @classmethod
    def error(cls, message: str, http_status: Optional[int] = None) -> "StreamEvent":
        return cls(type="error", message=message, http_status=http_status)

    @classmethod
    def done(cls, finish_reason: Optional[str] = None) -> "StreamEvent":
        return cls(type="done", finish_reason=finish_reason)


class ChatStreamChunk(BaseModel):
    """Server-sent event chunk for the streaming chat endpoint."""
    type: Literal["content", "reasoning", "tool_call", "tool_result", "done", "error"] = Field(
        ..., description="Chunk type"
    )
    content: Optional[str] = Field(None, description="Text for content/reasoning chunks")
    tool_call: Optional[Dict[str, Any]] = Field(None, description="Completed tool call")
    tool_result: Optional[Dict[str, Any]] = Field(None, description="Tool-role message")
    tool_calls: Optional[List[Dict[str, Any]]] = Field(None, description="All tool calls (done only)")
    has_new_tool_calls: Optional[bool] = Field(None, description="Always false on done")
    is_relance: Optional[bool] = Field(None, description="True when a tool round ran (done only)")
    model_used: Optional[str] = Field(None, description="Model used (done only)")
    error: Optional[str] = Field(None, description="Error message (error only)")
    code: Optional[str] = Field(None, description="Error code (error only)")


__all__ = ["StreamEvent", "ChatStreamChunk"]
