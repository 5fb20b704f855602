"""Tool Registry - Maps tool names to JSON-schema descriptors and executors.

Descriptors are loaded from backend/prompts/tools.json; executors are bound
by name in Python (see note_tools.py). A descriptor without an executor, or
an executor without a descriptor, is a startup error.

Tool failures are returned as data (`ToolResult(success=False, ...)`), never
raised, so that they can be fed back to the model as tool messages.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from ..models.chat import ToolDescriptor, ToolResult
from .errors import ConfigurationError, UnknownToolError
from .notes_api import NotesApiClient, NotesApiError

logger = logging.getLogger(__name__)

TOOLS_FILE = Path(__file__).resolve().parents[2] / "prompts" / "tools.json"


@dataclass
class ToolContext:
    """Per-request identity handed to every executor."""
    user_id: str
    user_token: str
    notes_api: Optional[NotesApiClient] = None

    def api(self) -> NotesApiClient:
        if self.notes_api is None:
            self.notes_api = NotesApiClient(self.user_token)
        return self.notes_api


ToolHandler = Callable[..., Awaitable[Any]]


class ToolRegistry:
    """Registry of callable tools, in registration order."""

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        self.timeout_seconds = timeout_seconds
        self._descriptors: Dict[str, ToolDescriptor] = {}
        self._executors: Dict[str, ToolHandler] = {}

    def register(self, descriptor: ToolDescriptor, executor: ToolHandler) -> None:
        """Add a tool. Duplicate names raise ValueError."""
        if descriptor.name in self._descriptors:
            raise ValueError(f"Tool already registered: {descriptor.name}")
        self._descriptors[descriptor.name] = descriptor
        self._executors[descriptor.name] = executor

    def names(self) -> List[str]:
        return list(self._descriptors)

    def has(self, name: str) -> bool:
        return name in self._executors

    def list(self, capabilities: Optional[Iterable[str]] = None) -> List[ToolDescriptor]:
        """Return descriptors, optionally restricted to `capabilities`.

        Registry order is preserved. Names in `capabilities` that are not
        registered are ignored.
        """
        if capabilities is None:
            return list(self._descriptors.values())
        allowed = set(capabilities)
        return [d for name, d in self._descriptors.items() if name in allowed]

    async def execute(
        self,
        name: str,
        arguments_json: str,
        context: Optional[ToolContext] = None,
    ) -> ToolResult:
        """Parse arguments, dispatch to the executor and wrap the outcome."""
        handler = self._executors.get(name)
        if handler is None:
            logger.warning(f"Unknown tool requested: {name}")
            return ToolResult.fail(str(UnknownToolError(name)))

        try:
            arguments = json.loads(arguments_json) if arguments_json.strip() else {}
        except json.JSONDecodeError as e:
            logger.warning(f"Tool {name} received invalid JSON arguments: {e}")
            return ToolResult.fail(f"Invalid JSON arguments: {e.msg}")
        if not isinstance(arguments, dict):
            return ToolResult.fail("Tool arguments must be a JSON object")

        try:
            logger.info(
                f"Executing tool: {name}",
                extra={
                    "user_id": context.user_id if context else None,
                    "tool": name,
                    "args_keys": list(arguments.keys()),
                },
            )
            result = await asyncio.wait_for(
                handler(context, **arguments), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(f"Tool {name} timed out after {self.timeout_seconds}s")
            return ToolResult.fail(f"Tool {name} timed out after {self.timeout_seconds:g}s")
        except NotesApiError as e:
            logger.warning(f"Tool {name} API error: {e.message}")
            return ToolResult.fail(e.message)
        except (TypeError, ValueError) as e:
            logger.warning(f"Tool {name} validation error: {e}")
            return ToolResult.fail(f"Invalid arguments: {e}")
        except Exception as e:
            logger.exception(f"Tool {name} execution failed: {e}")
            return ToolResult.fail(f"Tool execution failed: {e}")

        if isinstance(result, ToolResult):
            return result
        if isinstance(result, dict) and result.get("success") is False:
            return ToolResult.fail(str(result.get("error") or "Operation failed"))
        return ToolResult.ok(result)


def load_tool_descriptors(path: Path = TOOLS_FILE) -> List[ToolDescriptor]:
    """Load tool descriptors from a tools.json file."""
    if not path.exists():
        raise ConfigurationError(f"Tool schemas not found at {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Failed to parse tool schemas: {e}") from e

    descriptors = []
    for tool in data.get("tools", []):
        # Accept both the OpenAI `{type, function: {...}}` shape and a flat one
        function = tool.get("function") or tool
        try:
            descriptors.append(
                ToolDescriptor(
                    name=function.get("name", ""),
                    description=function.get("description", ""),
                    parameters=function.get("parameters") or {"type": "object", "properties": {}},
                )
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid tool schema in {path}: {e}") from e
    logger.info(f"Loaded {len(descriptors)} tool schemas from {path}")
    return descriptors


def build_registry(
    executors: Dict[str, ToolHandler],
    descriptors: List[ToolDescriptor],
    timeout_seconds: float = 30.0,
) -> ToolRegistry:
    """Bind executors to descriptors, failing on any mismatch."""
    described = {d.name for d in descriptors}
    missing_executor = sorted(described - set(executors))
    missing_descriptor = sorted(set(executors) - described)
    if missing_executor or missing_descriptor:
        raise ConfigurationError(
            "Tool catalogue mismatch",
            detail={
                "without_executor": missing_executor,
                "without_descriptor": missing_descriptor,
            },
        )

    registry = ToolRegistry(timeout_seconds=timeout_seconds)
    for descriptor in descriptors:
        registry.register(descriptor, executors[descriptor.name])
    return registry


# Singleton instance for dependency injection
_tool_registry: Optional[ToolRegistry] = None


def get_tool_registry() -> ToolRegistry:
    """Get or create the default registry (note/folder/classeur tools)."""
    global _tool_registry
    if _tool_registry is None:
        from .config import get_config
        from .note_tools import NOTE_TOOL_EXECUTORS

        _tool_registry = build_registry(
            NOTE_TOOL_EXECUTORS,
            load_tool_descriptors(),
            timeout_seconds=get_config().tool_timeout_seconds,
        )
    return _tool_registry


__all__ = [
    "ToolRegistry",
    "ToolContext",
    "ToolHandler",
    "TOOLS_FILE",
    "load_tool_descriptors",
    "build_registry",
    "get_tool_registry",
]
