"""Note, folder and classeur tool executors.

Each executor receives the request's `ToolContext` followed by the decoded
JSON arguments as keyword arguments, and forwards the call to the notes
REST API. Extra keys sent by the model are ignored.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .tool_registry import ToolContext, ToolHandler


def _compact(**values: Any) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _require(value: Optional[str], field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{field}' is required")
    return value.strip()


# =========================================================================
# Notes
# =========================================================================


async def create_note(
    context: ToolContext,
    source_title: Optional[str] = None,
    notebook_id: Optional[str] = None,
    folder_id: Optional[str] = None,
    markdown_content: Optional[str] = None,
    header_image: Optional[str] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Create a note in a classeur (and optionally a folder)."""
    payload = _compact(
        source_title=_require(source_title, "source_title"),
        notebook_id=notebook_id,
        folder_id=folder_id,
        markdown_content=markdown_content,
        header_image=header_image,
    )
    return await context.api().create_note(payload)


async def get_note(
    context: ToolContext,
    ref: Optional[str] = None,
    fields: Optional[str] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    return await context.api().get_note(_require(ref, "ref"), fields=fields)


async def update_note(
    context: ToolContext,
    ref: Optional[str] = None,
    source_title: Optional[str] = None,
    markdown_content: Optional[str] = None,
    header_image: Optional[str] = None,
    folder_id: Optional[str] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    payload = _compact(
        source_title=source_title,
        markdown_content=markdown_content,
        header_image=header_image,
        folder_id=folder_id,
    )
    if not payload:
        raise ValueError("nothing to update")
    return await context.api().update_note(_require(ref, "ref"), payload)


async def move_note(
    context: ToolContext,
    ref: Optional[str] = None,
    folder_id: Optional[str] = None,
    classeur_id: Optional[str] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    if folder_id is None and classeur_id is None:
        raise ValueError("either 'folder_id' or 'classeur_id' is required")
    payload = _compact(folder_id=folder_id, classeur_id=classeur_id)
    return await context.api().move_note(_require(ref, "ref"), payload)


async def add_content_to_note(
    context: ToolContext,
    ref: Optional[str] = None,
    content: Optional[str] = None,
    position: str = "end",
    **kwargs: Any,
) -> Dict[str, Any]:
    """Insert markdown at the start or end of a note."""
    if position not in ("start", "end"):
        raise ValueError("'position' must be 'start' or 'end'")
    payload = {"content": _require(content, "content"), "position": position}
    return await context.api().insert_note_content(_require(ref, "ref"), payload)


async def delete_note(context: ToolContext, ref: Optional[str] = None, **kwargs: Any) -> Dict[str, Any]:
    return await context.api().delete_note(_require(ref, "ref"))


# =========================================================================
# Folders
# =========================================================================


async def create_folder(
    context: ToolContext,
    name: Optional[str] = None,
    classeur_id: Optional[str] = None,
    parent_id: Optional[str] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    payload = _compact(
        name=_require(name, "name"),
        classeur_id=_require(classeur_id, "classeur_id"),
        parent_id=parent_id,
    )
    return await context.api().create_folder(payload)


async def get_folder_tree(context: ToolContext, ref: Optional[str] = None, **kwargs: Any) -> Dict[str, Any]:
    return await context.api().get_folder_tree(_require(ref, "ref"))


async def move_folder(
    context: ToolContext,
    ref: Optional[str] = None,
    classeur_id: Optional[str] = None,
    parent_id: Optional[str] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    payload = _compact(classeur_id=classeur_id, parent_id=parent_id)
    return await context.api().move_folder(_require(ref, "ref"), payload)


# =========================================================================
# Classeurs
# =========================================================================


async def create_classeur(
    context: ToolContext,
    name: Optional[str] = None,
    description: Optional[str] = None,
    emoji: Optional[str] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    payload = _compact(name=_require(name, "name"), description=description, emoji=emoji)
    return await context.api().create_classeur(payload)


async def list_classeurs(context: ToolContext, **kwargs: Any) -> Dict[str, Any]:
    return await context.api().list_classeurs()


async def get_classeur_tree(context: ToolContext, ref: Optional[str] = None, **kwargs: Any) -> Dict[str, Any]:
    return await context.api().get_classeur_tree(_require(ref, "ref"))


# =========================================================================
# Search
# =========================================================================


async def search_content(
    context: ToolContext,
    q: Optional[str] = None,
    type: Optional[str] = None,
    classeur_id: Optional[str] = None,
    limit: Optional[int] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    query = q or kwargs.get("query")
    if limit is not None:
        limit = max(1, min(int(limit), 100))
    return await context.api().search_content(
        _require(query, "q"), type=type, classeur_id=classeur_id, limit=limit
    )


NOTE_TOOL_EXECUTORS: Dict[str, ToolHandler] = {
    "create_note": create_note,
    "get_note": get_note,
    "update_note": update_note,
    "move_note": move_note,
    "add_content_to_note": add_content_to_note,
    "delete_note": delete_note,
    "create_folder": create_folder,
    "get_folder_tree": get_folder_tree,
    "move_folder": move_folder,
    "create_classeur": create_classeur,
    "list_classeurs": list_classeurs,
    "get_classeur_tree": get_classeur_tree,
    "search_content": search_content,
}

DEFAULT_CAPABILITIES = tuple(NOTE_TOOL_EXECUTORS)


__all__ = ["NOTE_TOOL_EXECUTORS", "DEFAULT_CAPABILITIES"]
