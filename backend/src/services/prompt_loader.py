"""Jinja2-based prompt template loader for the chat system prompt.

Templates live under backend/prompts/ and are reloaded on every call so they
can be edited without restarting the server. An inline fallback exists for
each template the orchestrator needs, for deployments without the prompts
directory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import jinja2

logger = logging.getLogger(__name__)

# backend/src/services/prompt_loader.py -> backend/prompts/
DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent.parent.parent / "prompts"

UI_CONTEXT_TEMPLATE = "chat/ui_context.md"

_INLINE_PROMPTS: Dict[str, str] = {
    UI_CONTEXT_TEMPLATE: """## Contexte utilisateur
{%- if classeur_name %}
- Classeur actuel : {{ classeur_name }}
{%- endif %}
{%- if note_title %}
- Note actuelle : {{ note_title }}
{%- endif %}
{%- if note_preview %}
- Aperçu de la note :
{{ note_preview }}
{%- endif %}
""",
}


class PromptLoaderError(Exception):
    """Raised when a prompt cannot be loaded."""

    pass


class PromptLoader:
    """Load and render Jinja2 prompt templates.

    Example:
        >>> loader = PromptLoader()
        >>> block = loader.load("chat/ui_context.md", {"note_title": "Courses"})
    """

    def __init__(self, prompts_dir: Optional[Path] = None) -> None:
        self.prompts_dir = prompts_dir or DEFAULT_PROMPTS_DIR

        if self.prompts_dir.is_dir():
            self.env = jinja2.Environment(
                loader=jinja2.FileSystemLoader(str(self.prompts_dir)),
                autoescape=False,  # Prompts are markdown, not HTML
                auto_reload=True,
                keep_trailing_newline=True,
            )
        else:
            self.env = None
            logger.warning(
                "Prompts directory not found, using inline fallbacks",
                extra={"prompts_dir": str(self.prompts_dir)},
            )

    def load(self, path: str, context: Optional[Dict[str, Any]] = None) -> str:
        """Render the template at `path` (relative to the prompts directory).

        Raises:
            PromptLoaderError: If the template cannot be found or rendered.
        """
        context = context or {}

        if self.env is not None:
            try:
                return self.env.get_template(path).render(**context)
            except jinja2.TemplateNotFound:
                logger.debug("Template not found in filesystem, trying inline fallback", extra={"path": path})
            except jinja2.TemplateError as e:
                logger.error("Failed to render template", extra={"path": path, "error": str(e)})
                raise PromptLoaderError(f"Failed to render template {path}: {e}") from e

        source = _INLINE_PROMPTS.get(path)
        if source is None:
            raise PromptLoaderError(f"No template or inline fallback for {path}")
        try:
            return jinja2.Environment(autoescape=False).from_string(source).render(**context)
        except jinja2.TemplateError as e:
            raise PromptLoaderError(f"Failed to render inline prompt {path}: {e}") from e


# Singleton instance for dependency injection
_prompt_loader: PromptLoader | None = None


def get_prompt_loader() -> PromptLoader:
    """Get or create the prompt loader singleton."""
    global _prompt_loader
    if _prompt_loader is None:
        _prompt_loader = PromptLoader()
    return _prompt_loader


__all__ = ["PromptLoader", "PromptLoaderError", "get_prompt_loader", "UI_CONTEXT_TEMPLATE"]
