"""
Prompt template management.

Module: woolcoat/prompts/manager.py

Templates are plain UTF-8 text files with ``{{NAME}}`` placeholders. Values
are substituted verbatim; a template that cannot be read is a hard error.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"

TOOL_DESCRIPTION_PROMPT = "tool-description-prompt.txt"
PLAN_PROMPT = "plan-prompt.txt"
REFLECTION_PROMPT = "reflection-prompt.txt"
CHAT_SYSTEM_PROMPT = "chat-system-prompt.txt"

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


class PromptTemplateError(Exception):
    """Raised when a prompt template cannot be loaded."""

    pass


class PromptManager:
    """
    Loads and renders prompt templates from a directory.

    Loaded templates are cached; the directory is read once per template name.
    """

    def __init__(self, template_dir: Optional[Union[str, Path]] = None) -> None:
        self.template_dir = Path(template_dir) if template_dir else DEFAULT_TEMPLATE_DIR
        self._cache: Dict[str, str] = {}

    def load(self, name: str) -> str:
        """
        Load a raw template.

        Args:
            name: Template file name

        Returns:
            Template text

        Raises:
            PromptTemplateError: If the name is blank or the file is missing or unreadable
        """
        if not name or not name.strip():
            raise PromptTemplateError("Prompt template name must not be blank")

        if name in self._cache:
            return self._cache[name]

        path = self.template_dir / name
        if not path.is_file():
            raise PromptTemplateError(f"Prompt template not found: {path}")

        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PromptTemplateError(f"Failed to load prompt template {path}: {e}") from e

        logger.debug(f"Loaded prompt template {name} ({len(text)} chars)")
        self._cache[name] = text
        return text

    def render(self, name: str, values: Optional[Mapping[str, object]] = None) -> str:
        """
        Render a template, replacing each ``{{KEY}}`` with its value.

        Args:
            name: Template file name
            values: Placeholder values; None renders as an empty string

        Returns:
            Rendered prompt
        """
        values = values or {}

        def substitute(match: "re.Match[str]") -> str:
            key = match.group(1)
            if key not in values:
                return match.group(0)
            value = values[key]
            return "" if value is None else str(value)

        # One pass over the template so values are never rescanned
        return _PLACEHOLDER_RE.sub(substitute, self.load(name))
