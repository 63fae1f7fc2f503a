"""Prompt templates for the agent core."""

from .manager import (
    CHAT_SYSTEM_PROMPT,
    PLAN_PROMPT,
    REFLECTION_PROMPT,
    TOOL_DESCRIPTION_PROMPT,
    PromptManager,
    PromptTemplateError,
)

__all__ = [
    "CHAT_SYSTEM_PROMPT",
    "PLAN_PROMPT",
    "REFLECTION_PROMPT",
    "TOOL_DESCRIPTION_PROMPT",
    "PromptManager",
    "PromptTemplateError",
]
