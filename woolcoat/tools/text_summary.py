"""
Text summarization tool backed by the model gateway.

Module: woolcoat/tools/text_summary.py
"""

from typing import Any, Mapping

from woolcoat.agent.tool_catalog import (
    AgentTool,
    ParamDescriptor,
    ToolCategory,
    ToolDescriptor,
    ToolResult,
)
from woolcoat.llm import LLMGateway, LLMMessage

from .params import int_param, text_param

DEFAULT_SUMMARY_LENGTH = 100

TEXT_SUMMARY_DESCRIPTOR = ToolDescriptor(
    code="text_summary",
    name="Text Summary",
    category=ToolCategory.GENERAL,
    description="Condenses a piece of text into a short summary that keeps the key information.",
    params=(
        ParamDescriptor(
            code="content",
            name="Content",
            type="String",
            required=True,
            description="Text to summarize",
        ),
        ParamDescriptor(
            code="summary_length",
            name="Summary length",
            type="Integer",
            required=False,
            description="Approximate summary length in words, 50-500, default 100",
        ),
    ),
    result_description="The summary text",
)


class TextSummaryTool(AgentTool):
    """Summarizer."""

    descriptor = TEXT_SUMMARY_DESCRIPTOR

    def __init__(self, gateway: LLMGateway, temperature: float = 0.3) -> None:
        self.gateway = gateway
        self.temperature = temperature

    async def execute(self, params: Mapping[str, Any]) -> ToolResult:
        content = text_param(params, "content")
        if not content:
            return ToolResult.fail("Text summary is missing required parameter: content")

        try:
            length = int_param(params, "summary_length", DEFAULT_SUMMARY_LENGTH, 50, 500)
        except ValueError as e:
            return ToolResult.fail(f"Invalid summary_length: {e}")

        response = await self.gateway.generate(
            [
                LLMMessage.system(
                    f"You are a professional summarization assistant. Summarize the user's "
                    f"text in about {length} words, keeping the core information. Be concise "
                    f"and avoid repetition."
                ),
                LLMMessage.user(f"Summarize the following text:\n{content}"),
            ],
            temperature=self.temperature,
        )
        if not response.success:
            return ToolResult.fail(f"Summarization failed, LLM call error: {response.error_msg}")

        return ToolResult.ok(f"Summary (about {length} words):\n{response.content}")
