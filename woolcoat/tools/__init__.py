"""
Built-in agent tools.

Module: woolcoat/tools/__init__.py
"""

from typing import List

from woolcoat.agent.tool_catalog import AgentTool
from woolcoat.llm import LLMGateway
from woolcoat.rag import DocumentSearch

from .calculator import CalculatorTool
from .markdown_export import MarkdownExportTool
from .rag_search import LocalRagSearchTool
from .text_summary import TextSummaryTool


def default_tools(
    gateway: LLMGateway,
    search: DocumentSearch,
    export_path: str = "./agent-export/markdown/",
    summary_temperature: float = 0.3,
) -> List[AgentTool]:
    """
    Build the standard tool set.

    Args:
        gateway: Model gateway used by the summarizer
        search: Document search used by knowledge base search
        export_path: Directory for Markdown exports
        summary_temperature: Sampling temperature for summaries

    Returns:
        Tool instances in registration order
    """
    return [
        CalculatorTool(),
        LocalRagSearchTool(search),
        TextSummaryTool(gateway, temperature=summary_temperature),
        MarkdownExportTool(export_path),
    ]


__all__ = [
    "CalculatorTool",
    "LocalRagSearchTool",
    "MarkdownExportTool",
    "TextSummaryTool",
    "default_tools",
]
