"""
Markdown file export tool.

Module: woolcoat/tools/markdown_export.py
"""

import logging
import uuid
from pathlib import PurePath
from typing import Any, Mapping

import anyio

from woolcoat.agent.tool_catalog import (
    AgentTool,
    ParamDescriptor,
    ToolCategory,
    ToolDescriptor,
    ToolResult,
)

from .params import text_param

logger = logging.getLogger(__name__)

MARKDOWN_EXPORT_DESCRIPTOR = ToolDescriptor(
    code="markdown_export",
    name="Markdown Export",
    category=ToolCategory.AUTOMATION,
    description="Saves content as a Markdown (.md) file in the export directory.",
    params=(
        ParamDescriptor(
            code="content",
            name="Content",
            type="String",
            required=True,
            description="Markdown content to write",
        ),
        ParamDescriptor(
            code="file_name",
            name="File name",
            type="String",
            required=False,
            description="File name without directories; .md is appended; random when omitted",
        ),
    ),
    result_description="The exported file name and full path",
)


class MarkdownExportTool(AgentTool):
    """Writes Markdown files under a fixed export directory."""

    descriptor = MARKDOWN_EXPORT_DESCRIPTOR

    def __init__(self, export_path: str = "./agent-export/markdown/") -> None:
        self.export_path = export_path

    async def execute(self, params: Mapping[str, Any]) -> ToolResult:
        content = text_param(params, "content")
        if not content:
            return ToolResult.fail("Markdown export is missing required parameter: content")

        # Directory components are dropped to keep writes inside export_path
        file_name = PurePath(text_param(params, "file_name")).name or str(uuid.uuid4())
        if not file_name.endswith(".md"):
            file_name += ".md"

        directory = anyio.Path(self.export_path)
        target = directory / file_name
        try:
            await directory.mkdir(parents=True, exist_ok=True)
            await target.write_text(content, encoding="utf-8")
        except OSError as e:
            return ToolResult.fail(f"Markdown export failed: {e}")

        full_path = await target.absolute()
        logger.info(f"Exported markdown to {full_path}")
        return ToolResult.ok(
            f"Markdown file exported successfully\nFile name: {file_name}\nFull path: {full_path}"
        )
