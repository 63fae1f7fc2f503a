"""
Local knowledge base search tool.

Module: woolcoat/tools/rag_search.py
"""

from typing import Any, Mapping

from woolcoat.agent.tool_catalog import (
    AgentTool,
    ParamDescriptor,
    ToolCategory,
    ToolDescriptor,
    ToolResult,
)
from woolcoat.rag import DocumentSearch

from .params import int_param, text_param

DEFAULT_TOP_K = 5
MAX_TOP_K = 10

RAG_SEARCH_DESCRIPTOR = ToolDescriptor(
    code="local_rag_search",
    name="Local Knowledge Base Search",
    category=ToolCategory.INFORMATION_RETRIEVAL,
    description=(
        "Searches documents the user has uploaded to the local knowledge base and "
        "returns the most relevant passages."
    ),
    params=(
        ParamDescriptor(
            code="question",
            name="Question",
            type="String",
            required=True,
            description="What to look up in the knowledge base",
        ),
        ParamDescriptor(
            code="top_k",
            name="Result count",
            type="Integer",
            required=False,
            description=f"Number of passages to return, 1-{MAX_TOP_K}, default {DEFAULT_TOP_K}",
        ),
        ParamDescriptor(
            code="user_id",
            name="User ID",
            type="String",
            required=True,
            description="Owner of the documents to search",
        ),
    ),
    result_description=(
        "Numbered passages with document id, chunk index, relevance score and content, "
        "or a message that nothing matched"
    ),
)


class LocalRagSearchTool(AgentTool):
    """Retrieval over the user's indexed documents."""

    descriptor = RAG_SEARCH_DESCRIPTOR

    def __init__(self, search: DocumentSearch) -> None:
        self.search = search

    async def execute(self, params: Mapping[str, Any]) -> ToolResult:
        missing = self.missing_params(params)
        if missing:
            return ToolResult.fail(
                f"Knowledge base search is missing required parameters: {', '.join(missing)}"
            )

        question = text_param(params, "question")
        user_id = text_param(params, "user_id")
        try:
            top_k = int_param(params, "top_k", DEFAULT_TOP_K, minimum=1, maximum=MAX_TOP_K)
        except ValueError as e:
            return ToolResult.fail(f"Invalid top_k: {e}")

        hits = await self.search.search(question, top_k, user_id)
        if not hits:
            return ToolResult.ok(f"Knowledge base search: no content related to '{question}' was found")

        lines = [f"Knowledge base search results for '{question}' ({len(hits)} passages):"]
        for i, hit in enumerate(hits, 1):
            lines.append(
                f"{i}. Document: {hit.doc_id} | Chunk: {hit.chunk_index} | Score: {hit.score:.2f}"
            )
            lines.append(f"   Content: {hit.content}")
        return ToolResult.ok("\n".join(lines))
