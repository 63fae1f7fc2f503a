"""
Tests for the built-in tools.

Module: tests/test_tools.py
"""

from pathlib import Path
from typing import List, Optional

import pytest

from woolcoat.llm import LLMError, LLMGateway, MockLLMAdapter
from woolcoat.rag import DocumentChunk, DocumentInfo, DocumentSearch, SearchHit
from woolcoat.tools import (
    CalculatorTool,
    LocalRagSearchTool,
    MarkdownExportTool,
    TextSummaryTool,
    default_tools,
)
from woolcoat.tools.calculator import evaluate, format_number
from woolcoat.tools.params import int_param


class StaticSearch(DocumentSearch):
    """Search stub returning fixed hits and recording queries."""

    def __init__(self, hits: List[SearchHit]) -> None:
        self.hits = hits
        self.queries: List[tuple] = []

    async def index_document(
        self, doc_id: str, user_id: str, text: str, file_name: Optional[str] = None
    ) -> int:
        return 0

    async def search(self, question: str, top_k: int, user_id: str) -> List[SearchHit]:
        self.queries.append((question, top_k, user_id))
        return self.hits[:top_k]

    async def list_documents(self, user_id: str) -> List[DocumentInfo]:
        return []

    async def list_chunks(self, doc_id: str, user_id: str) -> List[DocumentChunk]:
        return []

    async def delete_document(self, doc_id: str, user_id: str) -> int:
        return 0


class TestCalculator:
    """Tests for the calculator tool."""

    @pytest.mark.parametrize(
        "expression,expected",
        [
            ("1+2*3", 7),
            ("(10-5)/2", 2.5),
            ("-3+ +4", 1),
            ("6×7", 42),
            ("9÷3", 3),
        ],
    )
    def test_evaluate(self, expression: str, expected: float) -> None:
        """Test supported arithmetic evaluates correctly."""
        assert evaluate(expression) == expected

    @pytest.mark.parametrize("expression", ["__import__('os')", "2**8", "a+1", "1+", "'x'"])
    def test_rejects_unsupported(self, expression: str) -> None:
        """Test anything beyond + - * / arithmetic is refused."""
        with pytest.raises(ValueError):
            evaluate(expression)

    def test_format_number(self) -> None:
        """Test integral floats drop the fractional part."""
        assert format_number(4.0) == "4"
        assert format_number(2.5) == "2.5"
        assert format_number(7) == "7"

    @pytest.mark.asyncio
    async def test_execute_success(self) -> None:
        """Test a valid expression returns the result line."""
        result = await CalculatorTool().execute({"expression": " 1+2*3 "})

        assert result.success
        assert result.output == "Result: 1+2*3 = 7"

    @pytest.mark.asyncio
    async def test_missing_expression(self) -> None:
        """Test the required parameter is enforced."""
        result = await CalculatorTool().execute({})

        assert not result.success
        assert "expression" in result.error

    @pytest.mark.asyncio
    async def test_division_by_zero(self) -> None:
        """Test division by zero is a failed result."""
        result = await CalculatorTool().execute({"expression": "1/0"})

        assert not result.success
        assert "Division by zero" in result.error

    @pytest.mark.asyncio
    async def test_invalid_expression(self) -> None:
        """Test invalid syntax is a failed result naming the expression."""
        result = await CalculatorTool().execute({"expression": "1+*"})

        assert not result.success
        assert "1+*" in result.error


class TestIntParam:
    """Tests for int_param."""

    def test_default_when_absent(self) -> None:
        """Test absent and blank values use the default."""
        assert int_param({}, "n", 5) == 5
        assert int_param({"n": " "}, "n", 5) == 5

    def test_parses_and_clamps(self) -> None:
        """Test strings are parsed and clamped to the range."""
        assert int_param({"n": "20"}, "n", 5, 1, 10) == 10
        assert int_param({"n": 0}, "n", 5, 1, 10) == 1
        assert int_param({"n": 3.0}, "n", 5) == 3

    @pytest.mark.parametrize("value", ["many", 2.5, True])
    def test_rejects_non_integers(self, value: object) -> None:
        """Test non-integer values raise."""
        with pytest.raises(ValueError):
            int_param({"n": value}, "n", 5)


class TestLocalRagSearch:
    """Tests for the knowledge base search tool."""

    @pytest.mark.asyncio
    async def test_formats_hits(self) -> None:
        """Test hits are numbered with document, chunk and score."""
        search = StaticSearch([SearchHit("doc-1", 1, 1.234, "Reflection retries failed calls.")])
        tool = LocalRagSearchTool(search)

        result = await tool.execute({"question": "reflection", "user_id": "alice", "top_k": "3"})

        assert result.success
        assert "1. Document: doc-1 | Chunk: 1 | Score: 1.23" in result.output
        assert "Content: Reflection retries failed calls." in result.output
        assert search.queries == [("reflection", 3, "alice")]

    @pytest.mark.asyncio
    async def test_default_and_clamped_top_k(self) -> None:
        """Test top_k defaults to 5 and is capped at 10."""
        search = StaticSearch([])
        tool = LocalRagSearchTool(search)

        await tool.execute({"question": "q", "user_id": "u"})
        await tool.execute({"question": "q", "user_id": "u", "top_k": 50})

        assert [q[1] for q in search.queries] == [5, 10]

    @pytest.mark.asyncio
    async def test_no_hits(self) -> None:
        """Test an empty search is a successful result saying nothing matched."""
        result = await LocalRagSearchTool(StaticSearch([])).execute(
            {"question": "unknown topic", "user_id": "u"}
        )

        assert result.success
        assert "unknown topic" in result.output
        assert "no content" in result.output

    @pytest.mark.asyncio
    async def test_missing_params(self) -> None:
        """Test both required parameters are reported."""
        result = await LocalRagSearchTool(StaticSearch([])).execute({"question": " "})

        assert not result.success
        assert "question" in result.error
        assert "user_id" in result.error

    @pytest.mark.asyncio
    async def test_invalid_top_k(self) -> None:
        """Test a non-integer top_k fails."""
        result = await LocalRagSearchTool(StaticSearch([])).execute(
            {"question": "q", "user_id": "u", "top_k": "lots"}
        )

        assert not result.success
        assert "top_k" in result.error


class TestTextSummary:
    """Tests for the summarization tool."""

    @pytest.mark.asyncio
    async def test_summarizes(self) -> None:
        """Test the summary request carries the length and content."""
        adapter = MockLLMAdapter(responses=["Short version."])
        tool = TextSummaryTool(LLMGateway(adapter, max_retries=0), temperature=0.3)

        result = await tool.execute({"content": "A long text.", "summary_length": "1000"})

        assert result.success
        assert result.output == "Summary (about 500 words):\nShort version."
        system, user = adapter.calls[0]["messages"]
        assert "about 500 words" in system.content
        assert "A long text." in user.content
        assert adapter.calls[0]["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_gateway_failure(self) -> None:
        """Test a failed model call is a failed result."""
        adapter = MockLLMAdapter(responses=[LLMError("down", provider="mock")])
        tool = TextSummaryTool(LLMGateway(adapter, max_retries=0))

        result = await tool.execute({"content": "text"})

        assert not result.success
        assert "down" in result.error

    @pytest.mark.asyncio
    async def test_missing_content(self) -> None:
        """Test content is required."""
        tool = TextSummaryTool(LLMGateway(MockLLMAdapter(), max_retries=0))

        result = await tool.execute({})

        assert not result.success


class TestMarkdownExport:
    """Tests for the Markdown export tool."""

    @pytest.mark.asyncio
    async def test_writes_file(self, tmp_path: Path) -> None:
        """Test content is written under the export directory."""
        tool = MarkdownExportTool(str(tmp_path / "out"))

        result = await tool.execute({"content": "# Report\n42", "file_name": "report"})

        assert result.success
        written = tmp_path / "out" / "report.md"
        assert written.read_text(encoding="utf-8") == "# Report\n42"
        assert "File name: report.md" in result.output

    @pytest.mark.asyncio
    async def test_path_components_stripped(self, tmp_path: Path) -> None:
        """Test a file name cannot escape the export directory."""
        tool = MarkdownExportTool(str(tmp_path))

        result = await tool.execute({"content": "x", "file_name": "../../etc/evil.md"})

        assert result.success
        assert (tmp_path / "evil.md").exists()

    @pytest.mark.asyncio
    async def test_generated_name(self, tmp_path: Path) -> None:
        """Test a missing file name is generated."""
        tool = MarkdownExportTool(str(tmp_path))

        result = await tool.execute({"content": "x"})

        assert result.success
        assert len(list(tmp_path.glob("*.md"))) == 1

    @pytest.mark.asyncio
    async def test_missing_content(self, tmp_path: Path) -> None:
        """Test content is required."""
        result = await MarkdownExportTool(str(tmp_path)).execute({"file_name": "a"})

        assert not result.success


class TestDefaultTools:
    """Tests for default_tools."""

    def test_registration_order(self, tmp_path: Path) -> None:
        """Test the built-in set and its order."""
        tools = default_tools(LLMGateway(MockLLMAdapter()), StaticSearch([]), str(tmp_path))

        assert [t.code for t in tools] == [
            "calculator",
            "local_rag_search",
            "text_summary",
            "markdown_export",
        ]
