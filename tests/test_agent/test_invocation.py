"""
Tests for the single-call invocation pipeline.

Module: tests/test_agent/test_invocation.py
"""

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from woolcoat.agent import (
    GatewayFailureError,
    InvocationPipeline,
    MalformedInstructionError,
    NoToolsAvailableError,
    ReflectionExhaustedError,
    ReflectionLoop,
    ToolCatalog,
    ToolNotFoundError,
    ToolResult,
    parse_invocation,
    strip_code_fences,
)
from woolcoat.llm import LLMError, LLMGateway, MockLLMAdapter
from woolcoat.prompts import PromptManager
from woolcoat.tools import MarkdownExportTool


def build_pipeline(
    catalog: ToolCatalog, gateway: LLMGateway, prompts: PromptManager
) -> InvocationPipeline:
    reflection = ReflectionLoop(catalog, gateway, prompts, max_attempts=3)
    return InvocationPipeline(catalog, gateway, prompts, reflection)


class TestStripCodeFences:
    """Tests for strip_code_fences."""

    def test_json_fence(self) -> None:
        """Test a ```json fence is removed."""
        raw = '```json\n{"tool_code": "calculator"}\n```'

        assert strip_code_fences(raw) == '{"tool_code": "calculator"}'

    def test_bare_fence(self) -> None:
        """Test a plain ``` fence is removed."""
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_fence_with_surrounding_text_left_alone(self) -> None:
        """Test a fence is only removed when it wraps the whole output."""
        raw = 'Here you go:\n```json\n{"a": 1}\n```\nDone.'

        assert strip_code_fences(raw) == raw

    def test_inner_code_block_kept(self) -> None:
        """Test a code block inside a JSON string value is not extracted."""
        raw = '{"content": "# Demo\\n```python\\nprint(1)\\n```"}'

        assert strip_code_fences(raw) == raw
        assert strip_code_fences(f"```json\n{raw}\n```") == raw

    def test_plain_text_trimmed(self) -> None:
        """Test unfenced output is only trimmed."""
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestParseInvocation:
    """Tests for parse_invocation."""

    def test_canonical_fields(self) -> None:
        """Test tool_code and param_map are parsed."""
        request = parse_invocation('{"tool_code": "calculator", "param_map": {"expression": "1+1"}}')

        assert request.tool_code == "calculator"
        assert request.param_map == {"expression": "1+1"}

    def test_short_field_names(self) -> None:
        """Test the tool/params spelling is accepted."""
        request = parse_invocation('{"tool": "calculator", "params": {"expression": "2"}}')

        assert request.tool_code == "calculator"
        assert request.param_map == {"expression": "2"}

    def test_missing_params_default_empty(self) -> None:
        """Test an absent or null param_map becomes an empty mapping."""
        assert parse_invocation('{"tool_code": "x"}').param_map == {}
        assert parse_invocation('{"tool_code": "x", "param_map": null}').param_map == {}

    def test_code_block_in_value(self) -> None:
        """Test a Markdown code block inside a parameter value survives parsing."""
        content = "# Demo\n```python\nprint(1)\n```"
        raw = json.dumps({"tool_code": "markdown_export", "param_map": {"content": content}})

        assert parse_invocation(raw).param_map == {"content": content}
        assert parse_invocation(f"```json\n{raw}\n```").param_map == {"content": content}

    def test_invalid_json(self) -> None:
        """Test non-JSON output is malformed and keeps the raw text."""
        with pytest.raises(MalformedInstructionError) as exc_info:
            parse_invocation("I think you should use the calculator")

        assert exc_info.value.raw_output == "I think you should use the calculator"
        assert "I think you should use the calculator" in str(exc_info.value)

    def test_missing_tool_code(self) -> None:
        """Test an object without a tool code is malformed."""
        with pytest.raises(MalformedInstructionError):
            parse_invocation('{"param_map": {"expression": "1"}}')

    def test_blank_tool_code(self) -> None:
        """Test a blank tool code is malformed."""
        with pytest.raises(MalformedInstructionError):
            parse_invocation('{"tool_code": "   "}')

    def test_array_rejected(self) -> None:
        """Test a JSON array is not an invocation."""
        with pytest.raises(MalformedInstructionError):
            parse_invocation('[{"tool_code": "calculator"}]')

    def test_wrong_param_type(self) -> None:
        """Test a non-object param_map is malformed."""
        with pytest.raises(MalformedInstructionError):
            parse_invocation('{"tool_code": "calculator", "param_map": "1+1"}')


class TestInvocationPipeline:
    """Tests for InvocationPipeline.invoke."""

    @pytest.mark.asyncio
    async def test_empty_catalog_never_calls_gateway(
        self, gateway: LLMGateway, mock_llm: MockLLMAdapter, prompts: PromptManager
    ) -> None:
        """Test an empty catalog fails before contacting the model."""
        pipeline = build_pipeline(ToolCatalog.from_tools([]), gateway, prompts)

        with pytest.raises(NoToolsAvailableError):
            await pipeline.invoke("compute 1+2*3")

        assert mock_llm.call_count == 0

    @pytest.mark.asyncio
    async def test_calculator_success(
        self,
        calculator_catalog: ToolCatalog,
        gateway: LLMGateway,
        mock_llm: MockLLMAdapter,
        prompts: PromptManager,
    ) -> None:
        """Test the arithmetic tool is chosen and its result returned."""
        mock_llm.queue(json.dumps({"tool": "calculator", "params": {"expression": "1+2*3"}}))
        pipeline = build_pipeline(calculator_catalog, gateway, prompts)

        result = await pipeline.invoke("compute 1+2*3", session_id="s-1")

        assert "7" in result
        assert "Calculator (calculator)" in result
        assert result.startswith("[Tool call succeeded]")

    @pytest.mark.asyncio
    async def test_export_with_code_block(
        self, tmp_path: Path, gateway: LLMGateway, mock_llm: MockLLMAdapter, prompts: PromptManager
    ) -> None:
        """Test Markdown content holding a code block is exported intact."""
        content = "# Setup\n```bash\npip install woolcoat\n```"
        mock_llm.queue(
            json.dumps(
                {"tool_code": "markdown_export", "param_map": {"content": content, "file_name": "setup"}}
            )
        )
        catalog = ToolCatalog.from_tools([MarkdownExportTool(str(tmp_path))])
        pipeline = build_pipeline(catalog, gateway, prompts)

        result = await pipeline.invoke("export the setup notes as markdown")

        assert result.startswith("[Tool call succeeded]")
        assert (tmp_path / "setup.md").read_text(encoding="utf-8") == content

    @pytest.mark.asyncio
    async def test_prompt_and_temperature(
        self,
        calculator_catalog: ToolCatalog,
        gateway: LLMGateway,
        mock_llm: MockLLMAdapter,
        prompts: PromptManager,
    ) -> None:
        """Test the catalog is embedded in the system prompt at low temperature."""
        mock_llm.queue('{"tool_code": "calculator", "param_map": {"expression": "2"}}')
        pipeline = build_pipeline(calculator_catalog, gateway, prompts)

        await pipeline.invoke("what is 2")

        call = mock_llm.calls[0]
        system, user = call["messages"]
        assert system.role == "system"
        assert '"code": "calculator"' in system.content
        assert "{{TOOL_METAS}}" not in system.content
        assert user.role == "user"
        assert user.content == "what is 2"
        assert call["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_fenced_output_accepted(
        self,
        calculator_catalog: ToolCatalog,
        gateway: LLMGateway,
        mock_llm: MockLLMAdapter,
        prompts: PromptManager,
    ) -> None:
        """Test Markdown-fenced model output is parsed."""
        mock_llm.queue('```json\n{"tool_code": "calculator", "param_map": {"expression": "6/3"}}\n```')
        pipeline = build_pipeline(calculator_catalog, gateway, prompts)

        result = await pipeline.invoke("divide")

        assert "6/3 = 2" in result

    @pytest.mark.asyncio
    async def test_unknown_tool_lists_available(
        self,
        make_tool: Callable[..., Any],
        gateway: LLMGateway,
        mock_llm: MockLLMAdapter,
        prompts: PromptManager,
    ) -> None:
        """Test an unknown tool fails with the registered codes listed."""
        catalog = ToolCatalog.from_tools([make_tool("calculator"), make_tool("text_summary")])
        mock_llm.queue('{"tool_code": "ghost_tool", "param_map": {}}')
        pipeline = build_pipeline(catalog, gateway, prompts)

        with pytest.raises(ToolNotFoundError) as exc_info:
            await pipeline.invoke("haunt me")

        message = str(exc_info.value)
        assert "ghost_tool" in message
        assert "calculator" in message
        assert "text_summary" in message
        assert exc_info.value.available == ["calculator", "text_summary"]

    @pytest.mark.asyncio
    async def test_gateway_failure(
        self,
        calculator_catalog: ToolCatalog,
        gateway: LLMGateway,
        mock_llm: MockLLMAdapter,
        prompts: PromptManager,
    ) -> None:
        """Test a failed gateway call surfaces the gateway's message."""
        mock_llm.queue(LLMError("quota exceeded", provider="mock"))
        pipeline = build_pipeline(calculator_catalog, gateway, prompts)

        with pytest.raises(GatewayFailureError) as exc_info:
            await pipeline.invoke("compute 1+1")

        assert "quota exceeded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_malformed_output(
        self,
        calculator_catalog: ToolCatalog,
        gateway: LLMGateway,
        mock_llm: MockLLMAdapter,
        prompts: PromptManager,
    ) -> None:
        """Test unparseable model output fails without running a tool."""
        mock_llm.queue("Sure! Let me calculate that for you.")
        pipeline = build_pipeline(calculator_catalog, gateway, prompts)

        with pytest.raises(MalformedInstructionError) as exc_info:
            await pipeline.invoke("compute 1+1")

        assert "Let me calculate" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_execution_failure_goes_to_reflection(
        self,
        make_tool: Callable[..., Any],
        gateway: LLMGateway,
        mock_llm: MockLLMAdapter,
        prompts: PromptManager,
    ) -> None:
        """Test a failed execution is recovered through reflection."""
        tool = make_tool("flaky", [ToolResult.fail("value must be numeric")])
        catalog = ToolCatalog.from_tools([tool])
        mock_llm.queue(
            '{"tool_code": "flaky", "param_map": {"value": "abc"}}',
            '{"tool_code": "flaky", "param_map": {"value": "42"}}',
        )
        pipeline = build_pipeline(catalog, gateway, prompts)

        result = await pipeline.invoke("do the flaky thing")

        assert "[Reflection retry succeeded] (attempt 1)" in result
        assert tool.calls == [{"value": "abc"}, {"value": "42"}]

    @pytest.mark.asyncio
    async def test_raised_exception_goes_to_reflection(
        self,
        make_tool: Callable[..., Any],
        gateway: LLMGateway,
        mock_llm: MockLLMAdapter,
        prompts: PromptManager,
    ) -> None:
        """Test a tool that raises is treated like a failed result."""
        tool = make_tool("flaky", [ValueError("cannot parse")])
        catalog = ToolCatalog.from_tools([tool])
        mock_llm.queue(
            '{"tool_code": "flaky", "param_map": {"value": "abc"}}',
            '{"tool_code": "flaky", "param_map": {"value": "1"}}',
        )
        pipeline = build_pipeline(catalog, gateway, prompts)

        result = await pipeline.invoke("do it")

        assert "Reflection retry succeeded" in result
        reflection_prompt = mock_llm.calls[1]["messages"][0].content
        assert "cannot parse" in reflection_prompt


class TestInvokeKnown:
    """Tests for InvocationPipeline.invoke_known."""

    @pytest.mark.asyncio
    async def test_direct_execution_skips_model(
        self,
        calculator_catalog: ToolCatalog,
        gateway: LLMGateway,
        mock_llm: MockLLMAdapter,
        prompts: PromptManager,
    ) -> None:
        """Test a known tool runs without a model call."""
        pipeline = build_pipeline(calculator_catalog, gateway, prompts)

        result = await pipeline.invoke_known("Calculator", {"expression": "10-4"}, "subtract")

        assert "10-4 = 6" in result
        assert mock_llm.call_count == 0

    @pytest.mark.asyncio
    async def test_unknown_tool(
        self, calculator_catalog: ToolCatalog, gateway: LLMGateway, prompts: PromptManager
    ) -> None:
        """Test an unknown tool code fails with the available codes."""
        pipeline = build_pipeline(calculator_catalog, gateway, prompts)

        with pytest.raises(ToolNotFoundError) as exc_info:
            await pipeline.invoke_known("ghost_tool", {}, "anything")

        assert "calculator" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_failure_reflects_and_exhausts(
        self,
        make_tool: Callable[..., Any],
        gateway: LLMGateway,
        mock_llm: MockLLMAdapter,
        prompts: PromptManager,
    ) -> None:
        """Test a failing known tool goes through reflection and can exhaust it."""
        tool = make_tool("broken", [ToolResult.fail("disk full")] * 4)
        catalog = ToolCatalog.from_tools([tool])
        mock_llm.queue(*['{"tool_code": "broken", "param_map": {}}'] * 3)
        pipeline = build_pipeline(catalog, gateway, prompts)

        with pytest.raises(ReflectionExhaustedError):
            await pipeline.invoke_known("broken", None, "save it")

        assert len(tool.calls) == 4
