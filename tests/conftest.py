"""
Shared fixtures for woolcoat tests.

Module: tests/conftest.py
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

import pytest

from woolcoat.agent import AgentTool, ParamDescriptor, ToolCatalog, ToolDescriptor, ToolResult
from woolcoat.llm import LLMGateway, MockLLMAdapter
from woolcoat.prompts import PromptManager
from woolcoat.tools import CalculatorTool

Outcome = Union[ToolResult, Exception]


class ScriptedTool(AgentTool):
    """Tool that returns scripted outcomes in order, then succeeds."""

    def __init__(
        self,
        code: str,
        outcomes: Optional[Sequence[Outcome]] = None,
        name: Optional[str] = None,
    ) -> None:
        self.descriptor = ToolDescriptor(
            code=code,
            name=name or code.replace("_", " ").title(),
            description=f"Scripted tool {code}",
            params=(
                ParamDescriptor(code="value", name="Value", type="String", required=False),
            ),
            result_description="Echo of the value",
        )
        self.outcomes: List[Outcome] = list(outcomes or [])
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, params: Mapping[str, Any]) -> ToolResult:
        self.calls.append(dict(params))
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return ToolResult.ok(f"{self.code} handled {params.get('value')}")


@pytest.fixture
def make_tool() -> Callable[..., ScriptedTool]:
    """Factory for scripted tools."""
    return ScriptedTool


@pytest.fixture
def prompts() -> PromptManager:
    """Prompt manager over the bundled templates."""
    return PromptManager()


@pytest.fixture
def mock_llm() -> MockLLMAdapter:
    """Mock adapter with an empty script."""
    return MockLLMAdapter()


@pytest.fixture
def gateway(mock_llm: MockLLMAdapter) -> LLMGateway:
    """Gateway over the mock adapter with retries disabled."""
    return LLMGateway(mock_llm, max_retries=0, retry_backoff=0.0)


@pytest.fixture
def calculator_catalog() -> ToolCatalog:
    """Catalog holding only the calculator."""
    return ToolCatalog.from_tools([CalculatorTool()])
