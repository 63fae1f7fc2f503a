"""
Tool catalog and capability contract.

Module: woolcoat/agent/tool_catalog.py

Defines the descriptor models that describe a tool to the model, the
``AgentTool`` interface every capability implements, the explicit
``ToolResult`` value returned from execution, and the ``ToolCatalog`` that
maps tool codes to capabilities.

The catalog is built once at startup from an explicit list of tools, then
sealed. After sealing it is read-only, so concurrent lookups need no lock.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class ToolCategory(str, Enum):
    """Tool category."""

    GENERAL = "general"
    INFORMATION_RETRIEVAL = "information_retrieval"
    AUTOMATION = "automation"


class ParamDescriptor(BaseModel):
    """Declared parameter of a tool."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., description="Parameter key expected in param_map")
    name: str = Field(..., description="Display name")
    type: str = Field(default="string", description="Declared type name")
    required: bool = Field(default=False, description="Whether the parameter must be supplied")
    description: str = Field(default="", description="Parameter description")


class ToolDescriptor(BaseModel):
    """Immutable metadata describing one tool to the model and to callers."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., description="Unique lowercase tool identifier")
    name: str = Field(..., description="Display name")
    category: ToolCategory = Field(default=ToolCategory.GENERAL)
    description: str = Field(default="", description="What the tool does")
    params: Tuple[ParamDescriptor, ...] = Field(default_factory=tuple)
    result_description: str = Field(default="", description="Shape of the result text")

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        """Tool codes are stored trimmed and lower-cased."""
        code = normalize_code(v)
        if not code:
            raise ValueError("tool code must not be blank")
        return code

    def required_params(self) -> List[str]:
        return [p.code for p in self.params if p.required]


@dataclass(frozen=True)
class ToolResult:
    """
    Outcome of a tool execution.

    Exactly one of ``output`` (on success) or ``error`` (on failure) is meaningful.
    """

    success: bool
    output: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, output: str) -> "ToolResult":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, reason: str) -> "ToolResult":
        return cls(success=False, error=reason or "unknown error")


class AgentTool(ABC):
    """
    Interface implemented by every capability.

    Subclasses set ``descriptor`` and implement ``execute``. Expected failures
    (bad parameters, downstream errors) are returned as ``ToolResult.fail``.
    """

    descriptor: ToolDescriptor

    @property
    def code(self) -> str:
        return self.descriptor.code

    @abstractmethod
    async def execute(self, params: Mapping[str, Any]) -> ToolResult:
        """
        Run the tool.

        Args:
            params: Parameter mapping keyed by parameter code

        Returns:
            Success with result text, or failure with a reason
        """

    def missing_params(self, params: Mapping[str, Any]) -> List[str]:
        """Return required parameter codes that are absent or blank."""
        missing = []
        for code in self.descriptor.required_params():
            value = params.get(code)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(code)
        return missing

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.descriptor.code!r})"


def normalize_code(code: Optional[str]) -> str:
    """Trim and lower-case a tool code; None becomes an empty string."""
    return (code or "").strip().lower()


async def run_tool(tool: AgentTool, params: Mapping[str, Any]) -> ToolResult:
    """
    Execute a tool, converting any unexpected exception into a failed result.

    Args:
        tool: Tool to run
        params: Parameter mapping

    Returns:
        Tool result
    """
    try:
        result = await tool.execute(dict(params))
    except Exception as e:
        logger.exception(f"Tool {tool.code} raised an unexpected error")
        return ToolResult.fail(str(e) or type(e).__name__)

    if not isinstance(result, ToolResult):
        return ToolResult.fail(f"Tool {tool.code} returned {type(result).__name__}, not ToolResult")
    return result


class ToolCatalog:
    """
    Registry mapping tool codes to capabilities.

    Registration happens only before ``seal()``. A code registered twice keeps
    the most recent tool; the replaced code is logged and recorded in
    ``overridden_codes`` so startup checks can flag it.
    """

    def __init__(self) -> None:
        self._tools: Dict[str, AgentTool] = {}
        self._sealed = False
        self.overridden_codes: List[str] = []

    @classmethod
    def from_tools(cls, tools: Iterable[AgentTool]) -> "ToolCatalog":
        """
        Build and seal a catalog from tool instances.

        Args:
            tools: Tools to register, in order

        Returns:
            Sealed catalog
        """
        catalog = cls()
        for tool in tools:
            catalog.register(tool.descriptor.code, tool)
        catalog.seal()
        return catalog

    def register(self, code: str, tool: AgentTool) -> None:
        """
        Register a tool under a code.

        Args:
            code: Tool code (normalized before storing)
            tool: Tool implementation

        Raises:
            RuntimeError: If the catalog is sealed
            ValueError: If the code is blank
        """
        if self._sealed:
            raise RuntimeError("Tool catalog is sealed; register tools before startup completes")

        key = normalize_code(code)
        if not key:
            raise ValueError("Tool code must not be blank")

        previous = self._tools.get(key)
        if previous is not None:
            logger.warning(
                f"Duplicate tool code '{key}': {type(tool).__name__} replaces "
                f"{type(previous).__name__}"
            )
            self.overridden_codes.append(key)

        self._tools[key] = tool
        logger.info(f"Registered tool: {key} ({tool.descriptor.name})")

    def seal(self) -> None:
        """Freeze the catalog; later registrations fail."""
        if not self._tools:
            logger.warning("Tool catalog is empty, tool calling will be unavailable")
        else:
            logger.info(f"Tool catalog ready with {len(self._tools)} tools: {', '.join(self.codes())}")
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def list_all(self) -> List[ToolDescriptor]:
        """Return descriptors of every registered tool."""
        return [tool.descriptor for tool in self._tools.values()]

    def resolve(self, code: Optional[str]) -> Optional[AgentTool]:
        """
        Look up a tool by code.

        Args:
            code: Tool code, matched after trimming and lower-casing

        Returns:
            The tool, or None when the code is blank or unknown
        """
        key = normalize_code(code)
        if not key:
            return None
        return self._tools.get(key)

    def codes(self) -> List[str]:
        return list(self._tools.keys())

    def to_prompt_json(self, descriptors: Optional[List[ToolDescriptor]] = None) -> str:
        """Serialize descriptors as the JSON embedded into prompts."""
        if descriptors is None:
            descriptors = self.list_all()
        return descriptors_to_json(descriptors)

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and normalize_code(code) in self._tools


def descriptors_to_json(descriptors: Iterable[ToolDescriptor]) -> str:
    """Serialize tool descriptors to a JSON array."""
    return json.dumps(
        [d.model_dump(mode="json") for d in descriptors], ensure_ascii=False, indent=2
    )
