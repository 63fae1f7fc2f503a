"""
Single-call invocation pipeline.

Module: woolcoat/agent/invocation.py

Turns a free-form instruction into one tool call: the catalog is rendered
into a system prompt, the model picks a tool and parameters as a JSON
object, and the call is validated and executed. Execution failures are
handed to the reflection loop.
"""

import json
import logging
import re
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from woolcoat.llm import LLMGateway, LLMMessage
from woolcoat.prompts import TOOL_DESCRIPTION_PROMPT, PromptManager

from .errors import (
    GatewayFailureError,
    MalformedInstructionError,
    NoToolsAvailableError,
    ToolNotFoundError,
)
from .tool_catalog import AgentTool, ToolCatalog, run_tool

if TYPE_CHECKING:
    from .reflection import ReflectionLoop

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"\A```[\w-]*[ \t]*\n?(.*?)\s*```\Z", re.DOTALL)


class InvocationRequest(BaseModel):
    """Structured tool call parsed from model output."""

    tool_code: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("tool_code", "tool", "toolCode")
    )
    param_map: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("param_map", "params", "paramMap")
    )

    @field_validator("param_map", mode="before")
    @classmethod
    def default_params(cls, v: Any) -> Any:
        return {} if v is None else v


def strip_code_fences(text: str) -> str:
    """
    Remove a Markdown code fence wrapping the whole model output.

    Fences inside the output, such as a code block held in a JSON string
    value, are left alone.

    Args:
        text: Raw model output

    Returns:
        The fenced body when the output is one fenced block, otherwise the trimmed text
    """
    text = (text or "").strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return text


def parse_invocation(raw: str) -> InvocationRequest:
    """
    Parse model output into an invocation.

    Args:
        raw: Raw model output

    Returns:
        Parsed invocation with a non-blank tool code

    Raises:
        MalformedInstructionError: If the output is not a JSON object with a tool code
    """
    text = strip_code_fences(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedInstructionError(f"invalid JSON: {e.msg}", raw)

    if not isinstance(data, dict):
        raise MalformedInstructionError("expected a JSON object", raw)

    try:
        request = InvocationRequest.model_validate(data)
    except ValidationError as e:
        raise MalformedInstructionError(f"invalid fields: {e.errors()[0]['msg']}", raw)

    if not request.tool_code or not request.tool_code.strip():
        raise MalformedInstructionError("missing tool_code", raw)

    return request


def format_success(tool: AgentTool, output: str) -> str:
    descriptor = tool.descriptor
    return (
        f"[Tool call succeeded]\n"
        f"Tool: {descriptor.name} ({descriptor.code})\n"
        f"Result:\n{output}"
    )


class InvocationPipeline:
    """
    Understand an instruction, pick one tool and run it.

    Example:
        pipeline = InvocationPipeline(catalog, gateway, PromptManager(), reflection)
        text = await pipeline.invoke("compute 1+2*3")
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        gateway: LLMGateway,
        prompts: PromptManager,
        reflection: "ReflectionLoop",
        temperature: float = 0.1,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            catalog: Sealed tool catalog
            gateway: Model gateway
            prompts: Prompt template manager
            reflection: Recovery loop for failed executions
            temperature: Sampling temperature for tool selection
        """
        self.catalog = catalog
        self.gateway = gateway
        self.prompts = prompts
        self.reflection = reflection
        self.temperature = temperature

    async def invoke(self, instruction: str, session_id: Optional[str] = None) -> str:
        """
        Run the full single-call flow for an instruction.

        Args:
            instruction: Free-form user instruction
            session_id: Correlation id for logging

        Returns:
            Formatted success message, from the first execution or from reflection

        Raises:
            NoToolsAvailableError: If the catalog is empty
            GatewayFailureError: If the model call fails
            MalformedInstructionError: If the model output cannot be parsed
            ToolNotFoundError: If the chosen tool is not registered
            ReflectionExhaustedError: If execution and every retry fail
        """
        descriptors = self.catalog.list_all()
        if not descriptors:
            raise NoToolsAvailableError()

        logger.info(f"Tool call for session {session_id}: {len(descriptors)} tools available")

        system_prompt = self.prompts.render(
            TOOL_DESCRIPTION_PROMPT,
            {"TOOL_METAS": self.catalog.to_prompt_json(descriptors)},
        )
        response = await self.gateway.generate(
            [LLMMessage.system(system_prompt), LLMMessage.user(instruction)],
            temperature=self.temperature,
        )
        if not response.success:
            raise GatewayFailureError(response.error_msg or response.content)

        logger.info(f"Model tool instruction (session {session_id}): {response.content}")
        request = parse_invocation(response.content)

        tool = self.catalog.resolve(request.tool_code)
        if tool is None:
            raise ToolNotFoundError(request.tool_code or "", self.catalog.codes())

        return await self._execute(tool, request.param_map, instruction, session_id)

    async def invoke_known(
        self,
        tool_code: str,
        params: Optional[Mapping[str, Any]],
        instruction: str,
        session_id: Optional[str] = None,
    ) -> str:
        """
        Execute a known tool directly, with reflection on failure.

        Args:
            tool_code: Tool code to run
            params: Parameter mapping
            instruction: Original user instruction, used for reflection
            session_id: Correlation id for logging

        Returns:
            Formatted success message

        Raises:
            ToolNotFoundError: If the tool is not registered
            ReflectionExhaustedError: If execution and every retry fail
        """
        tool = self.catalog.resolve(tool_code)
        if tool is None:
            raise ToolNotFoundError(tool_code, self.catalog.codes())

        return await self._execute(tool, dict(params or {}), instruction, session_id)

    async def _execute(
        self,
        tool: AgentTool,
        params: Dict[str, Any],
        instruction: str,
        session_id: Optional[str],
    ) -> str:
        logger.info(f"Executing tool {tool.code} with params {params}")
        result = await run_tool(tool, params)

        if result.success:
            logger.info(f"Tool {tool.code} succeeded")
            return format_success(tool, result.output)

        logger.warning(f"Tool {tool.code} failed, starting reflection: {result.error}")
        return await self.reflection.reflect_and_retry(
            instruction=instruction,
            failed_tool_code=tool.code,
            failed_params=params,
            failure_reason=result.error or "unknown error",
            session_id=session_id,
        )
