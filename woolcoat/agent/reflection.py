"""
Failure-driven reflection loop.

Module: woolcoat/agent/reflection.py

When a tool execution fails, the model is shown the failing tool, the
parameters it was called with and the failure reason, and asked for a
corrected call. Attempts run strictly one after another until one succeeds
or the retry budget is spent.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import anyio

from woolcoat.llm import LLMGateway, LLMMessage
from woolcoat.prompts import REFLECTION_PROMPT, PromptManager

from .errors import (
    MalformedInstructionError,
    ReflectionExhaustedError,
    ReflectionPreconditionError,
)
from .invocation import parse_invocation
from .tool_catalog import AgentTool, ToolCatalog, descriptors_to_json, run_tool

logger = logging.getLogger(__name__)


@dataclass
class ReflectionAttempt:
    """Outcome of one corrective attempt."""

    attempt: int
    success: bool
    tool: Optional[AgentTool] = None
    output: str = ""
    reason: Optional[str] = None

    @classmethod
    def failed(
        cls, attempt: int, reason: str, tool: Optional[AgentTool] = None
    ) -> "ReflectionAttempt":
        return cls(attempt=attempt, success=False, tool=tool, reason=f"attempt {attempt}: {reason}")


class ReflectionLoop:
    """
    Bounded self-correction for failed tool calls.

    Args:
        catalog: Sealed tool catalog
        gateway: Model gateway
        prompts: Prompt template manager
        max_attempts: Corrective attempts before giving up
        temperature: Sampling temperature for corrective calls
        backoff_seconds: Pause between attempts (0 disables)
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        gateway: LLMGateway,
        prompts: PromptManager,
        max_attempts: int = 3,
        temperature: float = 0.2,
        backoff_seconds: float = 0.0,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.catalog = catalog
        self.gateway = gateway
        self.prompts = prompts
        self.max_attempts = max_attempts
        self.temperature = temperature
        self.backoff_seconds = backoff_seconds

    async def reflect_and_retry(
        self,
        instruction: str,
        failed_tool_code: str,
        failed_params: Optional[Mapping[str, Any]],
        failure_reason: str,
        session_id: Optional[str] = None,
    ) -> str:
        """
        Ask the model for corrected calls until one succeeds.

        Args:
            instruction: Original user instruction
            failed_tool_code: Code of the tool that failed
            failed_params: Parameters of the failed call
            failure_reason: Why the call failed
            session_id: Correlation id for logging

        Returns:
            Message naming the original and corrected tools, the attempt number
            and the result

        Raises:
            ReflectionPreconditionError: If the failure context is incomplete or
                the failing tool is unknown
            ReflectionExhaustedError: If every attempt fails
        """
        if not failed_tool_code or not failed_tool_code.strip():
            raise ReflectionPreconditionError("Reflection requires the failing tool code")
        if not failure_reason or not failure_reason.strip():
            raise ReflectionPreconditionError("Reflection requires a failure reason")

        failed_tool = self.catalog.resolve(failed_tool_code)
        if failed_tool is None:
            raise ReflectionPreconditionError(
                f"Reflection failed: tool '{failed_tool_code}' is not registered"
            )

        system_prompt = self._build_prompt(failed_tool, dict(failed_params or {}), failure_reason)
        last_reason = failure_reason

        for attempt in range(1, self.max_attempts + 1):
            logger.info(
                f"Reflection attempt {attempt}/{self.max_attempts} "
                f"(session {session_id}, tool {failed_tool.code})"
            )
            outcome = await self._attempt(attempt, system_prompt, instruction)

            if outcome.success and outcome.tool is not None:
                logger.info(f"Reflection attempt {attempt} recovered with tool {outcome.tool.code}")
                return (
                    f"[Reflection retry succeeded] (attempt {attempt})\n"
                    f"Original tool: {failed_tool.descriptor.name} ({failed_tool.code})\n"
                    f"Corrected tool: {outcome.tool.descriptor.name} ({outcome.tool.code})\n"
                    f"Result:\n{outcome.output}"
                )

            last_reason = outcome.reason or "unknown error"
            logger.warning(
                f"Reflection retry failed (session {session_id}): {last_reason}"
            )
            if self.backoff_seconds > 0 and attempt < self.max_attempts:
                await anyio.sleep(self.backoff_seconds)

        logger.error(
            f"Reflection exhausted after {self.max_attempts} attempts "
            f"(session {session_id}, tool {failed_tool.code})"
        )
        raise ReflectionExhaustedError(self.max_attempts, failure_reason, last_reason)

    async def _attempt(self, attempt: int, system_prompt: str, instruction: str) -> ReflectionAttempt:
        response = await self.gateway.generate(
            [LLMMessage.system(system_prompt), LLMMessage.user(instruction)],
            temperature=self.temperature,
        )
        if not response.success:
            return ReflectionAttempt.failed(
                attempt, f"LLM call failed, {response.error_msg or response.content}"
            )

        try:
            request = parse_invocation(response.content)
        except MalformedInstructionError as e:
            return ReflectionAttempt.failed(attempt, e.message)

        tool = self.catalog.resolve(request.tool_code)
        if tool is None:
            return ReflectionAttempt.failed(
                attempt, f"suggested tool does not exist, tool_code={request.tool_code}"
            )

        result = await run_tool(tool, request.param_map)
        if not result.success:
            return ReflectionAttempt.failed(attempt, f"{tool.code} failed, {result.error}", tool)

        return ReflectionAttempt(attempt=attempt, success=True, tool=tool, output=result.output)

    def _build_prompt(
        self, failed_tool: AgentTool, failed_params: Dict[str, Any], failure_reason: str
    ) -> str:
        descriptor = failed_tool.descriptor
        return self.prompts.render(
            REFLECTION_PROMPT,
            {
                "TOOL_NAME": descriptor.name,
                "TOOL_CODE": descriptor.code,
                "TOOL_META": descriptors_to_json([descriptor]),
                "FAIL_PARAM_MAP": json.dumps(failed_params, ensure_ascii=False, default=str),
                "FAIL_REASON": failure_reason,
            },
        )
