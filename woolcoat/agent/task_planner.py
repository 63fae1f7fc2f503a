"""
Multi-step task planner and executor.

Module: woolcoat/agent/task_planner.py

Asks the model to break a compound instruction into an ordered list of tool
calls, runs them strictly in the given order and stops at the first failure.
Steps are not retried through reflection. On success the aggregated result
is written to the session store.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from woolcoat.llm import LLMGateway, LLMMessage
from woolcoat.prompts import PLAN_PROMPT, PromptManager

from .errors import (
    GatewayFailureError,
    NoToolsAvailableError,
    PlanningError,
    StepCountExceededError,
    StepExecutionError,
    TaskSubmissionError,
)
from .invocation import strip_code_fences
from .tool_catalog import ToolCatalog, run_tool

if TYPE_CHECKING:
    from woolcoat.memory import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "default_user"


class TaskStatus(str, Enum):
    """Lifecycle status of a task."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAIL = "fail"
    # Reserved; the executor never retries a task
    RETRY = "retry"


class TaskStep(BaseModel):
    """One planned tool call."""

    step_index: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("step_index", "stepIndex", "index")
    )
    step_desc: str = Field(
        default="", validation_alias=AliasChoices("step_desc", "stepDesc", "description")
    )
    tool_code: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("tool_code", "toolCode", "tool")
    )
    param_map: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("param_map", "paramMap", "params")
    )
    result: Optional[str] = None
    success: bool = False
    error: Optional[str] = None

    @field_validator("step_desc", mode="before")
    @classmethod
    def default_desc(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("param_map", mode="before")
    @classmethod
    def default_params(cls, v: Any) -> Any:
        return {} if v is None else v


class Task(BaseModel):
    """A multi-step execution and its outcome."""

    task_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    user_id: str = DEFAULT_USER_ID
    user_query: str
    status: TaskStatus = TaskStatus.PENDING
    steps: Optional[List[TaskStep]] = None
    final_result: Optional[str] = None
    fail_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None


def parse_plan(raw: str) -> List[TaskStep]:
    """
    Parse model output into plan steps.

    Accepts a JSON array of steps, or an object with a ``steps`` array.

    Args:
        raw: Raw model output

    Returns:
        Steps in the order given

    Raises:
        PlanningError: If the output is not a non-empty list of step objects
    """
    text = strip_code_fences(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PlanningError(f"plan is not valid JSON ({e.msg}): {raw}")

    if isinstance(data, dict):
        data = data.get("steps")
    if not isinstance(data, list):
        raise PlanningError(f"plan must be a JSON array of steps: {raw}")
    if not data:
        raise PlanningError("plan contains no steps")

    steps = []
    for position, item in enumerate(data, 1):
        if not isinstance(item, dict):
            raise PlanningError(f"plan entry {position} is not an object")
        try:
            steps.append(TaskStep.model_validate(item))
        except ValidationError as e:
            raise PlanningError(f"plan entry {position} is invalid: {e.errors()[0]['msg']}")
    return steps


class TaskPlanner:
    """
    Plans and executes multi-step tasks.

    Example:
        planner = TaskPlanner(catalog, gateway, PromptManager(), session_store)
        task = await planner.submit_task("compute 3*7 then export it as markdown")
        print(task.final_result)
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        gateway: LLMGateway,
        prompts: PromptManager,
        session_store: Optional["SessionStore"] = None,
        max_steps: int = 5,
        temperature: float = 0.1,
        default_user_id: str = DEFAULT_USER_ID,
    ) -> None:
        """
        Initialize the planner.

        Args:
            catalog: Sealed tool catalog
            gateway: Model gateway
            prompts: Prompt template manager
            session_store: Sink for task summaries (skipped when None)
            max_steps: Maximum steps a plan may contain
            temperature: Sampling temperature for planning
            default_user_id: User id used when the caller supplies none
        """
        self.catalog = catalog
        self.gateway = gateway
        self.prompts = prompts
        self.session_store = session_store
        self.max_steps = max_steps
        self.temperature = temperature
        self.default_user_id = default_user_id

    async def plan(self, instruction: str) -> List[TaskStep]:
        """
        Ask the model for a plan without executing it.

        Args:
            instruction: Compound user instruction

        Returns:
            Parsed steps (not yet bounded by ``max_steps``)

        Raises:
            NoToolsAvailableError: If the catalog is empty
            GatewayFailureError: If the model call fails
            PlanningError: If the plan cannot be parsed or is empty
        """
        descriptors = self.catalog.list_all()
        if not descriptors:
            raise NoToolsAvailableError()

        system_prompt = self.prompts.render(
            PLAN_PROMPT,
            {
                "TOOL_METAS": self.catalog.to_prompt_json(descriptors),
                "MAX_STEP_NUM": self.max_steps,
            },
        )
        response = await self.gateway.generate(
            [LLMMessage.system(system_prompt), LLMMessage.user(instruction)],
            temperature=self.temperature,
        )
        if not response.success:
            raise GatewayFailureError(response.error_msg or response.content)

        logger.info(f"Model plan output: {response.content}")
        return parse_plan(response.content)

    async def submit_task(
        self,
        instruction: str,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Task:
        """
        Plan and execute a compound instruction.

        Args:
            instruction: Compound user instruction
            session_id: Session to record the summary under (generated when blank)
            user_id: Requesting user (default user when blank)

        Returns:
            The completed task with status ``success``

        Raises:
            TaskSubmissionError: On any planning or execution failure; the
                failed task is attached as ``task``
        """
        task = Task(
            session_id=session_id if session_id and session_id.strip() else str(uuid.uuid4()),
            user_id=user_id if user_id and user_id.strip() else self.default_user_id,
            user_query=instruction,
            status=TaskStatus.RUNNING,
        )
        logger.info(f"Task {task.task_id} started for session {task.session_id}")

        try:
            await self._run(task)
        except TaskSubmissionError as e:
            self._mark_failed(task, e.reason)
            e.task = task
            raise
        except Exception as e:
            reason = getattr(e, "message", None) or str(e) or type(e).__name__
            self._mark_failed(task, reason)
            raise TaskSubmissionError(reason, task=task) from e

        await self._save_summary(task)
        return task

    async def _run(self, task: Task) -> None:
        steps = await self.plan(task.user_query)
        logger.info(f"Task {task.task_id} planned {len(steps)} steps")

        if len(steps) > self.max_steps:
            raise StepCountExceededError(len(steps), self.max_steps)

        task.steps = steps
        for position, step in enumerate(steps, 1):
            await self._run_step(position, step)

        task.final_result = self._summarize(task)
        task.status = TaskStatus.SUCCESS
        task.finished_at = datetime.now(timezone.utc)
        logger.info(f"Task {task.task_id} completed with {len(steps)} steps")

    async def _run_step(self, position: int, step: TaskStep) -> None:
        if step.step_index is None or not (step.tool_code or "").strip():
            step.error = "step is missing step_index or tool_code"
            raise StepExecutionError(step.step_index or position, step.error)

        tool = self.catalog.resolve(step.tool_code)
        if tool is None:
            step.error = (
                f"tool not found: {step.tool_code}. "
                f"Available tools: {', '.join(self.catalog.codes())}"
            )
            raise StepExecutionError(step.step_index, step.error)

        logger.info(f"Step {step.step_index} started: {tool.code} ({step.step_desc})")
        result = await run_tool(tool, step.param_map)
        if not result.success:
            step.error = result.error
            raise StepExecutionError(step.step_index, result.error or "unknown error")

        step.result = result.output
        step.success = True
        logger.info(f"Step {step.step_index} succeeded")

    def _mark_failed(self, task: Task, reason: str) -> None:
        task.status = TaskStatus.FAIL
        task.fail_reason = reason
        task.finished_at = datetime.now(timezone.utc)
        logger.error(f"Task {task.task_id} failed: {reason}")

    @staticmethod
    def _summarize(task: Task) -> str:
        steps = task.steps or []
        sections = "\n\n".join(
            f"Step {step.step_index}: {step.step_desc}\nResult: {step.result}" for step in steps
        )
        return (
            f"[Multi-step task complete]\n"
            f"Task ID: {task.task_id}\n"
            f"Instruction: {task.user_query}\n\n"
            f"Steps and results:\n{sections}\n\n"
            f"[Summary]: all {len(steps)} steps completed successfully."
        )

    async def _save_summary(self, task: Task) -> None:
        if self.session_store is None:
            return
        await self.session_store.append(
            task.session_id,
            LLMMessage.assistant(f"Multi-step task result:\n{task.final_result}"),
        )
        logger.info(f"Task {task.task_id} summary saved to session {task.session_id}")
