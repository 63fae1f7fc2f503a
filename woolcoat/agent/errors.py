"""
Error taxonomy for the agent core.

Module: woolcoat/agent/errors.py

Every error the core surfaces to a caller derives from ``AgentError``.
Capability execution failures are not errors here; they travel as failed
``ToolResult`` values and are handled by the reflection loop.
"""

from typing import TYPE_CHECKING, Iterable, List, Optional

if TYPE_CHECKING:
    from .task_planner import Task


class AgentError(Exception):
    """Base exception for agent core errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NoToolsAvailableError(AgentError):
    """Raised when the tool catalog is empty."""

    status_code = 503

    def __init__(self, message: str = "No tools available, tool calling is disabled") -> None:
        super().__init__(message)


class GatewayFailureError(AgentError):
    """Raised when the model gateway returns a non-success status."""

    status_code = 502

    def __init__(self, detail: Optional[str]) -> None:
        self.detail = detail or "unknown error"
        super().__init__(f"LLM gateway call failed: {self.detail}")


class MalformedInstructionError(AgentError):
    """Raised when model output is not a valid structured invocation."""

    status_code = 422

    def __init__(self, reason: str, raw_output: str) -> None:
        self.reason = reason
        self.raw_output = raw_output
        super().__init__(f"Malformed tool instruction ({reason}). Raw output: {raw_output}")


class ToolNotFoundError(AgentError):
    """Raised when a tool code does not resolve in the catalog."""

    status_code = 404

    def __init__(self, tool_code: str, available: Iterable[str]) -> None:
        self.tool_code = tool_code
        self.available: List[str] = list(available)
        super().__init__(
            f"Tool not found: {tool_code}. Available tools: {', '.join(self.available)}"
        )


class ReflectionPreconditionError(AgentError):
    """Raised when reflection is requested with an invalid failure context."""

    status_code = 400


class ReflectionExhaustedError(AgentError):
    """Raised when every corrective attempt has failed."""

    status_code = 500

    def __init__(self, attempts: int, original_reason: str, last_reason: str) -> None:
        self.attempts = attempts
        self.original_reason = original_reason
        self.last_reason = last_reason
        super().__init__(
            f"Tool call failed after {attempts} reflection retries. "
            f"Original failure reason: {original_reason}; "
            f"last retry failure reason: {last_reason}"
        )


class TaskSubmissionError(AgentError):
    """Raised when a multi-step task fails; carries the failed task."""

    status_code = 500

    def __init__(self, message: str, task: Optional["Task"] = None) -> None:
        super().__init__(f"Task execution failed: {message}")
        self.reason = message
        self.task = task


class PlanningError(TaskSubmissionError):
    """Raised when the model's plan cannot be parsed or is empty."""

    status_code = 422


class StepCountExceededError(TaskSubmissionError):
    """Raised when the plan has more steps than allowed."""

    status_code = 422

    def __init__(self, planned: int, max_steps: int, task: Optional["Task"] = None) -> None:
        self.planned = planned
        self.max_steps = max_steps
        super().__init__(
            f"Planned {planned} steps, exceeding the maximum of {max_steps}", task=task
        )


class StepExecutionError(TaskSubmissionError):
    """Raised when a task step is invalid or its tool fails."""

    def __init__(self, step_index: Optional[int], reason: str, task: Optional["Task"] = None) -> None:
        self.step_index = step_index
        super().__init__(f"Step {step_index} failed: {reason}", task=task)


class InvalidInputError(AgentError):
    """Raised when an uploaded document or a memory entry is rejected."""

    status_code = 400


class DocumentNotFoundError(AgentError):
    """Raised when a document does not exist for the requesting user."""

    status_code = 404

    def __init__(self, doc_id: str, user_id: str) -> None:
        self.doc_id = doc_id
        self.user_id = user_id
        super().__init__(f"Document not found: {doc_id} (user {user_id})")
