"""
Agent core: tool catalog, invocation pipeline, reflection loop and task planner.

Module: woolcoat/agent/__init__.py
"""

from .errors import (
    AgentError,
    DocumentNotFoundError,
    GatewayFailureError,
    InvalidInputError,
    MalformedInstructionError,
    NoToolsAvailableError,
    PlanningError,
    ReflectionExhaustedError,
    ReflectionPreconditionError,
    StepCountExceededError,
    StepExecutionError,
    TaskSubmissionError,
    ToolNotFoundError,
)
from .tool_catalog import (
    AgentTool,
    ParamDescriptor,
    ToolCatalog,
    ToolCategory,
    ToolDescriptor,
    ToolResult,
    run_tool,
)
from .invocation import InvocationPipeline, InvocationRequest, parse_invocation, strip_code_fences
from .reflection import ReflectionAttempt, ReflectionLoop
from .task_planner import Task, TaskPlanner, TaskStatus, TaskStep, parse_plan
from .core import AgentCore, ChatResult, create_agent_core

__all__ = [
    # Errors
    "AgentError",
    "DocumentNotFoundError",
    "GatewayFailureError",
    "InvalidInputError",
    "MalformedInstructionError",
    "NoToolsAvailableError",
    "PlanningError",
    "ReflectionExhaustedError",
    "ReflectionPreconditionError",
    "StepCountExceededError",
    "StepExecutionError",
    "TaskSubmissionError",
    "ToolNotFoundError",
    # Catalog
    "AgentTool",
    "ParamDescriptor",
    "ToolCatalog",
    "ToolCategory",
    "ToolDescriptor",
    "ToolResult",
    "run_tool",
    # Invocation
    "InvocationPipeline",
    "InvocationRequest",
    "parse_invocation",
    "strip_code_fences",
    # Reflection
    "ReflectionAttempt",
    "ReflectionLoop",
    # Planning
    "Task",
    "TaskPlanner",
    "TaskStatus",
    "TaskStep",
    "parse_plan",
    # Facade
    "AgentCore",
    "ChatResult",
    "create_agent_core",
]
