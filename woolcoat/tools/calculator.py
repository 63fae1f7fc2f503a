"""
Arithmetic calculator tool.

Module: woolcoat/tools/calculator.py

Evaluates + - * / expressions with parentheses by walking the Python AST,
so no arbitrary code is ever executed.
"""

import ast
import operator
from typing import Any, Callable, Dict, Mapping, Type, Union

from woolcoat.agent.tool_catalog import (
    AgentTool,
    ParamDescriptor,
    ToolCategory,
    ToolDescriptor,
    ToolResult,
)

from .params import text_param

Number = Union[int, float]

_BINARY_OPS: Dict[Type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPS: Dict[Type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

CALCULATOR_DESCRIPTOR = ToolDescriptor(
    code="calculator",
    name="Calculator",
    category=ToolCategory.GENERAL,
    description=(
        "Evaluates simple arithmetic with addition, subtraction, multiplication and "
        "division. Pass a standard math expression and get the result."
    ),
    params=(
        ParamDescriptor(
            code="expression",
            name="Expression",
            type="String",
            required=True,
            description="Arithmetic expression using + - * / and parentheses, e.g. 1+2*3 or (10-5)/2",
        ),
    ),
    result_description="The result, e.g. input 1+2 returns 3; invalid expressions return an error",
)


def evaluate(expression: str) -> Number:
    """
    Evaluate an arithmetic expression.

    Args:
        expression: Expression using numbers, + - * /, unary signs and parentheses

    Returns:
        Numeric result

    Raises:
        ValueError: If the expression uses unsupported syntax
        ZeroDivisionError: On division by zero
    """
    normalized = expression.replace("×", "*").replace("÷", "/")
    try:
        tree = ast.parse(normalized, mode="eval")
    except SyntaxError as e:
        raise ValueError(f"invalid expression syntax: {e.msg}")
    return _eval_node(tree.body)


def _eval_node(node: ast.AST) -> Number:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return node.value
        raise ValueError(f"unsupported literal: {node.value!r}")
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        return _BINARY_OPS[type(node.op)](_eval_node(node.left), _eval_node(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise ValueError(f"unsupported syntax: {type(node).__name__}")


def format_number(value: Number) -> str:
    """Render integral results without a trailing .0."""
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return format(value, ".10g")
    return str(value)


class CalculatorTool(AgentTool):
    """Arithmetic evaluator."""

    descriptor = CALCULATOR_DESCRIPTOR

    async def execute(self, params: Mapping[str, Any]) -> ToolResult:
        expression = text_param(params, "expression")
        if not expression:
            return ToolResult.fail("Calculator is missing required parameter: expression")

        try:
            value = evaluate(expression)
        except ZeroDivisionError:
            return ToolResult.fail(f"Division by zero in expression: {expression}")
        except (ValueError, OverflowError) as e:
            return ToolResult.fail(f"Unsupported expression '{expression}': {e}")

        return ToolResult.ok(f"Result: {expression} = {format_number(value)}")
