"""
Calculator tool.

Evaluates arithmetic expressions by walking the Python AST, accepting only
numeric literals, arithmetic operators and parentheses.
"""
import ast
import math
import operator
from typing import Any, Dict, Union

from agent_engine.plugins.tools.auto_tool import AutoTool

Number = Union[int, float]

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

MAX_EXPONENT = 1000
MAX_EXPRESSION_LENGTH = 500


def evaluate_expression(expression: str) -> Number:
    """Evaluate an arithmetic expression.

    Raises:
        ValueError: If the expression is empty, too long, or uses anything
            other than numbers and arithmetic operators
        ZeroDivisionError: On division by zero
    """
    if not expression or not expression.strip():
        raise ValueError("Expression cannot be empty")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ValueError("Expression is too long")

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ValueError(f"Invalid expression: {expression}") from e

    return _eval_node(tree.body)


def _eval_node(node: ast.AST) -> Number:
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise ValueError("Exponent is too large")
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


class CalculatorTool(AutoTool):
    """Perform mathematical calculations."""

    def __init__(self, registry=None):
        super().__init__(
            name="calculator",
            description="Perform mathematical calculations",
            registry=registry,
        )

    def get_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": "Mathematical expression to evaluate",
                }
            },
            "required": ["expression"],
        }

    async def execute(self, expression: str = "", **params) -> Dict[str, Any]:
        if not isinstance(expression, str) or not expression:
            raise ValueError("Missing expression parameter")
        result = evaluate_expression(expression)
        if isinstance(result, float) and (math.isnan(result) or math.isinf(result)):
            raise ValueError("Result is not a finite number")
        return {"result": result}
