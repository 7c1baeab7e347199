"""AST interpreter for residual formula expressions.

All arithmetic is floating point. Comparisons and logical operators return
booleans. ``+`` concatenates when either side is text. Division or modulo by
zero raises ``ZeroDivisionError``; operands that cannot act as numbers raise
``TypeError``. The formula engine wraps both in ``EvaluationError``.
"""

from __future__ import annotations

import math

from catalog_builder.core.coercion import format_number, is_numeric
from catalog_builder.formulas.syntax import (
    BinaryOp,
    BooleanLiteral,
    Node,
    NumberLiteral,
    StringLiteral,
    UnaryOp,
)

Value = float | str | bool


def truthy(value: Value) -> bool:
    """Truthiness of an expression value (0, NaN and "" are false)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float | int):
        return value != 0 and not math.isnan(value)
    return value != ""


def as_number(value: Value) -> float:
    """Numeric view of a value; booleans count as 1/0, numeric text is parsed."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, float | int):
        return float(value)
    if is_numeric(value):
        return float(value)
    raise TypeError(f"Expected a number, got text {value!r}")


def _as_text(value: Value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float | int):
        return format_number(value)
    return value


def _equals(left: Value, right: Value) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if isinstance(left, str) or isinstance(right, str):
        text = left if isinstance(left, str) else right
        if not is_numeric(text):
            return False
    return as_number(left) == as_number(right)


def _compare(operator: str, left: Value, right: Value) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        a: float | str = left
        b: float | str = right
    else:
        try:
            a, b = as_number(left), as_number(right)
        except TypeError:
            return False
    if operator == "<":
        return a < b  # type: ignore[operator]
    if operator == ">":
        return a > b  # type: ignore[operator]
    if operator == "<=":
        return a <= b  # type: ignore[operator]
    return a >= b  # type: ignore[operator]


def _arithmetic(operator: str, left: Value, right: Value) -> Value:
    if operator == "+" and (isinstance(left, str) or isinstance(right, str)):
        return _as_text(left) + _as_text(right)
    a, b = as_number(left), as_number(right)
    if operator == "+":
        return a + b
    if operator == "-":
        return a - b
    if operator == "*":
        return a * b
    if operator == "/":
        if b == 0:
            raise ZeroDivisionError("Division by zero")
        return a / b
    if b == 0:
        raise ZeroDivisionError("Modulo by zero")
    # Remainder keeps the sign of the dividend
    return math.fmod(a, b)


def evaluate_node(node: Node) -> Value:
    """Evaluate an AST node to a float, string or boolean."""
    if isinstance(node, NumberLiteral | StringLiteral | BooleanLiteral):
        return node.value

    if isinstance(node, UnaryOp):
        operand = evaluate_node(node.operand)
        if node.operator == "!":
            return not truthy(operand)
        number = as_number(operand)
        return -number if node.operator == "-" else number

    if isinstance(node, BinaryOp):
        operator = node.operator
        if operator == "&&":
            return truthy(evaluate_node(node.left)) and truthy(evaluate_node(node.right))
        if operator == "||":
            return truthy(evaluate_node(node.left)) or truthy(evaluate_node(node.right))

        left = evaluate_node(node.left)
        right = evaluate_node(node.right)
        if operator == "==":
            return _equals(left, right)
        if operator == "!=":
            return not _equals(left, right)
        if operator in ("<", ">", "<=", ">="):
            return _compare(operator, left, right)
        return _arithmetic(operator, left, right)

    raise TypeError(f"Unknown expression node: {node!r}")
