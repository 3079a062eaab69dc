# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Whitelisted arithmetic expression evaluator.

Used by ratio rules and journal templates. Expressions are parsed with
``ast`` and only the following constructs are accepted:

    - numeric literals
    - variable names (keys of ``variables``)
    - ``{name}`` placeholders (same as ``name``)
    - binary +, -, *, /, %, **
    - unary minus and plus
    - parentheses

Everything else (calls, attributes, subscripts, comparisons, strings...)
raises FormulaError. Evaluation is done in Decimal.
"""

import ast
import operator
import re
from collections.abc import Mapping
from decimal import Decimal

from .errors import FormulaError
from .money import to_decimal

_PLACEHOLDER_RE = re.compile(r"\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}")

_ALLOWED_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}


def strip_placeholders(expr: str) -> str:
    """'{amount} * {rate}' -> 'amount * rate'."""
    return _PLACEHOLDER_RE.sub(r"\1", expr)


def placeholders(text: str) -> list[str]:
    """Names of the ``{name}`` placeholders found in ``text``, in order."""
    return _PLACEHOLDER_RE.findall(text)


def evaluate(expr: str, variables: Mapping[str, object]) -> Decimal:
    """
    Evaluate an arithmetic expression over named variables.

    Args:
        expr: Expression string (e.g. "{amount} * 0.2" or "net_profit / revenue").
        variables: Mapping of variable names to numbers.

    Returns:
        The Decimal result.

    Raises:
        FormulaError: on syntax errors, unsupported constructs or unknown
            variables.
        ZeroDivisionError / decimal.InvalidOperation: on division by zero.
    """
    source = strip_placeholders(str(expr)).strip()
    if source.startswith("="):
        source = source[1:]
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise FormulaError(f"Invalid expression syntax: {expr!r}") from exc

    def _eval(node: ast.AST) -> Decimal:
        if isinstance(node, ast.Expression):
            return _eval(node.body)

        if isinstance(node, ast.Constant):
            if isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
                return to_decimal(node.value)
            raise FormulaError(f"Unsupported constant in expression: {node.value!r}")

        if isinstance(node, ast.Name):
            if node.id not in variables:
                raise FormulaError(f"Unknown variable in expression: {node.id!r}")
            try:
                return to_decimal(variables[node.id])
            except ValueError as exc:
                raise FormulaError(f"Variable {node.id!r} is not a number.") from exc

        if isinstance(node, ast.BinOp):
            op_func = _ALLOWED_OPERATORS.get(type(node.op))
            if op_func is None:
                raise FormulaError(f"Unsupported operator in expression: {type(node.op).__name__}")
            return op_func(_eval(node.left), _eval(node.right))

        if isinstance(node, ast.UnaryOp):
            op_func = _ALLOWED_OPERATORS.get(type(node.op))
            if op_func is None:
                raise FormulaError(f"Unsupported unary operator: {type(node.op).__name__}")
            return op_func(_eval(node.operand))

        raise FormulaError(f"Unsupported expression node: {type(node).__name__}")

    return _eval(tree)
