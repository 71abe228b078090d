"""Stateless condition evaluation for conditional and loop actions."""

from __future__ import annotations

import re

from ..core.logger import get_logger
from .models import Condition
from .variables import VariableStore

logger = get_logger("automation.conditions")

# Plain decimal or exponent notation, plus the NaN and Infinity literals
_NUMBER = re.compile(r"[+-]?(NaN|Infinity|([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?)")


def parse_number(value: str | None) -> float | None:
    """Parse ``value`` as a double, returning None when it is not numeric.

    Whitespace, digit separators and lowercase ``nan``/``inf`` spellings are
    rejected.
    """
    if value is None or _NUMBER.fullmatch(value) is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def compare(left: str, operator: str, right: str | None) -> bool:
    """Apply ``operator`` to already resolved operands.

    Numeric operators parse both sides as floats and are false when either side
    is not a number. A malformed ``matches`` pattern and an unknown operator
    are false as well.
    """
    if operator == "==":
        return left == right
    if operator == "!=":
        return left != right
    if operator in (">", "<", ">=", "<="):
        lhs = parse_number(left)
        rhs = parse_number(right)
        if lhs is None or rhs is None:
            return False
        if operator == ">":
            return lhs > rhs
        if operator == "<":
            return lhs < rhs
        if operator == ">=":
            return lhs >= rhs
        return lhs <= rhs
    if operator == "contains":
        return (right or "") in left
    if operator == "matches":
        try:
            return re.fullmatch(right or "", left) is not None
        except re.error as exc:
            logger.debug("Invalid pattern %r in condition: %s", right, exc)
            return False
    if operator == "is_empty":
        return len(left) == 0
    if operator == "is_number":
        return parse_number(left) is not None
    logger.debug("Unknown condition operator: %s", operator)
    return False


def resolve_operand(operand: str, store: VariableStore) -> str:
    """Variable value when ``operand`` names a variable, else the literal itself."""
    value = store.get(operand)
    return operand if value is None else value


def evaluate(condition: Condition, store: VariableStore) -> bool:
    """Evaluate ``condition`` against the current variable values."""
    left = resolve_operand(condition.left_operand, store)
    return compare(left, condition.operator, condition.right_operand)


__all__ = ["compare", "evaluate", "parse_number", "resolve_operand"]
