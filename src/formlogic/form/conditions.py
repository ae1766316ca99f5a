"""
conditions.py: rule evaluator shared by the visibility resolver and the
cross-field validators. Pure functions, no state.
"""

import logging
import math
from typing import Any, Callable, Dict, Optional, Union

from formlogic.model.enums import Condition

logger = logging.getLogger(__name__)

_SEQUENCE_TYPES = (list, tuple, set, frozenset)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_number(value: Any) -> Optional[float]:
    """Finite float for numbers and numeric strings, None for anything else."""
    if isinstance(value, bool) or value is None:
        return None
    if _is_number(value):
        num = float(value)
    elif isinstance(value, str):
        try:
            num = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return num if math.isfinite(num) else None


def as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def values_equal(expected: Any, actual: Any) -> bool:
    if expected is actual:
        return True
    if expected is None or actual is None:
        return False
    if type(expected) is type(actual):
        return bool(expected == actual)
    if _is_number(expected) or _is_number(actual):
        left, right = to_number(expected), to_number(actual)
        return left is not None and right is not None and left == right
    return as_text(expected) == as_text(actual)


def _contains(expected: Any, actual: Any) -> bool:
    if expected is None or actual is None:
        return False
    if isinstance(actual, _SEQUENCE_TYPES):
        return any(values_equal(expected, item) for item in actual)
    return as_text(expected) in as_text(actual)


def _compare(expected: Any, actual: Any, op: Callable[[float, float], bool]) -> bool:
    left, right = to_number(actual), to_number(expected)
    if left is None or right is None:
        return False
    return op(left, right)


def _member_of(expected: Any, actual: Any) -> bool:
    if not isinstance(expected, _SEQUENCE_TYPES):
        return False
    return any(values_equal(item, actual) for item in expected)


_OPERATORS: Dict[Condition, Callable[[Any, Any], bool]] = {
    Condition.EQUALS: values_equal,
    Condition.NOT_EQUALS: lambda e, a: not values_equal(e, a),
    Condition.CONTAINS: _contains,
    Condition.GREATER_THAN: lambda e, a: _compare(e, a, lambda x, y: x > y),
    Condition.LESS_THAN: lambda e, a: _compare(e, a, lambda x, y: x < y),
    Condition.IN: _member_of,
}


def evaluate(
    condition: Union[Condition, str, None], expected: Any, actual: Any, strict: bool = False
) -> bool:
    """
    Does the observed ``actual`` answer satisfy ``condition`` against ``expected``?

    Unknown operators match (fail open) unless ``strict`` is set, in which case
    they never match.
    """
    op = Condition.parse(condition)
    if op is None:
        if strict:
            logger.warning("Unknown condition operator %r rejected (strict mode)", condition)
            return False
        logger.debug("Unknown condition operator %r treated as a match", condition)
        return True
    return _OPERATORS[op](expected, actual)
