"""
Value coercion rules shared by the template resolver, the expression
evaluator and the IfElse comparisons.
"""

import json
from collections.abc import Mapping
from typing import Any, Union

from flowbuilder.expressions.errors import EvaluationError


Number = Union[int, float]

FALSY_STRINGS = ('', 'false', '0', 'no', 'null', 'none', 'undefined')


def is_number(value: Any) -> bool:
    """True for int/float values that are not booleans."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def try_number(value: Any):
    """Return ``value`` as a number, or None when it is not numeric."""
    if is_number(value):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return None
    return None


def to_number(value: Any) -> Number:
    """Convert a value to a number for arithmetic."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    number = try_number(value)
    if number is None:
        if isinstance(value, str) and not value.strip():
            return 0
        raise EvaluationError(f"Cannot convert {value!r} to number")
    return number


def to_bool(value: Any) -> bool:
    """Convert a value to boolean."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() not in FALSY_STRINGS
    if isinstance(value, (list, tuple, Mapping)):
        return len(value) > 0
    return bool(value)


def thaw(value: Any) -> Any:
    """Turn read-only mappings and tuples back into plain dicts and lists."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    return value


def stringify(value: Any) -> str:
    """
    Render a value for string interpolation.

    Strings pass through, None becomes an empty string, booleans render as
    ``true``/``false``, integral floats drop their fraction and containers
    are rendered as JSON.
    """
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if is_number(value):
        return str(value)
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(thaw(value), default=str)
    return str(value)


def loose_equals(left: Any, right: Any) -> bool:
    """Equality that treats ``"5"`` and ``5`` as equal."""
    if left == right:
        return True
    left_num = try_number(left)
    right_num = try_number(right)
    if left_num is not None and right_num is not None:
        return left_num == right_num
    if isinstance(left, bool) or isinstance(right, bool):
        return stringify(left).lower() == stringify(right).lower()
    if left is None or right is None:
        return False
    if isinstance(left, str) or isinstance(right, str):
        return stringify(left) == stringify(right)
    return False


def compare_order(left: Any, right: Any) -> int:
    """
    Order two values: numerically when both are numeric, else as strings.

    Returns:
        -1, 0 or 1

    Raises:
        TypeError: If the values cannot be ordered (None or containers)
    """
    left_num = try_number(left)
    right_num = try_number(right)
    if left_num is not None and right_num is not None:
        return (left_num > right_num) - (left_num < right_num)

    for value in (left, right):
        if value is None or isinstance(value, (Mapping, list, tuple)):
            raise TypeError(f"Cannot order {stringify(left)!r} and {stringify(right)!r}")

    left_str = stringify(left)
    right_str = stringify(right)
    return (left_str > right_str) - (left_str < right_str)


def contains(container: Any, item: Any) -> bool:
    """List membership, mapping key lookup or substring check."""
    if isinstance(container, (list, tuple)):
        return any(loose_equals(element, item) for element in container)
    if isinstance(container, Mapping):
        return stringify(item) in container
    if container is None:
        return False
    return stringify(item) in stringify(container)
