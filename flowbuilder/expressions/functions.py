"""
Whitelisted functions callable from expressions and transform scripts.

    ROUND(value * 1.1, 2)
    IF(vars.count > 0, "some", "none")
    UPPER(TRIM(value.name))
"""

import json
import math
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from flowbuilder.expressions.errors import FunctionError
from flowbuilder.expressions.values import stringify, thaw, to_bool, to_number, try_number, contains


class ExpressionFunction(ABC):
    """Base class for expression functions."""

    name: str = ""
    min_args: int = 0
    max_args: Optional[int] = None  # None means unlimited

    @abstractmethod
    def execute(self, args: List[Any], context: Dict[str, Any]) -> Any:
        """Execute the function with evaluated arguments."""
        pass

    def validate_args(self, args: List[Any]):
        """Validate argument count."""
        if len(args) < self.min_args:
            raise FunctionError(
                self.name,
                f"Expected at least {self.min_args} arguments, got {len(args)}"
            )
        if self.max_args is not None and len(args) > self.max_args:
            raise FunctionError(
                self.name,
                f"Expected at most {self.max_args} arguments, got {len(args)}"
            )


class FunctionRegistry:
    """Registry of available functions."""

    def __init__(self):
        self._functions: Dict[str, ExpressionFunction] = {}

    def register(self, func: ExpressionFunction):
        self._functions[func.name.upper()] = func

    def get(self, name: str) -> Optional[ExpressionFunction]:
        return self._functions.get(name.upper())

    def has(self, name: str) -> bool:
        return name.upper() in self._functions

    def names(self) -> List[str]:
        return sorted(self._functions)

    def execute(self, name: str, args: List[Any], context: Dict[str, Any]) -> Any:
        """Execute a function by name."""
        func = self.get(name)
        if not func:
            raise FunctionError(name, f"Unknown function: {name}")

        func.validate_args(args)
        return func.execute(args, context)


def _numbers(args: List[Any]) -> List[float]:
    """Flatten list arguments and convert every non-null item to a number."""
    values = []
    for arg in args:
        items = arg if isinstance(arg, (list, tuple)) else [arg]
        values.extend(to_number(item) for item in items if item is not None)
    return values


# ============================================================================
# Mathematical Functions
# ============================================================================

class SumFunction(ExpressionFunction):
    """
    Sum values in an array or sum multiple arguments.

    Usage:
        SUM(value.prices)
        SUM(1, 2, 3)
    """
    name = "SUM"
    min_args = 1

    def execute(self, args, context):
        return sum(_numbers(args))


class AvgFunction(ExpressionFunction):
    """Average of array items or arguments."""
    name = "AVG"
    min_args = 1

    def execute(self, args, context):
        values = _numbers(args)
        if not values:
            return 0
        return sum(values) / len(values)


class MinFunction(ExpressionFunction):
    name = "MIN"
    min_args = 1

    def execute(self, args, context):
        values = _numbers(args)
        return min(values) if values else 0


class MaxFunction(ExpressionFunction):
    name = "MAX"
    min_args = 1

    def execute(self, args, context):
        values = _numbers(args)
        return max(values) if values else 0


class RoundFunction(ExpressionFunction):
    """
    Round a number to specified decimal places.

    Usage:
        ROUND(value)         # Round to integer
        ROUND(value, 2)      # Round to 2 decimal places
    """
    name = "ROUND"
    min_args = 1
    max_args = 2

    def execute(self, args, context):
        value = to_number(args[0])
        decimals = int(to_number(args[1])) if len(args) > 1 else 0
        result = round(value, decimals)
        return int(result) if decimals == 0 else result


class AbsFunction(ExpressionFunction):
    name = "ABS"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        return abs(to_number(args[0]))


class FloorFunction(ExpressionFunction):
    name = "FLOOR"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        return math.floor(to_number(args[0]))


class CeilFunction(ExpressionFunction):
    name = "CEIL"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        return math.ceil(to_number(args[0]))


class NumberFunction(ExpressionFunction):
    """Parse a value as a number: NUMBER("42") -> 42"""
    name = "NUMBER"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        return to_number(args[0])


# ============================================================================
# Collection Functions
# ============================================================================

class CountFunction(ExpressionFunction):
    """
    Count items in an array or non-null arguments.

    Usage:
        COUNT(items)
        COUNT(a, b, c)
    """
    name = "COUNT"
    min_args = 1

    def execute(self, args, context):
        total = 0
        for arg in args:
            if isinstance(arg, (list, tuple)):
                total += len([x for x in arg if x is not None])
            elif arg is not None:
                total += 1
        return total


class LenFunction(ExpressionFunction):
    """Length of a string, list or mapping."""
    name = "LEN"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        value = args[0]
        if value is None:
            return 0
        if isinstance(value, (str, list, tuple, Mapping)):
            return len(value)
        return len(stringify(value))


class ContainsFunction(ExpressionFunction):
    """CONTAINS(haystack, needle) for lists, mappings and strings."""
    name = "CONTAINS"
    min_args = 2
    max_args = 2

    def execute(self, args, context):
        return contains(args[0], args[1])


class KeysFunction(ExpressionFunction):
    name = "KEYS"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        if isinstance(args[0], Mapping):
            return list(args[0].keys())
        raise FunctionError(self.name, "Argument must be an object")


class FirstFunction(ExpressionFunction):
    name = "FIRST"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        value = args[0]
        if isinstance(value, (list, tuple)):
            return value[0] if value else None
        raise FunctionError(self.name, "Argument must be a list")


class LastFunction(ExpressionFunction):
    name = "LAST"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        value = args[0]
        if isinstance(value, (list, tuple)):
            return value[-1] if value else None
        raise FunctionError(self.name, "Argument must be a list")


class PluckFunction(ExpressionFunction):
    """
    Collect one field from every object in a list.

    Usage:
        PLUCK(value.items, "id")
    """
    name = "PLUCK"
    min_args = 2
    max_args = 2

    def execute(self, args, context):
        items, field_name = args
        if not isinstance(items, (list, tuple)):
            raise FunctionError(self.name, "First argument must be a list")
        key = stringify(field_name)
        return [item.get(key) if isinstance(item, Mapping) else None for item in items]


# ============================================================================
# Conditional Functions
# ============================================================================

class IfFunction(ExpressionFunction):
    """
    Conditional function.

    Usage:
        IF(condition, true_value, false_value)
        IF(amount > 1000, "VIP", "Standard")
    """
    name = "IF"
    min_args = 2
    max_args = 3

    def execute(self, args, context):
        false_value = args[2] if len(args) > 2 else None
        return args[1] if to_bool(args[0]) else false_value


class CoalesceFunction(ExpressionFunction):
    """Return first non-null, non-empty value."""
    name = "COALESCE"
    min_args = 1

    def execute(self, args, context):
        for arg in args:
            if arg is not None and arg != "":
                return arg
        return None


# ============================================================================
# String Functions
# ============================================================================

class ConcatFunction(ExpressionFunction):
    name = "CONCAT"
    min_args = 1

    def execute(self, args, context):
        return ''.join(stringify(arg) for arg in args)


class StringFunction(ExpressionFunction):
    name = "STRING"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        return stringify(args[0])


class UpperFunction(ExpressionFunction):
    name = "UPPER"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        return stringify(args[0]).upper()


class LowerFunction(ExpressionFunction):
    name = "LOWER"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        return stringify(args[0]).lower()


class TrimFunction(ExpressionFunction):
    name = "TRIM"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        return stringify(args[0]).strip()


class LeftFunction(ExpressionFunction):
    """LEFT(text, 5)"""
    name = "LEFT"
    min_args = 2
    max_args = 2

    def execute(self, args, context):
        return stringify(args[0])[:int(to_number(args[1]))]


class RightFunction(ExpressionFunction):
    """RIGHT(text, 5)"""
    name = "RIGHT"
    min_args = 2
    max_args = 2

    def execute(self, args, context):
        length = int(to_number(args[1]))
        return stringify(args[0])[-length:] if length > 0 else ""


class SubstrFunction(ExpressionFunction):
    """
    Get substring.

    Usage:
        SUBSTR(text, start, length)
        SUBSTR(text, start)  # To end
    """
    name = "SUBSTR"
    min_args = 2
    max_args = 3

    def execute(self, args, context):
        text = stringify(args[0])
        start = int(to_number(args[1]))
        if len(args) > 2:
            return text[start:start + int(to_number(args[2]))]
        return text[start:]


class ReplaceFunction(ExpressionFunction):
    """REPLACE(text, search, replacement) replaces every occurrence."""
    name = "REPLACE"
    min_args = 3
    max_args = 3

    def execute(self, args, context):
        return stringify(args[0]).replace(stringify(args[1]), stringify(args[2]))


class SplitFunction(ExpressionFunction):
    name = "SPLIT"
    min_args = 2
    max_args = 2

    def execute(self, args, context):
        separator = stringify(args[1])
        if not separator:
            raise FunctionError(self.name, "Separator must not be empty")
        return stringify(args[0]).split(separator)


class JoinFunction(ExpressionFunction):
    name = "JOIN"
    min_args = 1
    max_args = 2

    def execute(self, args, context):
        items = args[0]
        if not isinstance(items, (list, tuple)):
            raise FunctionError(self.name, "First argument must be a list")
        separator = stringify(args[1]) if len(args) > 1 else ','
        return separator.join(stringify(item) for item in items)


class JsonParseFunction(ExpressionFunction):
    name = "JSON_PARSE"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        try:
            return json.loads(stringify(args[0]))
        except ValueError as e:
            raise FunctionError(self.name, f"Invalid JSON: {e}")


class JsonStringifyFunction(ExpressionFunction):
    name = "JSON_STRINGIFY"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        return json.dumps(thaw(args[0]), default=str)


class IsNumberFunction(ExpressionFunction):
    name = "IS_NUMBER"
    min_args = 1
    max_args = 1

    def execute(self, args, context):
        return try_number(args[0]) is not None


# ============================================================================
# Date Functions
# ============================================================================

class NowFunction(ExpressionFunction):
    """Current UTC time as an ISO 8601 string."""
    name = "NOW"
    min_args = 0
    max_args = 0

    def execute(self, args, context):
        clock = context.get('clock')
        now = clock() if clock else datetime.now(timezone.utc)
        return now.isoformat()


class TodayFunction(ExpressionFunction):
    """Current date as YYYY-MM-DD."""
    name = "TODAY"
    min_args = 0
    max_args = 0

    def execute(self, args, context):
        clock = context.get('clock')
        now = clock() if clock else datetime.now(timezone.utc)
        return now.date().isoformat()


# ============================================================================
# Default Registry
# ============================================================================

def create_default_function_registry() -> FunctionRegistry:
    """Create a registry with all default functions."""
    registry = FunctionRegistry()

    for func_class in (
        SumFunction, AvgFunction, MinFunction, MaxFunction, RoundFunction,
        AbsFunction, FloorFunction, CeilFunction, NumberFunction,
        CountFunction, LenFunction, ContainsFunction, KeysFunction,
        FirstFunction, LastFunction, PluckFunction,
        IfFunction, CoalesceFunction,
        ConcatFunction, StringFunction, UpperFunction, LowerFunction,
        TrimFunction, LeftFunction, RightFunction, SubstrFunction,
        ReplaceFunction, SplitFunction, JoinFunction,
        JsonParseFunction, JsonStringifyFunction, IsNumberFunction,
        NowFunction, TodayFunction,
    ):
        registry.register(func_class())

    return registry


default_function_registry = create_default_function_registry()
