"""
Expression language for flow conditions and transforms

Provides a small, sandboxed language with:
- Variable references: {{http1.result.data}}, vars.count, value.items[0]
- Arithmetic and comparisons: vars.total * 1.1 >= 100
- Logical operators: &&, ||, !, and, or, not
- Whitelisted functions: ROUND(), IF(), UPPER(), PLUCK()

Usage:
    from flowbuilder.expressions import Sandbox

    sandbox = Sandbox()
    result = sandbox.transform("  Ada ", "UPPER(TRIM(value))")
"""

from flowbuilder.expressions.errors import (
    ExpressionError,
    PathSyntaxError,
    LexerError,
    ParseError,
    EvaluationError,
    FunctionError,
    BudgetExceededError,
)
from flowbuilder.expressions.paths import NOT_FOUND, parse_path, format_path, lookup_path, is_identifier
from flowbuilder.expressions.sandbox import Sandbox, Evaluation

__all__ = [
    'Sandbox',
    'Evaluation',
    'NOT_FOUND',
    'parse_path',
    'format_path',
    'lookup_path',
    'is_identifier',
    'ExpressionError',
    'PathSyntaxError',
    'LexerError',
    'ParseError',
    'EvaluationError',
    'FunctionError',
    'BudgetExceededError',
]
