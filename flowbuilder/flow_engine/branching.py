"""
Branching Logic - Evaluate IfElse conditions

Supports:
- Comparisons: {{vars.count}} > 0, {{http1.result.status}} == 200
- Sandboxed expressions: {{vars.count}} > 0 && {{vars.name}} ~ "Ada"
- Existence checks: the path resolves to a truthy value
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from flowbuilder.expressions import ExpressionError, PathSyntaxError, Sandbox, parse_path
from flowbuilder.expressions.paths import NOT_FOUND
from flowbuilder.expressions.values import compare_order, contains, loose_equals, stringify, to_bool
from flowbuilder.flow_engine.definition import ConditionMode, IfElseConfig
from flowbuilder.flow_engine.errors import NodeExecutionError
from flowbuilder.flow_engine.variable_resolver import TemplateResolver, UNDEFINED

logger = logging.getLogger(__name__)


class ComparisonOperator(str, Enum):
    """Comparison operators for IfElse nodes"""
    EQUALS = '=='
    NOT_EQUALS = '!='
    GREATER_THAN = '>'
    GREATER_OR_EQUAL = '>='
    LESS_THAN = '<'
    LESS_OR_EQUAL = '<='
    CONTAINS = 'contains'
    STARTS_WITH = 'startsWith'
    ENDS_WITH = 'endsWith'


OPERATOR_ALIASES = {
    '===': ComparisonOperator.EQUALS,
    '!==': ComparisonOperator.NOT_EQUALS,
    'equals': ComparisonOperator.EQUALS,
    'notequals': ComparisonOperator.NOT_EQUALS,
    'greaterthan': ComparisonOperator.GREATER_THAN,
    'greaterorequal': ComparisonOperator.GREATER_OR_EQUAL,
    'lessthan': ComparisonOperator.LESS_THAN,
    'lessorequal': ComparisonOperator.LESS_OR_EQUAL,
    'starts_with': ComparisonOperator.STARTS_WITH,
    'startswith': ComparisonOperator.STARTS_WITH,
    'ends_with': ComparisonOperator.ENDS_WITH,
    'endswith': ComparisonOperator.ENDS_WITH,
    'greater_than': ComparisonOperator.GREATER_THAN,
    'less_than': ComparisonOperator.LESS_THAN,
    'greater_or_equal': ComparisonOperator.GREATER_OR_EQUAL,
    'less_or_equal': ComparisonOperator.LESS_OR_EQUAL,
    'not_equals': ComparisonOperator.NOT_EQUALS,
}


def parse_operator(value: Any) -> Optional[ComparisonOperator]:
    """Accept symbols, camelCase names and the legacy SNAKE_CASE names."""
    if isinstance(value, ComparisonOperator):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return ComparisonOperator(text)
    except ValueError:
        return OPERATOR_ALIASES.get(text.lower())


def compare(left: Any, operator: ComparisonOperator, right: Any) -> bool:
    """
    Apply a comparison operator.

    Raises:
        TypeError: If ordering operators receive incomparable values
    """
    if operator == ComparisonOperator.EQUALS:
        return loose_equals(left, right)
    if operator == ComparisonOperator.NOT_EQUALS:
        return not loose_equals(left, right)
    if operator == ComparisonOperator.CONTAINS:
        return contains(left, right)
    if operator == ComparisonOperator.STARTS_WITH:
        return stringify(left).startswith(stringify(right))
    if operator == ComparisonOperator.ENDS_WITH:
        return stringify(left).endswith(stringify(right))

    order = compare_order(left, right)
    if operator == ComparisonOperator.GREATER_THAN:
        return order > 0
    if operator == ComparisonOperator.GREATER_OR_EQUAL:
        return order >= 0
    if operator == ComparisonOperator.LESS_THAN:
        return order < 0
    if operator == ComparisonOperator.LESS_OR_EQUAL:
        return order <= 0

    raise ValueError(f"Unknown operator: {operator}")


@dataclass
class BranchDecision:
    """Outcome of evaluating an IfElse condition."""
    result: bool
    description: str
    warnings: List[str] = field(default_factory=list)


class BranchingHandler:
    """
    Evaluates IfElse conditions against the variable store.

    Condition config examples:
        {"type": "comparison", "comparison": {"left": "{{vars.count}}", "operator": ">", "right": "0"}}
        {"type": "expression", "expression": "{{vars.count}} > 0 && {{vars.enabled}}"}
        {"type": "exists", "exists": "{{http1.result.data.id}}"}
    """

    def __init__(self, resolver: TemplateResolver, sandbox: Sandbox):
        self.resolver = resolver
        self.sandbox = sandbox

    def evaluate(self, config: IfElseConfig, store) -> BranchDecision:
        """
        Evaluate a condition.

        Raises:
            NodeExecutionError: On unresolved comparison operands, unknown
                operators or expression failures
        """
        if config.mode == ConditionMode.EXPRESSION.value:
            return self._evaluate_expression(config.expression, store)
        if config.mode == ConditionMode.EXISTS.value:
            return self._evaluate_exists(config.exists_path, store)
        return self._evaluate_comparison(config, store)

    def _evaluate_comparison(self, config: IfElseConfig, store) -> BranchDecision:
        operator = parse_operator(config.operator)
        if operator is None:
            raise NodeExecutionError(f"Unknown comparison operator: {config.operator!r}")

        left = self._resolve_operand(config.left, store, 'left')
        right = self._resolve_operand(config.right, store, 'right')
        description = f"{stringify(left)!r} {operator.value} {stringify(right)!r}"

        try:
            result = compare(left, operator, right)
        except (ValueError, TypeError) as e:
            logger.warning(f"Condition check failed: {e}")
            return BranchDecision(False, description, [f"Cannot compare values: {e}"])

        return BranchDecision(result, description)

    def _resolve_operand(self, template: Any, store, side: str) -> Any:
        value, error = self.resolver.resolve(template, store)
        if error is not None:
            raise NodeExecutionError(f"Cannot resolve {side} operand: {error}")
        return None if value is UNDEFINED else value

    def _evaluate_expression(self, expression: str, store) -> BranchDecision:
        try:
            evaluation = self.sandbox.evaluate_condition(expression, store.lookup)
        except ExpressionError as e:
            raise NodeExecutionError(f"Expression failed: {e}")

        warnings = [f"Variable not found: {path}" for path in evaluation.missing_paths]
        return BranchDecision(evaluation.value, expression, warnings)

    def _evaluate_exists(self, reference: str, store) -> BranchDecision:
        path = reference.strip()
        if path.startswith('{{') and path.endswith('}}'):
            path = path[2:-2].strip()

        try:
            value = store.lookup(parse_path(path))
        except PathSyntaxError as e:
            raise NodeExecutionError(f"Invalid path for exists check: {e}")

        result = value is not NOT_FOUND and to_bool(value)
        return BranchDecision(result, f"exists({path})")
