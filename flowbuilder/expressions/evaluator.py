"""
Expression evaluator.

Safely evaluates parsed expressions without using eval(). Every node visit
costs one step; evaluation stops when the step budget or the wall-clock
budget runs out.
"""

import time
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, Sequence

from flowbuilder.expressions.ast import (
    ExprNode,
    LiteralNode,
    ArrayNode,
    VariableNode,
    BinaryOpNode,
    LogicalOpNode,
    UnaryOpNode,
    FunctionCallNode,
    MathOp,
    ComparisonOp,
    LogicalOp,
)
from flowbuilder.expressions.errors import BudgetExceededError, EvaluationError, FunctionError
from flowbuilder.expressions.functions import FunctionRegistry, default_function_registry
from flowbuilder.expressions.paths import NOT_FOUND, Segment, format_path, lookup_path
from flowbuilder.expressions.values import (
    compare_order,
    contains,
    is_number,
    loose_equals,
    stringify,
    to_bool,
    to_number,
)


Lookup = Callable[[Sequence[Segment]], Any]


class ExpressionEvaluator:
    """
    Evaluates expression ASTs against variables.

    Variables are read from ``bindings`` first (e.g. ``value`` inside a
    transform script) and then through ``lookup``. Paths that resolve to
    nothing evaluate to None and are recorded in ``missing_paths``.
    """

    MAX_DEPTH = 50

    def __init__(
        self,
        lookup: Optional[Lookup] = None,
        bindings: Optional[Dict[str, Any]] = None,
        function_registry: Optional[FunctionRegistry] = None,
        max_steps: int = 10000,
        timeout_ms: int = 250,
        clock: Optional[Callable] = None,
    ):
        self.lookup = lookup
        self.bindings = bindings or {}
        self.function_registry = function_registry or default_function_registry
        self.max_steps = max_steps
        self.timeout_ms = timeout_ms
        self.function_context = {'clock': clock}
        self.missing_paths: List[str] = []
        self.steps = 0
        self._depth = 0
        self._deadline = None

    def run(self, node: ExprNode) -> Any:
        """Evaluate a root node with a fresh budget."""
        self.steps = 0
        self._depth = 0
        self.missing_paths = []
        self._deadline = time.monotonic() + self.timeout_ms / 1000.0
        return self.evaluate(node)

    def evaluate(self, node: ExprNode) -> Any:
        self._depth += 1
        self.steps += 1

        if self._depth > self.MAX_DEPTH:
            raise BudgetExceededError("Maximum expression depth exceeded")
        if self.steps > self.max_steps:
            raise BudgetExceededError(f"Expression exceeded {self.max_steps} evaluation steps")
        if self._deadline is not None and time.monotonic() > self._deadline:
            raise BudgetExceededError(f"Expression exceeded {self.timeout_ms} ms")

        try:
            return self._evaluate_node(node)
        finally:
            self._depth -= 1

    def _evaluate_node(self, node: ExprNode) -> Any:
        """Dispatch evaluation based on node type."""
        if isinstance(node, LiteralNode):
            return node.value

        if isinstance(node, VariableNode):
            return self._evaluate_variable(node)

        if isinstance(node, ArrayNode):
            return [self.evaluate(element) for element in node.elements]

        if isinstance(node, BinaryOpNode):
            return self._evaluate_binary_op(node)

        if isinstance(node, LogicalOpNode):
            return self._evaluate_logical_op(node)

        if isinstance(node, UnaryOpNode):
            return self._evaluate_unary_op(node)

        if isinstance(node, FunctionCallNode):
            return self._evaluate_function_call(node)

        raise EvaluationError(f"Unknown node type: {type(node).__name__}")

    def _evaluate_variable(self, node: VariableNode) -> Any:
        if node.root in self.bindings:
            value = lookup_path(self.bindings, node.segments)
        elif self.lookup is not None:
            value = self.lookup(node.segments)
        else:
            value = NOT_FOUND

        if value is NOT_FOUND:
            self.missing_paths.append(format_path(node.segments))
            return None
        return value

    def _evaluate_binary_op(self, node: BinaryOpNode) -> Any:
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)

        if isinstance(node.operator, MathOp):
            return self._apply_math_op(node.operator, left, right)

        if isinstance(node.operator, ComparisonOp):
            return self._apply_comparison_op(node.operator, left, right)

        raise EvaluationError(f"Unknown operator: {node.operator}")

    def _apply_math_op(self, op: MathOp, left: Any, right: Any) -> Any:
        if op == MathOp.ADD:
            if isinstance(left, list) and isinstance(right, list):
                return left + right
            if isinstance(left, str) or isinstance(right, str):
                return stringify(left) + stringify(right)
            return to_number(left) + to_number(right)

        left_num = to_number(left)
        right_num = to_number(right)

        if op == MathOp.SUB:
            return left_num - right_num
        if op == MathOp.MUL:
            return left_num * right_num
        if op == MathOp.DIV:
            if right_num == 0:
                raise EvaluationError("Division by zero")
            result = left_num / right_num
            if isinstance(left_num, int) and isinstance(right_num, int) and result.is_integer():
                return int(result)
            return result
        if op == MathOp.MOD:
            if right_num == 0:
                raise EvaluationError("Modulo by zero")
            return left_num % right_num

        raise EvaluationError(f"Unknown math operator: {op}")

    def _apply_comparison_op(self, op: ComparisonOp, left: Any, right: Any) -> bool:
        if op == ComparisonOp.CONTAINS:
            return contains(left, right)
        if op == ComparisonOp.EQ:
            return loose_equals(left, right)
        if op == ComparisonOp.NE:
            return not loose_equals(left, right)
        if op in (ComparisonOp.STRICT_EQ, ComparisonOp.STRICT_NE):
            same_type = type(left) == type(right) or (is_number(left) and is_number(right))
            identical = same_type and left == right
            return identical if op == ComparisonOp.STRICT_EQ else not identical

        try:
            order = compare_order(left, right)
        except TypeError:
            return False

        if op == ComparisonOp.GT:
            return order > 0
        if op == ComparisonOp.GTE:
            return order >= 0
        if op == ComparisonOp.LT:
            return order < 0
        if op == ComparisonOp.LTE:
            return order <= 0

        raise EvaluationError(f"Unknown comparison operator: {op}")

    def _evaluate_logical_op(self, node: LogicalOpNode) -> bool:
        # Short-circuit evaluation
        left = to_bool(self.evaluate(node.left))

        if node.operator == LogicalOp.AND:
            return left and to_bool(self.evaluate(node.right))

        if node.operator == LogicalOp.OR:
            return left or to_bool(self.evaluate(node.right))

        raise EvaluationError(f"Unknown logical operator: {node.operator}")

    def _evaluate_unary_op(self, node: UnaryOpNode) -> Any:
        operand = self.evaluate(node.operand)

        if node.operator == '-':
            return -to_number(operand)
        if node.operator == '!':
            return not to_bool(operand)

        raise EvaluationError(f"Unknown unary operator: {node.operator}")

    def _evaluate_function_call(self, node: FunctionCallNode) -> Any:
        args = [self.evaluate(arg) for arg in node.arguments]

        try:
            result = self.function_registry.execute(node.name, args, self.function_context)
        except FunctionError:
            raise
        except (EvaluationError, ValueError, TypeError, ArithmeticError) as e:
            raise FunctionError(node.name, str(e))

        if isinstance(result, (str, list, tuple, Mapping)) and len(result) > self.max_steps * 100:
            raise BudgetExceededError(f"Function {node.name} produced an oversized result")
        return result
