"""
Sandboxed evaluation entry points used by the flow engine.

Conditions, while-loop guards and SetVariable transform scripts are parsed
into ASTs and interpreted under a step and time budget. No host-language
code is ever executed.

Usage:
    sandbox = Sandbox(max_steps=10000, timeout_ms=250)
    sandbox.evaluate_condition("{{vars.count}} > 0", store.lookup).value
    sandbox.transform([1, 2, 3], "SUM(value) * 2").value
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from flowbuilder.expressions.ast import ExprNode, VariableNode
from flowbuilder.expressions.evaluator import ExpressionEvaluator, Lookup
from flowbuilder.expressions.functions import FunctionRegistry
from flowbuilder.expressions.parser import ExpressionParser
from flowbuilder.expressions.paths import format_path
from flowbuilder.expressions.values import to_bool
from flowbuilder.expressions.errors import ExpressionError

logger = logging.getLogger(__name__)


@dataclass
class Evaluation:
    """Result of a sandboxed evaluation."""
    value: Any
    missing_paths: List[str] = field(default_factory=list)
    steps: int = 0


class _ReferenceCollector:
    """Visitor that lists every variable path used by an expression."""

    def __init__(self):
        self.paths: List[str] = []

    def generic_visit(self, node):
        for child in vars(node).values():
            children = child if isinstance(child, list) else [child]
            for item in children:
                if isinstance(item, ExprNode):
                    item.accept(self)

    def visit_VariableNode(self, node: VariableNode):
        self.paths.append(format_path(node.segments))


class Sandbox:
    """Parses, caches and evaluates expressions under a budget."""

    CACHE_SIZE = 512

    def __init__(
        self,
        max_steps: int = 10000,
        timeout_ms: int = 250,
        function_registry: Optional[FunctionRegistry] = None,
        clock: Optional[Callable] = None,
    ):
        self.max_steps = max_steps
        self.timeout_ms = timeout_ms
        self.function_registry = function_registry
        self.clock = clock
        self._cache: Dict[str, ExprNode] = {}

    def compile(self, source: str) -> ExprNode:
        """
        Parse an expression, reusing earlier parses of the same source.

        Raises:
            ExpressionError: If the source does not parse
        """
        node = self._cache.get(source)
        if node is None:
            node = ExpressionParser().parse(source)
            if len(self._cache) >= self.CACHE_SIZE:
                self._cache.clear()
            self._cache[source] = node
        return node

    def check(self, source: str) -> Optional[str]:
        """Return a parse error message, or None when the source is valid."""
        try:
            self.compile(source)
        except ExpressionError as e:
            return str(e)
        return None

    def references(self, source: str) -> List[str]:
        """Variable paths referenced by an expression."""
        collector = _ReferenceCollector()
        self.compile(source).accept(collector)
        return collector.paths

    def evaluate(self, source: str, lookup: Optional[Lookup] = None,
                 bindings: Optional[Dict[str, Any]] = None) -> Evaluation:
        """
        Evaluate an expression.

        Args:
            source: Expression text
            lookup: Resolves path segments against the variable store
            bindings: Names that shadow the store (e.g. ``value``)

        Returns:
            Evaluation with the value and any unresolved paths

        Raises:
            ExpressionError: On parse errors, evaluation errors or budget exhaustion
        """
        node = self.compile(source)
        evaluator = ExpressionEvaluator(
            lookup=lookup,
            bindings=bindings,
            function_registry=self.function_registry,
            max_steps=self.max_steps,
            timeout_ms=self.timeout_ms,
            clock=self.clock,
        )
        value = evaluator.run(node)
        if evaluator.missing_paths:
            logger.debug(f"Expression {source!r} referenced missing paths: {evaluator.missing_paths}")
        return Evaluation(value=value, missing_paths=evaluator.missing_paths, steps=evaluator.steps)

    def evaluate_condition(self, expression: str, lookup: Optional[Lookup] = None,
                           bindings: Optional[Dict[str, Any]] = None) -> Evaluation:
        """Evaluate an expression and coerce the result to a boolean."""
        result = self.evaluate(expression, lookup, bindings)
        result.value = to_bool(result.value)
        return result

    def transform(self, source_value: Any, script: str, lookup: Optional[Lookup] = None) -> Evaluation:
        """Run a transform script with ``value`` bound to ``source_value``."""
        return self.evaluate(script, lookup, bindings={'value': source_value})
