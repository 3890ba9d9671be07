"""
Loop Handler - Iteration helpers for Loop nodes

Supports:
- forEach over an array from an earlier node or variable
- Batching: batchSize N iterates over chunks of N items
- while loops guarded by a sandboxed condition
- Iteration limits
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from flowbuilder.expressions import ExpressionError, PathSyntaxError, Sandbox, parse_path
from flowbuilder.expressions.paths import NOT_FOUND
from flowbuilder.expressions.values import to_number
from flowbuilder.flow_engine.definition import LoopConfig
from flowbuilder.flow_engine.errors import NodeExecutionError
from flowbuilder.flow_engine.settings import EngineSettings
from flowbuilder.flow_engine.variable_resolver import TemplateResolver, UNDEFINED

logger = logging.getLogger(__name__)


class LoopHandler:
    """
    Handles loop/iteration logic for Loop nodes.

    Loop config example:
    {
        "loopType": "forEach",
        "arrayPath": "{{http1.result.data.items}}",
        "batchSize": 0,
        "maxIterations": 500
    }

    Inside the body the current iteration is exposed as:
        loop.item, loop.index (0-based), loop.number (1-based),
        loop.batch (when batching), loop.iteration, loop.startTime
    """

    def __init__(self, resolver: TemplateResolver, sandbox: Sandbox, settings: EngineSettings):
        self.resolver = resolver
        self.sandbox = sandbox
        self.settings = settings

    def max_iterations(self, config: LoopConfig) -> int:
        """Configured limit, falling back to the engine default and never above the cap."""
        limit = config.max_iterations
        if limit in (None, ''):
            limit = self.settings.default_max_iterations
        return min(int(to_number(limit)), self.settings.max_iterations_cap)

    def get_loop_items(self, config: LoopConfig, store) -> List[Any]:
        """
        Resolve the array to iterate.

        Args:
            config: Loop config; ``array_path`` is a template or a bare path
            store: Variable store

        Returns:
            List of items

        Raises:
            NodeExecutionError: When the path is missing or not a list
        """
        reference = (config.array_path or '').strip()

        if '{{' in reference:
            items, error = self.resolver.resolve(reference, store)
            if error is not None:
                raise NodeExecutionError(f"Loop array not found: {error}")
        else:
            try:
                items = store.lookup(parse_path(reference))
            except PathSyntaxError as e:
                raise NodeExecutionError(f"Invalid loop array path: {e}")
            if items is NOT_FOUND:
                raise NodeExecutionError(f"Loop array not found: {reference}")

        if items is None or items is UNDEFINED:
            return []
        if isinstance(items, tuple):
            items = list(items)
        if not isinstance(items, list):
            raise NodeExecutionError(f"Loop array is not a list: {type(items).__name__}")

        return items

    def iteration_units(self, items: List[Any], batch_size: Any) -> List[Any]:
        """Split items into per-iteration units (single items or batches)."""
        size = int(to_number(batch_size or 0))
        if size <= 0:
            return list(items)
        return [items[start:start + size] for start in range(0, len(items), size)]

    def create_iteration_context(
        self,
        index: int,
        started_at: datetime,
        item: Any = None,
        batch: Optional[List[Any]] = None,
    ) -> Dict[str, Any]:
        """
        Create overlay values for one iteration.

        Args:
            index: Current index (0-based)
            started_at: When the loop node started
            item: Current item (or batch)
            batch: Current batch when batching is enabled

        Returns:
            Mapping for the ``loop`` root
        """
        context = {
            'item': item,
            'index': index,
            'number': index + 1,
            'iteration': index,
            'startTime': started_at.isoformat(),
        }
        if batch is not None:
            context['batch'] = batch
        return {'loop': context}

    def check_while(self, config: LoopConfig, store) -> bool:
        """
        Evaluate the while condition against ``store``.

        Raises:
            NodeExecutionError: When the condition cannot be evaluated
        """
        try:
            evaluation = self.sandbox.evaluate_condition(config.condition_expression, store.lookup)
        except ExpressionError as e:
            raise NodeExecutionError(f"Loop condition failed: {e}")
        if evaluation.missing_paths:
            logger.debug(f"While condition referenced missing paths: {evaluation.missing_paths}")
        return evaluation.value

    def process_loop_results(self, iterations: int, total_items: int, truncated: bool = False) -> Dict[str, Any]:
        """Summary written to ``<loopId>.result``."""
        return {
            'iterations': iterations,
            'count': total_items,
            'truncated': truncated,
        }
