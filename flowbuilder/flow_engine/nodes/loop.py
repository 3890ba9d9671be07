"""
Loop node - runs its "body" subgraph per item (forEach) or while a
condition holds, then follows the "complete" edge.
"""

from flowbuilder.expressions.values import to_number
from flowbuilder.flow_engine.definition import LoopConfig, LoopType, NodeKind
from flowbuilder.flow_engine.errors import NodeExecutionError
from flowbuilder.flow_engine.execution_log import Severity
from flowbuilder.flow_engine.graph import COMPLETE_HANDLE
from flowbuilder.flow_engine.loop_handler import LoopHandler
from flowbuilder.flow_engine.nodes.base import ExecutionContext, NodeExecutor
from flowbuilder.flow_engine.results import Outcome


class LoopExecutor(NodeExecutor):
    kind = NodeKind.LOOP

    async def execute(self, context: ExecutionContext) -> Outcome:
        runtime = context.runtime
        config: LoopConfig = context.node.config
        handler = LoopHandler(runtime.resolver, runtime.sandbox, runtime.settings)

        if config.loop_type == LoopType.WHILE.value:
            return await self._run_while(context, handler, config)
        return await self._run_for_each(context, handler, config)

    async def _run_for_each(self, context: ExecutionContext, handler: LoopHandler, config: LoopConfig) -> Outcome:
        limit = handler.max_iterations(config)
        started_at = context.runtime.clock()

        items = handler.get_loop_items(config, context.store)
        batching = int(to_number(config.batch_size or 0)) > 0
        units = handler.iteration_units(items, config.batch_size)

        truncated = len(units) > limit
        if truncated:
            context.log(Severity.WARN, f"Loop has {len(units)} iterations, limiting to {limit}")
            units = units[:limit]

        context.log(Severity.INFO, f"Looping over {len(items)} items in {len(units)} iterations")

        iterations = 0
        if context.run_body is None:
            context.log(Severity.INFO, "Loop body is not executed when testing a single node")
        else:
            for index, unit in enumerate(units):
                overlay = handler.create_iteration_context(
                    index, started_at, item=unit, batch=unit if batching else None
                )
                await context.run_body(overlay)
                iterations += 1

        result = handler.process_loop_results(iterations, len(items), truncated)
        return context.outcome(
            edge_selector=COMPLETE_HANDLE,
            writes=[(self.result_key(context.node), result)],
        )

    async def _run_while(self, context: ExecutionContext, handler: LoopHandler, config: LoopConfig) -> Outcome:
        limit = handler.max_iterations(config)
        started_at = context.runtime.clock()
        iteration = 0

        while True:
            overlay = handler.create_iteration_context(iteration, started_at)
            if not handler.check_while(config, context.store.overlay(overlay)):
                break
            if iteration >= limit:
                raise NodeExecutionError(f"While loop still running after maxIterations ({limit})")
            if context.run_body is None:
                context.log(Severity.INFO, "Condition is true; loop body is not executed when testing a single node")
                break
            await context.run_body(overlay)
            iteration += 1

        context.log(Severity.INFO, f"While loop finished after {iteration} iterations")
        return context.outcome(
            edge_selector=COMPLETE_HANDLE,
            writes=[(self.result_key(context.node), handler.process_loop_results(iteration, iteration))],
        )
