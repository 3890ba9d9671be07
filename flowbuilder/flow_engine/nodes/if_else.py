"""
IfElse node - selects the "true" or "false" edge.
"""

from flowbuilder.flow_engine.branching import BranchingHandler
from flowbuilder.flow_engine.definition import NodeKind
from flowbuilder.flow_engine.execution_log import Severity
from flowbuilder.flow_engine.graph import FALSE_HANDLE, TRUE_HANDLE
from flowbuilder.flow_engine.nodes.base import ExecutionContext, NodeExecutor
from flowbuilder.flow_engine.results import Outcome


class IfElseExecutor(NodeExecutor):
    kind = NodeKind.IF_ELSE

    async def execute(self, context: ExecutionContext) -> Outcome:
        handler = BranchingHandler(context.runtime.resolver, context.runtime.sandbox)
        decision = handler.evaluate(context.node.config, context.store)

        for warning in decision.warnings:
            context.log(Severity.WARN, warning)

        branch = TRUE_HANDLE if decision.result else FALSE_HANDLE
        context.log(Severity.INFO, f"Condition {decision.description} is {branch}; taking '{branch}' branch")

        return context.outcome(
            edge_selector=branch,
            writes=[(self.result_key(context.node), {'result': decision.result})],
        )
