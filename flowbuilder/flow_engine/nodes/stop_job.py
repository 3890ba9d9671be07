"""
StopJob node - ends the run with success, error or cancel.
"""

from flowbuilder.expressions.values import stringify
from flowbuilder.flow_engine.definition import NodeKind, StopJobConfig, StopType
from flowbuilder.flow_engine.execution_log import Severity
from flowbuilder.flow_engine.nodes.base import ExecutionContext, NodeExecutor
from flowbuilder.flow_engine.results import Outcome, RunState, Terminal


class StopJobExecutor(NodeExecutor):
    kind = NodeKind.STOP_JOB

    async def execute(self, context: ExecutionContext) -> Outcome:
        config: StopJobConfig = context.node.config

        if config.stop_type == StopType.ERROR.value:
            reason = stringify(context.resolve(config.error_message)).strip() or 'Flow stopped with an error'
            context.log(Severity.ERROR, f"Flow stopped with error: {reason}")
            terminal = Terminal(RunState.FAILED, reason)
        elif config.stop_type == StopType.CANCEL.value:
            reason = 'Flow cancelled by StopJob node'
            context.log(Severity.ERROR, reason)
            terminal = Terminal(RunState.CANCELLED, reason)
        else:
            reason = 'Flow stopped successfully'
            context.log(Severity.SUCCESS, reason)
            terminal = Terminal(RunState.SUCCESS, reason)

        return context.outcome(terminal=terminal)
