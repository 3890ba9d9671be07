"""
Log node - appends a resolved message to the execution log.
"""

from flowbuilder.expressions.values import stringify
from flowbuilder.flow_engine.definition import LogLevel, LogMessageConfig, NodeKind
from flowbuilder.flow_engine.execution_log import Severity
from flowbuilder.flow_engine.nodes.base import ExecutionContext, NodeExecutor
from flowbuilder.flow_engine.results import Outcome


LEVEL_SEVERITIES = {
    LogLevel.INFO.value: Severity.INFO,
    LogLevel.WARN.value: Severity.WARN,
    LogLevel.ERROR.value: Severity.ERROR,
    LogLevel.DEBUG.value: Severity.DEBUG,
}


class LogMessageExecutor(NodeExecutor):
    kind = NodeKind.LOG_MESSAGE

    async def execute(self, context: ExecutionContext) -> Outcome:
        config: LogMessageConfig = context.node.config
        message = stringify(context.resolve(config.message))
        context.log(LEVEL_SEVERITIES.get(config.level, Severity.INFO), message)
        return context.outcome()
