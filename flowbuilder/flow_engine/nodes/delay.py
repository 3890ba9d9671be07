"""
Delay node - suspends the run for a duration, or hands a cron schedule to
the schedule registry and continues immediately.
"""

from dataclasses import dataclass
from datetime import datetime

from croniter import croniter

from flowbuilder.expressions.errors import EvaluationError
from flowbuilder.expressions.values import stringify, to_number
from flowbuilder.flow_engine.definition import DelayConfig, DelayType, NodeKind
from flowbuilder.flow_engine.errors import NodeExecutionError
from flowbuilder.flow_engine.execution_log import Severity
from flowbuilder.flow_engine.nodes.base import ExecutionContext, NodeExecutor
from flowbuilder.flow_engine.results import Outcome


UNIT_SECONDS = {
    DelayType.SECONDS.value: 1,
    DelayType.MINUTES.value: 60,
    DelayType.HOURS.value: 3600,
}


@dataclass(frozen=True)
class ScheduleDirective:
    """Request to run a flow again on a cron schedule."""
    flow_id: str
    node_id: str
    cron_expression: str
    next_run_at: datetime
    execution_id: str = ''

    def to_dict(self):
        return {
            'flowId': self.flow_id,
            'nodeId': self.node_id,
            'cronExpression': self.cron_expression,
            'nextRunAt': self.next_run_at.isoformat(),
            'executionId': self.execution_id,
        }


def delay_seconds(amount, unit: str) -> float:
    """
    Convert an amount and unit to seconds.

    Raises:
        ValueError: On negative or non-numeric amounts and unknown units
    """
    if unit not in UNIT_SECONDS:
        raise ValueError(f"Unknown delay unit: {unit!r}")
    try:
        value = to_number(amount)
    except EvaluationError:
        raise ValueError(f"Delay amount is not a number: {amount!r}")
    if value < 0:
        raise ValueError(f"Delay amount must not be negative: {value}")
    return float(value) * UNIT_SECONDS[unit]


class DelayExecutor(NodeExecutor):
    kind = NodeKind.DELAY

    async def execute(self, context: ExecutionContext) -> Outcome:
        config: DelayConfig = context.node.config

        if config.delay_type == DelayType.CRON.value:
            return self._schedule(context, config)

        try:
            seconds = delay_seconds(context.resolve(config.amount), config.unit)
        except ValueError as e:
            raise NodeExecutionError(str(e))

        max_seconds = context.runtime.settings.max_delay_seconds
        if seconds > max_seconds:
            raise NodeExecutionError(f"Delay of {seconds:g}s exceeds the maximum of {max_seconds:g}s")

        context.log(Severity.INFO, f"Waiting {seconds:g} seconds")
        await context.runtime.sleep(seconds)

        return context.outcome(writes=[(self.result_key(context.node), {'delayedSeconds': seconds})])

    def _schedule(self, context: ExecutionContext, config: DelayConfig) -> Outcome:
        runtime = context.runtime
        expression = stringify(context.resolve(config.cron_expression)).strip()
        if not croniter.is_valid(expression):
            raise NodeExecutionError(f"Invalid cron expression: {expression!r}")

        next_run_at = croniter(expression, runtime.clock()).get_next(datetime)
        directive = ScheduleDirective(
            flow_id=runtime.flow_id,
            node_id=context.node.id,
            cron_expression=expression,
            next_run_at=next_run_at,
            execution_id=runtime.execution_id,
        )

        if runtime.schedule_registry is None:
            context.log(Severity.WARN, f"No scheduler configured; cron schedule '{expression}' was not registered")
            scheduled = False
        else:
            runtime.schedule_registry.register(directive)
            context.log(Severity.INFO, f"Scheduled '{expression}', next run at {next_run_at.isoformat()}")
            scheduled = True

        result = {
            'scheduled': scheduled,
            'cronExpression': expression,
            'nextRunAt': next_run_at.isoformat(),
        }
        return context.outcome(writes=[(self.result_key(context.node), result)])
