"""
Node executors, one per node kind.
"""

from flowbuilder.flow_engine.nodes.base import (
    BodyRunner,
    ExecutionContext,
    ExecutorRegistry,
    NodeExecutor,
    Runtime,
)
from flowbuilder.flow_engine.nodes.delay import DelayExecutor, ScheduleDirective
from flowbuilder.flow_engine.nodes.http_request import HttpRequestExecutor
from flowbuilder.flow_engine.nodes.if_else import IfElseExecutor
from flowbuilder.flow_engine.nodes.log_message import LogMessageExecutor
from flowbuilder.flow_engine.nodes.loop import LoopExecutor
from flowbuilder.flow_engine.nodes.set_variable import SetVariableExecutor
from flowbuilder.flow_engine.nodes.stop_job import StopJobExecutor


def create_default_registry() -> ExecutorRegistry:
    """Create a registry with an executor for every node kind."""
    registry = ExecutorRegistry()

    registry.register(HttpRequestExecutor())
    registry.register(IfElseExecutor())
    registry.register(LoopExecutor())
    registry.register(SetVariableExecutor())
    registry.register(LogMessageExecutor())
    registry.register(DelayExecutor())
    registry.register(StopJobExecutor())

    return registry


__all__ = [
    'BodyRunner',
    'ExecutionContext',
    'ExecutorRegistry',
    'NodeExecutor',
    'Runtime',
    'ScheduleDirective',
    'create_default_registry',
]
