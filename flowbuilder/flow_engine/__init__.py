"""
Flow Engine - executes graphs of typed nodes

Runs HttpRequest, IfElse, Loop, SetVariable, Log, Delay and StopJob nodes
deterministically, resolving {{path}} templates against a per-run variable
store and recording an ordered execution log.
"""

from flowbuilder.flow_engine.errors import (
    FlowEngineError,
    FlowValidationError,
    NodeExecutionError,
    NetworkError,
    ResolutionError,
    RunCancelledError,
    TerminalSignal,
    ValidationIssue,
)
from flowbuilder.flow_engine.execution_log import ExecutionLog, LogEntry, Severity
from flowbuilder.flow_engine.executor import FlowExecutor, RunHandle
from flowbuilder.flow_engine.http_client import ConnectorSettings, HttpClient, HttpResponse, StaticConnectorProvider
from flowbuilder.flow_engine.node_tester import NodeTester
from flowbuilder.flow_engine.results import ExecutionResult, Outcome, RunState, Terminal
from flowbuilder.flow_engine.settings import EngineSettings
from flowbuilder.flow_engine.validation import FlowValidator, ValidationReport
from flowbuilder.flow_engine.variable_resolver import TemplateResolver, UNDEFINED
from flowbuilder.flow_engine.variable_store import VariableStore

__all__ = [
    'FlowExecutor',
    'RunHandle',
    'NodeTester',
    'FlowValidator',
    'ValidationReport',
    'TemplateResolver',
    'UNDEFINED',
    'VariableStore',
    'ExecutionLog',
    'LogEntry',
    'Severity',
    'ExecutionResult',
    'Outcome',
    'RunState',
    'Terminal',
    'EngineSettings',
    'HttpClient',
    'HttpResponse',
    'ConnectorSettings',
    'StaticConnectorProvider',
    'FlowEngineError',
    'FlowValidationError',
    'NodeExecutionError',
    'NetworkError',
    'ResolutionError',
    'RunCancelledError',
    'TerminalSignal',
    'ValidationIssue',
]
