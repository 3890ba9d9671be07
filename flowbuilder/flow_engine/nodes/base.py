"""
Base classes for node executors.
"""

import abc
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from flowbuilder.expressions import Sandbox
from flowbuilder.flow_engine.definition import Node, NodeKind
from flowbuilder.flow_engine.execution_log import LogEntry, Severity, utc_now
from flowbuilder.flow_engine.http_client import HttpClient, StaticConnectorProvider
from flowbuilder.flow_engine.results import Outcome, Terminal
from flowbuilder.flow_engine.settings import EngineSettings
from flowbuilder.flow_engine.variable_resolver import TemplateResolver


# Runs a loop body once with the given overlay values (e.g. {"loop": {...}})
BodyRunner = Callable[[Mapping[str, Any]], Awaitable[None]]


@dataclass
class Runtime:
    """
    Collaborators shared by every node of a run.
    """
    settings: EngineSettings
    resolver: TemplateResolver
    sandbox: Sandbox
    http_client: HttpClient

    # Connector lookup: get(name) -> ConnectorSettings | None
    connectors: Any = field(default_factory=StaticConnectorProvider)

    # Receives cron directives from Delay nodes: register(directive)
    schedule_registry: Any = None

    # Injectable for deterministic tests
    clock: Callable[[], datetime] = utc_now
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    flow_id: str = ''
    execution_id: str = ''


@dataclass
class ExecutionContext:
    """
    Context provided to a node executor.

    Collects the log entries the executor produces so they end up in the
    Outcome in the order they were written.
    """
    node: Node
    store: Any
    runtime: Runtime

    # Set by the scheduler for Loop nodes; absent in isolated node tests
    run_body: Optional[BodyRunner] = None

    entries: List[LogEntry] = field(default_factory=list)

    # Number of entries already handed to the run's execution log
    flushed: int = 0

    def log(self, severity: Severity, message: str):
        self.entries.append(LogEntry(
            timestamp=self.runtime.clock(),
            severity=Severity(severity),
            message=message,
            node_id=self.node.id,
        ))

    def resolve(self, template: Any) -> Any:
        """Resolve a template, logging unresolved placeholders as warnings."""
        value, errors = self.runtime.resolver.resolve_value(template, self.store)
        for error in errors:
            self.log(Severity.WARN, f"Unresolved placeholder: {error}")
        return value

    def outcome(
        self,
        edge_selector: Optional[str] = None,
        writes: Optional[list] = None,
        terminal: Optional[Terminal] = None,
        error=None,
    ) -> Outcome:
        return Outcome(
            edge_selector=edge_selector,
            writes=list(writes or []),
            log=list(self.entries),
            terminal=terminal,
            error=error,
        )


class NodeExecutor(abc.ABC):
    """Executes one kind of node."""

    kind: NodeKind = None

    @abc.abstractmethod
    async def execute(self, context: ExecutionContext) -> Outcome:
        """
        Run the node.

        Raises:
            NodeExecutionError: For node-local failures
        """
        pass

    @staticmethod
    def result_key(node: Node) -> str:
        return f"{node.id}.result"


class ExecutorRegistry:
    """Registry of node executors keyed by node kind."""

    def __init__(self):
        self._executors: Dict[NodeKind, NodeExecutor] = {}

    def register(self, executor: NodeExecutor):
        self._executors[NodeKind(executor.kind)] = executor

    def get(self, kind: NodeKind) -> Optional[NodeExecutor]:
        return self._executors.get(kind)

    def has(self, kind: NodeKind) -> bool:
        return kind in self._executors

    def kinds(self) -> List[NodeKind]:
        return list(self._executors)
