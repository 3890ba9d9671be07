"""
Flow Executor - Graph resolver and scheduler for flow runs

Responsibilities:
- Validate the flow and freeze its definition
- Walk the graph from the entry nodes in document order
- Dispatch each node to its executor and follow the selected edge
- Run loop bodies with per-iteration overlays
- Apply writes and collect the execution log in execution order
- Stop on StopJob, unrecovered node errors and cancellation
- Hand the result to the persistence collaborator
"""

import asyncio
import logging
from typing import Any, Mapping, Optional, Set
from uuid import uuid4

from flowbuilder.expressions import PathSyntaxError, Sandbox
from flowbuilder.flow_engine.definition import Flow, Node, NodeKind
from flowbuilder.flow_engine.errors import NodeExecutionError, RunCancelledError, TerminalSignal
from flowbuilder.flow_engine.execution_log import ExecutionLog, utc_now
from flowbuilder.flow_engine.graph import FlowGraph
from flowbuilder.flow_engine.http_client import HttpClient, StaticConnectorProvider
from flowbuilder.flow_engine.nodes import ExecutionContext, ExecutorRegistry, Runtime, create_default_registry
from flowbuilder.flow_engine.results import ExecutionResult, RunState
from flowbuilder.flow_engine.settings import EngineSettings
from flowbuilder.flow_engine.validation import FlowValidator, ValidationReport
from flowbuilder.flow_engine.variable_resolver import TemplateResolver
from flowbuilder.flow_engine.variable_store import VariableStore

logger = logging.getLogger(__name__)


class FlowExecutor:
    """
    Runs flows.

    One executor can serve many concurrent runs; every run gets its own
    variable store, execution log and position in the graph.

    Usage:
        executor = FlowExecutor(http_client=HttpClient(timeout=10))
        result = await executor.run(flow_document)
        print(result.status, [entry.message for entry in result.log])

        handle = executor.start(flow_document)
        handle.cancel()
        result = await handle.wait()
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        http_client: Optional[HttpClient] = None,
        connectors=None,
        schedule_registry=None,
        execution_store=None,
        registry: Optional[ExecutorRegistry] = None,
        sandbox: Optional[Sandbox] = None,
        clock=None,
        sleep=None,
    ):
        self.settings = settings or EngineSettings()
        self.clock = clock or utc_now
        self.sleep = sleep or asyncio.sleep
        self.sandbox = sandbox or Sandbox(
            max_steps=self.settings.expression_max_steps,
            timeout_ms=self.settings.expression_timeout_ms,
            clock=self.clock,
        )
        self.resolver = TemplateResolver()
        self.validator = FlowValidator(self.settings, self.sandbox)
        self.http_client = http_client or HttpClient(timeout=self.settings.http_timeout_seconds)
        self.connectors = connectors or StaticConnectorProvider()
        self.schedule_registry = schedule_registry
        self.execution_store = execution_store
        self.registry = registry or create_default_registry()

    def validate(self, document: Any) -> ValidationReport:
        return self.validator.validate(document)

    def runtime(self, flow_id: str = '', execution_id: str = '') -> Runtime:
        """Collaborators for one run (or one isolated node test)."""
        return Runtime(
            settings=self.settings,
            resolver=self.resolver,
            sandbox=self.sandbox,
            http_client=self.http_client,
            connectors=self.connectors,
            schedule_registry=self.schedule_registry,
            clock=self.clock,
            sleep=self.sleep,
            flow_id=flow_id,
            execution_id=execution_id,
        )

    def prepare(
        self,
        document: Any,
        execution_id: Optional[str] = None,
        initial_variables: Optional[Mapping[str, Any]] = None,
    ) -> '_Run':
        """
        Validate the flow and build a run that has not started yet.

        Raises:
            FlowValidationError: If the flow is invalid
        """
        flow, graph = self.validator.load(document)
        return _Run(self, flow, graph, execution_id or str(uuid4()), initial_variables)

    async def run(
        self,
        document: Any,
        execution_id: Optional[str] = None,
        initial_variables: Optional[Mapping[str, Any]] = None,
    ) -> ExecutionResult:
        """
        Execute a flow to completion.

        Args:
            document: Flow document or parsed Flow
            execution_id: Id for the run (generated when omitted)
            initial_variables: Values merged into the store before the first node

        Returns:
            ExecutionResult

        Raises:
            FlowValidationError: If the flow is invalid; the run never starts
        """
        run = self.prepare(document, execution_id, initial_variables)
        return await run.execute()

    def start(
        self,
        document: Any,
        execution_id: Optional[str] = None,
        initial_variables: Optional[Mapping[str, Any]] = None,
    ) -> 'RunHandle':
        """
        Start a run as a task on the running event loop.

        Raises:
            FlowValidationError: If the flow is invalid
        """
        run = self.prepare(document, execution_id, initial_variables)
        loop = asyncio.get_running_loop()
        task = loop.create_task(run.execute())
        return RunHandle(run, task, loop)

    def persist(self, result: ExecutionResult):
        """Hand the result to the persistence collaborator; failures are logged, not raised."""
        if self.execution_store is None:
            return
        try:
            self.execution_store.save(result)
        except Exception as e:
            logger.error(f"Failed to persist execution {result.execution_id}: {e}")


class RunHandle:
    """
    A run executing in the background.

    ``cancel`` may be called from any thread.
    """

    def __init__(self, run: '_Run', task: asyncio.Task, loop: asyncio.AbstractEventLoop):
        self._run = run
        self._task = task
        self._loop = loop

    @property
    def execution_id(self) -> str:
        return self._run.execution_id

    @property
    def flow_id(self) -> str:
        return self._run.flow.id

    def cancel(self):
        """Request cancellation; takes effect at the next node boundary or suspension point."""
        self._run.cancel_requested = True
        # A pending run observes the flag at its first node
        if self._run.state == RunState.RUNNING and not self._task.done():
            self._loop.call_soon_threadsafe(self._task.cancel)

    def done(self) -> bool:
        return self._task.done()

    async def wait(self) -> ExecutionResult:
        return await self._task


class _Run:
    """State of one run. Created by FlowExecutor.prepare."""

    def __init__(
        self,
        executor: FlowExecutor,
        flow: Flow,
        graph: FlowGraph,
        execution_id: str,
        initial_variables: Optional[Mapping[str, Any]] = None,
    ):
        self.executor = executor
        self.flow = flow
        self.graph = graph
        self.execution_id = execution_id
        self.initial_variables = initial_variables
        self.state = RunState.PENDING
        self.cancel_requested = False

        self.runtime = executor.runtime(flow.id, execution_id)
        self.log = ExecutionLog(execution_id, clock=executor.clock)
        self.store = VariableStore()

    async def execute(self) -> ExecutionResult:
        clock = self.executor.clock
        started_at = clock()
        self.state = RunState.RUNNING
        error: Optional[str] = None

        self.store.seed_system(self.flow.id, self.execution_id, started_at)
        if self.initial_variables:
            self.store.merge(self.initial_variables)

        logger.info(f"Starting execution {self.execution_id} of flow {self.flow.id or '<unnamed>'}")
        self.log.info(f"Flow execution started: {self.flow.name or self.flow.id or self.execution_id}")

        try:
            visited: Set[str] = set()
            for entry_id in self.graph.entry_nodes:
                await self._traverse(entry_id, self.store, visited)
            self.state = RunState.SUCCESS
        except TerminalSignal as signal:
            self.state = RunState(signal.status)
            if self.state != RunState.SUCCESS:
                error = signal.reason
        except (RunCancelledError, asyncio.CancelledError):
            self.state = RunState.CANCELLED
            error = 'Execution cancelled'
            self.log.error("Flow execution cancelled")

        if self.state == RunState.SUCCESS:
            self.log.success("Flow execution completed")
        elif self.state == RunState.FAILED:
            self.log.error(f"Flow execution failed: {error}")

        finished_at = clock()
        result = ExecutionResult(
            execution_id=self.execution_id,
            flow_id=self.flow.id,
            status=self.state,
            log=self.log.entries,
            final_variables=self.store.snapshot(),
            started_at=started_at,
            finished_at=finished_at,
            duration_ms=int((finished_at - started_at).total_seconds() * 1000),
            error=error,
        )
        logger.info(f"Execution {self.execution_id} finished: {self.state.value}")

        self.executor.persist(result)
        return result

    async def _traverse(self, node_id: str, store, visited: Set[str]):
        """Follow one chain of nodes until it ends, closes a loop body or joins a visited node."""
        current = node_id
        while current is not None:
            self._check_cancelled()
            node = self.graph.nodes[current]

            if current in visited:
                self.log.info(f"Chain joins already executed node '{node.display_name}'", node_id=current)
                return
            visited.add(current)

            selector = await self._execute_node(node, store)

            edge = self.graph.select_edge(current, selector)
            if edge is None or edge.id in self.graph.back_edges:
                return
            current = edge.target_node_id

    async def _execute_node(self, node: Node, store) -> Optional[str]:
        """
        Run one node and apply its outcome.

        Returns:
            Edge selector to follow

        Raises:
            TerminalSignal: On StopJob outcomes and unrecovered node errors
            RunCancelledError: When cancellation was requested
        """
        if node.skipped:
            self.log.info("Node skipped", node_id=node.id)
            return self.graph.pass_through_selector(node)

        self.log.info(f"Executing {node.kind.value} node '{node.display_name}'", node_id=node.id)
        context = ExecutionContext(node=node, store=store, runtime=self.runtime)
        if node.kind == NodeKind.LOOP:
            context.run_body = self._body_runner(node, store, context)

        executor = self.executor.registry.get(node.kind)
        try:
            if executor is None:
                raise NodeExecutionError(f"No executor registered for {node.kind.value}")
            outcome = await executor.execute(context)
        except NodeExecutionError as e:
            outcome = context.outcome(error=e)
        except (TerminalSignal, RunCancelledError):
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in node {node.id}")
            outcome = context.outcome(error=NodeExecutionError(f"Unexpected error: {e}", node.id))

        self._check_cancelled()
        self._flush(context, outcome.log)

        try:
            for key, value in outcome.writes:
                store.set(key, value)
        except PathSyntaxError as e:
            if outcome.error is None:
                outcome.error = NodeExecutionError(f"Could not store node output: {e}", node.id)

        if outcome.error is not None:
            self.log.error(f"Node '{node.display_name}' failed: {outcome.error}", node_id=node.id)
            if not node.continue_on_error:
                raise TerminalSignal(RunState.FAILED, f"Node {node.id} failed: {outcome.error}", node.id)
            self.log.warn("Continuing after error (continueOnError)", node_id=node.id)
            return self.graph.pass_through_selector(node)

        if outcome.terminal is not None:
            raise TerminalSignal(outcome.terminal.status, outcome.terminal.reason, node.id)

        return outcome.edge_selector

    def _body_runner(self, node: Node, store, context: ExecutionContext):
        start = self.graph.body_start(node.id)

        async def run_body(overlay_values: Mapping[str, Any]):
            # Entries the loop logged so far precede the body's entries
            self._flush(context, context.entries)
            if start is None:
                return
            await self._traverse(start, store.overlay(overlay_values), set())

        return run_body

    def _flush(self, context: ExecutionContext, entries):
        entries = list(entries)
        self.log.extend(entries[context.flushed:])
        context.flushed = len(entries)

    def _check_cancelled(self):
        if self.cancel_requested:
            raise RunCancelledError(f"Execution {self.execution_id} was cancelled")
