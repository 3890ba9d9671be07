"""
Node Tester - runs a single node outside of a flow run

Backs the editor's "Test this node" action: the node is executed against a
caller-supplied upstream snapshot (usually the recorded results of
previously tested nodes) without following any edges. Side effects the
node itself declares still happen; an HttpRequest node makes its call.
"""

import logging
from typing import Any, List, Mapping, Optional, Union
from uuid import uuid4

from flowbuilder.flow_engine.definition import Node, parse_node
from flowbuilder.flow_engine.errors import FlowValidationError, NodeExecutionError, ValidationIssue
from flowbuilder.flow_engine.execution_log import Severity
from flowbuilder.flow_engine.nodes import ExecutionContext
from flowbuilder.flow_engine.results import Outcome
from flowbuilder.flow_engine.variable_store import VariableStore

logger = logging.getLogger(__name__)


class NodeTester:
    """
    Executes one node in isolation.

    Usage:
        tester = NodeTester(FlowExecutor())
        outcome = await tester.test_node(
            {'id': 'http1', 'type': 'httpRequest', 'data': {'url': '{{vars.base}}/items'}},
            {'vars': {'base': 'https://api.example.com'}},
        )
        outcome.writes  # [('http1.result', {...})]
    """

    def __init__(self, executor):
        self.executor = executor

    def load_node(self, node: Union[Node, Mapping[str, Any]]) -> Node:
        """
        Parse and validate a node.

        Raises:
            FlowValidationError: If the node or its config is invalid
        """
        issues: List[ValidationIssue] = []
        if not isinstance(node, Node):
            node = parse_node(dict(node) if isinstance(node, Mapping) else node, issues)
        if node is None or issues:
            raise FlowValidationError(issues or [ValidationIssue("Invalid node")])

        errors, warnings = self.executor.validator.validate_node(node)
        if errors:
            raise FlowValidationError(errors, warnings)
        return node

    async def test_node(
        self,
        node: Union[Node, Mapping[str, Any]],
        upstream_snapshot: Optional[Mapping[str, Any]] = None,
        flow_id: str = '',
    ) -> Outcome:
        """
        Run one node against an upstream snapshot.

        Args:
            node: Node or node document
            upstream_snapshot: Partial store, e.g. {"http1": {"result": {...}}, "vars": {...}}
            flow_id: Flow the node belongs to, exposed as system.flow.id

        Returns:
            The node's Outcome; node failures are reported in ``outcome.error``

        Raises:
            FlowValidationError: If the node config is invalid
        """
        node = self.load_node(node)
        execution_id = f"test-{uuid4()}"

        store = VariableStore()
        store.seed_system(flow_id, execution_id, self.executor.clock())
        if upstream_snapshot:
            store.merge(upstream_snapshot)

        context = ExecutionContext(
            node=node,
            store=store,
            runtime=self.executor.runtime(flow_id, execution_id),
        )

        logger.info(f"Testing {node.kind.value} node {node.id}")

        executor = self.executor.registry.get(node.kind)
        try:
            if executor is None:
                raise NodeExecutionError(f"No executor registered for {node.kind.value}")
            outcome = await executor.execute(context)
        except NodeExecutionError as e:
            context.log(Severity.ERROR, f"Node '{node.display_name}' failed: {e}")
            return context.outcome(error=e)
        except Exception as e:
            logger.exception(f"Unexpected error testing node {node.id}")
            error = NodeExecutionError(f"Unexpected error: {e}", node.id)
            context.log(Severity.ERROR, f"Node '{node.display_name}' failed: {error}")
            return context.outcome(error=error)

        if outcome.error is not None:
            context.log(Severity.ERROR, f"Node '{node.display_name}' failed: {outcome.error}")
            outcome.log.append(context.entries[-1])
        return outcome
