"""
Variable Catalog - the variables a node may reference

Lists, for one node of a flow, every path that can have been written
before the node runs: results of upstream nodes, ``vars.*`` keys set
upstream, ``system.*`` and, inside a loop body, ``loop.*``. Backs the
editor's variable browser.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Set

from flowbuilder.expressions.values import try_number
from flowbuilder.flow_engine.definition import DelayType, LoopType, Node, NodeKind
from flowbuilder.flow_engine.graph import FlowGraph


@dataclass(frozen=True)
class VariableInfo:
    name: str
    path: str
    type: str
    description: str = ''
    source: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


SYSTEM_VARIABLES = [
    VariableInfo('Current Date', 'system.date.current', 'date', 'Current date in ISO format', 'system'),
    VariableInfo('Current Time', 'system.time.current', 'string', 'Current time in HH:MM:SS format', 'system'),
    VariableInfo('Timestamp', 'system.timestamp', 'number', 'Current timestamp in milliseconds', 'system'),
    VariableInfo('Flow ID', 'system.flow.id', 'string', 'ID of the current flow', 'system'),
    VariableInfo('Execution ID', 'system.execution.id', 'string', 'ID of the current execution', 'system'),
]


def _node_variables(node: Node) -> List[VariableInfo]:
    name = node.display_name
    prefix = f"{node.id}.result"

    if node.kind == NodeKind.HTTP_REQUEST:
        return [
            VariableInfo('Status', f"{prefix}.status", 'number', f"HTTP status returned to {name}", node.id),
            VariableInfo('Headers', f"{prefix}.headers", 'object', 'Response headers', node.id),
            VariableInfo('Data', f"{prefix}.data", 'any', 'Response body (parsed JSON or text)', node.id),
        ]
    if node.kind == NodeKind.IF_ELSE:
        return [VariableInfo('Result', f"{prefix}.result", 'boolean', f"Branch taken by {name}", node.id)]
    if node.kind == NodeKind.LOOP:
        return [
            VariableInfo('Iterations', f"{prefix}.iterations", 'number', 'Iterations executed', node.id),
            VariableInfo('Count', f"{prefix}.count", 'number', 'Items in the array', node.id),
        ]
    if node.kind == NodeKind.SET_VARIABLE and node.config.key:
        return [VariableInfo(node.config.key, f"vars.{node.config.key}", 'any', f"Set by {name}", node.id)]
    if node.kind == NodeKind.DELAY:
        if node.config.delay_type == DelayType.CRON.value:
            return [VariableInfo('Next run', f"{prefix}.nextRunAt", 'date', 'Next scheduled run', node.id)]
        return [VariableInfo('Delayed seconds', f"{prefix}.delayedSeconds", 'number', 'Seconds waited', node.id)]
    return []


def _loop_variables(loop: Node) -> List[VariableInfo]:
    variables = [
        VariableInfo('Item', 'loop.item', 'any', 'Current item', loop.id),
        VariableInfo('Index', 'loop.index', 'number', 'Current index (0-based)', loop.id),
        VariableInfo('Number', 'loop.number', 'number', 'Current position (1-based)', loop.id),
        VariableInfo('Iteration', 'loop.iteration', 'number', 'Completed iterations', loop.id),
        VariableInfo('Start time', 'loop.startTime', 'date', 'When the loop started', loop.id),
    ]
    batching = loop.config.loop_type == LoopType.FOR_EACH.value and (try_number(loop.config.batch_size) or 0) > 0
    if batching:
        variables.append(VariableInfo('Batch', 'loop.batch', 'array', 'Current batch of items', loop.id))
    return variables


def _ancestors(graph: FlowGraph, node_id: str) -> Set[str]:
    seen: Set[str] = set()
    stack = [edge.source_node_id for edge in graph.incoming[node_id] if edge.id not in graph.back_edges]
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        stack.extend(edge.source_node_id for edge in graph.incoming[current] if edge.id not in graph.back_edges)
    return seen


def available_variables(graph: FlowGraph, node_id: str) -> List[VariableInfo]:
    """
    Variables visible to ``node_id``.

    Upstream nodes are those that reach it along forward edges; they are
    listed in document order.

    Raises:
        KeyError: If the node does not exist
    """
    if node_id not in graph.nodes:
        raise KeyError(node_id)

    variables = list(SYSTEM_VARIABLES)

    enclosing = graph.enclosing_loops(node_id)
    if enclosing:
        # The innermost loop shadows the others
        innermost = min(enclosing, key=lambda loop_id: len(graph.loop_bodies[loop_id]))
        variables.extend(_loop_variables(graph.nodes[innermost]))

    upstream = _ancestors(graph, node_id)
    for candidate_id, node in graph.nodes.items():
        if candidate_id in upstream and candidate_id not in enclosing:
            variables.extend(_node_variables(node))

    return variables
