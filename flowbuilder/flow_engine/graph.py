"""
Graph view of a parsed flow: adjacency, loop bodies, entry nodes and
edge selection.
"""

from collections import OrderedDict
from typing import Dict, List, Optional, Set, Tuple

from flowbuilder.flow_engine.definition import Edge, Flow, Node, NodeKind


BODY_HANDLE = 'body'
COMPLETE_HANDLE = 'complete'
TRUE_HANDLE = 'true'
FALSE_HANDLE = 'false'
RESERVED_HANDLES = (TRUE_HANDLE, FALSE_HANDLE, BODY_HANDLE, COMPLETE_HANDLE)


class FlowGraph:
    """
    Indexed flow used by the validator and the scheduler.

    Cycles are only legal when they run through a loop body back to its
    Loop node; those closing edges are tracked as back-edges and ignored
    when computing entry nodes and checking for other cycles.
    """

    def __init__(self, flow: Flow):
        self.flow = flow
        self.nodes: Dict[str, Node] = OrderedDict()
        for node in flow.nodes:
            self.nodes.setdefault(node.id, node)

        self.outgoing: Dict[str, List[Edge]] = {node_id: [] for node_id in self.nodes}
        self.incoming: Dict[str, List[Edge]] = {node_id: [] for node_id in self.nodes}
        for edge in flow.edges:
            if edge.source_node_id in self.nodes and edge.target_node_id in self.nodes:
                self.outgoing[edge.source_node_id].append(edge)
                self.incoming[edge.target_node_id].append(edge)

        self.loop_bodies: Dict[str, Set[str]] = {}
        self.back_edges: Set[str] = set()
        self._index_loops()

    def _index_loops(self):
        for node in self.nodes.values():
            if node.kind != NodeKind.LOOP:
                continue
            start = self.body_start(node.id)
            body = self._reachable(start, stop_at=node.id) if start else set()
            self.loop_bodies[node.id] = body
            for edge in self.incoming[node.id]:
                if edge.source_node_id in body:
                    self.back_edges.add(edge.id)

    def _reachable(self, start: str, stop_at: str) -> Set[str]:
        seen: Set[str] = set()
        stack = [start]
        while stack:
            node_id = stack.pop()
            if node_id == stop_at or node_id in seen:
                continue
            seen.add(node_id)
            stack.extend(edge.target_node_id for edge in self.outgoing[node_id])
        return seen

    @property
    def entry_nodes(self) -> List[str]:
        """Nodes without incoming edges (back-edges excluded), in document order."""
        return [
            node_id for node_id in self.nodes
            if not any(edge.id not in self.back_edges for edge in self.incoming[node_id])
        ]

    def forward_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.outgoing[node_id] if edge.id not in self.back_edges]

    def body_start(self, loop_id: str) -> Optional[str]:
        for edge in self.outgoing.get(loop_id, []):
            if edge.source_handle == BODY_HANDLE:
                return edge.target_node_id
        return None

    def enclosing_loops(self, node_id: str) -> List[str]:
        return [loop_id for loop_id, body in self.loop_bodies.items() if node_id in body]

    def select_edge(self, node_id: str, selector: Optional[str]) -> Optional[Edge]:
        """
        Pick the single edge to follow after a node.

        A named selector matches the first edge with that handle; the loop
        ``complete`` selector falls back to an unlabeled edge. Without a
        selector the first unlabeled edge is used, else the first edge whose
        handle is not a branch handle.
        """
        edges = self.outgoing.get(node_id, [])

        if selector is not None:
            for edge in edges:
                if edge.source_handle == selector:
                    return edge
            if selector == COMPLETE_HANDLE:
                for edge in edges:
                    if edge.source_handle is None:
                        return edge
            return None

        for edge in edges:
            if edge.source_handle is None:
                return edge
        for edge in edges:
            if edge.source_handle not in RESERVED_HANDLES:
                return edge
        return None

    def pass_through_selector(self, node: Node) -> Optional[str]:
        """Selector used when a node is skipped or continues after an error."""
        if node.kind == NodeKind.LOOP:
            return COMPLETE_HANDLE
        if node.kind == NodeKind.IF_ELSE and self.select_edge(node.id, None) is None:
            return FALSE_HANDLE
        return None

    def duplicate_handles(self) -> List[Tuple[str, Optional[str], List[Edge]]]:
        """Groups of edges leaving the same node through the same handle."""
        duplicates = []
        for node_id, edges in self.outgoing.items():
            groups: Dict[Optional[str], List[Edge]] = OrderedDict()
            for edge in edges:
                groups.setdefault(edge.source_handle, []).append(edge)
            for handle, group in groups.items():
                if len(group) > 1:
                    duplicates.append((node_id, handle, group))
        return duplicates

    def find_cycle(self) -> Optional[List[str]]:
        """
        Return one cycle that does not close through a loop back-edge.

        Returns:
            Node ids along the cycle, or None when the graph is acyclic
        """
        white, grey, black = 0, 1, 2
        color = {node_id: white for node_id in self.nodes}
        path: List[str] = []

        def visit(node_id: str) -> Optional[List[str]]:
            color[node_id] = grey
            path.append(node_id)
            for edge in self.forward_edges(node_id):
                target = edge.target_node_id
                if color[target] == grey:
                    return path[path.index(target):] + [target]
                if color[target] == white:
                    cycle = visit(target)
                    if cycle:
                        return cycle
            path.pop()
            color[node_id] = black
            return None

        for node_id in self.nodes:
            if color[node_id] == white:
                cycle = visit(node_id)
                if cycle:
                    return cycle
        return None
