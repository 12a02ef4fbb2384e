"""
In-memory graph container for agent workflows.

The graph performs no validation beyond referential integrity of edges: the
validator owns every structural and semantic check.
"""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from flow_compiler.errors import InvalidReferenceError
from flow_compiler.schema.models import WorkflowEdge, WorkflowNode


class Graph:
    def __init__(
        self,
        nodes: Optional[Iterable[WorkflowNode]] = None,
        edges: Optional[Iterable[WorkflowEdge]] = None,
    ) -> None:
        self.nodes: Dict[str, WorkflowNode] = {}
        self.edges: Dict[str, WorkflowEdge] = {}
        for node in nodes or []:
            self.add_node(node)
        for edge in edges or []:
            self.add_edge(edge)

    def __repr__(self) -> str:
        return f"Graph(nodes={len(self.nodes)}, edges={len(self.edges)})"

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def __iter__(self) -> Iterator[WorkflowNode]:
        return iter(self.nodes.values())

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def add_node(self, node: WorkflowNode) -> WorkflowNode:
        self.nodes[node.id] = node
        return node

    def add_edge(self, edge: WorkflowEdge) -> WorkflowEdge:
        for endpoint in (edge.source_node_id, edge.target_node_id):
            if endpoint not in self.nodes:
                raise InvalidReferenceError(
                    f"Edge '{edge.id}' references unknown node '{endpoint}'"
                )
        self.edges[edge.id] = edge
        return edge

    def remove_node(self, node_id: str) -> Optional[WorkflowNode]:
        node = self.nodes.pop(node_id, None)
        if node is None:
            return None
        for edge_id in [
            edge.id
            for edge in self.edges.values()
            if node_id in (edge.source_node_id, edge.target_node_id)
        ]:
            del self.edges[edge_id]
        return node

    def remove_edge(self, edge_id: str) -> Optional[WorkflowEdge]:
        return self.edges.pop(edge_id, None)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def node(self, node_id: str) -> WorkflowNode:
        try:
            return self.nodes[node_id]
        except KeyError as exc:
            raise InvalidReferenceError(f"Node '{node_id}' does not exist") from exc

    def incoming(self, node_id: str) -> List[WorkflowEdge]:
        return [edge for edge in self.edges.values() if edge.target_node_id == node_id]

    def outgoing(self, node_id: str) -> List[WorkflowEdge]:
        return [edge for edge in self.edges.values() if edge.source_node_id == node_id]

    def entry_candidates(self) -> List[str]:
        targets = {edge.target_node_id for edge in self.edges.values()}
        return [node_id for node_id in self.nodes if node_id not in targets]

    def reachable_from(self, start: str) -> List[str]:
        """Node ids reachable by forward traversal, in discovery order."""
        if start not in self.nodes:
            return []
        adjacency = self.adjacency()
        seen = {start}
        order = [start]
        stack = [start]
        while stack:
            current = stack.pop()
            for target in adjacency[current]:
                if target not in seen:
                    seen.add(target)
                    order.append(target)
                    stack.append(target)
        return order

    def adjacency(self) -> Dict[str, List[str]]:
        adjacency: Dict[str, List[str]] = {node_id: [] for node_id in self.nodes}
        for edge in self.edges.values():
            adjacency[edge.source_node_id].append(edge.target_node_id)
        return adjacency

    def copy(self) -> "Graph":
        return Graph(
            nodes=[node.model_copy(deep=True) for node in self.nodes.values()],
            edges=[edge.model_copy(deep=True) for edge in self.edges.values()],
        )

    def to_payload(self) -> Dict[str, list]:
        return {
            "nodes": [node.to_wire() for node in self.nodes.values()],
            "edges": [edge.to_wire() for edge in self.edges.values()],
        }
