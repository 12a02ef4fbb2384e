"""
Stage 3: Lower a validated graph into a LinearizedPlan.

The walk is a pre-order traversal from the entry node using an explicit
stack. Branching nodes record one branch per declared output port, in port
order; the first branch's sub-chain is emitted before the second's. A node
reached from two places (a diamond) is emitted once and both predecessors
point at the same step id.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from flow_compiler.compiler.ports import resolve_port
from flow_compiler.errors import StructuralError
from flow_compiler.registry.node_types import NodeTypeRegistry, default_registry
from flow_compiler.schema.graph import Graph
from flow_compiler.schema.models import BranchMap, Issue, LinearizedPlan, PlanStep, WorkflowEdge


def find_entry(graph: Graph) -> str:
    candidates = graph.entry_candidates()
    if not candidates:
        raise StructuralError(
            "Graph cannot be linearized",
            [Issue(code="no_entry_point", message="no entry point")],
        )
    if len(candidates) > 1:
        raise StructuralError(
            "Graph cannot be linearized",
            [
                Issue(
                    code="ambiguous_entry_point",
                    message=f"ambiguous entry point: {', '.join(candidates)}",
                )
            ],
        )
    return candidates[0]


def linearize(graph: Graph, registry: Optional[NodeTypeRegistry] = None) -> LinearizedPlan:
    registry = registry or default_registry()
    entry = find_entry(graph)

    issues: List[Issue] = []
    steps: List[PlanStep] = []
    visited = set()
    stack = [entry]

    while stack:
        node_id = stack.pop()
        if node_id in visited:
            continue
        visited.add(node_id)

        node = graph.node(node_id)
        outputs = registry.output_ports(node)
        edges = graph.outgoing(node_id)

        if len(outputs) > 1:
            branches = _branch_targets(node_id, outputs, edges, issues)
            step = PlanStep(node_id=node_id, type_id=node.type_id, label=node.label, branches=branches)
        else:
            if len(edges) > 1:
                port = outputs[0].id if outputs else None
                issues.append(_fan_out_issue(node_id, port, edges))
            next_default = edges[0].target_node_id if edges else None
            step = PlanStep(node_id=node_id, type_id=node.type_id, label=node.label, next_default=next_default)

        steps.append(step)
        for target in reversed(step.successors()):
            if target not in visited:
                stack.append(target)

    if issues:
        raise StructuralError("Graph cannot be linearized", issues)
    return LinearizedPlan(entry_node_id=entry, chain=tuple(steps))


def _branch_targets(node_id: str, outputs, edges: List[WorkflowEdge], issues: List[Issue]) -> BranchMap:
    by_port: Dict[str, List[WorkflowEdge]] = {port.id: [] for port in outputs}
    for edge in edges:
        port = resolve_port(edge.source_port, outputs)
        if port is None:
            issues.append(
                Issue(
                    code="invalid_port",
                    message=f"Edge '{edge.id}' leaves '{node_id}' through an unknown port",
                    node_id=node_id,
                    edge_id=edge.id,
                )
            )
            continue
        by_port[port.id].append(edge)

    branches: BranchMap = {}
    for port_id, port_edges in by_port.items():
        if len(port_edges) > 1:
            issues.append(_fan_out_issue(node_id, port_id, port_edges))
        branches[port_id] = port_edges[0].target_node_id if port_edges else None
    return branches


def _fan_out_issue(node_id: str, port_id: Optional[str], edges: List[WorkflowEdge]) -> Issue:
    targets = ", ".join(edge.target_node_id for edge in edges)
    where = f"port '{port_id}' of '{node_id}'" if port_id else f"'{node_id}'"
    return Issue(
        code="fan_out",
        message=f"fan-out from {where} to {targets}",
        node_id=node_id,
        field=port_id,
    )
