"""
Stage 2: Validate graph structure and node configuration.

Every check runs and accumulates into one ValidationResult; nothing here
raises for a bad graph. Errors block compilation, warnings do not.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Set, Tuple

from flow_compiler.compiler.context import DEFAULT_LARGE_GRAPH_THRESHOLD
from flow_compiler.compiler.ports import describe_port_problem, resolve_port
from flow_compiler.registry.node_types import NodeTypeRegistry, default_registry
from flow_compiler.schema.graph import Graph
from flow_compiler.schema.jsonschema_adapter import collect_errors, format_validation_error
from flow_compiler.schema.models import DataType, PortSpec, ValidationResult, WorkflowEdge
from shared.logger import get_logger

logger = get_logger(__name__)

_VISITING = 1
_DONE = 2


def validate_graph(
    graph: Graph,
    registry: Optional[NodeTypeRegistry] = None,
    *,
    large_graph_threshold: int = DEFAULT_LARGE_GRAPH_THRESHOLD,
) -> ValidationResult:
    registry = registry or default_registry()
    result = ValidationResult()

    candidates = graph.entry_candidates()
    entry = _check_entry(candidates, result)
    _check_node_types(graph, registry, result)
    _check_cycles(graph, entry, result)
    _check_config(graph, registry, result)
    resolved = _check_ports(graph, registry, result)
    _check_required_ports(graph, registry, resolved, set(candidates), result)
    _check_reachability(graph, entry, result)
    _check_port_types(resolved, result)
    _check_best_practices(graph, large_graph_threshold, result)

    logger.debug(
        "Validated graph with %d nodes: %d errors, %d warnings",
        len(graph.nodes),
        len(result.errors),
        len(result.warnings),
    )
    return result


def _check_entry(candidates: List[str], result: ValidationResult) -> Optional[str]:
    if not candidates:
        result.error("no_entry_point", "no entry point")
        return None
    if len(candidates) > 1:
        result.error("ambiguous_entry_point", f"ambiguous entry point: {', '.join(candidates)}")
        return None
    return candidates[0]


def _check_node_types(graph: Graph, registry: NodeTypeRegistry, result: ValidationResult) -> None:
    for node in graph:
        if node.type_id not in registry:
            result.error(
                "unknown_node_type",
                f"Node '{node.id}' has unknown type '{node.type_id}'",
                node_id=node.id,
            )


def _check_cycles(graph: Graph, entry: Optional[str], result: ValidationResult) -> None:
    outgoing: Dict[str, List[WorkflowEdge]] = {node_id: [] for node_id in graph.nodes}
    for edge in graph.edges.values():
        outgoing[edge.source_node_id].append(edge)

    roots = ([entry] if entry else []) + [node_id for node_id in graph.nodes if node_id != entry]
    state: Dict[str, int] = {}
    for root in roots:
        if root in state:
            continue
        state[root] = _VISITING
        stack = [(root, iter(outgoing[root]))]
        while stack:
            node_id, pending = stack[-1]
            edge = next(pending, None)
            if edge is None:
                state[node_id] = _DONE
                stack.pop()
                continue
            target = edge.target_node_id
            marker = state.get(target)
            if marker == _VISITING:
                result.error(
                    "cycle",
                    f"cycle detected: edge '{edge.id}' from '{edge.source_node_id}' returns to '{target}'",
                    node_id=target,
                    edge_id=edge.id,
                )
            elif marker is None:
                state[target] = _VISITING
                stack.append((target, iter(outgoing[target])))


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _check_config(graph: Graph, registry: NodeTypeRegistry, result: ValidationResult) -> None:
    for node in graph:
        descriptor = registry.maybe_get(node.type_id)
        if descriptor is None:
            continue
        resolved = descriptor.resolve_config(node.config)
        for field in descriptor.required_config:
            if _is_empty(resolved.get(field)):
                result.error(
                    "missing_required_config",
                    f"Node '{node.id}' is missing required config '{field}'",
                    node_id=node.id,
                    field=field,
                )
        for error in collect_errors(descriptor.config_schema, resolved):
            if error.validator == "required" and not error.absolute_path:
                continue
            path = ".".join(str(token) for token in error.absolute_path) or None
            result.error(
                "invalid_config",
                f"Node '{node.id}' has invalid config {format_validation_error(error)}",
                node_id=node.id,
                field=path,
            )


ResolvedEdge = Tuple[WorkflowEdge, Optional[PortSpec], Optional[PortSpec]]


def _check_ports(graph: Graph, registry: NodeTypeRegistry, result: ValidationResult) -> List[ResolvedEdge]:
    resolved: List[ResolvedEdge] = []
    for edge in graph.edges.values():
        source_node = graph.node(edge.source_node_id)
        target_node = graph.node(edge.target_node_id)
        source_port = target_port = None

        if source_node.type_id in registry:
            outputs = registry.output_ports(source_node)
            source_port = resolve_port(edge.source_port, outputs)
            if source_port is None:
                problem = describe_port_problem(edge.source_port, outputs, side="output")
                result.error(
                    "invalid_port",
                    f"Edge '{edge.id}' from '{source_node.id}': {problem}",
                    node_id=source_node.id,
                    edge_id=edge.id,
                )
        if target_node.type_id in registry:
            inputs = registry.input_ports(target_node)
            target_port = resolve_port(edge.target_port, inputs)
            if target_port is None:
                problem = describe_port_problem(edge.target_port, inputs, side="input")
                result.error(
                    "invalid_port",
                    f"Edge '{edge.id}' to '{target_node.id}': {problem}",
                    node_id=target_node.id,
                    edge_id=edge.id,
                )
        resolved.append((edge, source_port, target_port))
    return resolved


def _check_required_ports(
    graph: Graph,
    registry: NodeTypeRegistry,
    resolved: List[ResolvedEdge],
    roots: Set[str],
    result: ValidationResult,
) -> None:
    satisfied: Set[Tuple[str, str]] = {
        (edge.target_node_id, target.id) for edge, _, target in resolved if target is not None
    }
    for node in graph:
        # Root nodes receive the trigger payload instead of an edge.
        if node.id in roots or node.type_id not in registry:
            continue
        for port in registry.input_ports(node):
            if port.required and (node.id, port.id) not in satisfied:
                result.error(
                    "unmet_required_port",
                    f"Node '{node.id}' requires an input on port '{port.id}'",
                    node_id=node.id,
                    field=port.id,
                )


def _check_reachability(graph: Graph, entry: Optional[str], result: ValidationResult) -> None:
    if entry is None:
        return
    reachable = set(graph.reachable_from(entry))
    for node_id in graph.nodes:
        if node_id not in reachable:
            result.warn(
                "unreachable_node",
                f"Node '{node_id}' is not reachable from entry '{entry}'",
                node_id=node_id,
            )


def _check_port_types(resolved: List[ResolvedEdge], result: ValidationResult) -> None:
    for edge, source, target in resolved:
        if source is None or target is None:
            continue
        if DataType.any in (source.data_type, target.data_type):
            continue
        if source.data_type != target.data_type:
            result.warn(
                "port_type_mismatch",
                f"Edge '{edge.id}' connects {source.data_type.value} output to {target.data_type.value} input",
                edge_id=edge.id,
            )


def _check_best_practices(graph: Graph, threshold: int, result: ValidationResult) -> None:
    if len(graph.nodes) > threshold:
        result.warn(
            "large_graph",
            f"Graph has {len(graph.nodes)} nodes; consider splitting it into smaller workflows",
        )
    for node in graph:
        if not (node.description or "").strip():
            result.warn(
                "missing_description",
                f"Node '{node.id}' has no description",
                node_id=node.id,
            )
