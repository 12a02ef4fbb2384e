"""
Public entrypoint for compiling agent graphs into engine artifacts.

    graph payload -> parse -> validate (gate) -> linearize -> emit

The payload is parsed into a fresh Graph, so callers may keep mutating their
own copy while a compile is in flight.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from flow_compiler.compiler.context import CompilerContext
from flow_compiler.compiler.linearize import linearize
from flow_compiler.compiler.parse import parse_graph
from flow_compiler.compiler.validate_graph import validate_graph
from flow_compiler.emitters import get_emitter
from flow_compiler.errors import ConfigError, StructuralError
from flow_compiler.schema.graph import Graph
from flow_compiler.schema.models import CompiledArtifact, LinearizedPlan, ValidationResult

STRUCTURAL_CODES = frozenset(
    {
        "no_entry_point",
        "ambiguous_entry_point",
        "cycle",
        "fan_out",
        "invalid_port",
        "unmet_required_port",
    }
)


@dataclass(frozen=True)
class PlannedGraph:
    graph: Graph
    validation: ValidationResult
    plan: LinearizedPlan


@dataclass(frozen=True)
class CompilationResult:
    graph: Graph
    validation: ValidationResult
    plan: LinearizedPlan
    artifact: CompiledArtifact


def validate(payload: Any, context: Optional[CompilerContext] = None) -> ValidationResult:
    context = context or CompilerContext()
    graph = parse_graph(payload)
    return validate_graph(graph, context.registry, large_graph_threshold=context.large_graph_threshold)


def plan_graph(payload: Any, context: Optional[CompilerContext] = None) -> PlannedGraph:
    """
    Parse, validate and linearize. Validation errors are raised as a
    StructuralError when any of them is structural, otherwise as a ConfigError.
    """

    context = context or CompilerContext()
    graph = parse_graph(payload)
    validation = validate_graph(graph, context.registry, large_graph_threshold=context.large_graph_threshold)
    if not validation.is_valid:
        if any(issue.code in STRUCTURAL_CODES for issue in validation.errors):
            raise StructuralError("Graph failed validation", validation.errors)
        raise ConfigError("Graph failed validation", validation.errors)
    plan = linearize(graph, context.registry)
    return PlannedGraph(graph=graph, validation=validation, plan=plan)


def compile_graph(
    payload: Any,
    context: Optional[CompilerContext] = None,
    *,
    backend: str = "step_chain",
) -> CompilationResult:
    context = context or CompilerContext()
    planned = plan_graph(payload, context)
    emitter = get_emitter(
        backend,
        context.registry,
        agent_name=context.agent_name,
        capabilities=context.capabilities,
    )
    artifact = emitter.emit(planned.plan, planned.graph)
    return CompilationResult(
        graph=planned.graph,
        validation=planned.validation,
        plan=planned.plan,
        artifact=artifact,
    )


__all__ = [
    "CompilationResult",
    "CompilerContext",
    "PlannedGraph",
    "compile_graph",
    "get_emitter",
    "linearize",
    "parse_graph",
    "plan_graph",
    "validate",
    "validate_graph",
]
