"""
Emitter contract shared by every backend.

An emitter turns a LinearizedPlan (plus the graph it was lowered from, for
node labels and config) into a backend-specific artifact. Emission is
offline: no emitter performs I/O.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Mapping, Optional

from flow_compiler.errors import ConfigError
from flow_compiler.registry.node_types import NodeTypeRegistry, default_registry
from flow_compiler.schema.graph import Graph
from flow_compiler.schema.models import CompiledArtifact, Issue, JsonSchema, LinearizedPlan, PlanStep


class Emitter(ABC):
    backend: ClassVar[str]

    def __init__(self, registry: Optional[NodeTypeRegistry] = None, *, agent_name: str = "agent") -> None:
        self.registry = registry or default_registry()
        self.agent_name = agent_name

    @abstractmethod
    def supports(self, type_id: str) -> bool:
        """Return True when this backend has a mapping for ``type_id``."""

    @abstractmethod
    def _emit(self, plan: LinearizedPlan, graph: Graph) -> CompiledArtifact:
        ...

    def emit(self, plan: LinearizedPlan, graph: Graph) -> CompiledArtifact:
        issues = self.unmapped_issues(plan)
        if issues:
            raise ConfigError(f"{self.backend} emitter cannot map every node type", issues)
        return self._emit(plan, graph)

    def unmapped_issues(self, plan: LinearizedPlan) -> List[Issue]:
        return [
            Issue(
                code="unmapped_node_type",
                message=f"Node '{step.node_id}' has type '{step.type_id}' with no {self.backend} mapping",
                node_id=step.node_id,
            )
            for step in plan.chain
            if not self.supports(step.type_id)
        ]

    def resolved_config(self, graph: Graph, step: PlanStep) -> Dict[str, Any]:
        return self.registry.resolve_config(graph.node(step.node_id))


# -----------------------------
# Input schema derivation
# -----------------------------
_VARIABLE_TYPES = {
    "string": "string",
    "text": "string",
    "number": "number",
    "integer": "integer",
    "boolean": "boolean",
    "object": "object",
    "array": "array",
}


def _json_type(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return None


def derive_input_schema(config: Mapping[str, Any]) -> JsonSchema:
    """
    Build a plain-object input schema for a manually started flow.

    Declared ``variables`` win; otherwise every config value with a JSON type
    becomes an optional property of that type.
    """

    variables = [item for item in config.get("variables") or [] if isinstance(item, Mapping) and item.get("name")]
    if variables:
        properties: Dict[str, Any] = {}
        for variable in variables:
            prop: Dict[str, Any] = {"type": _VARIABLE_TYPES.get(str(variable.get("type") or "string").lower(), "string")}
            if variable.get("description"):
                prop["description"] = variable["description"]
            properties[variable["name"]] = prop
        return {"type": "object", "properties": properties, "required": list(properties)}

    properties = {}
    for key, value in config.items():
        if key in ("trigger", "variables"):
            continue
        json_type = _json_type(value)
        if json_type is not None:
            properties[key] = {"type": json_type}
    return {"type": "object", "properties": properties}
