"""
Registry of node type descriptors.

Every node type the compiler understands is described by one record holding
its default config, its config JSON schema and its port layout. Lookups go
through the registry; nothing downstream switches on type strings to find
ports or defaults.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence, Tuple

from flow_compiler.errors import ConfigError
from flow_compiler.schema.jsonschema_adapter import SchemaError, check_schema
from flow_compiler.schema.models import (
    DataType,
    JsonSchema,
    PortDirection,
    PortSpec,
    WorkflowNode,
)


PortResolver = Callable[[Mapping[str, Any]], Sequence[PortSpec]]


@dataclass(frozen=True)
class NodeTypeDescriptor:
    type_id: str
    category: str
    default_config: Mapping[str, Any]
    config_schema: JsonSchema
    input_ports: Tuple[PortSpec, ...] = ()
    output_ports: Tuple[PortSpec, ...] = ()
    title: str = ""
    # Optional hooks for types whose ports depend on their configuration.
    input_port_resolver: Optional[PortResolver] = field(default=None, compare=False)
    output_port_resolver: Optional[PortResolver] = field(default=None, compare=False)

    @property
    def required_config(self) -> Tuple[str, ...]:
        return tuple(self.config_schema.get("required") or ())

    def resolve_config(self, config: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return deep_merge(self.default_config, config or {})

    def inputs_for(self, resolved_config: Mapping[str, Any]) -> Tuple[PortSpec, ...]:
        if self.input_port_resolver is not None:
            return tuple(self.input_port_resolver(resolved_config))
        return self.input_ports

    def outputs_for(self, resolved_config: Mapping[str, Any]) -> Tuple[PortSpec, ...]:
        if self.output_port_resolver is not None:
            return tuple(self.output_port_resolver(resolved_config))
        return self.output_ports


class NodeTypeNotFoundError(KeyError):
    """Raised when a node type id cannot be resolved."""


class NodeTypeRegistry:
    """
    Stores node type descriptors keyed by type id.
    """

    def __init__(self, initial: MutableMapping[str, NodeTypeDescriptor] | None = None) -> None:
        self._types: Dict[str, NodeTypeDescriptor] = {}
        for descriptor in (initial or {}).values():
            self.register(descriptor)

    def __contains__(self, type_id: object) -> bool:
        return type_id in self._types

    def register(self, descriptor: NodeTypeDescriptor) -> None:
        try:
            check_schema(descriptor.config_schema)
        except SchemaError as exc:
            raise ConfigError(f"Node type '{descriptor.type_id}' has an invalid config schema: {exc.message}") from exc
        self._types[descriptor.type_id] = descriptor

    def get(self, type_id: str) -> NodeTypeDescriptor:
        try:
            return self._types[type_id]
        except KeyError as exc:
            raise NodeTypeNotFoundError(f"Node type '{type_id}' is not registered") from exc

    def maybe_get(self, type_id: str) -> Optional[NodeTypeDescriptor]:
        return self._types.get(type_id)

    def list(self) -> List[NodeTypeDescriptor]:
        return list(self._types.values())

    # Node-level helpers -------------------------------------------------
    def resolve_config(self, node: WorkflowNode) -> Dict[str, Any]:
        descriptor = self.maybe_get(node.type_id)
        if descriptor is None:
            return copy.deepcopy(dict(node.config))
        return descriptor.resolve_config(node.config)

    def input_ports(self, node: WorkflowNode) -> Tuple[PortSpec, ...]:
        descriptor = self.maybe_get(node.type_id)
        if descriptor is None:
            return ()
        return descriptor.inputs_for(descriptor.resolve_config(node.config))

    def output_ports(self, node: WorkflowNode) -> Tuple[PortSpec, ...]:
        descriptor = self.maybe_get(node.type_id)
        if descriptor is None:
            return ()
        return descriptor.outputs_for(descriptor.resolve_config(node.config))

    def is_branching(self, node: WorkflowNode) -> bool:
        return len(self.output_ports(node)) > 1


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` over ``base`` recursively; lists are replaced, not merged."""
    merged: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# -----------------------------
# Core node types
# -----------------------------
def _in(port_id: str = "input", *, data_type: DataType = DataType.any, required: bool = False, label: str = "Input") -> PortSpec:
    return PortSpec(id=port_id, direction=PortDirection.input, data_type=data_type, required=required, label=label)


def _out(port_id: str = "output", *, data_type: DataType = DataType.any, label: str = "Output") -> PortSpec:
    return PortSpec(id=port_id, direction=PortDirection.output, data_type=data_type, label=label)


def _logic_outputs(config: Mapping[str, Any]) -> List[PortSpec]:
    condition_type = config.get("conditionType") or "if-else"
    if condition_type == "filter":
        return [_out(data_type=DataType.array, label="Filtered")]
    if condition_type == "switch":
        labels: List[str] = []
        for branch in config.get("branches") or []:
            label = str((branch or {}).get("label") or "").strip()
            if label and label not in labels:
                labels.append(label)
        return [_out(label, label=label) for label in labels]
    return [_out("true", label="True"), _out("false", label="False")]


def _logic_inputs(config: Mapping[str, Any]) -> List[PortSpec]:
    if (config.get("conditionType") or "if-else") == "filter":
        return [_in(data_type=DataType.array, required=True)]
    return [_in(required=True)]


def _memory_inputs(config: Mapping[str, Any]) -> List[PortSpec]:
    writes = config.get("operation") in ("store", "update")
    return [_in(required=writes, label="Data")]


HTTP_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH"]

PROMPT_TYPE = NodeTypeDescriptor(
    type_id="prompt",
    category="core",
    title="AI Prompt",
    default_config={
        "instruction": "",
        "model": "gpt-4",
        "temperature": 0.7,
        "maxTokens": 1000,
        "variables": [],
    },
    config_schema={
        "type": "object",
        "required": ["instruction", "model"],
        "properties": {
            "instruction": {"type": "string"},
            "model": {"type": "string"},
            "temperature": {"type": "number", "minimum": 0, "maximum": 2},
            "maxTokens": {"type": "integer", "minimum": 1},
            "variables": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["name"],
                    "properties": {
                        "name": {"type": "string", "minLength": 1},
                        "type": {"type": "string"},
                        "description": {"type": "string"},
                    },
                },
            },
        },
    },
    input_ports=(_in(),),
    output_ports=(_out(data_type=DataType.text, label="Response"),),
)

TOOL_TYPE = NodeTypeDescriptor(
    type_id="tool",
    category="core",
    title="Tool",
    default_config={
        "service": "http",
        "action": "request",
        "parameters": {"method": "GET", "url": "", "headers": {}, "body": None},
    },
    config_schema={
        "type": "object",
        "required": ["service", "action"],
        "properties": {
            "service": {"type": "string"},
            "action": {"type": "string"},
            "parameters": {
                "type": "object",
                "properties": {
                    "method": {"enum": HTTP_METHODS},
                    "url": {"type": "string"},
                    "headers": {"type": "object", "additionalProperties": {"type": "string"}},
                },
            },
        },
        "if": {"required": ["service"], "properties": {"service": {"const": "http"}}},
        "then": {
            "properties": {
                "parameters": {
                    "required": ["url"],
                    "properties": {"url": {"type": "string", "minLength": 1}},
                }
            }
        },
    },
    input_ports=(_in(),),
    output_ports=(_out(data_type=DataType.object, label="Response"),),
)

LOGIC_TYPE = NodeTypeDescriptor(
    type_id="logic",
    category="logic",
    title="Logic",
    default_config={
        "conditionType": "if-else",
        "condition": "",
        "branches": [
            {"condition": "true", "label": "true"},
            {"condition": "false", "label": "false"},
        ],
    },
    config_schema={
        "type": "object",
        "required": ["conditionType", "condition"],
        "properties": {
            "conditionType": {"enum": ["if-else", "switch", "filter"]},
            "condition": {"type": "string"},
            "branches": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["label"],
                    "properties": {
                        "condition": {"type": "string"},
                        "label": {"type": "string", "minLength": 1},
                    },
                },
            },
        },
    },
    input_ports=(_in(required=True),),
    output_ports=(_out("true", label="True"), _out("false", label="False")),
    input_port_resolver=_logic_inputs,
    output_port_resolver=_logic_outputs,
)

MEMORY_TYPE = NodeTypeDescriptor(
    type_id="memory",
    category="data",
    title="Memory",
    default_config={"operation": "store", "key": "", "value": "", "scope": "session"},
    config_schema={
        "type": "object",
        "required": ["operation", "key", "scope"],
        "properties": {
            "operation": {"enum": ["store", "retrieve", "update", "delete"]},
            "key": {"type": "string"},
            "scope": {"enum": ["session", "global", "user"]},
        },
    },
    input_ports=(_in(required=True, label="Data"),),
    output_ports=(_out(),),
    input_port_resolver=_memory_inputs,
)

INTEGRATION_TYPE = NodeTypeDescriptor(
    type_id="integration",
    category="integrations",
    title="Integration",
    default_config={
        "capabilityId": "",
        "endpoint": "",
        "method": "GET",
        "headers": {},
        "body": None,
        "responseMapping": {},
    },
    config_schema={
        "type": "object",
        "required": ["capabilityId", "endpoint", "method"],
        "properties": {
            "capabilityId": {"type": "string"},
            "endpoint": {"type": "string"},
            "method": {"enum": HTTP_METHODS},
            "headers": {"type": "object", "additionalProperties": {"type": "string"}},
            "responseMapping": {"type": "object", "additionalProperties": {"type": "string"}},
            "credentialId": {"type": ["string", "null"]},
        },
    },
    input_ports=(_in(),),
    output_ports=(_out(data_type=DataType.object, label="Response"),),
)

CORE_NODE_TYPES: Tuple[NodeTypeDescriptor, ...] = (
    PROMPT_TYPE,
    TOOL_TYPE,
    LOGIC_TYPE,
    MEMORY_TYPE,
    INTEGRATION_TYPE,
)


def default_registry(extra: Iterable[NodeTypeDescriptor] = ()) -> NodeTypeRegistry:
    registry = NodeTypeRegistry()
    for descriptor in CORE_NODE_TYPES:
        registry.register(descriptor)
    for descriptor in extra:
        registry.register(descriptor)
    return registry
