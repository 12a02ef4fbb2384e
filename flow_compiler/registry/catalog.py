"""
Capability catalog entries turned into node type descriptors.

The catalog itself lives outside this package; we only consume its entries
(name, required fields, category) and register one descriptor per entry.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Mapping, Sequence

from pydantic import ValidationError

from flow_compiler.errors import GraphParseError
from flow_compiler.registry.node_types import (
    INTEGRATION_TYPE,
    NodeTypeDescriptor,
    NodeTypeRegistry,
)
from flow_compiler.schema.models import CapabilityDescriptor


def load_capabilities(payload: Any) -> List[CapabilityDescriptor]:
    """
    Parse catalog entries from a JSON string, a list of mappings, or a mapping
    with a ``capabilities`` key.
    """

    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise GraphParseError(f"Invalid capability catalog JSON: {exc}") from exc
    if isinstance(payload, Mapping):
        payload = payload.get("capabilities", [])
    if not isinstance(payload, Sequence):
        raise GraphParseError(
            f"Unsupported capability catalog type {type(payload).__name__}; expected a list"
        )

    capabilities: List[CapabilityDescriptor] = []
    for index, entry in enumerate(payload):
        try:
            capabilities.append(CapabilityDescriptor.model_validate(entry))
        except ValidationError as exc:
            raise GraphParseError(f"Capability entry {index} is invalid: {exc}") from exc
    return capabilities


def descriptor_for_capability(capability: CapabilityDescriptor) -> NodeTypeDescriptor:
    defaults = {"capabilityId": capability.name}
    if capability.action_name:
        defaults["action"] = capability.action_name
    return NodeTypeDescriptor(
        type_id=capability.name,
        category=capability.category,
        title=capability.display_name or capability.name,
        default_config=defaults,
        config_schema={
            "type": "object",
            "required": list(capability.required_fields),
            "properties": {field: {} for field in capability.required_fields},
        },
        input_ports=INTEGRATION_TYPE.input_ports,
        output_ports=INTEGRATION_TYPE.output_ports,
    )


def register_capabilities(
    registry: NodeTypeRegistry, capabilities: Iterable[CapabilityDescriptor]
) -> NodeTypeRegistry:
    for capability in capabilities:
        registry.register(descriptor_for_capability(capability))
    return registry
