from __future__ import annotations

from typing import Iterable, Optional

from flow_compiler.emitters.base import Emitter
from flow_compiler.emitters.script import ScriptEmitter
from flow_compiler.emitters.step_chain import StepChainEmitter, StepMapping
from flow_compiler.registry.node_types import NodeTypeRegistry
from flow_compiler.schema.models import CapabilityDescriptor

BACKENDS = (StepChainEmitter.backend, ScriptEmitter.backend)


def get_emitter(
    backend: str,
    registry: Optional[NodeTypeRegistry] = None,
    *,
    agent_name: str = "agent",
    capabilities: Iterable[CapabilityDescriptor] = (),
) -> Emitter:
    if backend == StepChainEmitter.backend:
        emitter = StepChainEmitter(registry, agent_name=agent_name)
        for capability in capabilities:
            emitter.register_capability(capability)
        return emitter
    if backend == ScriptEmitter.backend:
        return ScriptEmitter(registry, agent_name=agent_name)
    raise ValueError(f"Unknown backend '{backend}'; expected one of {', '.join(BACKENDS)}")


__all__ = [
    "BACKENDS",
    "Emitter",
    "ScriptEmitter",
    "StepChainEmitter",
    "StepMapping",
    "get_emitter",
]
