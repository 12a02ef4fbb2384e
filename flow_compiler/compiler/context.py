"""
Container for shared compiler dependencies (registries, thresholds).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from flow_compiler.registry.catalog import register_capabilities
from flow_compiler.registry.node_types import NodeTypeRegistry, default_registry
from flow_compiler.schema.models import CapabilityDescriptor

DEFAULT_LARGE_GRAPH_THRESHOLD = 10


@dataclass(frozen=True)
class CompilerContext:
    registry: NodeTypeRegistry = field(default_factory=default_registry)
    capabilities: tuple = ()
    large_graph_threshold: int = DEFAULT_LARGE_GRAPH_THRESHOLD
    agent_name: str = "agent"

    @classmethod
    def create(
        cls,
        capabilities: Optional[Iterable[CapabilityDescriptor]] = None,
        *,
        large_graph_threshold: int = DEFAULT_LARGE_GRAPH_THRESHOLD,
        agent_name: str = "agent",
    ) -> "CompilerContext":
        caps = tuple(capabilities or ())
        registry = register_capabilities(default_registry(), caps)
        return cls(
            registry=registry,
            capabilities=caps,
            large_graph_threshold=large_graph_threshold,
            agent_name=agent_name,
        )
