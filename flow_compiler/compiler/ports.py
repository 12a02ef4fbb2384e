"""
Edge-to-port resolution shared by the validator and the linearizer.
"""

from __future__ import annotations

from typing import Optional, Sequence

from flow_compiler.schema.models import PortSpec


def resolve_port(port_id: Optional[str], ports: Sequence[PortSpec]) -> Optional[PortSpec]:
    """
    Return the port an edge end refers to.

    An edge may omit the port when the node declares exactly one; otherwise
    the id must match a declared port. ``None`` means the reference is
    unresolvable.
    """

    if port_id is None:
        return ports[0] if len(ports) == 1 else None
    for port in ports:
        if port.id == port_id:
            return port
    return None


def describe_port_problem(port_id: Optional[str], ports: Sequence[PortSpec], *, side: str) -> str:
    if not ports:
        return f"node declares no {side} ports"
    if port_id is None:
        names = ", ".join(port.id for port in ports)
        return f"{side} port must be named; node declares {names}"
    return f"unknown {side} port '{port_id}'"
