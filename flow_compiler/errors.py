"""
Shared exception hierarchy for the flow compiler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional, Sequence

if TYPE_CHECKING:
    from flow_compiler.schema.models import Issue


class WorkflowCompilerError(Exception):
    """Base class for all compiler related errors."""


class GraphParseError(WorkflowCompilerError):
    """Raised when a graph payload cannot be turned into a Graph."""


class InvalidReferenceError(WorkflowCompilerError):
    """Raised when an edge references a node id that does not exist."""


class IssueError(WorkflowCompilerError):
    """Base for errors that carry a list of validation issues."""

    def __init__(self, message: str, issues: Optional[Sequence["Issue"]] = None) -> None:
        super().__init__(message)
        self.issues: List["Issue"] = list(issues or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.issues:
            return base
        details = "; ".join(issue.message for issue in self.issues)
        return f"{base}: {details}"


class StructuralError(IssueError):
    """Cycles, missing/ambiguous entry points, fan-out from a single port."""


class ConfigError(IssueError):
    """Missing required config or a node type with no mapping for an emitter."""


class SimulationError(WorkflowCompilerError):
    """Raised when the simulator cannot start walking a plan."""


class DeploymentError(WorkflowCompilerError):
    """Raised for engine HTTP/network failures; carries the raw response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        raw_response: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.raw_response = raw_response
