from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from flow_compiler.schema.models import (
    CapabilityDescriptor,
    DeploymentHandle,
    ExecutionTrace,
    Issue,
    LinearizedPlan,
    PortSpec,
    RunHandle,
)

Backend = Literal["step_chain", "script"]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProblemError(ApiModel):
    code: str
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    field: Optional[str] = None


class ProblemDetails(ApiModel):
    type: str
    title: str
    status: int
    detail: str
    errors: List[ProblemError] = Field(default_factory=list)
    engine_response: Optional[Any] = None


class NodeTypeInfo(ApiModel):
    type_id: str
    title: str
    category: str
    default_config: Dict[str, Any]
    config_schema: Dict[str, Any]
    input_ports: List[PortSpec]
    output_ports: List[PortSpec]


class NodeTypeResponse(ApiModel):
    node_types: List[NodeTypeInfo]


class GraphRequest(ApiModel):
    # Raw graph payload in either canvas or native shape.
    graph: Dict[str, Any]
    capabilities: List[CapabilityDescriptor] = Field(default_factory=list)


class ValidateRequest(GraphRequest):
    pass


class ValidateResponse(ApiModel):
    ok: bool
    errors: List[Issue] = Field(default_factory=list)
    warnings: List[Issue] = Field(default_factory=list)


class CompileRequest(GraphRequest):
    backend: Optional[Backend] = None
    agent_name: Optional[str] = None


class CompileResponse(ApiModel):
    ok: bool = True
    backend: Backend
    plan: LinearizedPlan
    artifact: Dict[str, Any]
    warnings: List[Issue] = Field(default_factory=list)


class SimulateRequest(CompileRequest):
    input: Any = None
    branch_overrides: Dict[str, str] = Field(default_factory=dict)
    step_delay: Optional[float] = Field(default=None, ge=0)


class SimulateResponse(ApiModel):
    plan: LinearizedPlan
    trace: ExecutionTrace
    warnings: List[Issue] = Field(default_factory=list)


class DeployRequest(CompileRequest):
    pass


class DeployResponse(ApiModel):
    deployment: DeploymentHandle
    warnings: List[Issue] = Field(default_factory=list)


class RunRequest(ApiModel):
    input: Any = None
    backend: Optional[Backend] = None
    wait: bool = True
    timeout: Optional[float] = Field(default=None, gt=0)


class RunResponse(ApiModel):
    run: RunHandle
    trace: Optional[ExecutionTrace] = None
