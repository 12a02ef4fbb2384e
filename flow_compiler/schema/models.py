"""
Pydantic models describing agent graphs, compiled plans and execution traces.

Python attributes are snake_case. Documents handed to the UI or to an
execution engine use camelCase keys, so every wire model carries a camelCase
alias and accepts either spelling on input.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator
from pydantic.alias_generators import to_camel


JSONPrimitive = Union[str, int, float, bool, None]
JSONValue = Union[JSONPrimitive, Dict[str, Any], List[Any]]
JsonSchema = Dict[str, Any]

# Branch label -> first step of the sub-chain, or None for a terminal branch.
BranchMap = Dict[str, Optional[str]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        validate_assignment=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class FrozenWireModel(WireModel):
    model_config = ConfigDict(frozen=True)


# -----------------------------
# Ports
# -----------------------------
class PortDirection(str, Enum):
    input = "in"
    output = "out"


class DataType(str, Enum):
    text = "text"
    number = "number"
    boolean = "boolean"
    object = "object"
    array = "array"
    any = "any"


class PortSpec(FrozenWireModel):
    id: str = Field(min_length=1)
    direction: PortDirection
    data_type: DataType = DataType.any
    required: bool = False
    label: Optional[str] = None


# -----------------------------
# Graph elements
# -----------------------------
class WorkflowNode(WireModel):
    id: str = Field(min_length=1)
    type_id: str = Field(min_length=1)
    label: str = ""
    description: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    # Canvas coordinates; never read by the compiler.
    position: Dict[str, float] = Field(default_factory=lambda: {"x": 0.0, "y": 0.0})


class WorkflowEdge(WireModel):
    id: str = Field(min_length=1)
    source_node_id: str = Field(min_length=1)
    source_port: Optional[str] = None
    target_node_id: str = Field(min_length=1)
    target_port: Optional[str] = None


# -----------------------------
# Validation
# -----------------------------
class Issue(FrozenWireModel):
    code: str
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    field: Optional[str] = None


class ValidationResult(WireModel):
    errors: List[Issue] = Field(default_factory=list)
    warnings: List[Issue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error(self, code: str, message: str, **location: Any) -> None:
        self.errors.append(Issue(code=code, message=message, **location))

    def warn(self, code: str, message: str, **location: Any) -> None:
        self.warnings.append(Issue(code=code, message=message, **location))

    def codes(self) -> List[str]:
        return [issue.code for issue in self.errors]


# -----------------------------
# Linearized plan
# -----------------------------
class PlanStep(FrozenWireModel):
    node_id: str
    type_id: str
    label: str = ""
    next_default: Optional[str] = None
    branches: Optional[BranchMap] = None

    @model_validator(mode="after")
    def _check_exclusive_successors(self) -> "PlanStep":
        if self.branches is not None and self.next_default is not None:
            raise ValueError(f"Step '{self.node_id}' cannot have both branches and next_default")
        return self

    @property
    def step_id(self) -> str:
        return self.node_id

    @property
    def is_branching(self) -> bool:
        return self.branches is not None

    def successors(self) -> List[str]:
        if self.branches is not None:
            return [target for target in self.branches.values() if target is not None]
        return [self.next_default] if self.next_default else []


class LinearizedPlan(FrozenWireModel):
    entry_node_id: str
    chain: Tuple[PlanStep, ...] = ()

    _index: Dict[str, int] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _check_chain(self) -> "LinearizedPlan":
        seen: Dict[str, int] = {}
        for position, step in enumerate(self.chain):
            if step.node_id in seen:
                raise ValueError(f"Step '{step.node_id}' appears more than once in the plan")
            seen[step.node_id] = position
        if self.chain and self.entry_node_id not in seen:
            raise ValueError(f"Entry node '{self.entry_node_id}' is not part of the plan")
        for step in self.chain:
            for target in step.successors():
                if target not in seen:
                    raise ValueError(f"Step '{step.node_id}' points at unknown step '{target}'")
        return self

    def model_post_init(self, __context: Any) -> None:
        self._index = {step.node_id: position for position, step in enumerate(self.chain)}

    def index_of(self, step_id: str) -> int:
        try:
            return self._index[step_id]
        except KeyError as exc:
            raise KeyError(f"Step '{step_id}' is not part of the plan") from exc

    def step(self, step_id: str) -> PlanStep:
        return self.chain[self.index_of(step_id)]

    @property
    def entry_step(self) -> Optional[PlanStep]:
        if not self.chain:
            return None
        return self.step(self.entry_node_id)

    def predecessors(self, step_id: str) -> List[str]:
        return [step.node_id for step in self.chain if step_id in step.successors()]


# -----------------------------
# Compiled artifacts
# -----------------------------
NextAction = Union[str, BranchMap, None]


class StepChainTrigger(FrozenWireModel):
    name: str
    display_name: str
    type: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    next_action: NextAction = None


class StepChainStep(FrozenWireModel):
    name: str
    display_name: str
    type: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    next_action: NextAction = None


class StepChainDocument(FrozenWireModel):
    backend: ClassVar[str] = "step_chain"

    display_name: str
    trigger: StepChainTrigger
    steps: Tuple[StepChainStep, ...] = ()

    def step(self, name: str) -> StepChainStep:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(f"Step '{name}' is not part of the document")


class ScriptModule(FrozenWireModel):
    name: str
    language: str
    content: str


class ManifestStep(FrozenWireModel):
    id: str
    module: str
    next_default: Optional[str] = None
    branches: Optional[BranchMap] = None
    input_transforms: Dict[str, Dict[str, str]] = Field(default_factory=dict)


class ScriptManifest(FrozenWireModel):
    summary: str
    start: NextAction = None
    module_order: Tuple[str, ...] = ()
    failure_module: str
    input_schema: JsonSchema = Field(default_factory=dict)
    steps: Tuple[ManifestStep, ...] = ()


class ScriptBundle(FrozenWireModel):
    backend: ClassVar[str] = "script"

    modules: Tuple[ScriptModule, ...] = ()
    manifest: ScriptManifest

    def module(self, name: str) -> ScriptModule:
        for module in self.modules:
            if module.name == name:
                return module
        raise KeyError(f"Module '{name}' is not part of the bundle")


CompiledArtifact = Union[StepChainDocument, ScriptBundle]


# -----------------------------
# Execution traces
# -----------------------------
class RunStatus(str, Enum):
    pending = "pending"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.succeeded, RunStatus.failed)


class StepTrace(WireModel):
    node_id: str
    status: RunStatus = RunStatus.running
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    output: Optional[Any] = None
    error: Optional[str] = None
    duration_ms: Optional[int] = None

    def complete(self, status: RunStatus, *, output: Any = None, error: Optional[str] = None) -> None:
        self.completed_at = utcnow()
        self.status = status
        self.output = output
        self.error = error
        self.duration_ms = int((self.completed_at - self.started_at).total_seconds() * 1000)


class ExecutionTrace(WireModel):
    run_id: str
    status: RunStatus = RunStatus.pending
    steps: List[StepTrace] = Field(default_factory=list)
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def append(self, step: StepTrace) -> StepTrace:
        if self.status.is_terminal:
            raise ValueError(f"Trace '{self.run_id}' is already finalized")
        self.steps.append(step)
        return step

    def finalize(self, status: RunStatus, *, error: Optional[str] = None) -> None:
        if not status.is_terminal:
            raise ValueError(f"Cannot finalize trace with non-terminal status '{status.value}'")
        self.status = status
        self.error = error
        self.completed_at = utcnow()

    def node_ids(self) -> List[str]:
        return [step.node_id for step in self.steps]


# -----------------------------
# External collaborators
# -----------------------------
class CapabilityDescriptor(FrozenWireModel):
    name: str = Field(min_length=1)
    display_name: Optional[str] = None
    category: str = "integrations"
    required_fields: Tuple[str, ...] = ()
    piece_name: Optional[str] = None
    action_name: Optional[str] = None
    trigger_name: Optional[str] = None
    description: Optional[str] = None


class DeploymentHandle(FrozenWireModel):
    flow_id: str
    backend: str
    display_name: str
    created_at: datetime = Field(default_factory=utcnow)
    raw: Dict[str, Any] = Field(default_factory=dict)


class RunHandle(FrozenWireModel):
    run_id: str
    flow_id: str
    started_at: datetime = Field(default_factory=utcnow)
    raw: Dict[str, Any] = Field(default_factory=dict)
