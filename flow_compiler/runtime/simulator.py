"""
Local, deterministic execution of a LinearizedPlan.

The simulator never calls an engine or a model. It walks the plan from the
entry step, sleeps for a synthetic delay per step and records a synthetic
output for every step it visits. Outputs are flat: the entry step records the
flow input and every later step names its predecessor under ``inputFrom``.
A step whose type the chosen emitter cannot map fails and halts the walk, the
same way the real engine aborts a run.

Branch selection uses no expression evaluator:

1. an explicit override for the node id (``branch_overrides``);
2. otherwise the first branch, in declared port order, whose configured
   condition is a truthy literal (``true``, ``always``, ``default``, ``else``
   or ``*``);
3. otherwise the first branch.
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple, Union

from flow_compiler.emitters.base import Emitter
from flow_compiler.errors import SimulationError
from flow_compiler.schema.graph import Graph
from flow_compiler.schema.models import ExecutionTrace, LinearizedPlan, PlanStep, RunStatus, StepTrace
from shared.config import config
from shared.logger import get_logger

logger = get_logger(__name__)

OnUpdate = Callable[[ExecutionTrace], Union[None, Awaitable[None]]]

TRUTHY_CONDITIONS = frozenset({"true", "always", "default", "else", "*"})
CANCELLED_ERROR = "Simulation cancelled"


def _substitute(text: str, values: Any) -> str:
    if not isinstance(values, Mapping):
        return text
    for key, value in values.items():
        text = text.replace("{{" + str(key) + "}}", str(value))
    return text


def _prompt_details(cfg: Mapping[str, Any], payload: Any) -> Dict[str, Any]:
    return {
        "response": f"AI response to: {_substitute(str(cfg.get('instruction') or ''), payload)}",
        "model": cfg.get("model"),
    }


def _tool_details(cfg: Mapping[str, Any], payload: Any) -> Dict[str, Any]:
    if cfg.get("service") == "http":
        params = cfg.get("parameters") or {}
        return {
            "status": 200,
            "data": {"message": "HTTP request successful"},
            "method": params.get("method"),
            "url": params.get("url"),
        }
    return {"result": "Tool execution completed", "service": cfg.get("service"), "action": cfg.get("action")}


def _logic_details(cfg: Mapping[str, Any], payload: Any) -> Dict[str, Any]:
    details = {"conditionType": cfg.get("conditionType"), "condition": cfg.get("condition")}
    if cfg.get("conditionType") == "filter" and isinstance(payload, list):
        details["result"] = list(payload)
    return details


def _memory_details(cfg: Mapping[str, Any], payload: Any) -> Dict[str, Any]:
    operation = cfg.get("operation")
    details: Dict[str, Any] = {"operation": operation, "key": cfg.get("key"), "scope": cfg.get("scope")}
    if operation in ("store", "update"):
        details["stored"] = True
    elif operation == "retrieve":
        details["retrieved"] = f"data for {cfg.get('key')}"
    return details


def _integration_details(cfg: Mapping[str, Any], payload: Any) -> Dict[str, Any]:
    return {
        "integration": cfg.get("capabilityId"),
        "endpoint": cfg.get("endpoint"),
        "method": cfg.get("method"),
        "response": {"success": True},
    }


_DETAILS: Dict[str, Callable[[Mapping[str, Any], Any], Dict[str, Any]]] = {
    "prompt": _prompt_details,
    "tool": _tool_details,
    "logic": _logic_details,
    "memory": _memory_details,
    "integration": _integration_details,
}


class ExecutionSimulator:
    def __init__(
        self,
        emitter: Emitter,
        step_delay: Optional[float] = None,
        branch_overrides: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.emitter = emitter
        self.step_delay = config.simulator_step_delay if step_delay is None else step_delay
        self.branch_overrides: Dict[str, str] = dict(branch_overrides or {})

    async def simulate(
        self,
        plan: LinearizedPlan,
        input: Any = None,
        *,
        graph: Optional[Graph] = None,
        trace: Optional[ExecutionTrace] = None,
        on_update: Optional[OnUpdate] = None,
    ) -> ExecutionTrace:
        if not plan.chain:
            raise SimulationError("Plan has no steps to simulate")
        trace = trace or ExecutionTrace(run_id=f"sim-{uuid.uuid4().hex[:12]}")
        if trace.status.is_terminal:
            raise SimulationError(f"Trace '{trace.run_id}' is already finalized")

        logger.info("Simulating plan from '%s' (%d steps)", plan.entry_node_id, len(plan.chain))
        trace.status = RunStatus.running
        await _notify(on_update, trace)

        current: Optional[str] = plan.entry_node_id
        payload = input
        previous: Optional[str] = None
        step_trace: Optional[StepTrace] = None
        try:
            while current is not None:
                step = plan.step(current)
                step_trace = trace.append(StepTrace(node_id=step.node_id))
                await _notify(on_update, trace)

                if not self.emitter.supports(step.type_id):
                    error = f"Node type '{step.type_id}' has no {self.emitter.backend} mapping"
                    return await self._fail(trace, step_trace, error, on_update)

                await asyncio.sleep(self.step_delay)
                output = self._output(step, payload, graph, previous)

                next_step = step.next_default
                if step.is_branching:
                    label, error = self._select_branch(step, graph)
                    if error is not None:
                        return await self._fail(trace, step_trace, error, on_update)
                    output["branch"] = label
                    next_step = step.branches[label]

                step_trace.complete(RunStatus.succeeded, output=output)
                await _notify(on_update, trace)
                payload = output
                previous = step.node_id
                current = next_step
        except asyncio.CancelledError:
            if step_trace is not None and step_trace.status == RunStatus.running:
                step_trace.complete(RunStatus.failed, error=CANCELLED_ERROR)
            trace.finalize(RunStatus.failed, error=CANCELLED_ERROR)
            logger.warning("Simulation %s cancelled after %d steps", trace.run_id, len(trace.steps))
            raise

        trace.finalize(RunStatus.succeeded)
        await _notify(on_update, trace)
        logger.info("Simulation %s succeeded (%d steps)", trace.run_id, len(trace.steps))
        return trace

    async def _fail(
        self,
        trace: ExecutionTrace,
        step_trace: StepTrace,
        error: str,
        on_update: Optional[OnUpdate],
    ) -> ExecutionTrace:
        step_trace.complete(RunStatus.failed, error=error)
        trace.finalize(RunStatus.failed, error=f"Step '{step_trace.node_id}' failed: {error}")
        await _notify(on_update, trace)
        logger.warning("Simulation %s failed at '%s': %s", trace.run_id, step_trace.node_id, error)
        return trace

    def _output(
        self,
        step: PlanStep,
        payload: Any,
        graph: Optional[Graph],
        previous: Optional[str],
    ) -> Dict[str, Any]:
        output: Dict[str, Any] = {"nodeId": step.node_id, "typeId": step.type_id}
        if previous is None:
            output["input"] = payload
        else:
            output["inputFrom"] = previous
        if graph is None or step.node_id not in graph:
            return output
        node = graph.node(step.node_id)
        resolved = self.emitter.registry.resolve_config(node)
        details = _DETAILS.get(step.type_id)
        if details is None:
            descriptor = self.emitter.registry.maybe_get(step.type_id)
            if descriptor is not None and descriptor.category == "integrations":
                details = _integration_details
        if details is not None:
            output.update(details(resolved, payload))
        return output

    def _select_branch(self, step: PlanStep, graph: Optional[Graph]) -> Tuple[Optional[str], Optional[str]]:
        labels = list(step.branches or {})
        override = self.branch_overrides.get(step.node_id)
        if override is not None:
            if override not in labels:
                return None, f"Unknown branch override '{override}' for step '{step.node_id}'"
            return override, None

        conditions = self._branch_conditions(step, graph)
        for label in labels:
            if str(conditions.get(label, "")).strip().lower() in TRUTHY_CONDITIONS:
                return label, None
        return labels[0], None

    def _branch_conditions(self, step: PlanStep, graph: Optional[Graph]) -> Dict[str, Any]:
        if graph is None or step.node_id not in graph:
            return {}
        resolved = self.emitter.registry.resolve_config(graph.node(step.node_id))
        conditions: Dict[str, Any] = {}
        for branch in resolved.get("branches") or []:
            if isinstance(branch, Mapping) and branch.get("label") is not None:
                conditions.setdefault(str(branch["label"]), branch.get("condition"))
        return conditions


async def _notify(on_update: Optional[OnUpdate], trace: ExecutionTrace) -> None:
    if on_update is None:
        return
    result = on_update(trace)
    if inspect.isawaitable(result):
        await result
