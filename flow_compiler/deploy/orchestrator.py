"""
Deploy compiled artifacts to an execution engine and follow their runs.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from flow_compiler.deploy.client import EngineClient
from flow_compiler.errors import DeploymentError
from flow_compiler.runtime.simulator import OnUpdate
from flow_compiler.schema.models import (
    CompiledArtifact,
    DeploymentHandle,
    ExecutionTrace,
    RunHandle,
    RunStatus,
    ScriptBundle,
    StepTrace,
    utcnow,
)
from shared.config import config
from shared.logger import get_logger

logger = get_logger(__name__)

ENGINE_STATUSES: Dict[str, RunStatus] = {
    "QUEUED": RunStatus.running,
    "RUNNING": RunStatus.running,
    "PAUSED": RunStatus.running,
    "SUCCEEDED": RunStatus.succeeded,
    "FAILED": RunStatus.failed,
    "STOPPED": RunStatus.failed,
    "TIMEOUT": RunStatus.failed,
    "INTERNAL_ERROR": RunStatus.failed,
}


def map_status(value: Any, raw: Any = None) -> RunStatus:
    status = ENGINE_STATUSES.get(str(value or "").upper())
    if status is None:
        raise DeploymentError(f"Unknown engine run status '{value}'", raw_response=raw)
    return status


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return None


def _engine_steps(raw_steps: Any) -> Iterable[Tuple[str, Mapping[str, Any]]]:
    if isinstance(raw_steps, Mapping):
        for name, step in raw_steps.items():
            yield str(name), step if isinstance(step, Mapping) else {}
    elif isinstance(raw_steps, list):
        for step in raw_steps:
            if isinstance(step, Mapping):
                yield str(_first(step, "nodeId", "name", "id") or ""), step


def _duration(value: Any) -> Optional[int]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    return None


def trace_from_run(run_id: str, payload: Mapping[str, Any]) -> ExecutionTrace:
    """Translate an engine run document into an ExecutionTrace."""
    steps: List[StepTrace] = []
    for name, step in _engine_steps(payload.get("steps")):
        started = _first(step, "startedAt", "started")
        steps.append(
            StepTrace(
                node_id=name,
                status=map_status(step.get("status"), payload),
                started_at=started or utcnow(),
                completed_at=_first(step, "completedAt", "finished"),
                output=step.get("output"),
                error=_first(step, "error", "errorMessage"),
                duration_ms=_duration(_first(step, "durationMs", "duration")),
            )
        )
    trace = ExecutionTrace(
        run_id=run_id,
        status=map_status(payload.get("status"), payload),
        steps=steps,
        error=_first(payload, "error", "errorMessage"),
    )
    if _first(payload, "startedAt", "created") is not None:
        trace.started_at = _first(payload, "startedAt", "created")
    if trace.status.is_terminal:
        trace.completed_at = _first(payload, "completedAt", "finishTime") or utcnow()
    return trace


def _definition(artifact: CompiledArtifact) -> Dict[str, Any]:
    return {"backend": artifact.backend, "definition": artifact.to_wire()}


def _display_name(artifact: CompiledArtifact) -> str:
    if isinstance(artifact, ScriptBundle):
        return artifact.manifest.summary
    return artifact.display_name


class DeploymentOrchestrator:
    def __init__(
        self,
        client: EngineClient,
        poll_interval: Optional[float] = None,
        poll_timeout: Optional[float] = None,
    ) -> None:
        self.client = client
        self.poll_interval = config.engine_poll_interval if poll_interval is None else poll_interval
        self.poll_timeout = config.engine_poll_timeout if poll_timeout is None else poll_timeout

    async def deploy(self, artifact: CompiledArtifact) -> DeploymentHandle:
        payload = await self.client.create_flow(_definition(artifact))
        flow_id = _first(payload, "id", "flowId")
        if flow_id is None:
            raise DeploymentError("Engine did not return a flow id", raw_response=payload)
        display_name = _display_name(artifact)
        logger.info(f"Deployed {artifact.backend} flow '{display_name}' as {flow_id}")
        return DeploymentHandle(flow_id=str(flow_id), backend=artifact.backend, display_name=display_name, raw=payload)

    async def update(self, handle: DeploymentHandle, artifact: CompiledArtifact) -> DeploymentHandle:
        """Replace the definition of an existing flow; the flow id is kept."""
        payload = await self.client.update_flow(handle.flow_id, _definition(artifact))
        display_name = _display_name(artifact)
        logger.info(f"Updated flow {handle.flow_id} with {artifact.backend} definition '{display_name}'")
        return DeploymentHandle(
            flow_id=handle.flow_id,
            backend=artifact.backend,
            display_name=display_name,
            created_at=handle.created_at,
            raw=payload,
        )

    async def list_flows(self) -> List[DeploymentHandle]:
        handles: List[DeploymentHandle] = []
        for item in await self.client.list_flows():
            flow_id = _first(item, "id", "flowId")
            if flow_id is None:
                raise DeploymentError("Engine listed a flow without an id", raw_response=item)
            handles.append(
                DeploymentHandle(
                    flow_id=str(flow_id),
                    backend=str(_first(item, "backend") or "unknown"),
                    display_name=str(_first(item, "displayName", "name") or flow_id),
                    raw=item,
                )
            )
        return handles

    async def logs(self, run: RunHandle) -> List[str]:
        return await self.client.get_run_logs(run.run_id)

    async def trigger(self, handle: DeploymentHandle, input: Any = None) -> RunHandle:
        payload = await self.client.run_flow(handle.flow_id, input)
        run_id = _first(payload, "id", "runId")
        if run_id is None:
            raise DeploymentError("Engine did not return a run id", raw_response=payload)
        logger.info(f"Triggered flow {handle.flow_id}: run {run_id}")
        return RunHandle(run_id=str(run_id), flow_id=handle.flow_id, raw=payload)

    async def poll_until_done(
        self,
        run: RunHandle,
        timeout: Optional[float] = None,
        on_update: Optional[OnUpdate] = None,
    ) -> ExecutionTrace:
        """
        Poll ``GET /runs/{id}`` until the run is terminal.

        On timeout the last trace seen is returned with status ``running``;
        the caller decides whether to keep waiting. Cancelling the poll has
        no effect on the remote run.
        """

        loop = asyncio.get_running_loop()
        deadline = loop.time() + (self.poll_timeout if timeout is None else timeout)
        trace = ExecutionTrace(run_id=run.run_id, status=RunStatus.running)
        while True:
            payload = await self.client.get_run(run.run_id)
            trace = trace_from_run(run.run_id, payload)
            if on_update is not None:
                result = on_update(trace)
                if inspect.isawaitable(result):
                    await result
            if trace.status.is_terminal:
                logger.info(f"Run {run.run_id} finished with status {trace.status.value}")
                return trace
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(f"Stopped polling run {run.run_id} after timeout; last status {trace.status.value}")
                return trace
            await asyncio.sleep(min(self.poll_interval, remaining))

    async def delete(self, handle: DeploymentHandle) -> None:
        await self.client.delete_flow(handle.flow_id)
        logger.info(f"Deleted flow {handle.flow_id}")

    async def deploy_and_run(
        self,
        artifact: CompiledArtifact,
        input: Any = None,
        *,
        timeout: Optional[float] = None,
        on_update: Optional[OnUpdate] = None,
    ) -> Tuple[DeploymentHandle, ExecutionTrace]:
        handle = await self.deploy(artifact)
        run = await self.trigger(handle, input)
        trace = await self.poll_until_done(run, timeout=timeout, on_update=on_update)
        return handle, trace
