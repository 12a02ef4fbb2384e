from __future__ import annotations

import asyncio
import json
from typing import Callable, List

import httpx
import pytest

from flow_compiler import compile_graph
from flow_compiler.deploy.client import EngineClient
from flow_compiler.deploy.orchestrator import DeploymentOrchestrator, map_status, trace_from_run
from flow_compiler.errors import DeploymentError
from flow_compiler.schema.models import DeploymentHandle, RunHandle, RunStatus
from flow_compiler.tests.graphs import research_graph
from shared.config import config

BASE_URL = "http://engine.test"


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> EngineClient:
    return EngineClient(BASE_URL, token="secret", transport=httpx.MockTransport(handler))


def _runs(*statuses: str):
    """Handler serving GET /runs/{id} with the given statuses, repeating the last."""
    calls: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        status = statuses[min(len(calls), len(statuses)) - 1]
        body = {"id": "run-1", "status": status, "steps": {"fetch": {"status": "SUCCEEDED", "output": {"ok": True}, "duration": 12}}}
        return httpx.Response(200, json=body)

    return handler, calls


@pytest.mark.parametrize(
    "engine_status, expected",
    [
        ("QUEUED", RunStatus.running),
        ("RUNNING", RunStatus.running),
        ("PAUSED", RunStatus.running),
        ("SUCCEEDED", RunStatus.succeeded),
        ("FAILED", RunStatus.failed),
        ("STOPPED", RunStatus.failed),
        ("TIMEOUT", RunStatus.failed),
        ("INTERNAL_ERROR", RunStatus.failed),
        ("succeeded", RunStatus.succeeded),
    ],
)
def test_engine_status_mapping(engine_status: str, expected: RunStatus) -> None:
    assert map_status(engine_status) == expected


def test_unknown_engine_status_is_an_error() -> None:
    with pytest.raises(DeploymentError) as excinfo:
        map_status("EXPLODED", {"status": "EXPLODED"})
    assert excinfo.value.raw_response == {"status": "EXPLODED"}


def test_trace_from_run_accepts_step_lists() -> None:
    trace = trace_from_run(
        "run-9",
        {
            "status": "FAILED",
            "error": "step blew up",
            "steps": [
                {"name": "fetch", "status": "SUCCEEDED", "durationMs": 5},
                {"name": "summarize", "status": "FAILED", "errorMessage": "model down"},
            ],
        },
    )

    assert trace.status == RunStatus.failed
    assert trace.error == "step blew up"
    assert trace.node_ids() == ["fetch", "summarize"]
    assert trace.steps[0].duration_ms == 5
    assert trace.steps[1].error == "model down"
    assert trace.completed_at is not None


@pytest.mark.asyncio
async def test_deploy_posts_compiled_artifact() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": "flow-1"})

    artifact = compile_graph(research_graph()).artifact
    async with _client(handler) as client:
        handle = await DeploymentOrchestrator(client).deploy(artifact)

    assert handle.flow_id == "flow-1"
    assert handle.backend == "step_chain"
    assert handle.display_name == "agent"
    request = seen[0]
    assert (request.method, request.url.path) == ("POST", "/flows")
    assert request.headers["Authorization"] == "Bearer secret"
    body = json.loads(request.content)
    assert body["backend"] == "step_chain"
    assert body["definition"]["trigger"]["nextAction"] == "fetch"


@pytest.mark.asyncio
async def test_deploy_script_bundle_uses_summary() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"flowId": "flow-2"})

    artifact = compile_graph(research_graph(), backend="script").artifact
    async with _client(handler) as client:
        handle = await DeploymentOrchestrator(client).deploy(artifact)

    assert handle.flow_id == "flow-2"
    assert handle.display_name == "agent - AI Agent Workflow"


@pytest.mark.asyncio
async def test_trigger_sends_input() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"runId": "run-1"})

    handle = DeploymentHandle(flow_id="flow-1", backend="step_chain", display_name="agent")
    async with _client(handler) as client:
        run = await DeploymentOrchestrator(client).trigger(handle, {"topic": "rockets"})

    assert run.run_id == "run-1"
    assert run.flow_id == "flow-1"
    assert seen[0].url.path == "/flows/flow-1/run"
    assert json.loads(seen[0].content) == {"input": {"topic": "rockets"}}


@pytest.mark.asyncio
async def test_poll_until_done_follows_run_to_completion() -> None:
    handler, calls = _runs("QUEUED", "RUNNING", "SUCCEEDED")
    updates = []

    async with _client(handler) as client:
        orchestrator = DeploymentOrchestrator(client, poll_interval=0)
        trace = await orchestrator.poll_until_done(
            RunHandle(run_id="run-1", flow_id="flow-1"),
            on_update=lambda t: updates.append(t.status),
        )

    assert trace.status == RunStatus.succeeded
    assert calls == ["/runs/run-1"] * 3
    assert updates == [RunStatus.running, RunStatus.running, RunStatus.succeeded]
    assert trace.node_ids() == ["fetch"]
    assert trace.steps[0].output == {"ok": True}
    assert trace.steps[0].duration_ms == 12


@pytest.mark.asyncio
async def test_poll_timeout_returns_running_trace() -> None:
    handler, calls = _runs("RUNNING")

    async with _client(handler) as client:
        orchestrator = DeploymentOrchestrator(client, poll_interval=0.01)
        trace = await orchestrator.poll_until_done(RunHandle(run_id="run-1", flow_id="flow-1"), timeout=0.05)

    assert trace.status == RunStatus.running
    assert trace.completed_at is None
    assert len(calls) >= 2


@pytest.mark.asyncio
async def test_http_failure_carries_engine_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"message": "engine on fire"})

    async with _client(handler) as client:
        with pytest.raises(DeploymentError) as excinfo:
            await DeploymentOrchestrator(client).deploy(compile_graph(research_graph()).artifact)

    assert excinfo.value.status_code == 500
    assert excinfo.value.raw_response == {"message": "engine on fire"}


@pytest.mark.asyncio
async def test_network_failure_is_not_retried() -> None:
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(DeploymentError) as excinfo:
            await client.get_run("run-1")

    assert len(attempts) == 1
    assert excinfo.value.status_code is None
    assert "connection refused" in str(excinfo.value)


@pytest.mark.asyncio
async def test_missing_flow_id_is_an_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json={"ok": True})

    async with _client(handler) as client:
        with pytest.raises(DeploymentError) as excinfo:
            await DeploymentOrchestrator(client).deploy(compile_graph(research_graph()).artifact)

    assert excinfo.value.raw_response == {"ok": True}


@pytest.mark.asyncio
async def test_deploy_and_run_then_delete() -> None:
    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(f"{request.method} {request.url.path}")
        if request.method == "DELETE":
            return httpx.Response(204)
        if request.url.path == "/flows":
            return httpx.Response(201, json={"id": "flow-7"})
        if request.url.path == "/flows/flow-7/run":
            return httpx.Response(201, json={"id": "run-7"})
        return httpx.Response(200, json={"status": "SUCCEEDED", "steps": {}})

    async with _client(handler) as client:
        orchestrator = DeploymentOrchestrator(client, poll_interval=0)
        handle, trace = await orchestrator.deploy_and_run(compile_graph(research_graph()).artifact, {"topic": "x"})
        await orchestrator.delete(handle)

    assert trace.status == RunStatus.succeeded
    assert trace.run_id == "run-7"
    assert seen == ["POST /flows", "POST /flows/flow-7/run", "GET /runs/run-7", "DELETE /flows/flow-7"]


@pytest.mark.asyncio
async def test_update_replaces_definition_and_keeps_flow_id() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "flow-1", "version": 2})

    handle = DeploymentHandle(flow_id="flow-1", backend="step_chain", display_name="old")
    artifact = compile_graph(research_graph(), backend="script").artifact
    async with _client(handler) as client:
        updated = await DeploymentOrchestrator(client).update(handle, artifact)

    assert (seen[0].method, seen[0].url.path) == ("PUT", "/flows/flow-1")
    assert json.loads(seen[0].content)["backend"] == "script"
    assert updated.flow_id == "flow-1"
    assert updated.backend == "script"
    assert updated.display_name == "agent - AI Agent Workflow"
    assert updated.created_at == handle.created_at
    assert updated.raw == {"id": "flow-1", "version": 2}


@pytest.mark.asyncio
async def test_list_flows_reads_paged_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert (request.method, request.url.path) == ("GET", "/flows")
        body = {"data": [{"id": "flow-1", "displayName": "news", "backend": "step_chain"}, {"id": 7}]}
        return httpx.Response(200, json=body)

    async with _client(handler) as client:
        flows = await DeploymentOrchestrator(client).list_flows()

    assert [(flow.flow_id, flow.display_name, flow.backend) for flow in flows] == [
        ("flow-1", "news", "step_chain"),
        ("7", "7", "unknown"),
    ]


@pytest.mark.asyncio
async def test_list_flows_rejects_entries_without_id() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"name": "orphan"}])

    async with _client(handler) as client:
        with pytest.raises(DeploymentError) as excinfo:
            await DeploymentOrchestrator(client).list_flows()

    assert excinfo.value.raw_response == {"name": "orphan"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="started\n\nfetch ok\n"),
        httpx.Response(200, json={"logs": ["started", "fetch ok"]}),
    ],
)
async def test_logs_split_engine_output(response: httpx.Response) -> None:
    seen: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        return response

    async with _client(handler) as client:
        lines = await DeploymentOrchestrator(client).logs(RunHandle(run_id="run-1", flow_id="flow-1"))

    assert seen == ["/runs/run-1/logs"]
    assert lines == ["started", "fetch ok"]


@pytest.mark.asyncio
async def test_cancelled_poll_leaves_remote_run_alone() -> None:
    methods: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        return httpx.Response(200, json={"status": "RUNNING", "steps": {}})

    async with _client(handler) as client:
        orchestrator = DeploymentOrchestrator(client, poll_interval=0.01, poll_timeout=60)
        task = asyncio.create_task(orchestrator.poll_until_done(RunHandle(run_id="run-1", flow_id="flow-1")))
        while len(methods) < 2:
            await asyncio.sleep(0.005)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        polled = len(methods)
        await asyncio.sleep(0.05)

    assert len(methods) == polled
    assert set(methods) == {"GET"}


def test_client_requires_base_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "engine_base_url", None)
    with pytest.raises(DeploymentError):
        EngineClient()
