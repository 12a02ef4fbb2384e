from __future__ import annotations

from typing import Callable

import httpx
import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.workflows import services
from flow_compiler.deploy.client import EngineClient
from flow_compiler.deploy.orchestrator import DeploymentOrchestrator
from flow_compiler.tests.graphs import branch_graph, edge, graph, prompt, research_graph
from shared.config import config


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def engine() -> Callable[[Callable[[httpx.Request], httpx.Response]], None]:
    """Route deployment endpoints to a fake engine served by ``handler``."""

    def install(handler: Callable[[httpx.Request], httpx.Response]) -> None:
        async def orchestrator():
            async with EngineClient("http://engine.test", transport=httpx.MockTransport(handler)) as engine_client:
                yield DeploymentOrchestrator(engine_client, poll_interval=0)

        app.dependency_overrides[services.get_orchestrator] = orchestrator

    return install


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_node_types_describe_ports(client: TestClient) -> None:
    response = client.get("/api/v1/builder/node-types")

    assert response.status_code == 200
    types = {item["typeId"]: item for item in response.json()["nodeTypes"]}
    assert set(types) == {"prompt", "tool", "logic", "memory", "integration"}
    assert [port["id"] for port in types["logic"]["outputPorts"]] == ["true", "false"]
    assert types["prompt"]["defaultConfig"]["model"] == "gpt-4"


def test_validate_reports_errors_and_warnings(client: TestClient) -> None:
    payload = graph([prompt("a"), prompt("b"), prompt("c", description=None)], [edge("a", "c"), edge("b", "c")])

    response = client.post("/api/v1/workflows/validate", json={"graph": payload})

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is False
    assert body["errors"][0]["code"] == "ambiguous_entry_point"
    assert body["warnings"][0]["nodeId"] == "c"


def test_validate_rejects_unparseable_graph(client: TestClient) -> None:
    payload = graph([prompt("a")], [edge("a", "ghost")])

    response = client.post("/api/v1/workflows/validate", json={"graph": payload})

    assert response.status_code == 400
    problem = response.json()["detail"]
    assert problem["type"].endswith("/parse")
    assert problem["status"] == 400
    assert "ghost" in problem["detail"]


def test_compile_returns_plan_and_artifact(client: TestClient) -> None:
    response = client.post(
        "/api/v1/workflows/compile",
        json={"graph": branch_graph(), "backend": "step_chain", "agentName": "router"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["backend"] == "step_chain"
    assert [step["nodeId"] for step in body["plan"]["chain"]] == ["start", "check", "yes"]
    assert body["artifact"]["displayName"] == "router"
    assert body["artifact"]["steps"][0]["nextAction"] == {"true": "yes", "false": None}


def test_compile_script_backend(client: TestClient) -> None:
    response = client.post("/api/v1/workflows/compile", json={"graph": research_graph(), "backend": "script"})

    assert response.status_code == 200
    assert response.json()["artifact"]["manifest"]["failureModule"] == "failure_handler"


def test_compile_failure_is_problem_details(client: TestClient) -> None:
    response = client.post("/api/v1/workflows/compile", json={"graph": graph([prompt("a", instruction="")], [])})

    assert response.status_code == 422
    problem = response.json()["detail"]
    assert problem["title"] == "Compilation failed"
    assert problem["errors"][0]["code"] == "missing_required_config"
    assert problem["errors"][0]["nodeId"] == "a"


def test_simulate_follows_override(client: TestClient) -> None:
    response = client.post(
        "/api/v1/workflows/simulate",
        json={"graph": branch_graph(), "branchOverrides": {"check": "false"}, "stepDelay": 0},
    )

    assert response.status_code == 200
    trace = response.json()["trace"]
    assert trace["status"] == "succeeded"
    assert [step["nodeId"] for step in trace["steps"]] == ["start", "check"]
    assert trace["steps"][1]["output"]["branch"] == "false"


def test_deploy_creates_flow(client: TestClient, engine) -> None:
    engine(lambda request: httpx.Response(201, json={"id": "flow-1"}))

    response = client.post("/api/v1/deployments", json={"graph": research_graph()})

    assert response.status_code == 201
    deployment = response.json()["deployment"]
    assert deployment["flowId"] == "flow-1"
    assert deployment["backend"] == "step_chain"


def test_deploy_engine_failure_is_bad_gateway(client: TestClient, engine) -> None:
    engine(lambda request: httpx.Response(500, json={"message": "down"}))

    response = client.post("/api/v1/deployments", json={"graph": research_graph()})

    assert response.status_code == 502
    problem = response.json()["detail"]
    assert problem["engineResponse"] == {"message": "down"}


def test_run_waits_for_completion(client: TestClient, engine) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, json={"id": "run-1"})
        return httpx.Response(200, json={"status": "SUCCEEDED", "steps": {"fetch": {"status": "SUCCEEDED"}}})

    engine(handler)

    response = client.post("/api/v1/deployments/flow-1/runs", json={"input": {"topic": "x"}})

    assert response.status_code == 201
    body = response.json()
    assert body["run"]["runId"] == "run-1"
    assert body["trace"]["status"] == "succeeded"


def test_run_without_wait_skips_polling(client: TestClient, engine) -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.method)
        return httpx.Response(201, json={"id": "run-2"})

    engine(handler)

    response = client.post("/api/v1/deployments/flow-1/runs", json={"wait": False})

    assert response.status_code == 201
    assert response.json()["trace"] is None
    assert seen == ["POST"]


def test_deploy_without_engine_is_unavailable(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "engine_base_url", None)

    response = client.post("/api/v1/deployments", json={"graph": research_graph()})

    assert response.status_code == 503
    assert response.json()["detail"]["type"].endswith("/deploy")
