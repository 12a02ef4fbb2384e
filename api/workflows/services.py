from __future__ import annotations

from typing import Any, AsyncIterator, Optional, Sequence

from fastapi import HTTPException

from flow_compiler import CompilerContext, compile_graph, plan_graph
from flow_compiler.compiler.parse import parse_graph
from flow_compiler.compiler.validate_graph import validate_graph
from flow_compiler.deploy.client import EngineClient
from flow_compiler.deploy.orchestrator import DeploymentOrchestrator
from flow_compiler.emitters import get_emitter
from flow_compiler.errors import DeploymentError, GraphParseError, IssueError
from flow_compiler.runtime.simulator import ExecutionSimulator
from flow_compiler.schema.models import DeploymentHandle, Issue
from shared.config import config
from shared.logger import get_logger

from api.workflows import models as api_models

logger = get_logger(__name__)

PROBLEM_BASE = "https://agentflow.errors/workflows"
PARSE_PROBLEM = f"{PROBLEM_BASE}/parse"
COMPILE_PROBLEM = f"{PROBLEM_BASE}/compile"
DEPLOY_PROBLEM = f"{PROBLEM_BASE}/deploy"


def _raise_problem(
    *,
    type_uri: str,
    title: str,
    detail: str,
    status: int,
    errors: Optional[Sequence[Issue]] = None,
    engine_response: Any = None,
) -> None:
    problem = api_models.ProblemDetails(
        type=type_uri,
        title=title,
        status=status,
        detail=detail,
        errors=[api_models.ProblemError(**issue.model_dump()) for issue in errors or []],
        engine_response=engine_response,
    )
    raise HTTPException(status_code=status, detail=problem.model_dump(mode="json", by_alias=True))


def _context(payload: api_models.GraphRequest) -> CompilerContext:
    agent_name = getattr(payload, "agent_name", None) or config.default_agent_name
    return CompilerContext.create(
        payload.capabilities,
        large_graph_threshold=config.large_graph_threshold,
        agent_name=agent_name,
    )


def _backend(payload: Any) -> str:
    return getattr(payload, "backend", None) or config.default_backend


def _parse(payload: api_models.GraphRequest):
    try:
        return parse_graph(payload.graph)
    except GraphParseError as exc:
        _raise_problem(type_uri=PARSE_PROBLEM, title="Invalid graph", detail=str(exc), status=400)


def _raise_compile_problem(exc: IssueError) -> None:
    _raise_problem(
        type_uri=COMPILE_PROBLEM,
        title="Compilation failed",
        detail=str(exc),
        status=422,
        errors=exc.issues,
    )


def _raise_deploy_problem(exc: DeploymentError) -> None:
    status = 503 if exc.status_code is None and exc.raw_response is None else 502
    _raise_problem(
        type_uri=DEPLOY_PROBLEM,
        title="Deployment failed",
        detail=str(exc),
        status=status,
        engine_response=exc.raw_response,
    )


def list_node_types() -> api_models.NodeTypeResponse:
    registry = CompilerContext().registry
    return api_models.NodeTypeResponse(
        node_types=[
            api_models.NodeTypeInfo(
                type_id=descriptor.type_id,
                title=descriptor.title or descriptor.type_id,
                category=descriptor.category,
                default_config=dict(descriptor.default_config),
                config_schema=descriptor.config_schema,
                input_ports=list(descriptor.inputs_for(descriptor.resolve_config({}))),
                output_ports=list(descriptor.outputs_for(descriptor.resolve_config({}))),
            )
            for descriptor in registry.list()
        ]
    )


def validate_workflow(payload: api_models.ValidateRequest) -> api_models.ValidateResponse:
    context = _context(payload)
    graph = _parse(payload)
    result = validate_graph(graph, context.registry, large_graph_threshold=context.large_graph_threshold)
    return api_models.ValidateResponse(ok=result.is_valid, errors=result.errors, warnings=result.warnings)


def compile_workflow(payload: api_models.CompileRequest) -> api_models.CompileResponse:
    context = _context(payload)
    backend = _backend(payload)
    graph = _parse(payload)
    try:
        compiled = compile_graph(graph, context, backend=backend)
    except IssueError as exc:
        _raise_compile_problem(exc)
    return api_models.CompileResponse(
        backend=backend,
        plan=compiled.plan,
        artifact=compiled.artifact.to_wire(),
        warnings=compiled.validation.warnings,
    )


async def simulate_workflow(payload: api_models.SimulateRequest) -> api_models.SimulateResponse:
    context = _context(payload)
    graph = _parse(payload)
    try:
        planned = plan_graph(graph, context)
    except IssueError as exc:
        _raise_compile_problem(exc)
    emitter = get_emitter(
        _backend(payload),
        context.registry,
        agent_name=context.agent_name,
        capabilities=context.capabilities,
    )
    simulator = ExecutionSimulator(emitter, step_delay=payload.step_delay, branch_overrides=payload.branch_overrides)
    trace = await simulator.simulate(planned.plan, payload.input, graph=planned.graph)
    return api_models.SimulateResponse(plan=planned.plan, trace=trace, warnings=planned.validation.warnings)


async def get_orchestrator() -> AsyncIterator[DeploymentOrchestrator]:
    try:
        client = EngineClient()
    except DeploymentError as exc:
        _raise_deploy_problem(exc)
    async with client:
        yield DeploymentOrchestrator(client)


async def create_deployment(payload: api_models.DeployRequest, orchestrator: DeploymentOrchestrator) -> api_models.DeployResponse:
    context = _context(payload)
    graph = _parse(payload)
    try:
        compiled = compile_graph(graph, context, backend=_backend(payload))
    except IssueError as exc:
        _raise_compile_problem(exc)
    try:
        handle = await orchestrator.deploy(compiled.artifact)
    except DeploymentError as exc:
        _raise_deploy_problem(exc)
    return api_models.DeployResponse(deployment=handle, warnings=compiled.validation.warnings)


async def run_deployment(
    flow_id: str,
    payload: api_models.RunRequest,
    orchestrator: DeploymentOrchestrator,
) -> api_models.RunResponse:
    handle = DeploymentHandle(flow_id=flow_id, backend=_backend(payload), display_name=flow_id)
    try:
        run_handle = await orchestrator.trigger(handle, payload.input)
        trace = None
        if payload.wait:
            trace = await orchestrator.poll_until_done(run_handle, timeout=payload.timeout)
    except DeploymentError as exc:
        _raise_deploy_problem(exc)
    return api_models.RunResponse(run=run_handle, trace=trace)
