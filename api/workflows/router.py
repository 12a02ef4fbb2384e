from __future__ import annotations

from fastapi import APIRouter, Depends, status

from api.workflows import models as api_models
from api.workflows import services
from flow_compiler.deploy.orchestrator import DeploymentOrchestrator


router = APIRouter(prefix="/v1", tags=["workflows"])

PROBLEM_RESPONSES = {
    400: {"model": api_models.ProblemDetails},
    422: {"model": api_models.ProblemDetails},
}


@router.get("/builder/node-types", response_model=api_models.NodeTypeResponse)
async def get_node_types():
    return services.list_node_types()


@router.post("/workflows/validate", response_model=api_models.ValidateResponse, responses=PROBLEM_RESPONSES)
async def validate_workflow(payload: api_models.ValidateRequest):
    return services.validate_workflow(payload)


@router.post("/workflows/compile", response_model=api_models.CompileResponse, responses=PROBLEM_RESPONSES)
async def compile_workflow(payload: api_models.CompileRequest):
    return services.compile_workflow(payload)


@router.post("/workflows/simulate", response_model=api_models.SimulateResponse, responses=PROBLEM_RESPONSES)
async def simulate_workflow(payload: api_models.SimulateRequest):
    return await services.simulate_workflow(payload)


@router.post(
    "/deployments",
    response_model=api_models.DeployResponse,
    status_code=status.HTTP_201_CREATED,
    responses=PROBLEM_RESPONSES,
)
async def create_deployment(
    payload: api_models.DeployRequest,
    orchestrator: DeploymentOrchestrator = Depends(services.get_orchestrator),
):
    return await services.create_deployment(payload, orchestrator)


@router.post(
    "/deployments/{flow_id}/runs",
    response_model=api_models.RunResponse,
    status_code=status.HTTP_201_CREATED,
    responses=PROBLEM_RESPONSES,
)
async def run_deployment(
    flow_id: str,
    payload: api_models.RunRequest,
    orchestrator: DeploymentOrchestrator = Depends(services.get_orchestrator),
):
    return await services.run_deployment(flow_id, payload, orchestrator)
