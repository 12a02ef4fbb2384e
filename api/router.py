"""API router for the AgentFlow compiler API."""
from fastapi import APIRouter
from .workflows.router import router as workflows_router

router = APIRouter(prefix="/api")
router.include_router(workflows_router)
