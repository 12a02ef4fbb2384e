"""
FastAPI server for the AgentFlow compiler.

Provides REST API endpoints for:
- Node type discovery for the builder
- Graph validation, compilation and local simulation
- Deployment to the execution engine and run polling

Usage:
    uvicorn api.main:app --host 0.0.0.0 --port 8000 --reload
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logger import get_logger
from shared.config import config
from api.router import router

logger = get_logger("api.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("🚀 Starting AgentFlow API server...")
    if config.is_engine_configured:
        logger.info(f"✅ Execution engine: {config.engine_base_url}")
    else:
        logger.warning("⚠️ ENGINE_BASE_URL not set; deployment endpoints will return 503")
    yield
    logger.info("👋 AgentFlow API server shutting down...")


app = FastAPI(
    title="AgentFlow API",
    description="Compile agent graphs into executable flows",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unhandled exceptions and return a problem-details body."""
    error_logger = get_logger("api.main.errors")
    error_logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "type": "about:blank",
            "title": "Internal server error",
            "status": 500,
            "detail": "Internal server error",
            "errors": [],
        },
    )


# =============================================================================
# Health & Info Endpoints
# =============================================================================

@app.get("/health", tags=["System"])
async def health_check():
    """
    Health check endpoint.
    Returns server information including status, server name, and version.
    """
    return {
        "status": "ok",
        "server": "AgentFlow API",
        "version": "1.0.0",
        "engineConfigured": config.is_engine_configured,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
