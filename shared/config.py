"""
Type-safe configuration for AgentFlow using Pydantic Settings.

This module provides a centralized, type-safe configuration system
that loads from environment variables and .env files.

Usage:
    from shared.config import config

    orchestrator = DeploymentOrchestrator(client, poll_interval=config.engine_poll_interval)
"""
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AgentFlowConfig(BaseSettings):
    """
    Central configuration for AgentFlow.

    All configuration is loaded from environment variables or .env file.
    Provides type safety and validation at startup.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ============================================================================
    # Execution Engine
    # ============================================================================

    engine_base_url: Optional[str] = Field(default=None, description="Base URL of the execution engine API (e.g., http://localhost:8080/api/v1)")
    engine_api_token: Optional[str] = Field(default=None, description="Bearer token sent to the execution engine")
    engine_request_timeout: float = Field(default=30.0, gt=0, description="Per-request HTTP timeout in seconds")
    engine_poll_interval: float = Field(default=2.0, gt=0, description="Seconds between run status polls")
    engine_poll_timeout: float = Field(default=300.0, gt=0, description="Give up polling a run after this many seconds")

    # ============================================================================
    # Compiler & Simulator
    # ============================================================================

    default_agent_name: str = Field(default="agent", description="Agent name used in generated module names and summaries")
    default_backend: str = Field(default="step_chain", description="Emitter used when none is requested: 'step_chain' or 'script'")
    large_graph_threshold: int = Field(default=10, ge=1, description="Warn when a graph has more nodes than this")
    simulator_step_delay: float = Field(default=0.5, ge=0, description="Synthetic per-step delay of the local simulator, in seconds")

    # ============================================================================
    # Logging
    # ============================================================================

    log_level: str = Field(default="INFO", description="Root log level for AgentFlow loggers")

    @field_validator("default_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        if value not in ("step_chain", "script"):
            raise ValueError("default_backend must be 'step_chain' or 'script'")
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        return value.upper()

    # ============================================================================
    # Computed Properties
    # ============================================================================

    @property
    def is_engine_configured(self) -> bool:
        """Check if an execution engine endpoint is configured."""
        return self.engine_base_url is not None


# ============================================================================
# Global Config Instance
# ============================================================================

config = AgentFlowConfig()
