from functools import lru_cache
from pathlib import Path
from typing import ClassVar, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_ROOT_ENV = str(Path(__file__).resolve().parents[1] / ".env")


class Settings(BaseSettings):
    """Server-side configuration for the orchestrator endpoint."""

    llm_mode: Literal["mock", "langdock"] = Field(default="langdock")

    # Langdock exposes an OpenAI-compatible chat completions API
    langdock_api_key: Optional[str] = Field(default=None)
    langdock_api_url: str = Field(default="https://api.langdock.com/v1")
    default_model: str = Field(default="claude-sonnet-4")

    # Per-agent model overrides; empty means default_model
    architect_model: Optional[str] = Field(default=None)
    frontend_model: Optional[str] = Field(default=None)
    backend_model: Optional[str] = Field(default=None)
    qa_model: Optional[str] = Field(default=None)

    llm_semaphore: int = Field(default=2, ge=1)
    llm_timeout_seconds: float = Field(default=120.0, gt=0)
    qa_delay_seconds: float = Field(default=1.0, ge=0)
    job_ttl_seconds: float = Field(default=900.0, gt=0)

    admin_api_key: Optional[str] = Field(default=None)
    build_id: str = Field(default="orch-langdock-v2")

    root_env: ClassVar[str] = _ROOT_ENV

    model_config = SettingsConfigDict(
        env_file=_ROOT_ENV,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def model_for(self, agent_key: str) -> str:
        override = getattr(self, f"{agent_key}_model", None)
        return override or self.default_model


class ClientSettings(BaseSettings):
    """Configuration for OrchestratorClient, read from HEFTCODER_* variables."""

    orchestrator_url: str = Field(default="http://localhost:8000/functions/v1/orchestrator")
    api_key: Optional[str] = Field(default=None)
    poll_interval_seconds: float = Field(default=1.5, gt=0)
    poll_timeout_seconds: float = Field(default=120.0, gt=0)
    planning_transport: Literal["poll", "stream"] = Field(default="poll")
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="HEFTCODER_",
        env_file=_ROOT_ENV,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_client_settings() -> ClientSettings:
    return ClientSettings()
