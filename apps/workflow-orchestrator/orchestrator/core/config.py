"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="ORCHESTRATOR_",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = True
    log_level: Literal["debug", "info", "warning", "error"] = "info"

    # Application settings
    app_name: str = "Workflow Orchestrator"
    app_version: str = "0.1.0"
    debug: bool = False
    public_base_url: str = "http://localhost:3000"

    # CORS settings
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Persistence
    database_url: str | None = None

    # Execution settings
    default_retry_delay: int = 1000
    max_workflow_iterations: int = 1000
    max_inline_wait_seconds: float = 30.0

    # Trigger ingestion
    webhook_timestamp_tolerance_seconds: int = 300
    webhook_rate_limit_max_requests: int = 100
    webhook_rate_limit_window_seconds: int = 900
    idempotency_ttl_seconds: int = 86400
    error_trigger_debounce_ms: int = 60000
    scheduler_token: str | None = None

    # Outbound e-mail (stubbed when no API URL is configured)
    email_api_url: str | None = None
    email_api_key: str | None = None
    email_from: str = "workflows@localhost"

    # AI/LLM settings
    default_ai_model: str = "gemini-2.0-flash"
    gemini_api_key: str | None = None
    openai_api_key: str | None = None
    anthropic_api_key: str | None = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
