"""Main entry point for the workflow orchestrator server."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.dependencies import get_escalation_scheduler, get_orchestrator, get_trigger_manager
from .db import init_db
from .engine.step_registry import register_all_executors, step_registry
from .routes import api_router, webhook_router
from .schemas.common import HealthResponse, RootResponse

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging()

    await init_db()
    logger.info("Database initialized")

    register_all_executors(step_registry)
    step_registry.freeze()

    escalations = get_escalation_scheduler()
    orchestrator = get_orchestrator()
    trigger_manager = get_trigger_manager()

    await escalations.start()
    await orchestrator.rehydrate_escalations()
    orchestrator.add_failure_listener(trigger_manager.fire_error)
    await trigger_manager.init()

    logger.info("%s v%s started on http://%s:%s", settings.app_name, settings.app_version, settings.host, settings.port)

    yield

    await trigger_manager.teardown()
    await escalations.shutdown()
    logger.info("%s stopped", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Multi-tenant workflow orchestration: templates, approvals, escalation and triggers",
        version=settings.app_version,
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Include routers
    app.include_router(api_router)
    app.include_router(webhook_router, tags=["Webhooks"])

    # Root endpoints
    @app.get("/", response_model=RootResponse)
    async def root() -> RootResponse:
        """Root endpoint."""
        return RootResponse(
            name=settings.app_name,
            version=settings.app_version,
            status="running",
        )

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            version=settings.app_version,
            executors=len(step_registry.list_executors()),
            triggers=len(get_trigger_manager().registry),
        )

    return app


# Create app instance
app = create_app()


def main() -> None:
    """Run the server."""
    uvicorn.run(
        "orchestrator.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
    )


if __name__ == "__main__":
    main()
