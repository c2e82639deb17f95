"""FastAPI routes for the workflow orchestrator."""

from fastapi import APIRouter

from .instances import router as instances_router
from .templates import router as templates_router
from .triggers import router as triggers_router
from .webhooks import router as webhook_router

api_router = APIRouter(prefix="/api")
api_router.include_router(templates_router, tags=["Templates"])
api_router.include_router(instances_router, tags=["Instances"])
api_router.include_router(triggers_router, tags=["Triggers"])

__all__ = [
    "api_router",
    "webhook_router",
]
