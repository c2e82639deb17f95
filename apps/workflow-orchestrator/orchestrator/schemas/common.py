"""Common schemas used across the API."""

from typing import Any

from pydantic import BaseModel


class SuccessResponse(BaseModel):
    """Generic success response."""

    success: bool = True
    message: str | None = None


class ErrorResponse(BaseModel):
    """Error body returned by the exception handlers."""

    success: bool = False
    error: str
    details: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    executors: int = 0
    triggers: int = 0


class RootResponse(BaseModel):
    """Root endpoint response."""

    name: str
    version: str
    status: str
