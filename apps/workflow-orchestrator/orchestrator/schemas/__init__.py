"""Pydantic schemas for API requests and responses."""

from .common import ErrorResponse, HealthResponse, RootResponse, SuccessResponse
from .instance import (
    DecisionRequest,
    ExecutionSchema,
    InstanceCreateRequest,
    InstanceDetailResponse,
    InstanceResponse,
)
from .template import (
    TemplateCreateRequest,
    TemplateDetailResponse,
    TemplateResponse,
    TemplateUpdateRequest,
    ValidationResponse,
)
from .trigger import ScheduleFireRequest, TriggerResponse, TriggerUpdateRequest, WebhookAcceptedResponse

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "RootResponse",
    "SuccessResponse",
    "DecisionRequest",
    "ExecutionSchema",
    "InstanceCreateRequest",
    "InstanceDetailResponse",
    "InstanceResponse",
    "TemplateCreateRequest",
    "TemplateDetailResponse",
    "TemplateResponse",
    "TemplateUpdateRequest",
    "ValidationResponse",
    "ScheduleFireRequest",
    "TriggerResponse",
    "TriggerUpdateRequest",
    "WebhookAcceptedResponse",
]
