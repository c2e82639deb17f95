"""Translation of orchestrator errors to HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException

from ..core.exceptions import (
    ApprovalAuthorizationError,
    ExecutorNotFoundError,
    GraphError,
    InstanceNotFoundError,
    InvalidDecisionError,
    InvalidInstanceStateError,
    OrchestratorError,
    PermissionDeniedError,
    RateLimitExceededError,
    StaleStateError,
    TemplateInactiveError,
    TemplateNotFoundError,
    TemplateValidationError,
    TenantContextError,
    TriggerNotFoundError,
    WebhookAuthError,
    WebhookReplayError,
    WebhookValidationError,
)

# First match wins; subclasses before their bases.
_STATUS_CODES: list[tuple[type[OrchestratorError], int]] = [
    (TemplateNotFoundError, 404),
    (InstanceNotFoundError, 404),
    (TriggerNotFoundError, 404),
    (StaleStateError, 409),
    (InvalidInstanceStateError, 409),
    (TemplateInactiveError, 409),
    (ApprovalAuthorizationError, 403),
    (PermissionDeniedError, 403),
    (WebhookAuthError, 401),
    (WebhookReplayError, 401),
    (TenantContextError, 400),
    (WebhookValidationError, 400),
    (InvalidDecisionError, 422),
    (TemplateValidationError, 422),
    (GraphError, 422),
    (ExecutorNotFoundError, 422),
    (RateLimitExceededError, 429),
]


def to_http(error: OrchestratorError) -> HTTPException:
    """Map an orchestrator error to an HTTPException; unknown errors become 500."""
    status_code = next((code for cls, code in _STATUS_CODES if isinstance(error, cls)), 500)

    headers = None
    if isinstance(error, RateLimitExceededError):
        headers = {"Retry-After": str(error.retry_after)}
    elif isinstance(error, StaleStateError):
        headers = {"Retry-After": "0"}

    detail = error.message if status_code != 422 else {"message": error.message, **error.details}
    return HTTPException(status_code=status_code, detail=detail, headers=headers)
