"""Custom exceptions for the workflow orchestrator."""

from typing import Any


class OrchestratorError(Exception):
    """Base exception for all orchestrator errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Graph / template errors ---


class GraphError(OrchestratorError):
    """Raised when a raw workflow graph cannot be parsed."""

    def __init__(self, message: str, node_ids: list[str] | None = None) -> None:
        super().__init__(
            message=message,
            details={"node_ids": node_ids or []},
        )
        self.node_ids = node_ids or []


class TemplateValidationError(OrchestratorError):
    """Raised when a template graph fails validation."""

    def __init__(self, template_id: str | None, errors: list[str]) -> None:
        super().__init__(
            message="Workflow validation failed: " + "; ".join(errors),
            details={"template_id": template_id, "errors": errors},
        )
        self.template_id = template_id
        self.errors = errors


class TemplateNotFoundError(OrchestratorError):
    """Raised when a workflow template is not found."""

    def __init__(self, template_id: str) -> None:
        super().__init__(
            message=f"Workflow template not found: {template_id}",
            details={"template_id": template_id},
        )
        self.template_id = template_id


class TemplateInactiveError(OrchestratorError):
    """Raised when instantiating a template that is not published."""

    def __init__(self, template_id: str) -> None:
        super().__init__(
            message=f"Workflow template is not active: {template_id}",
            details={"template_id": template_id},
        )
        self.template_id = template_id


# --- Instance errors ---


class InstanceNotFoundError(OrchestratorError):
    """Raised when a workflow instance is not found."""

    def __init__(self, instance_id: str) -> None:
        super().__init__(
            message=f"Workflow instance not found: {instance_id}",
            details={"instance_id": instance_id},
        )
        self.instance_id = instance_id


class InvalidInstanceStateError(OrchestratorError):
    """Raised when an operation is not allowed in the instance's current status."""

    def __init__(self, instance_id: str, status: str, operation: str) -> None:
        super().__init__(
            message=f"Cannot {operation} instance {instance_id} in status '{status}'",
            details={"instance_id": instance_id, "status": status, "operation": operation},
        )
        self.instance_id = instance_id
        self.status = status


class StaleStateError(OrchestratorError):
    """Raised when an instance was modified concurrently. Safe to retry."""

    retryable = True

    def __init__(self, instance_id: str, expected_version: int) -> None:
        super().__init__(
            message=f"Instance {instance_id} was modified concurrently",
            details={"instance_id": instance_id, "expected_version": expected_version},
        )
        self.instance_id = instance_id
        self.expected_version = expected_version


# --- Authorization errors ---


class ApprovalAuthorizationError(OrchestratorError):
    """Raised when a user may not act on the current approval step."""

    def __init__(self, instance_id: str, user_id: str, step_id: str | None) -> None:
        super().__init__(
            message=f"User {user_id} is not authorized to act on step {step_id}",
            details={"instance_id": instance_id, "user_id": user_id, "step_id": step_id},
        )
        self.instance_id = instance_id
        self.user_id = user_id
        self.step_id = step_id


class PermissionDeniedError(OrchestratorError):
    """Raised when a user lacks a permission grant."""

    def __init__(self, user_id: str, action: str) -> None:
        super().__init__(
            message=f"User {user_id} lacks permission: {action}",
            details={"user_id": user_id, "action": action},
        )
        self.user_id = user_id
        self.action = action


class TenantContextError(OrchestratorError):
    """Raised when a repository is used before the tenant is set."""

    def __init__(self) -> None:
        super().__init__(message="Tenant context has not been set")


# --- Step execution errors ---


class ExecutorNotFoundError(OrchestratorError):
    """Raised when no handler is registered for an executor id."""

    def __init__(self, executor_id: str) -> None:
        super().__init__(
            message=f"Executor not found: {executor_id}",
            details={"executor_id": executor_id},
        )
        self.executor_id = executor_id


class RegistryFrozenError(OrchestratorError):
    """Raised when registering an executor after start-up."""

    def __init__(self, executor_id: str) -> None:
        super().__init__(
            message=f"Step registry is frozen, cannot register: {executor_id}",
            details={"executor_id": executor_id},
        )


class StepExecutionError(OrchestratorError):
    """Raised by executors when a step cannot be completed."""

    def __init__(self, message: str, step_id: str | None = None) -> None:
        super().__init__(message=message, details={"step_id": step_id})
        self.step_id = step_id


class UnmatchedDecisionError(OrchestratorError):
    """Raised when a decision token matches none of a step's condition labels."""

    def __init__(self, step_id: str, token: str, labels: list[str]) -> None:
        super().__init__(
            message=f"Decision '{token}' on step {step_id} matches none of: {', '.join(labels)}",
            details={"step_id": step_id, "token": token, "labels": labels},
        )
        self.step_id = step_id
        self.token = token


class AmbiguousTransitionError(OrchestratorError):
    """Raised when a non-decision step has more than one successor."""

    def __init__(self, step_id: str, next_step_ids: list[str]) -> None:
        super().__init__(
            message=f"Step {step_id} has multiple successors: {', '.join(next_step_ids)}",
            details={"step_id": step_id, "next_step_ids": next_step_ids},
        )
        self.step_id = step_id


# --- Trigger errors ---


class TriggerNotFoundError(OrchestratorError):
    """Raised when no active trigger matches a request."""

    def __init__(self, key: str) -> None:
        super().__init__(
            message=f"Trigger not found: {key}",
            details={"trigger": key},
        )
        self.key = key


class WebhookAuthError(OrchestratorError):
    """Raised when a webhook request fails authentication or IP checks."""

    def __init__(self, message: str, trigger_id: str | None = None) -> None:
        super().__init__(message=message, details={"trigger_id": trigger_id})
        self.trigger_id = trigger_id


class WebhookReplayError(OrchestratorError):
    """Raised when a webhook timestamp is outside the accepted window."""

    def __init__(self, message: str, trigger_id: str | None = None) -> None:
        super().__init__(message=message, details={"trigger_id": trigger_id})
        self.trigger_id = trigger_id


class WebhookValidationError(OrchestratorError):
    """Raised when a webhook request is malformed."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(
            message=message,
            details={"field": field} if field else {},
        )
        self.field = field


class RateLimitExceededError(OrchestratorError):
    """Raised when a webhook route exceeds its request budget."""

    def __init__(self, key: str, retry_after: int) -> None:
        super().__init__(
            message="Rate limit exceeded",
            details={"route": key, "retry_after": retry_after},
        )
        self.retry_after = retry_after


class InvalidDecisionError(OrchestratorError):
    """Raised when an approval decision is malformed."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(
            message=message,
            details={"field": field} if field else {},
        )
        self.field = field
