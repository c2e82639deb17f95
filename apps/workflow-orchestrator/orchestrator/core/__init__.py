"""Core module for the orchestrator - config, exceptions, and dependencies."""

from .config import settings, Settings
from .exceptions import (
    OrchestratorError,
    GraphError,
    TemplateValidationError,
    TemplateNotFoundError,
    InstanceNotFoundError,
    InvalidInstanceStateError,
    StaleStateError,
    ApprovalAuthorizationError,
    PermissionDeniedError,
    StepExecutionError,
)
from .dependencies import (
    get_orchestrator,
    get_trigger_manager,
    get_escalation_scheduler,
    get_template_service,
    get_instance_service,
    get_trigger_service,
)

__all__ = [
    # Config
    "settings",
    "Settings",
    # Exceptions
    "OrchestratorError",
    "GraphError",
    "TemplateValidationError",
    "TemplateNotFoundError",
    "InstanceNotFoundError",
    "InvalidInstanceStateError",
    "StaleStateError",
    "ApprovalAuthorizationError",
    "PermissionDeniedError",
    "StepExecutionError",
    # Dependencies
    "get_orchestrator",
    "get_trigger_manager",
    "get_escalation_scheduler",
    "get_template_service",
    "get_instance_service",
    "get_trigger_service",
]
