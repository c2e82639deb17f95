"""Service layer for business logic."""

from .instance_service import InstanceService
from .template_service import TemplateService
from .trigger_service import TriggerService

__all__ = [
    "InstanceService",
    "TemplateService",
    "TriggerService",
]
