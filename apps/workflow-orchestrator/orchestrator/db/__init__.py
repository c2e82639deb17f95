"""Database configuration and models."""

from .session import engine, async_session_factory, create_session_factory, init_db
from .models import (
    TemplateModel,
    InstanceModel,
    ExecutionModel,
    TriggerModel,
    TeamModel,
    TeamAssignmentModel,
    DelegationModel,
    PermissionGrantModel,
    NotificationModel,
)

__all__ = [
    "engine",
    "async_session_factory",
    "create_session_factory",
    "init_db",
    "TemplateModel",
    "InstanceModel",
    "ExecutionModel",
    "TriggerModel",
    "TeamModel",
    "TeamAssignmentModel",
    "DelegationModel",
    "PermissionGrantModel",
    "NotificationModel",
]
