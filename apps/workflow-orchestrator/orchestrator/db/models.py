"""SQLModel database models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlmodel import Column, Field, SQLModel
from sqlalchemy import JSON


class TemplateModel(SQLModel, table=True):
    """Workflow template database model."""

    __tablename__ = "workflow_templates"

    id: str = Field(primary_key=True)
    tenant_id: str = Field(index=True)
    name: str = Field(index=True)
    description: str | None = Field(default=None)
    is_active: bool = Field(default=False, index=True)
    version: int = Field(default=1)

    # Designer graph: nodes, edges, viewport
    definition: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    published_at: datetime | None = Field(default=None)


class InstanceModel(SQLModel, table=True):
    """Workflow instance database model."""

    __tablename__ = "workflow_instances"

    id: str = Field(primary_key=True)
    tenant_id: str = Field(index=True)
    template_id: str = Field(index=True)
    template_version: int = Field(default=1)
    reference_id: str | None = Field(default=None, index=True)
    requester_id: str | None = Field(default=None)
    name: str | None = Field(default=None)

    status: str = Field(index=True)  # pending, running, waiting_approval, completed, failed
    current_step_id: str | None = Field(default=None)

    # Assignee, delegation/escalation trails, parsed graph snapshot
    workflow_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    failure_reason: str | None = Field(default=None)
    escalation_count: int = Field(default=0)
    trigger_id: str | None = Field(default=None)
    idempotency_key: str | None = Field(default=None, index=True)

    # Optimistic concurrency counter
    version: int = Field(default=1)

    created_at: datetime = Field(default_factory=datetime.now, index=True)
    updated_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = Field(default=None)


class ExecutionModel(SQLModel, table=True):
    """Step and decision audit rows."""

    __tablename__ = "workflow_executions"

    id: str = Field(primary_key=True)
    tenant_id: str = Field(index=True)
    instance_id: str = Field(index=True)
    step_id: str
    executor_id: str

    status: str = Field(index=True)  # pending, running, completed, failed

    input_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    output_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    error: str | None = Field(default=None)
    attempts: int = Field(default=0)

    # Insertion counter for stable ordering within the same timestamp
    seq: int = Field(default=0)
    started_at: datetime = Field(default_factory=datetime.now, index=True)
    completed_at: datetime | None = Field(default=None)


class TriggerModel(SQLModel, table=True):
    """Trigger definitions derived from template start nodes."""

    __tablename__ = "workflow_triggers"

    id: str = Field(primary_key=True)
    tenant_id: str = Field(index=True)
    template_id: str = Field(index=True)
    node_id: str
    type: str = Field(index=True)  # manual, webhook, schedule, error
    config: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class TeamModel(SQLModel, table=True):
    """Team with supervision hierarchy."""

    __tablename__ = "teams"

    id: str = Field(primary_key=True)
    tenant_id: str = Field(index=True)
    name: str
    primary_supervisor: str | None = Field(default=None)
    secondary_supervisors: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    members: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    is_active: bool = Field(default=True)


class TeamAssignmentModel(SQLModel, table=True):
    """Team responsible for a workflow template."""

    __tablename__ = "team_workflow_assignments"

    id: str = Field(primary_key=True)
    tenant_id: str = Field(index=True)
    team_id: str = Field(index=True)
    template_id: str = Field(index=True)
    priority: int = Field(default=100)
    is_active: bool = Field(default=True)


class DelegationModel(SQLModel, table=True):
    """Standing delegation of approval authority."""

    __tablename__ = "delegations"

    id: str = Field(primary_key=True)
    tenant_id: str = Field(index=True)
    delegator_id: str = Field(index=True)
    delegate_id: str = Field(index=True)
    template_id: str | None = Field(default=None)
    valid_from: datetime = Field(default_factory=datetime.now)
    valid_until: datetime | None = Field(default=None)
    is_active: bool = Field(default=True)


class PermissionGrantModel(SQLModel, table=True):
    """Action permission granted to a user, optionally scoped to one template."""

    __tablename__ = "permission_grants"

    id: str = Field(primary_key=True)
    tenant_id: str = Field(index=True)
    user_id: str = Field(index=True)
    action: str = Field(index=True)  # workflow.approve, workflow.create_instance, ...
    template_id: str | None = Field(default=None)


class NotificationModel(SQLModel, table=True):
    """In-app notification written by the notifier."""

    __tablename__ = "notifications"

    id: str = Field(primary_key=True)
    tenant_id: str = Field(index=True)
    user_id: str = Field(index=True)
    title: str
    message: str
    priority: str = Field(default="medium")
    url: str | None = Field(default=None)
    data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.now, index=True)
