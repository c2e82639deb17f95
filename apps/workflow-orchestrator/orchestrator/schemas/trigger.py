"""Trigger and webhook schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class TriggerResponse(BaseModel):
    id: str
    template_id: str
    node_id: str
    type: str
    active: bool
    config: dict[str, Any] = Field(description="Trigger config with secrets redacted")
    webhook_url: str | None = None


class TriggerUpdateRequest(BaseModel):
    active: bool | None = None
    config: dict[str, Any] | None = Field(None, description="Merged into the existing config")


class ScheduleFireRequest(BaseModel):
    fired_at: datetime | None = Field(None, description="Scheduler tick; repeated ticks fire once")


class WebhookAcceptedResponse(BaseModel):
    success: bool = True
    trigger_id: str
    instance_id: str | None
    duplicate: bool = False
    status: str | None = None
