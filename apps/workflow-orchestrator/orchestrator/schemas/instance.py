"""Workflow instance and decision schemas."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class InstanceCreateRequest(BaseModel):
    """Manual trigger request."""

    template_id: str = Field(..., min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict, description="Request data handed to every step")
    reference_id: str | None = Field(None, description="Business object that caused this run")
    name: str | None = Field(None, max_length=255)


class DecisionRequest(BaseModel):
    """Approve, reject or delegate the current step."""

    decision: Literal["approve", "reject", "delegate"]
    comments: str | None = Field(None, max_length=2000)
    reason: str | None = Field(None, max_length=2000)
    delegate_to: str | None = Field(None, description="Required when delegating")
    metadata: dict[str, Any] = Field(default_factory=dict)


class ExecutionSchema(BaseModel):
    id: str
    step_id: str
    executor_id: str
    status: str
    input_data: dict[str, Any]
    output_data: dict[str, Any]
    error: str | None
    attempts: int
    started_at: str | None
    completed_at: str | None


class InstanceResponse(BaseModel):
    id: str
    template_id: str
    template_version: int
    name: str | None
    status: str
    current_step_id: str | None
    current_assignee_id: str | None
    reference_id: str | None
    requester_id: str | None
    failure_reason: str | None
    escalation_count: int
    version: int
    created_at: str | None
    updated_at: str | None
    completed_at: str | None


class ProgressSchema(BaseModel):
    completed_steps: int
    total_steps: int


class InstanceDetailResponse(InstanceResponse):
    request_data: dict[str, Any]
    delegations: list[dict[str, Any]]
    escalations: list[dict[str, Any]]
    step_outputs: dict[str, Any]
    progress: ProgressSchema
    executions: list[ExecutionSchema]
