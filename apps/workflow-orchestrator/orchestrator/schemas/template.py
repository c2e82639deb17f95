"""Workflow template schemas."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class NodeSchema(BaseModel):
    """A designer node. ``type`` is accepted as an alias of ``kind``."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1, description="Unique node id")
    kind: str = Field(..., validation_alias=AliasChoices("kind", "type"), description="Node kind or designer type")
    data: dict[str, Any] = Field(default_factory=dict, description="actionType, config and label")


class EdgeSchema(BaseModel):
    """A directed edge. Labels route decision nodes."""

    source: str
    target: str
    label: str | None = None


class TemplateGraphSchema(BaseModel):
    nodes: list[NodeSchema] = Field(default_factory=list)
    edges: list[EdgeSchema] = Field(default_factory=list)
    viewport: dict[str, Any] = Field(default_factory=dict)

    def to_definition(self) -> dict[str, Any]:
        return {
            "nodes": [n.model_dump() for n in self.nodes],
            "edges": [e.model_dump(exclude_none=True) for e in self.edges],
            "viewport": self.viewport,
        }


class TemplateCreateRequest(TemplateGraphSchema):
    """Request schema for creating a template. Templates start unpublished."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Expense approval",
                "nodes": [
                    {"id": "start", "kind": "trigger", "data": {"config": {"triggerType": "manual"}}},
                    {"id": "manager", "kind": "approval", "data": {"config": {"teamId": "finance"}}},
                    {"id": "done", "kind": "action", "data": {"actionType": "send-email"}},
                ],
                "edges": [
                    {"source": "start", "target": "manager"},
                    {"source": "manager", "target": "done"},
                ],
            }
        }
    )


class TemplateUpdateRequest(BaseModel):
    """Partial update. Sending a graph bumps the version and unpublishes the template."""

    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)
    nodes: list[NodeSchema] | None = None
    edges: list[EdgeSchema] | None = None
    viewport: dict[str, Any] | None = None


class TemplateResponse(BaseModel):
    id: str
    name: str
    description: str | None
    is_active: bool
    version: int
    node_count: int
    created_at: str | None
    updated_at: str | None
    published_at: str | None


class TemplateDetailResponse(TemplateResponse):
    definition: dict[str, Any]


class ValidationResponse(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
