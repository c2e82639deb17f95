"""Core type definitions for the workflow orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class StepKind(str, Enum):
    """Kinds of nodes a workflow graph may contain."""

    TRIGGER = "trigger"
    ACTION = "action"
    APPROVAL = "approval"
    DECISION = "decision"
    AI = "ai"


class InstanceStatus(str, Enum):
    """Lifecycle states of a workflow instance."""

    PENDING = "pending"
    RUNNING = "running"
    WAITING_APPROVAL = "waiting_approval"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({InstanceStatus.COMPLETED, InstanceStatus.FAILED})
APPROVABLE_STATUSES = frozenset({InstanceStatus.RUNNING, InstanceStatus.WAITING_APPROVAL})


class ExecutionStatus(str, Enum):
    """Status of a single execution audit row."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


OPEN_EXECUTION_STATUSES = frozenset({ExecutionStatus.PENDING, ExecutionStatus.RUNNING})


class TriggerType(str, Enum):
    """External events that can create an instance."""

    MANUAL = "manual"
    WEBHOOK = "webhook"
    SCHEDULE = "schedule"
    ERROR = "error"


class DecisionType(str, Enum):
    """Human decisions accepted on an approval step."""

    APPROVE = "approve"
    REJECT = "reject"
    DELEGATE = "delegate"


# --- Raw designer graph ---


@dataclass
class WorkflowNode:
    """A node as authored in the designer."""

    id: str
    kind: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def action_type(self) -> str | None:
        return self.data.get("actionType")

    @property
    def config(self) -> dict[str, Any]:
        return self.data.get("config") or {}

    @property
    def label(self) -> str | None:
        return self.data.get("label")


@dataclass
class WorkflowEdge:
    """A directed edge between two designer nodes."""

    source: str
    target: str
    label: str | None = None


@dataclass
class WorkflowGraph:
    """Designer-authored graph: nodes, edges and viewport metadata."""

    nodes: list[WorkflowNode] = field(default_factory=list)
    edges: list[WorkflowEdge] = field(default_factory=list)
    viewport: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, definition: dict[str, Any]) -> WorkflowGraph:
        """Build a graph from the stored JSON definition.

        Node ``type`` is accepted as an alias of ``kind``.
        """
        nodes = [
            WorkflowNode(
                id=str(n.get("id", "")),
                kind=str(n.get("kind") or n.get("type") or ""),
                data=dict(n.get("data") or {}),
            )
            for n in definition.get("nodes", [])
        ]
        edges = [
            WorkflowEdge(
                source=str(e.get("source", "")),
                target=str(e.get("target", "")),
                label=e.get("label"),
            )
            for e in definition.get("edges", [])
        ]
        return cls(nodes=nodes, edges=edges, viewport=dict(definition.get("viewport") or {}))

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [{"id": n.id, "kind": n.kind, "data": n.data} for n in self.nodes],
            "edges": [
                {"source": e.source, "target": e.target, **({"label": e.label} if e.label is not None else {})}
                for e in self.edges
            ],
            "viewport": self.viewport,
        }


# --- Parsed graph ---


@dataclass
class StepDefinition:
    """One executable step of a parsed workflow graph."""

    node_id: str
    kind: StepKind
    executor_id: str
    config: dict[str, Any] = field(default_factory=dict)
    next_step_ids: list[str] = field(default_factory=list)
    conditions: dict[str, str] = field(default_factory=dict)
    label: str | None = None
    action_type: str | None = None

    @property
    def is_automatic(self) -> bool:
        """True for steps the orchestrator runs without waiting for a human."""
        return self.kind != StepKind.APPROVAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "kind": self.kind.value,
            "executorId": self.executor_id,
            "config": self.config,
            "nextStepIds": list(self.next_step_ids),
            "conditions": dict(self.conditions),
            "label": self.label,
            "actionType": self.action_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepDefinition:
        return cls(
            node_id=data["nodeId"],
            kind=StepKind(data["kind"]),
            executor_id=data["executorId"],
            config=dict(data.get("config") or {}),
            next_step_ids=list(data.get("nextStepIds") or []),
            conditions=dict(data.get("conditions") or {}),
            label=data.get("label"),
            action_type=data.get("actionType"),
        )


@dataclass
class ParsedWorkflowGraph:
    """Normalized step graph derived from a template."""

    start_node_id: str
    steps: dict[str, StepDefinition]
    metadata: dict[str, Any] = field(default_factory=dict)

    def get_step(self, node_id: str) -> StepDefinition:
        return self.steps[node_id]

    def to_dict(self) -> dict[str, Any]:
        return {
            "startNodeId": self.start_node_id,
            "steps": [step.to_dict() for step in self.steps.values()],
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParsedWorkflowGraph:
        steps = [StepDefinition.from_dict(s) for s in data.get("steps", [])]
        return cls(
            start_node_id=data["startNodeId"],
            steps={s.node_id: s for s in steps},
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class ValidationResult:
    """Outcome of validating a workflow graph."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)


# --- Step execution ---


@dataclass
class ExecutionContext:
    """Context passed into every executor call."""

    tenant_id: str
    requester_id: str | None
    instance_id: str | None
    reference_id: str | None = None
    request_data: dict[str, Any] = field(default_factory=dict)
    workflow_data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    """Result returned by a step executor."""

    success: bool
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    decision: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, message: str = "", data: dict[str, Any] | None = None, decision: str | None = None) -> ExecutionResult:
        return cls(success=True, message=message, data=data or {}, decision=decision)

    @classmethod
    def failure(cls, error: str, data: dict[str, Any] | None = None) -> ExecutionResult:
        return cls(success=False, message=error, data=data or {}, error=error)


@dataclass
class ApprovalDecision:
    """A human decision on the current step of an instance."""

    tenant_id: str
    instance_id: str
    user_id: str
    decision: DecisionType
    comments: str | None = None
    reason: str | None = None
    delegate_to: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class InstanceContext:
    """Inputs used to create a new instance."""

    tenant_id: str
    requester_id: str | None
    reference_id: str | None = None
    name: str | None = None
    request_data: dict[str, Any] = field(default_factory=dict)
    trigger: dict[str, Any] = field(default_factory=dict)
    trigger_id: str | None = None
    idempotency_key: str | None = None


# --- Persisted records ---


@dataclass
class TemplateRecord:
    """Stored workflow template."""

    id: str
    tenant_id: str
    name: str
    graph: WorkflowGraph
    is_active: bool
    version: int
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    published_at: datetime | None = None


@dataclass
class InstanceRecord:
    """Stored workflow instance. ``version`` is the optimistic concurrency counter."""

    id: str
    tenant_id: str
    template_id: str
    status: InstanceStatus
    current_step_id: str | None
    workflow_data: dict[str, Any]
    version: int
    template_version: int = 1
    reference_id: str | None = None
    requester_id: str | None = None
    name: str | None = None
    failure_reason: str | None = None
    escalation_count: int = 0
    trigger_id: str | None = None
    idempotency_key: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def current_assignee_id(self) -> str | None:
        return self.workflow_data.get("currentAssigneeId")

    @property
    def step_seq(self) -> int:
        return int(self.workflow_data.get("stepSeq", 0))

    def parsed_graph(self) -> ParsedWorkflowGraph:
        return ParsedWorkflowGraph.from_dict(self.workflow_data["parsedGraph"])


@dataclass
class ExecutionRecord:
    """Append-only audit row for a step or a decision."""

    id: str
    tenant_id: str
    instance_id: str
    step_id: str
    executor_id: str
    status: ExecutionStatus
    input_data: dict[str, Any] = field(default_factory=dict)
    output_data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    attempts: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass
class TriggerRecord:
    """Stored trigger definition."""

    id: str
    tenant_id: str
    template_id: str
    node_id: str
    type: TriggerType
    config: dict[str, Any] = field(default_factory=dict)
    active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class TeamRecord:
    """Team with its supervision hierarchy."""

    id: str
    tenant_id: str
    name: str
    primary_supervisor: str | None = None
    secondary_supervisors: list[str] = field(default_factory=list)
    members: list[str] = field(default_factory=list)
    is_active: bool = True

    def hierarchy(self) -> list[str]:
        """Users in authority order: primary, secondaries, then members."""
        ordered: list[str] = []
        for user in [self.primary_supervisor, *self.secondary_supervisors, *self.members]:
            if user and user not in ordered:
                ordered.append(user)
        return ordered


@dataclass
class DelegationRecord:
    """Standing delegation of approval authority."""

    id: str
    tenant_id: str
    delegator_id: str
    delegate_id: str
    template_id: str | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool = True
