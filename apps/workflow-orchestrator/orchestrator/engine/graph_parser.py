"""
Graph parser: converts designer node/edge graphs into executable step graphs.

Both entry points are pure functions. ``parse_workflow`` raises ``GraphError``
on structural problems; ``validate_workflow`` collects every problem it can
find and reports them as a ``ValidationResult``.
"""

from __future__ import annotations

import re
from collections import defaultdict
from typing import Any

from ..core.exceptions import GraphError
from .types import (
    ParsedWorkflowGraph,
    StepDefinition,
    StepKind,
    ValidationResult,
    WorkflowGraph,
)

GENERIC_EXECUTOR = "generic-action-executor"

# Normalized actionType -> executor id
ACTION_TYPE_TO_EXECUTOR: dict[str, str] = {
    # Messaging
    "send_email": "email-action-executor",
    "email": "email-action-executor",
    "notify_email": "email-action-executor",
    # Human approval
    "approve": "approval-action-executor",
    "approval": "approval-action-executor",
    "approve_request": "approval-action-executor",
    "manual_approval": "approval-action-executor",
    "auto_approve": "auto-approval-executor",
    "auto_approval": "auto-approval-executor",
    # Routing
    "decision": "decision-evaluator",
    "evaluate": "decision-evaluator",
    "decision_evaluator": "decision-evaluator",
    "ai_decision": "ai-decision-executor",
    "ai_routing": "ai-decision-executor",
    "ai_classification": "ai-decision-executor",
    # Triggers
    "start": "trigger-executor",
    "manual_trigger": "trigger-executor",
    "webhook_trigger": "trigger-executor",
    "schedule_trigger": "trigger-executor",
    "error_trigger": "trigger-executor",
    "form_trigger": "form-trigger-executor",
    "form_submission": "form-trigger-executor",
    "form_submitted": "form-trigger-executor",
    # Integration
    "http_request": "http-request-executor",
    "webhook_call": "http-request-executor",
    # Flow
    "wait": "wait-executor",
    "delay": "wait-executor",
    "generic": GENERIC_EXECUTOR,
    "generic_action": GENERIC_EXECUTOR,
    "noop": GENERIC_EXECUTOR,
}

# Executor used when a node carries no actionType
DEFAULT_EXECUTOR_BY_KIND: dict[StepKind, str] = {
    StepKind.TRIGGER: "trigger-executor",
    StepKind.ACTION: GENERIC_EXECUTOR,
    StepKind.APPROVAL: "approval-action-executor",
    StepKind.DECISION: "decision-evaluator",
    StepKind.AI: "ai-decision-executor",
}

# Designer palette node types -> (kind, executor id)
DESIGNER_NODE_TYPES: dict[str, tuple[StepKind, str]] = {
    "send-email": (StepKind.ACTION, "email-action-executor"),
    "approve-request": (StepKind.APPROVAL, "approval-action-executor"),
    "auto-approval": (StepKind.ACTION, "auto-approval-executor"),
    "decision-evaluator": (StepKind.DECISION, "decision-evaluator"),
    "generic-action": (StepKind.ACTION, GENERIC_EXECUTOR),
    "form-trigger": (StepKind.TRIGGER, "form-trigger-executor"),
    "ai-decision": (StepKind.AI, "ai-decision-executor"),
}

# Decision edge labels that declare an intentional loop back
RETRY_LABEL_PATTERN = re.compile(r"\b(retry|loop|again|redo|revise|resubmit)\b", re.IGNORECASE)

TERMINAL_KINDS = frozenset({StepKind.ACTION, StepKind.AI, StepKind.APPROVAL})


def normalize_action_type(action_type: str) -> str:
    return action_type.strip().lower().replace("-", "_").replace(" ", "_")


def resolve_executor_id(kind: StepKind, action_type: str | None, designer_executor: str | None = None) -> str:
    """Resolve the executor for a node. Unmapped action types fall back to the generic executor."""
    if action_type:
        return ACTION_TYPE_TO_EXECUTOR.get(normalize_action_type(action_type), GENERIC_EXECUTOR)
    if designer_executor:
        return designer_executor
    return DEFAULT_EXECUTOR_BY_KIND[kind]


def _coerce_graph(graph: WorkflowGraph | dict[str, Any]) -> WorkflowGraph:
    if isinstance(graph, WorkflowGraph):
        return graph
    return WorkflowGraph.from_dict(graph)


def _resolve_kind(raw_kind: str) -> tuple[StepKind, str | None] | None:
    if raw_kind in DESIGNER_NODE_TYPES:
        return DESIGNER_NODE_TYPES[raw_kind]
    try:
        return StepKind(raw_kind.lower()), None
    except ValueError:
        return None


def parse_workflow(
    graph: WorkflowGraph | dict[str, Any],
    meta: dict[str, Any] | None = None,
) -> ParsedWorkflowGraph:
    """
    Parse a designer graph into a ParsedWorkflowGraph.

    Steps keep node declaration order and ``next_step_ids`` keep edge
    declaration order, so identical input always yields an identical graph.

    Raises:
        GraphError: duplicate or unknown node ids, unknown node kinds, a
            missing or ambiguous start node, or bad decision labels.
    """
    graph = _coerce_graph(graph)

    seen: set[str] = set()
    duplicates: list[str] = []
    for node in graph.nodes:
        if node.id in seen and node.id not in duplicates:
            duplicates.append(node.id)
        seen.add(node.id)
    if duplicates:
        raise GraphError(f"Duplicate node ids: {', '.join(duplicates)}", duplicates)

    empty = [n.id for n in graph.nodes if not n.id]
    if empty:
        raise GraphError("Nodes must have a non-empty id", empty)

    kinds: dict[str, tuple[StepKind, str | None]] = {}
    unknown_kinds: list[str] = []
    for node in graph.nodes:
        resolved = _resolve_kind(node.kind)
        if resolved is None:
            unknown_kinds.append(node.id)
        else:
            kinds[node.id] = resolved
    if unknown_kinds:
        raise GraphError(f"Unknown node kinds on: {', '.join(unknown_kinds)}", unknown_kinds)

    dangling = sorted(
        {e.source for e in graph.edges if e.source not in seen}
        | {e.target for e in graph.edges if e.target not in seen}
    )
    if dangling:
        raise GraphError(f"Edges reference unknown nodes: {', '.join(dangling)}", dangling)

    outgoing: dict[str, list[tuple[str, str | None]]] = defaultdict(list)
    incoming: dict[str, int] = defaultdict(int)
    for edge in graph.edges:
        outgoing[edge.source].append((edge.target, edge.label))
        incoming[edge.target] += 1

    candidates = [
        n.id for n in graph.nodes
        if kinds[n.id][0] == StepKind.TRIGGER and incoming[n.id] == 0
    ]
    if not candidates:
        raise GraphError("No start node: expected one trigger node without incoming edges")
    if len(candidates) > 1:
        raise GraphError(f"Ambiguous start node: {', '.join(candidates)}", candidates)

    steps: dict[str, StepDefinition] = {}
    for node in graph.nodes:
        kind, designer_executor = kinds[node.id]
        edges_out = outgoing[node.id]
        conditions: dict[str, str] = {}

        if kind == StepKind.DECISION:
            conditions = _build_conditions(node.id, edges_out)

        steps[node.id] = StepDefinition(
            node_id=node.id,
            kind=kind,
            executor_id=resolve_executor_id(kind, node.action_type, designer_executor),
            config=dict(node.config),
            next_step_ids=[target for target, _ in edges_out],
            conditions=conditions,
            label=node.label,
            action_type=node.action_type,
        )

    return ParsedWorkflowGraph(
        start_node_id=candidates[0],
        steps=steps,
        metadata=dict(meta or {}),
    )


def _build_conditions(node_id: str, edges_out: list[tuple[str, str | None]]) -> dict[str, str]:
    # A single unlabeled edge is an unconditional fallthrough
    if len(edges_out) == 1 and not (edges_out[0][1] or "").strip():
        return {}

    conditions: dict[str, str] = {}
    seen_labels: set[str] = set()
    for target, label in edges_out:
        text = (label or "").strip()
        if not text:
            raise GraphError(f"Decision node {node_id} has an unlabeled outgoing edge", [node_id])
        folded = text.casefold()
        if folded in seen_labels:
            raise GraphError(f"Decision node {node_id} has duplicate label '{text}'", [node_id])
        seen_labels.add(folded)
        conditions[text] = target
    return conditions


def validate_workflow(graph: WorkflowGraph | dict[str, Any]) -> ValidationResult:
    """Validate a designer graph. Parse errors are reported, not raised."""
    graph = _coerce_graph(graph)

    try:
        parsed = parse_workflow(graph)
    except GraphError as e:
        return ValidationResult(is_valid=False, errors=[e.message])

    errors: list[str] = []
    steps = parsed.steps

    reachable = _reachable_from(parsed.start_node_id, steps)
    unreachable = [node_id for node_id in steps if node_id not in reachable]
    if unreachable:
        errors.append(f"Nodes not reachable from start: {', '.join(unreachable)}")

    for step in steps.values():
        fan_out = len(step.next_step_ids)
        is_end = bool(step.config.get("isEnd"))

        if fan_out == 0 and step.kind not in TERMINAL_KINDS:
            errors.append(f"Node {step.node_id} ({step.kind.value}) must have an outgoing edge")
        if is_end and fan_out > 0:
            errors.append(f"Node {step.node_id} is marked as end but has outgoing edges")
        if step.kind != StepKind.DECISION and fan_out > 1:
            errors.append(
                f"Node {step.node_id} has {fan_out} outgoing edges; "
                "only decision nodes may branch"
            )

    for cycle in _find_unintended_cycles(steps):
        errors.append(f"Cycle without a retry decision: {' -> '.join(cycle)}")

    return ValidationResult(is_valid=not errors, errors=errors)


def _reachable_from(start: str, steps: dict[str, StepDefinition]) -> set[str]:
    visited: set[str] = set()
    stack = [start]
    while stack:
        node_id = stack.pop()
        if node_id in visited:
            continue
        visited.add(node_id)
        stack.extend(steps[node_id].next_step_ids)
    return visited


def _is_retry_edge(step: StepDefinition, target: str) -> bool:
    if step.kind != StepKind.DECISION:
        return False
    return any(
        dest == target and RETRY_LABEL_PATTERN.search(label)
        for label, dest in step.conditions.items()
    )


def _find_unintended_cycles(steps: dict[str, StepDefinition]) -> list[list[str]]:
    """Find cycles once edges leaving decision nodes with retry labels are removed."""
    adjacency = {
        node_id: [t for t in step.next_step_ids if not _is_retry_edge(step, t)]
        for node_id, step in steps.items()
    }

    white, grey, black = 0, 1, 2
    color = {node_id: white for node_id in steps}
    cycles: list[list[str]] = []
    reported: set[frozenset[str]] = set()

    for root in steps:
        if color[root] != white:
            continue
        path: list[str] = [root]
        iterators = [iter(adjacency[root])]
        color[root] = grey
        while iterators:
            try:
                target = next(iterators[-1])
            except StopIteration:
                color[path.pop()] = black
                iterators.pop()
                continue
            if color[target] == grey:
                cycle = path[path.index(target):] + [target]
                key = frozenset(cycle)
                if key not in reported:
                    reported.add(key)
                    cycles.append(cycle)
            elif color[target] == white:
                color[target] = grey
                path.append(target)
                iterators.append(iter(adjacency[target]))
    return cycles
