"""Core workflow engine components."""

from .types import (
    StepKind,
    InstanceStatus,
    ExecutionStatus,
    TriggerType,
    DecisionType,
    WorkflowGraph,
    StepDefinition,
    ParsedWorkflowGraph,
    ValidationResult,
    ExecutionContext,
    ExecutionResult,
    ApprovalDecision,
    InstanceContext,
    InstanceRecord,
    ExecutionRecord,
    TemplateRecord,
    TriggerRecord,
)
from .graph_parser import parse_workflow, validate_workflow
from .expression_engine import ExpressionEngine, ExpressionError, expression_engine
from .step_registry import StepRegistryClass, step_registry, register_all_executors
from .escalation import EscalationScheduler
from .notifications import DatabaseNotifier, Notifier
from .orchestrator import Orchestrator

__all__ = [
    "StepKind",
    "InstanceStatus",
    "ExecutionStatus",
    "TriggerType",
    "DecisionType",
    "WorkflowGraph",
    "StepDefinition",
    "ParsedWorkflowGraph",
    "ValidationResult",
    "ExecutionContext",
    "ExecutionResult",
    "ApprovalDecision",
    "InstanceContext",
    "InstanceRecord",
    "ExecutionRecord",
    "TemplateRecord",
    "TriggerRecord",
    "parse_workflow",
    "validate_workflow",
    "ExpressionEngine",
    "ExpressionError",
    "expression_engine",
    "StepRegistryClass",
    "step_registry",
    "register_all_executors",
    "EscalationScheduler",
    "DatabaseNotifier",
    "Notifier",
    "Orchestrator",
]
