"""Built-in step executors."""

from .base import BaseExecutor
from .generic import GenericActionExecutor
from .triggers import TriggerExecutor, FormTriggerExecutor
from .email import EmailActionExecutor
from .http_request import HttpRequestExecutor
from .wait import WaitExecutor
from .approval import ApprovalActionExecutor, AutoApprovalExecutor
from .decision import DecisionEvaluatorExecutor
from .ai_decision import AIDecisionExecutor

__all__ = [
    "BaseExecutor",
    # Triggers
    "TriggerExecutor",
    "FormTriggerExecutor",
    # Actions
    "GenericActionExecutor",
    "EmailActionExecutor",
    "HttpRequestExecutor",
    "WaitExecutor",
    # Approvals and routing
    "ApprovalActionExecutor",
    "AutoApprovalExecutor",
    "DecisionEvaluatorExecutor",
    "AIDecisionExecutor",
]
