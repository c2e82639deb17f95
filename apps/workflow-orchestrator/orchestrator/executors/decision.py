"""Decision evaluator - routes a workflow by evaluating configured rules."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, TYPE_CHECKING

from .base import BaseExecutor
from ..engine.expression_engine import expression_engine
from ..engine.types import ExecutionResult

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, StepDefinition

logger = logging.getLogger(__name__)


class DecisionEvaluatorExecutor(BaseExecutor):
    """
    Evaluates conditions and returns a decision token.

    Config, checked in this order:
        rules: list of ``{"condition": <expr>, "decision": <token>}``; the
            first rule whose condition is truthy wins.
        condition: a single expression; ``trueDecision`` (default
            "approve") or ``falseDecision`` (default "reject") is returned.
        defaultDecision: returned when no rule matched.

    Expression errors fail the step rather than picking a branch.
    """

    @property
    def executor_id(self) -> str:
        return "decision-evaluator"

    @property
    def description(self) -> str:
        return "Evaluates conditions and determines workflow routing"

    async def execute(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        names = expression_engine.build_names(payload, context)
        rules: list[dict[str, Any]] = self.get_config(step, "rules", [])
        condition: str | None = self.get_config(step, "condition")

        decision: str | None = None
        reason = "Default decision"

        for index, rule in enumerate(rules):
            expression = rule.get("condition")
            if not expression:
                continue
            if expression_engine.evaluate(expression, names):
                decision = str(rule.get("decision", ""))
                reason = f"Rule {index + 1} matched: {expression}"
                break

        if decision is None and condition:
            outcome = bool(expression_engine.evaluate(condition, names))
            decision = (
                self.get_config(step, "trueDecision", "approve")
                if outcome
                else self.get_config(step, "falseDecision", "reject")
            )
            reason = f"Condition '{condition}' evaluated to {outcome}"

        if decision is None:
            decision = self.get_config(step, "defaultDecision")

        if not decision:
            return ExecutionResult.failure(f"No rule matched on decision step {step.node_id}")

        logger.debug("Decision step %s resolved to %s (%s)", step.node_id, decision, reason)
        return ExecutionResult.ok(
            message=f"Decision: {decision} - {reason}",
            decision=decision,
            data={
                "decision": decision,
                "reason": reason,
                "evaluatedAt": datetime.now().isoformat(),
            },
        )
