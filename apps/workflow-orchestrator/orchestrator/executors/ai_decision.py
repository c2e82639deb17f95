"""AI decision executor - asks an LLM to pick the next branch."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, TYPE_CHECKING

from .base import BaseExecutor
from ..core.config import settings
from ..engine.llm_provider import call_llm
from ..engine.types import ExecutionResult

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, StepDefinition

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a workflow decision assistant. Analyze requests and provide "
    "decisions with clear reasoning."
)


def parse_decision(text: str, options: list[str]) -> tuple[str | None, str, str]:
    """Extract (decision, reason, confidence) from a model reply.

    JSON replies are preferred; otherwise the first option mentioned in the
    text is used.
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = None

    if isinstance(parsed, dict) and parsed.get("decision"):
        return (
            str(parsed["decision"]),
            str(parsed.get("reason", "AI analysis completed")),
            str(parsed.get("confidence", "medium")),
        )

    lowered = text.lower()
    for option in options:
        if option.lower() in lowered:
            return option, text, "low"
    return None, text, "low"


class AIDecisionExecutor(BaseExecutor):
    """Uses an LLM to choose among a step's outgoing branch labels.

    Config: ``prompt`` (system prompt), ``model``, ``options`` (allowed
    tokens; defaults to the step's condition labels) and
    ``fallbackDecision`` (used when the model call fails; without it the
    step fails).
    """

    @property
    def executor_id(self) -> str:
        return "ai-decision-executor"

    @property
    def description(self) -> str:
        return "Uses AI to make decisions based on request context"

    async def execute(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        model = self.get_config(step, "model", settings.default_ai_model)
        options: list[str] = self.get_config(step, "options") or list(step.conditions) or ["approve", "reject"]
        fallback = self.get_config(step, "fallbackDecision")

        user_message = (
            f"Workflow decision request for step '{step.label or step.node_id}'.\n"
            f"Request data: {json.dumps(payload, default=str)}\n"
            f"Tenant {context.tenant_id}, requester {context.requester_id}.\n"
            f"Choose exactly one of: {', '.join(options)}. Respond in JSON: "
            '{"decision": "<option>", "reason": "<explanation>", "confidence": "high|medium|low"}'
        )

        try:
            response = await call_llm(
                model,
                [
                    {"role": "system", "content": self.get_config(step, "prompt", DEFAULT_SYSTEM_PROMPT)},
                    {"role": "user", "content": user_message},
                ],
                temperature=0.3,
                max_tokens=300,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            logger.warning("AI decision call failed on step %s: %s", step.node_id, e)
            if fallback:
                return ExecutionResult.ok(
                    message=f"AI decision failed, using fallback '{fallback}'",
                    decision=fallback,
                    data={"fallback": True, "error": str(e)},
                )
            return ExecutionResult.failure(f"AI decision failed: {e}")

        if not response.text:
            return ExecutionResult.failure("AI model returned an empty response")

        decision, reason, confidence = parse_decision(response.text, options)
        if not decision:
            if fallback:
                decision, reason = fallback, f"Unparseable model reply; fallback used: {response.text}"
            else:
                return ExecutionResult.failure(f"Could not read a decision from model reply: {response.text}")

        return ExecutionResult.ok(
            message=f"AI Decision: {decision} - {reason}",
            decision=decision,
            data={
                "model": model,
                "reason": reason,
                "confidence": confidence,
                "aiResponse": response.text,
                "evaluatedAt": datetime.now().isoformat(),
            },
        )
