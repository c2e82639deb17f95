"""
Expression engine for step configuration.

Resolves ``{{ }}`` templates in step config values and evaluates decision
rules. Uses simpleeval for safe expression evaluation (no eval() or exec()).

Available names: every top-level payload field, plus ``payload``,
``workflow`` (instance workflow data), ``outputs`` (outputs of completed
steps by node id), ``tenantId``, ``requesterId`` and ``referenceId``.
"""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime
from typing import Any

from simpleeval import DEFAULT_FUNCTIONS, DEFAULT_OPERATORS, SimpleEval

from .types import ExecutionContext

logger = logging.getLogger(__name__)

_TEMPLATE = re.compile(r"\{\{(.+?)\}\}")


class ExpressionError(ValueError):
    """Raised when a strict evaluation fails."""


class ExpressionEngine:
    """Safe expression evaluator with a whitelist of helper functions."""

    def __init__(self) -> None:
        self._setup_evaluator()

    def _setup_evaluator(self) -> None:
        self.evaluator = SimpleEval()
        self.evaluator.operators = DEFAULT_OPERATORS.copy()
        self.evaluator.functions = {
            **DEFAULT_FUNCTIONS,
            "str": str,
            "int": int,
            "float": float,
            "bool": bool,
            "len": len,
            "lower": lambda s: str(s).lower(),
            "upper": lambda s: str(s).upper(),
            "trim": lambda s: str(s).strip(),
            "includes": lambda s, search: search in s if isinstance(s, (list, dict)) else search in str(s),
            "startswith": lambda s, prefix: str(s).startswith(prefix),
            "endswith": lambda s, suffix: str(s).endswith(suffix),
            "abs": abs,
            "min": min,
            "max": max,
            "sum": sum,
            "round": round,
            "floor": math.floor,
            "ceil": math.ceil,
            "now": lambda: datetime.now().isoformat(),
            "hour": lambda: datetime.now().hour,
            "weekday": lambda: datetime.now().weekday(),
            "get": lambda d, key, default=None: d.get(key, default) if isinstance(d, dict) else default,
            "is_empty": lambda v: v is None or v == "" or (isinstance(v, (list, dict)) and len(v) == 0),
            "json_stringify": lambda v: json.dumps(v),
        }

    @staticmethod
    def build_names(payload: dict[str, Any], context: ExecutionContext) -> dict[str, Any]:
        """Build the evaluation namespace for a step."""
        names: dict[str, Any] = {
            key: value for key, value in payload.items() if isinstance(key, str) and key.isidentifier()
        }
        names.update(
            {
                "payload": payload,
                "workflow": context.workflow_data,
                "outputs": context.workflow_data.get("stepOutputs", {}),
                "tenantId": context.tenant_id,
                "requesterId": context.requester_id,
                "referenceId": context.reference_id,
            }
        )
        return names

    def evaluate(self, expression: str, names: dict[str, Any], strict: bool = True) -> Any:
        """
        Evaluate a single expression.

        Raises:
            ExpressionError: In strict mode, when evaluation fails.
        """
        self.evaluator.names = names
        try:
            return self.evaluator.eval(expression.strip())
        except Exception as e:
            if strict:
                raise ExpressionError(f"{e} (expression: {expression})") from e
            logger.warning("Expression evaluation failed: %s (expression: %s)", e, expression)
            return None

    def resolve(self, value: Any, names: dict[str, Any]) -> Any:
        """Resolve all {{ }} templates in a value, recursing into lists and dicts."""
        if isinstance(value, str):
            return self._resolve_string(value, names)
        if isinstance(value, list):
            return [self.resolve(item, names) for item in value]
        if isinstance(value, dict):
            return {key: self.resolve(val, names) for key, val in value.items()}
        return value

    def _resolve_string(self, string: str, names: dict[str, Any]) -> Any:
        trimmed = string.strip()

        # A string that is a single expression keeps the evaluated type
        if trimmed.startswith("{{") and trimmed.endswith("}}") and "{{" not in trimmed[2:-2]:
            return self.evaluate(trimmed[2:-2], names, strict=False)

        def replacer(match: re.Match[str]) -> str:
            return self._stringify(self.evaluate(match.group(1), names, strict=False))

        return _TEMPLATE.sub(replacer, string)

    def _stringify(self, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value)


# Singleton instance
expression_engine = ExpressionEngine()
