"""HTTP request executor - calls external APIs from a workflow step."""

from __future__ import annotations

import json
from typing import Any, TYPE_CHECKING

import httpx

from .base import BaseExecutor
from ..engine.expression_engine import expression_engine
from ..engine.types import ExecutionResult

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, StepDefinition


class HttpRequestExecutor(BaseExecutor):
    """Makes an HTTP request; non-2xx responses fail the step unless ``ignoreErrors`` is set."""

    @property
    def executor_id(self) -> str:
        return "http-request-executor"

    @property
    def description(self) -> str:
        return "Makes HTTP requests to external APIs"

    async def execute(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        names = expression_engine.build_names(payload, context)
        url = expression_engine.resolve(self.get_config(step, "url", required=True), names)
        method = str(self.get_config(step, "method", "POST")).upper()
        timeout = float(self.get_config(step, "timeoutSeconds", 30))

        headers: dict[str, str] = {"Content-Type": "application/json"}
        headers_param = self.get_config(step, "headers", {})
        if isinstance(headers_param, list):
            for h in headers_param:
                if h.get("name"):
                    headers[h["name"]] = str(expression_engine.resolve(h.get("value", ""), names))
        elif isinstance(headers_param, dict):
            headers.update({k: str(v) for k, v in expression_engine.resolve(headers_param, names).items()})

        body = None
        if method in ("POST", "PUT", "PATCH"):
            body = expression_engine.resolve(self.get_config(step, "body", payload), names)
            if isinstance(body, str) and body:
                try:
                    body = json.loads(body)
                except json.JSONDecodeError:
                    pass  # Keep as string

        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.request(
                method=method,
                url=url,
                headers=headers,
                json=body if isinstance(body, (dict, list)) else None,
                content=body if isinstance(body, str) else None,
            )

        try:
            response_body: Any = response.json()
        except ValueError:
            response_body = response.text

        data = {"statusCode": response.status_code, "body": response_body}
        if response.is_error and not self.get_config(step, "ignoreErrors", False):
            return ExecutionResult.failure(f"{method} {url} returned {response.status_code}", data=data)
        return ExecutionResult.ok(message=f"{method} {url} -> {response.status_code}", data=data)
