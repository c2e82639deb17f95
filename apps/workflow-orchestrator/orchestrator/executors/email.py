"""Email action executor - renders and sends workflow e-mails."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Literal, TYPE_CHECKING

import httpx
import markdown

from .base import BaseExecutor
from ..core.config import settings
from ..core.exceptions import StepExecutionError
from ..engine.expression_engine import expression_engine
from ..engine.types import ExecutionResult

if TYPE_CHECKING:
    from ..engine.types import ExecutionContext, StepDefinition

logger = logging.getLogger(__name__)


EMAIL_CSS = """
body { font-family: -apple-system, 'Segoe UI', Roboto, Arial, sans-serif; line-height: 1.5; color: #222; max-width: 600px; margin: 0 auto; padding: 16px; }
h1, h2 { color: #1f3a5f; }
a { color: #1f6feb; }
table { border-collapse: collapse; width: 100%; }
th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
blockquote { border-left: 3px solid #1f6feb; margin: 0; padding-left: 12px; color: #555; }
"""


def render_email_html(body: str, body_format: Literal["plain", "html", "markdown"]) -> str | None:
    """Render a message body to a styled HTML document, or None for plain text."""
    if body_format == "plain":
        return None

    if body_format == "markdown":
        content = markdown.markdown(
            body,
            extensions=["tables", "fenced_code", "nl2br", "sane_lists"],
        )
    else:
        if "<html" in body.lower() or "<body" in body.lower():
            return body
        content = body

    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<style>{EMAIL_CSS}</style></head><body>{content}</body></html>"
    )


async def send_email(
    to: str,
    subject: str,
    body: str,
    html_body: str | None,
    metadata: dict[str, Any],
) -> dict[str, Any]:
    """
    Deliver an e-mail through the configured HTTP e-mail API.

    Without ``email_api_url`` the message is logged and reported as a stub
    delivery so workflows stay runnable in development.
    """
    if not settings.email_api_url:
        logger.info("Email delivery not configured; would send '%s' to %s", subject, to)
        return {"success": True, "message_id": "stub-not-sent"}

    headers = {"Content-Type": "application/json"}
    if settings.email_api_key:
        headers["Authorization"] = f"Bearer {settings.email_api_key}"

    async with httpx.AsyncClient(timeout=15.0) as client:
        response = await client.post(
            settings.email_api_url,
            json={
                "from": settings.email_from,
                "to": to,
                "subject": subject,
                "text": body,
                "html": html_body,
                "metadata": metadata,
            },
            headers=headers,
        )
        response.raise_for_status()
        try:
            message_id = response.json().get("id")
        except ValueError:
            message_id = None
    return {"success": True, "message_id": message_id}


class EmailActionExecutor(BaseExecutor):
    """Sends an e-mail notification for a workflow step."""

    @property
    def executor_id(self) -> str:
        return "email-action-executor"

    @property
    def description(self) -> str:
        return "Sends email notifications (plain text, HTML, or Markdown)"

    async def execute(
        self,
        step: StepDefinition,
        payload: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        recipient = self.get_config(step, "recipient") or payload.get("email")
        if not recipient:
            raise StepExecutionError("Email recipient is required", step_id=step.node_id)

        names = expression_engine.build_names(payload, context)
        subject = str(expression_engine.resolve(self.get_config(step, "subject", "Workflow Notification"), names))
        body = str(
            expression_engine.resolve(
                self.get_config(step, "message", "A workflow action has been completed."),
                names,
            )
        )
        body_format = self.get_config(step, "bodyFormat", "markdown")
        html_body = render_email_html(body, body_format)

        delivery = await send_email(
            to=recipient,
            subject=subject,
            body=body,
            html_body=html_body,
            metadata={
                "tenantId": context.tenant_id,
                "instanceId": context.instance_id,
                "stepId": step.node_id,
            },
        )

        return ExecutionResult.ok(
            message=f"Email sent to {recipient}",
            data={
                "recipient": recipient,
                "subject": subject,
                "messageId": delivery.get("message_id"),
                "sentAt": datetime.now().isoformat(),
            },
        )
