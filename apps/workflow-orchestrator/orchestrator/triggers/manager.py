"""
Trigger manager.

Normalizes manual, webhook, schedule and error triggers into
``Orchestrator.create_instance``. It never executes steps or processes
approvals itself.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import (
    PermissionDeniedError,
    TemplateNotFoundError,
    TemplateValidationError,
    TriggerNotFoundError,
    WebhookValidationError,
)
from ..engine.graph_parser import parse_workflow
from ..engine.orchestrator import Orchestrator
from ..engine.types import InstanceContext, InstanceRecord, TriggerRecord, TriggerType
from .idempotency import IdempotencyCache
from .rate_limit import RateLimiter
from .registry import TriggerRegistry, normalize_path, webhook_method
from .webhook_auth import (
    check_ip_allowed,
    fingerprint,
    header,
    verify_authentication,
    verify_signature,
    verify_timestamp,
)

logger = logging.getLogger(__name__)

CREATE_PERMISSION = "workflow.create_instance"

TIMESTAMP_HEADER = "X-Webhook-Timestamp"
EVENT_HEADER = "X-Webhook-Event"
SIGNATURE_HEADER = "X-Webhook-Signature"
IDEMPOTENCY_HEADER = "Idempotency-Key"

# Never copied into the trigger envelope
_SENSITIVE_HEADERS = {"authorization", "cookie", SIGNATURE_HEADER.lower()}

DEFAULT_ERROR_TYPES = ["execution_error"]


@dataclass
class WebhookOutcome:
    """Result of an accepted webhook delivery."""

    trigger_id: str
    instance_id: str | None
    duplicate: bool = False
    status: str | None = None


class TriggerManager:
    """Owns the trigger registry, the dedup cache and the webhook rate limiter."""

    def __init__(self, orchestrator: Orchestrator, config: Settings | None = None) -> None:
        self._orchestrator = orchestrator
        self._settings = config or default_settings
        self.registry = TriggerRegistry()
        self.idempotency = IdempotencyCache(self._settings.idempotency_ttl_seconds)
        self.rate_limiter = RateLimiter(
            self._settings.webhook_rate_limit_max_requests,
            self._settings.webhook_rate_limit_window_seconds,
        )
        self._last_error_fire: dict[str, float] = {}

    async def init(self) -> None:
        await self.registry.init(self._orchestrator.unit_of_work)
        await self.idempotency.init(self._orchestrator.unit_of_work)

    async def teardown(self) -> None:
        await self.registry.teardown()
        await self.idempotency.teardown()
        self.rate_limiter.reset()
        self._last_error_fire.clear()

    # ------------------------------------------------------------------
    # Manual
    # ------------------------------------------------------------------

    async def fire_manual(
        self,
        tenant_id: str,
        template_id: str,
        requester_id: str,
        payload: dict[str, Any] | None = None,
        reference_id: str | None = None,
        name: str | None = None,
    ) -> InstanceRecord:
        """
        Start an instance on behalf of a user.

        Raises:
            PermissionDeniedError: The user lacks ``workflow.create_instance``.
        """
        async with self._orchestrator.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            if not await uow.directory.has_permission(requester_id, CREATE_PERMISSION, template_id):
                raise PermissionDeniedError(requester_id, CREATE_PERMISSION)

        trigger = next(
            (t for t in self.registry.for_template(tenant_id, template_id) if t.type == TriggerType.MANUAL),
            None,
        )
        context = InstanceContext(
            tenant_id=tenant_id,
            requester_id=requester_id,
            reference_id=reference_id,
            name=name,
            request_data=payload or {},
            trigger={
                "type": TriggerType.MANUAL.value,
                "triggerId": trigger.id if trigger else None,
                "triggeredBy": requester_id,
                "firedAt": datetime.now().isoformat(),
            },
            trigger_id=trigger.id if trigger else None,
        )
        logger.info("Manual trigger of %s by %s (tenant %s)", template_id, requester_id, tenant_id)
        return await self._orchestrator.create_instance(template_id, context, start=True)

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    async def handle_webhook(
        self,
        tenant_id: str | None,
        method: str,
        path: str,
        headers: Mapping[str, str],
        raw_body: bytes,
        client_ip: str | None = None,
    ) -> WebhookOutcome:
        """
        Authenticate a webhook delivery and start an instance for it.

        Checks run in order: route, rate limit, IP allow-list,
        authentication, required headers, timestamp window, signature,
        event type, body. A repeated ``Idempotency-Key`` is acknowledged
        with the original instance id and no side effects.

        Raises:
            TriggerNotFoundError, RateLimitExceededError, WebhookAuthError,
            WebhookReplayError, WebhookValidationError
        """
        if not tenant_id:
            raise WebhookValidationError("X-Tenant-Id header is required", "X-Tenant-Id")

        route_path = normalize_path(path)
        method = method.upper()
        trigger = self.registry.find_webhook(tenant_id, route_path, method)
        if trigger is None:
            raise TriggerNotFoundError(f"{method} {route_path}")

        config = trigger.config
        rate_limit = config.get("rateLimit") or {}
        self.rate_limiter.hit(
            f"{tenant_id}:{trigger.id}",
            max_requests=rate_limit.get("maxRequests"),
            window_seconds=rate_limit.get("windowSeconds"),
        )

        security = config.get("security") or {}
        check_ip_allowed(client_ip, security.get("ipWhitelist"), trigger.id)
        claims = verify_authentication(config.get("authentication"), headers, trigger.id)

        timestamp = self._require_header(headers, TIMESTAMP_HEADER)
        event = self._require_header(headers, EVENT_HEADER)
        idempotency_key = self._require_header(headers, IDEMPOTENCY_HEADER)
        secret = security.get("signingSecret") or config.get("signingSecret")
        signature = self._require_header(headers, SIGNATURE_HEADER) if secret else None

        verify_timestamp(timestamp, self._settings.webhook_timestamp_tolerance_seconds, trigger.id)
        if secret:
            verify_signature(secret, signature, timestamp, method, route_path, raw_body, trigger.id)

        allowed_events = config.get("allowedEvents") or []
        if allowed_events and event not in allowed_events:
            raise WebhookValidationError(f"Event type '{event}' is not accepted", EVENT_HEADER)

        body = self._parse_body(raw_body, config.get("requiredFields") or [])

        key = (tenant_id, trigger.id, idempotency_key)
        if not self.idempotency.reserve(key):
            entry = self.idempotency.lookup(key)
            logger.info("Duplicate delivery %s on trigger %s acknowledged", idempotency_key, trigger.id)
            return WebhookOutcome(trigger.id, entry.instance_id if entry else None, duplicate=True)

        context = InstanceContext(
            tenant_id=tenant_id,
            requester_id=config.get("requesterId") or claims.get("sub"),
            reference_id=body.get("referenceId") if isinstance(body.get("referenceId"), str) else None,
            request_data=body,
            trigger={
                "type": TriggerType.WEBHOOK.value,
                "triggerId": trigger.id,
                "event": event,
                "method": method,
                "path": route_path,
                "timestamp": timestamp,
                "receivedAt": datetime.now().isoformat(),
                "headers": {k: v for k, v in headers.items() if k.lower() not in _SENSITIVE_HEADERS},
            },
            trigger_id=trigger.id,
            idempotency_key=idempotency_key,
        )
        try:
            record = await self._orchestrator.create_instance(trigger.template_id, context)
        except Exception:
            self.idempotency.release(key)
            raise
        self.idempotency.complete(key, record.id)

        logger.info(
            "Webhook %s %s accepted for trigger %s (event %s, signature %s) -> %s",
            method,
            route_path,
            trigger.id,
            event,
            fingerprint(signature),
            record.id,
        )
        record = await self._orchestrator.execute_instance(tenant_id, record.id)
        return WebhookOutcome(trigger.id, record.id, status=record.status.value)

    @staticmethod
    def _require_header(headers: Mapping[str, str], name: str) -> str:
        value = header(headers, name)
        if not value:
            raise WebhookValidationError(f"Missing required header {name}", name)
        return value

    @staticmethod
    def _parse_body(raw_body: bytes, required_fields: list[str]) -> dict[str, Any]:
        try:
            body = json.loads(raw_body or b"{}")
        except (ValueError, UnicodeDecodeError):
            raise WebhookValidationError("Body must be valid JSON", "body")
        if not isinstance(body, dict):
            raise WebhookValidationError("Body must be a JSON object", "body")

        missing = [f for f in required_fields if body.get(f) in (None, "")]
        if missing:
            raise WebhookValidationError(f"Missing required fields: {', '.join(missing)}", missing[0])
        return body

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    async def fire_schedule(
        self,
        tenant_id: str,
        trigger_id: str,
        fired_at: datetime | None = None,
    ) -> InstanceRecord | None:
        """
        Start an instance for an external scheduler tick.

        A repeated callback for the same tick returns None.
        """
        trigger = self.registry.get(trigger_id)
        if trigger is None or trigger.tenant_id != tenant_id or trigger.type != TriggerType.SCHEDULE:
            raise TriggerNotFoundError(trigger_id)

        fired_at = fired_at or datetime.now()
        tick = f"schedule:{fired_at.isoformat()}"
        key = (tenant_id, trigger.id, tick)
        if not self.idempotency.reserve(key):
            logger.info("Schedule tick %s for %s already fired", tick, trigger_id)
            return None

        context = InstanceContext(
            tenant_id=tenant_id,
            requester_id=trigger.config.get("requesterId"),
            request_data={**(trigger.config.get("payload") or {}), "firedAt": fired_at.isoformat()},
            trigger={
                "type": TriggerType.SCHEDULE.value,
                "triggerId": trigger.id,
                "firedAt": fired_at.isoformat(),
            },
            trigger_id=trigger.id,
            idempotency_key=tick,
        )
        try:
            record = await self._orchestrator.create_instance(trigger.template_id, context)
        except Exception:
            self.idempotency.release(key)
            raise
        self.idempotency.complete(key, record.id)
        return await self._orchestrator.execute_instance(tenant_id, record.id)

    # ------------------------------------------------------------------
    # Error
    # ------------------------------------------------------------------

    async def fire_error(self, instance: InstanceRecord, reason: str, cause: str) -> list[InstanceRecord]:
        """
        Start compensating workflows for an instance that failed.

        Registered as an orchestrator failure listener. Errors are logged,
        never raised, so one broken error workflow cannot mask another.
        """
        started: list[InstanceRecord] = []
        for trigger in self.registry.of_type(TriggerType.ERROR, instance.tenant_id):
            if not self._error_trigger_matches(trigger, instance, cause):
                continue
            if self._debounced(trigger):
                logger.info("Error trigger %s debounced", trigger.id)
                continue

            context = InstanceContext(
                tenant_id=instance.tenant_id,
                requester_id=trigger.config.get("requesterId") or instance.requester_id,
                reference_id=instance.reference_id,
                request_data={
                    "failedInstanceId": instance.id,
                    "failedTemplateId": instance.template_id,
                    "failedStepId": instance.current_step_id,
                    "reason": reason,
                    "cause": cause,
                },
                trigger={
                    "type": TriggerType.ERROR.value,
                    "triggerId": trigger.id,
                    "sourceInstanceId": instance.id,
                    "firedAt": datetime.now().isoformat(),
                },
                trigger_id=trigger.id,
            )
            try:
                started.append(await self._orchestrator.create_instance(trigger.template_id, context, start=True))
            except Exception:
                logger.exception("Error trigger %s could not start %s", trigger.id, trigger.template_id)
        return started

    @staticmethod
    def _error_trigger_matches(trigger: TriggerRecord, instance: InstanceRecord, cause: str) -> bool:
        if trigger.template_id == instance.template_id:
            return False
        source = trigger.config.get("sourceTemplateId")
        if source and source != instance.template_id:
            return False
        return cause in (trigger.config.get("errorTypes") or DEFAULT_ERROR_TYPES)

    def _debounced(self, trigger: TriggerRecord) -> bool:
        debounce = trigger.config.get("debounce") or {}
        if debounce.get("enabled", True) is False:
            return False
        window_ms = debounce.get("durationMs") or self._settings.error_trigger_debounce_ms

        now = time.monotonic()
        last = self._last_error_fire.get(trigger.id)
        if last is not None and (now - last) * 1000 < window_ms:
            return True
        self._last_error_fire[trigger.id] = now
        return False

    # ------------------------------------------------------------------
    # Template lifecycle
    # ------------------------------------------------------------------

    async def activate_template_triggers(self, tenant_id: str, template_id: str) -> list[TriggerRecord]:
        """Persist the trigger derived from the template's start node and refresh the cache."""
        async with self._orchestrator.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            template = await uow.templates.get(template_id)
            if not template:
                raise TemplateNotFoundError(template_id)

            parsed = parse_workflow(template.graph)
            start = parsed.get_step(parsed.start_node_id)
            config = dict(start.config)
            try:
                trigger_type = TriggerType(config.get("triggerType") or TriggerType.MANUAL.value)
            except ValueError:
                raise TemplateValidationError(template_id, [f"Unknown trigger type: {config.get('triggerType')}"])

            if trigger_type == TriggerType.WEBHOOK:
                config["path"] = normalize_path(config.get("path") or template_id)
                config["httpMethod"] = str(config.get("httpMethod") or "POST").upper()

            await uow.triggers.delete_for_template(template_id, keep_node_ids={start.node_id})
            trigger = await uow.triggers.upsert(template_id, start.node_id, trigger_type, config, active=True)
            await uow.commit()

        await self.registry.invalidate(tenant_id, template_id)
        if trigger.type == TriggerType.WEBHOOK:
            logger.info("Webhook %s %s bound to %s", webhook_method(trigger), trigger.config["path"], trigger.id)
        return [trigger]

    async def deactivate_template_triggers(self, tenant_id: str, template_id: str) -> None:
        async with self._orchestrator.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            await uow.triggers.set_active_for_template(template_id, False)
            await uow.commit()
        await self.registry.invalidate(tenant_id, template_id)

    async def list_triggers(self, tenant_id: str, template_id: str | None = None) -> list[TriggerRecord]:
        async with self._orchestrator.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            return await uow.triggers.list(template_id=template_id)

    async def update_trigger(
        self,
        tenant_id: str,
        trigger_id: str,
        active: bool | None = None,
        config: dict[str, Any] | None = None,
    ) -> TriggerRecord:
        """Edit a trigger's active flag or merge into its config."""
        async with self._orchestrator.unit_of_work() as uow:
            await uow.set_tenant(tenant_id)
            trigger = await uow.triggers.update(trigger_id, active=active, config=config)
            if trigger is None:
                raise TriggerNotFoundError(trigger_id)
            await uow.commit()
        await self.registry.invalidate(tenant_id, trigger.template_id)
        return trigger
