"""Trigger ingestion: manual, webhook, schedule and error triggers."""

from .idempotency import IdempotencyCache
from .manager import TriggerManager, WebhookOutcome
from .rate_limit import RateLimiter
from .registry import TriggerRegistry

__all__ = [
    "IdempotencyCache",
    "RateLimiter",
    "TriggerManager",
    "TriggerRegistry",
    "WebhookOutcome",
]
