"""Webhook deduplication cache."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from ..repositories.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

IdempotencyKey = tuple[str, str, str]


@dataclass
class _Entry:
    expires_at: float
    instance_id: str | None = None

    @property
    def in_flight(self) -> bool:
        return self.instance_id is None


class IdempotencyCache:
    """
    ``(tenant_id, trigger_id, key) -> instance_id`` with a TTL.

    A delivery first ``reserve``s its key; a concurrent duplicate sees the
    reservation and is acknowledged without side effects. ``complete`` stores
    the created instance id, ``release`` drops the reservation after a failure
    so the sender may retry. The cache is rebuilt from persisted instances.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[IdempotencyKey, _Entry] = {}

    async def init(self, uow_factory: Callable[[], UnitOfWork]) -> None:
        since = datetime.now() - timedelta(seconds=self._ttl)
        async with uow_factory() as uow:
            uow.set_system_scope()
            instances = await uow.instances.scan_idempotency_keys(since)

        self._entries.clear()
        now = self._clock()
        for instance in instances:
            if not instance.trigger_id or not instance.idempotency_key:
                continue
            age = (datetime.now() - instance.created_at).total_seconds() if instance.created_at else 0.0
            self._entries[(instance.tenant_id, instance.trigger_id, instance.idempotency_key)] = _Entry(
                expires_at=now + max(self._ttl - age, 0.0),
                instance_id=instance.id,
            )
        logger.info("Idempotency cache rebuilt with %d keys", len(self._entries))

    async def teardown(self) -> None:
        self._entries.clear()

    def lookup(self, key: IdempotencyKey) -> _Entry | None:
        self._evict()
        return self._entries.get(key)

    def reserve(self, key: IdempotencyKey) -> bool:
        """Claim a key for a new delivery. False if it is already known."""
        self._evict()
        if key in self._entries:
            return False
        self._entries[key] = _Entry(expires_at=self._clock() + self._ttl)
        return True

    def complete(self, key: IdempotencyKey, instance_id: str) -> None:
        self._entries[key] = _Entry(expires_at=self._clock() + self._ttl, instance_id=instance_id)

    def release(self, key: IdempotencyKey) -> None:
        entry = self._entries.get(key)
        if entry is not None and entry.in_flight:
            del self._entries[key]

    def __len__(self) -> int:
        self._evict()
        return len(self._entries)

    def _evict(self) -> None:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
