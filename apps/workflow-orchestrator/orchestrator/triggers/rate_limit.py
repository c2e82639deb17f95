"""Fixed-window request limiter for webhook routes."""

from __future__ import annotations

import math
import time
from typing import Callable

from ..core.exceptions import RateLimitExceededError


class RateLimiter:
    """Counts requests per key in fixed windows of ``window_seconds``."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    def hit(self, key: str, max_requests: int | None = None, window_seconds: float | None = None) -> int:
        """
        Count one request for ``key`` and return the requests left in the window.

        Raises:
            RateLimitExceededError: The window is exhausted.
        """
        limit = max_requests or self.max_requests
        window = window_seconds or self.window_seconds
        now = self._clock()

        started, count = self._windows.get(key, (now, 0))
        if now - started >= window:
            started, count = now, 0

        if count >= limit:
            raise RateLimitExceededError(key, retry_after=math.ceil(started + window - now))

        self._windows[key] = (started, count + 1)
        return limit - count - 1

    def reset(self) -> None:
        self._windows.clear()
