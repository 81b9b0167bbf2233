"""Rate Limiter — per-client sliding-window attempt throttle."""

from __future__ import annotations

import math
import time
from collections import defaultdict
from collections.abc import Callable

from confirm_gate.core.exceptions import RateLimitError
from confirm_gate.core.structured_logger import get_logger

logger = get_logger("RateLimiter")


class RateLimiter:
    """Sliding-window counter keyed by an arbitrary string.

    Rejected attempts are recorded too, so a client that keeps hammering
    stays blocked until it backs off for a full window. State is in-memory
    only and mutated without awaiting, which keeps it consistent on a single
    event loop.
    """

    def __init__(self, window_seconds: float = 60, clock: Callable[[], float] = time.time):
        self.window = window_seconds
        self._clock = clock
        self.requests: dict[str, list[float]] = defaultdict(list)

    def allow(self, key: str, max_attempts: int) -> bool:
        """Record an attempt for ``key`` and report whether it is within ``max_attempts``."""
        now = self._clock()
        attempts = [t for t in self.requests[key] if now - t < self.window]
        attempts.append(now)
        self.requests[key] = attempts

        if len(attempts) > max_attempts:
            logger.warning(
                "Rate limit exceeded for %s (%d/%d attempts)",
                key,
                len(attempts),
                max_attempts,
            )
            return False
        return True

    def retry_after(self, key: str) -> int:
        """Seconds until the oldest attempt for ``key`` leaves the window."""
        attempts = self.requests.get(key)
        if not attempts:
            return 0
        return max(1, math.ceil(attempts[0] + self.window - self._clock()))

    def check(self, scope: str, client_id: str, max_attempts: int) -> None:
        """Raise ``RateLimitError`` when ``client_id`` exceeds its budget for ``scope``."""
        key = f"{scope}:{client_id}"
        if not self.allow(key, max_attempts):
            wait_time = self.retry_after(key)
            raise RateLimitError(
                f"Too many attempts. Please wait {wait_time} seconds.",
                retry_after=wait_time,
                details={"retry_after": wait_time},
            )

    def cleanup(self) -> int:
        """Drop windows with no attempts left inside them. Returns the number removed."""
        now = self._clock()
        removed = 0
        for key in list(self.requests.keys()):
            live = [t for t in self.requests[key] if now - t < self.window]
            if live:
                self.requests[key] = live
            else:
                del self.requests[key]
                removed += 1
        if removed:
            logger.debug("Rate limiter cleanup", removed=removed, remaining=len(self.requests))
        return removed

    def __len__(self) -> int:
        return len(self.requests)


def client_identifier(
    forwarded_for: str | None, peer_host: str | None, trust_forwarded: bool = False
) -> str:
    """Derive the rate-limit key for a request.

    The first ``X-Forwarded-For`` hop is the original client when a trusted
    proxy sits in front; otherwise the transport peer address is used.
    """
    if trust_forwarded and forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    return peer_host or "unknown"
