"""
Request guard — fixed-window rate limiting with abuse detection.

The store is an explicit object owned by a RequestGuard instance, so two
guards never share state and expired entries are evicted by TTL instead
of accumulating for the life of the process.

Rules per (client key, endpoint):
    - At most ``max_requests`` in a window of ``window_seconds``
    - More than twice the limit within one window flags the client key
      as suspicious and blocks it, on every endpoint, for one hour
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from chequebatch.core.config import settings
from chequebatch.core.logging import get_logger
from chequebatch.pipeline.errors import SecurityCheckError

logger = get_logger(__name__)

SUSPICIOUS_BLOCK_SECONDS = 60 * 60
SUSPICIOUS_MULTIPLIER = 2


@dataclass
class RateWindow:
    count: int
    reset_at: float


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    remaining: int
    reset_at: float
    suspicious: bool = False
    reason: str | None = None


class RateLimitStore:
    """Counting windows and client blocks, each with an expiry time."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._windows: dict[str, RateWindow] = {}
        self._blocked: dict[str, float] = {}

    def now(self) -> float:
        return self._clock()

    def hit(self, key: str, window_seconds: float) -> RateWindow:
        """Count one request against `key`, opening a new window if needed."""
        now = self.now()
        window = self._windows.get(key)
        if window is None or window.reset_at <= now:
            window = RateWindow(count=0, reset_at=now + window_seconds)
            self._windows[key] = window
        window.count += 1
        return window

    def block(self, client_key: str, seconds: float) -> float:
        until = self.now() + seconds
        self._blocked[client_key] = until
        return until

    def blocked_until(self, client_key: str) -> float | None:
        until = self._blocked.get(client_key)
        if until is None:
            return None
        if until <= self.now():
            del self._blocked[client_key]
            return None
        return until

    def evict_expired(self) -> int:
        """Drop expired windows and blocks; returns how many were removed."""
        now = self.now()
        stale_windows = [k for k, w in self._windows.items() if w.reset_at <= now]
        stale_blocks = [k for k, until in self._blocked.items() if until <= now]
        for key in stale_windows:
            del self._windows[key]
        for key in stale_blocks:
            del self._blocked[key]
        return len(stale_windows) + len(stale_blocks)

    def __len__(self) -> int:
        return len(self._windows) + len(self._blocked)


class RequestGuard:
    """
    Usage::

        guard = RequestGuard()
        guard.enforce(requester, "process-batch")   # raises SecurityCheckError
    """

    def __init__(
        self,
        store: RateLimitStore | None = None,
        *,
        window_seconds: float | None = None,
        max_requests: int | None = None,
    ) -> None:
        self.store = store or RateLimitStore()
        self.window_seconds = window_seconds or settings.BATCH_RATE_LIMIT_WINDOW_SECONDS
        self.max_requests = max_requests or settings.BATCH_RATE_LIMIT_MAX_REQUESTS

    def check(self, client_key: str, endpoint: str) -> GuardDecision:
        self.store.evict_expired()

        blocked_until = self.store.blocked_until(client_key)
        if blocked_until is not None:
            return GuardDecision(
                allowed=False,
                remaining=0,
                reset_at=blocked_until,
                suspicious=True,
                reason="Client temporarily blocked",
            )

        window = self.store.hit(f"{client_key}:{endpoint}", self.window_seconds)

        if window.count > self.max_requests * SUSPICIOUS_MULTIPLIER:
            until = self.store.block(client_key, SUSPICIOUS_BLOCK_SECONDS)
            logger.warning(
                "Suspicious request pattern, client blocked",
                client_key=client_key,
                endpoint=endpoint,
                count=window.count,
                blocked_seconds=SUSPICIOUS_BLOCK_SECONDS,
            )
            return GuardDecision(
                allowed=False,
                remaining=0,
                reset_at=until,
                suspicious=True,
                reason=f"Excessive requests to {endpoint}",
            )

        if window.count > self.max_requests:
            return GuardDecision(
                allowed=False,
                remaining=0,
                reset_at=window.reset_at,
                reason="Rate limit exceeded",
            )

        return GuardDecision(
            allowed=True,
            remaining=self.max_requests - window.count,
            reset_at=window.reset_at,
        )

    def enforce(self, client_key: str, endpoint: str) -> GuardDecision:
        decision = self.check(client_key, endpoint)
        if not decision.allowed:
            raise SecurityCheckError(
                decision.reason or "Request rejected",
                suspicious=decision.suspicious,
                details={"client_key": client_key, "endpoint": endpoint, "reset_at": decision.reset_at},
            )
        return decision
