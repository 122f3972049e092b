"""Tests for the request guard and its rate-limit store."""

import pytest

from chequebatch.pipeline.errors import SecurityCheckError
from chequebatch.security.rate_limit import SUSPICIOUS_BLOCK_SECONDS, RateLimitStore, RequestGuard


class ManualClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _guard(max_requests: int = 3, window_seconds: float = 60):
    clock = ManualClock()
    return RequestGuard(RateLimitStore(clock), window_seconds=window_seconds, max_requests=max_requests), clock


def test_allows_up_to_limit_then_rejects() -> None:
    guard, _ = _guard(max_requests=3)

    decisions = [guard.check("user-1", "process-batch") for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert [d.remaining for d in decisions] == [2, 1, 0, 0]
    assert decisions[-1].suspicious is False


def test_window_resets_after_expiry() -> None:
    guard, clock = _guard(max_requests=1)
    guard.check("user-1", "process-batch")
    assert not guard.check("user-1", "process-batch").allowed

    clock.now += 61

    assert guard.check("user-1", "process-batch").allowed


def test_limits_are_per_client_and_endpoint() -> None:
    guard, _ = _guard(max_requests=1)

    assert guard.check("user-1", "process-batch").allowed
    assert guard.check("user-2", "process-batch").allowed
    assert guard.check("user-1", "batch-status").allowed


def test_excessive_requests_block_client_for_an_hour() -> None:
    guard, clock = _guard(max_requests=2)

    decisions = [guard.check("user-1", "process-batch") for _ in range(5)]

    assert decisions[-1].suspicious
    assert not decisions[-1].allowed
    # Blocked on every endpoint, even after the counting window ends
    clock.now += 120
    blocked = guard.check("user-1", "batch-status")
    assert not blocked.allowed
    assert blocked.suspicious

    clock.now += SUSPICIOUS_BLOCK_SECONDS
    assert guard.check("user-1", "batch-status").allowed


def test_expired_entries_are_evicted() -> None:
    clock = ManualClock()
    store = RateLimitStore(clock)
    store.hit("a:x", 10)
    store.hit("b:x", 100)
    store.block("c", 5)

    clock.now += 11

    assert store.evict_expired() == 2
    assert len(store) == 1


def test_separate_guards_do_not_share_state() -> None:
    first, _ = _guard(max_requests=1)
    second, _ = _guard(max_requests=1)

    first.check("user-1", "process-batch")

    assert second.check("user-1", "process-batch").allowed


def test_enforce_raises_security_error() -> None:
    guard, _ = _guard(max_requests=1)
    guard.enforce("user-1", "process-batch")

    with pytest.raises(SecurityCheckError) as exc_info:
        guard.enforce("user-1", "process-batch")

    assert exc_info.value.suspicious is False
    assert exc_info.value.details["endpoint"] == "process-batch"
