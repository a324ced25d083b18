from __future__ import annotations

import pytest

from discovery.config_manager import RateLimitSettings
from discovery.errors import RateLimitDenied
from discovery.services.rate_limiter import (
    RateLimitPolicy,
    RateLimiter,
    RateLimiterRegistry,
)
from tests.helpers.discovery_fakes import FakeClock


def _limiter(clock: FakeClock, max_requests: int = 5, window: float = 60.0, **kwargs) -> RateLimiter:
    return RateLimiter(RateLimitPolicy("search", max_requests, window), clock=clock, **kwargs)


def test_admits_up_to_limit_then_denies():
    clock = FakeClock()
    limiter = _limiter(clock)

    decisions = [limiter.admit("search:1.2.3.4") for _ in range(5)]
    assert [d.allowed for d in decisions] == [True] * 5
    assert [d.remaining for d in decisions] == [4, 3, 2, 1, 0]

    clock.advance(10)
    denied = limiter.admit("search:1.2.3.4")
    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.reset_at == decisions[0].reset_at


def test_denied_requests_do_not_extend_the_window():
    clock = FakeClock()
    limiter = _limiter(clock, max_requests=1)
    first = limiter.admit("k")
    for _ in range(3):
        clock.advance(5)
        assert limiter.admit("k").allowed is False
    clock.advance(60 - 15)
    renewed = limiter.admit("k")
    assert renewed.allowed is True
    assert renewed.reset_at == pytest.approx(first.reset_at + 60)


def test_window_resets_after_expiry():
    clock = FakeClock()
    limiter = _limiter(clock)
    for _ in range(6):
        limiter.admit("caller")

    clock.advance(61)
    decision = limiter.admit("caller")
    assert decision.allowed is True
    assert decision.remaining == 4


def test_callers_are_isolated():
    clock = FakeClock()
    limiter = _limiter(clock, max_requests=1)
    assert limiter.admit("a").allowed
    assert not limiter.admit("a").allowed
    assert limiter.admit("b").allowed


def test_stale_buckets_are_swept_past_threshold():
    clock = FakeClock()
    limiter = _limiter(clock, window=10, sweep_threshold=3)
    for index in range(4):
        limiter.admit(f"caller-{index}")
    assert len(limiter) == 4

    clock.advance(11)
    limiter.admit("fresh")
    assert len(limiter) == 1


def test_headers_for_allowed_and_denied_decisions():
    clock = FakeClock(start=1000.0)
    limiter = _limiter(clock, max_requests=1, window=30)

    allowed = limiter.admit("k")
    assert allowed.headers() == {"X-RateLimit-Limit": "1", "X-RateLimit-Remaining": "0"}

    clock.advance(12.5)
    denied = limiter.admit("k")
    headers = denied.headers()
    assert headers["X-RateLimit-Remaining"] == "0"
    assert headers["Retry-After"] == "18"
    assert headers["X-RateLimit-Reset"].startswith("1970-01-01T00:17:10")


def test_retry_after_is_at_least_one_second():
    clock = FakeClock()
    limiter = _limiter(clock, max_requests=1, window=1)
    limiter.admit("k")
    clock.advance(0.999)
    assert limiter.admit("k").headers()["Retry-After"] == "1"


def test_check_raises_with_decision():
    limiter = _limiter(FakeClock(), max_requests=1)
    limiter.check("k")
    with pytest.raises(RateLimitDenied) as excinfo:
        limiter.check("k")
    assert excinfo.value.status_code == 429
    assert excinfo.value.decision.allowed is False


def test_policy_rejects_invalid_budgets():
    with pytest.raises(ValueError):
        RateLimitPolicy("bad", 0)
    with pytest.raises(ValueError):
        RateLimitPolicy("bad", 1, window_seconds=0)


def test_registry_from_settings_builds_named_limiters():
    clock = FakeClock()
    registry = RateLimiterRegistry.from_limits(
        {
            "search": RateLimitSettings(max_requests=2, window_seconds=60),
            "ai": RateLimitSettings(max_requests=1, window_seconds=60),
        },
        clock=clock,
    )
    assert registry.names() == ["ai", "search"]
    assert "search" in registry
    assert registry.get("missing") is None
    assert registry.admit("ai", "ai:user").allowed
    assert not registry.admit("ai", "ai:user").allowed
    assert registry.admit("search", "ai:user").allowed
