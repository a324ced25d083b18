"""Fixed-window request budgets keyed by caller."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Mapping, Optional

from discovery import logging_manager as log_mgr
from discovery.errors import RateLimitDenied
from discovery.metrics import RATE_LIMIT_DENIALS

logger = log_mgr.get_logger().getChild("services.rate_limiter")

DEFAULT_SWEEP_THRESHOLD = 1000

SEARCH_POLICY = "search"
AI_POLICY = "ai"
HOME_RECOMMENDATIONS_POLICY = "home_recommendations"
BOOK_RECOMMENDATIONS_POLICY = "book_recommendations"


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    """Request budget applied to one endpoint family.

    Attributes:
        name: Policy identifier, also used as metrics label.
        max_requests: Admissions allowed per window.
        window_seconds: Length of the fixed window.
    """

    name: str
    max_requests: int
    window_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of a single admission check."""

    allowed: bool
    remaining: int
    reset_at: float
    limit: int
    checked_at: Optional[float] = None

    @property
    def reset_at_iso(self) -> str:
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc).isoformat()

    def retry_after(self, now: float) -> int:
        """Whole seconds until the window resets, never less than one."""
        return max(1, math.ceil(self.reset_at - now))

    def headers(self, now: Optional[float] = None) -> Dict[str, str]:
        """Return the ``X-RateLimit-*`` headers describing this decision."""
        values = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if not self.allowed:
            values["X-RateLimit-Reset"] = self.reset_at_iso
            if now is None:
                now = self.checked_at if self.checked_at is not None else time.time()
            values["Retry-After"] = str(self.retry_after(now))
        return values


@dataclass(slots=True)
class _Bucket:
    request_count: int
    window_reset_at: float


class RateLimiter:
    """Fixed-window counter per caller key.

    ``admit`` never awaits, so a single event loop needs no lock around the
    bucket map. Stale buckets are reclaimed during admission once the map
    grows past ``sweep_threshold``.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        *,
        clock: Optional[Callable[[], float]] = None,
        sweep_threshold: int = DEFAULT_SWEEP_THRESHOLD,
    ) -> None:
        self._policy = policy
        self._clock = clock or time.time
        self._sweep_threshold = max(1, sweep_threshold)
        self._buckets: Dict[str, _Bucket] = {}

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    def __len__(self) -> int:
        return len(self._buckets)

    def now(self) -> float:
        return self._clock()

    def admit(self, caller_key: str) -> RateLimitDecision:
        """Count one request for ``caller_key`` and report whether it fits."""

        now = self._clock()
        if len(self._buckets) > self._sweep_threshold:
            self._sweep(now)

        limit = self._policy.max_requests
        bucket = self._buckets.get(caller_key)
        if bucket is None or now >= bucket.window_reset_at:
            bucket = _Bucket(request_count=1, window_reset_at=now + self._policy.window_seconds)
            self._buckets[caller_key] = bucket
            return RateLimitDecision(
                allowed=True,
                remaining=limit - 1,
                reset_at=bucket.window_reset_at,
                limit=limit,
                checked_at=now,
            )

        if bucket.request_count >= limit:
            logger.info(
                "Rate limit exceeded for %s",
                caller_key,
                extra={
                    "event": "rate_limit.denied",
                    "policy": self._policy.name,
                    "caller": caller_key,
                },
            )
            RATE_LIMIT_DENIALS.labels(policy=self._policy.name).inc()
            return RateLimitDecision(
                allowed=False,
                remaining=0,
                reset_at=bucket.window_reset_at,
                limit=limit,
                checked_at=now,
            )

        bucket.request_count += 1
        return RateLimitDecision(
            allowed=True,
            remaining=limit - bucket.request_count,
            reset_at=bucket.window_reset_at,
            limit=limit,
            checked_at=now,
        )

    def check(self, caller_key: str) -> RateLimitDecision:
        """Admit ``caller_key`` or raise :class:`RateLimitDenied`."""

        decision = self.admit(caller_key)
        if not decision.allowed:
            raise RateLimitDenied(decision)
        return decision

    def reset(self, caller_key: Optional[str] = None) -> None:
        if caller_key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(caller_key, None)

    def _sweep(self, now: float) -> None:
        stale = [key for key, bucket in self._buckets.items() if now >= bucket.window_reset_at]
        for key in stale:
            del self._buckets[key]
        if stale:
            logger.debug(
                "Reclaimed %d stale rate-limit buckets",
                len(stale),
                extra={"event": "rate_limit.sweep", "policy": self._policy.name},
            )


class RateLimiterRegistry:
    """One limiter per named policy, shared by every route using it."""

    def __init__(
        self,
        policies: Iterable[RateLimitPolicy] = (),
        *,
        clock: Optional[Callable[[], float]] = None,
        sweep_threshold: int = DEFAULT_SWEEP_THRESHOLD,
    ) -> None:
        self._clock = clock
        self._sweep_threshold = sweep_threshold
        self._limiters: Dict[str, RateLimiter] = {}
        for policy in policies:
            self.register(policy)

    @classmethod
    def from_limits(
        cls,
        limits: Mapping[str, object],
        *,
        prefix: str = "",
        clock: Optional[Callable[[], float]] = None,
        sweep_threshold: int = DEFAULT_SWEEP_THRESHOLD,
    ) -> "RateLimiterRegistry":
        """Build a registry from ``{name: RateLimitSettings}`` configuration."""

        policies = [
            RateLimitPolicy(
                name=f"{prefix}{name}",
                max_requests=int(getattr(entry, "max_requests")),
                window_seconds=float(getattr(entry, "window_seconds")),
            )
            for name, entry in limits.items()
        ]
        return cls(policies, clock=clock, sweep_threshold=sweep_threshold)

    def register(self, policy: RateLimitPolicy) -> RateLimiter:
        limiter = RateLimiter(
            policy, clock=self._clock, sweep_threshold=self._sweep_threshold
        )
        self._limiters[policy.name] = limiter
        return limiter

    def get(self, name: str) -> Optional[RateLimiter]:
        return self._limiters.get(name)

    def __getitem__(self, name: str) -> RateLimiter:
        return self._limiters[name]

    def __contains__(self, name: object) -> bool:
        return name in self._limiters

    def names(self) -> list[str]:
        return sorted(self._limiters)

    def admit(self, name: str, caller_key: str) -> RateLimitDecision:
        return self._limiters[name].admit(caller_key)


__all__ = [
    "AI_POLICY",
    "BOOK_RECOMMENDATIONS_POLICY",
    "DEFAULT_SWEEP_THRESHOLD",
    "HOME_RECOMMENDATIONS_POLICY",
    "RateLimitDecision",
    "RateLimitPolicy",
    "RateLimiter",
    "RateLimiterRegistry",
    "SEARCH_POLICY",
]
