"""Helpers shared by the API route modules."""

from __future__ import annotations

from fastapi import Request, Response

from ...errors import RateLimitDenied
from ...services.rate_limiter import RateLimitDecision
from ..dependencies import ServiceContainer

RATE_LIMIT_STATE = "rate_limit_decision"


def apply_rate_limit(
    request: Request,
    response: Response,
    services: ServiceContainer,
    policy: str,
    caller_key: str,
) -> RateLimitDecision:
    """Admit the request under ``policy`` and attach the budget headers.

    The decision is also stored on ``request.state`` so error responses
    raised later in the handler still carry the headers.
    """
    decision = services.limiters.admit(policy, caller_key)
    setattr(request.state, RATE_LIMIT_STATE, decision)
    if not decision.allowed:
        raise RateLimitDenied(decision)
    response.headers.update(decision.headers())
    return decision


def rate_limit_headers(request: Request) -> dict[str, str]:
    decision = getattr(request.state, RATE_LIMIT_STATE, None)
    if isinstance(decision, RateLimitDecision):
        return decision.headers()
    return {}


__all__ = ["RATE_LIMIT_STATE", "apply_rate_limit", "rate_limit_headers"]
