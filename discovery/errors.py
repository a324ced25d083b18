"""Exception taxonomy shared by the discovery services and the web API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .services.rate_limiter import RateLimitDecision


class DiscoveryError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(DiscoveryError):
    """Malformed or out-of-range input. Never retried."""

    status_code = 400
    code = "validation_failed"

    def __init__(self, errors: Sequence[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(", ".join(self.errors) or "Invalid request")


class RateLimitDenied(DiscoveryError):
    """The caller exhausted its request budget for the current window."""

    status_code = 429
    code = "rate_limit_exceeded"

    def __init__(self, decision: "RateLimitDecision", message: str = "") -> None:
        super().__init__(message or "Too many requests. Please try again later.")
        self.decision = decision


class Unauthorized(DiscoveryError):
    """The endpoint needs a caller identity and none was supplied."""

    status_code = 401
    code = "unauthorized"


class ProviderUnavailable(DiscoveryError):
    """An upstream catalog or generator failed, timed out, or hit its quota."""

    status_code = 503
    code = "provider_unavailable"

    def __init__(self, source: str, message: str = "", *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message or f"{source} is unavailable")
        self.source = source
        self.cause = cause


class CacheUnavailable(DiscoveryError):
    """The cache store failed. Callers degrade to a miss; never surfaced."""

    status_code = 500
    code = "cache_unavailable"


class NotFound(DiscoveryError):
    """The requested identifier resolves to nothing."""

    status_code = 404
    code = "not_found"


class InternalError(DiscoveryError):
    """Unexpected failure, returned to callers as an opaque 500."""

    status_code = 500
    code = "internal_error"


__all__ = [
    "CacheUnavailable",
    "DiscoveryError",
    "InternalError",
    "NotFound",
    "ProviderUnavailable",
    "RateLimitDenied",
    "Unauthorized",
    "ValidationError",
]
