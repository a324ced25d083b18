"""Dependency wiring for the FastAPI application."""

from __future__ import annotations

import random
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import httpx
from fastapi import Depends, Header

from .. import config_manager as cfg
from .. import logging_manager as log_mgr
from ..database.engine import init_schema
from ..errors import Unauthorized
from ..services.cache import CacheGateway, CacheStore, build_cache_store
from ..services.catalog.registry import CatalogRegistry, create_registry_from_settings
from ..services.daily_pick import DailyPickScheduler, DailyPickStore, SqlDailyPickStore
from ..services.rate_limiter import RateLimiterRegistry
from ..services.recommendations import (
    InMemoryActivityStore,
    OllamaRecommendationGenerator,
    RecommendationAggregator,
    RecommendationGenerator,
    RelatedBooksService,
    UserActivityStore,
)
from ..services.search_orchestrator import SearchOrchestrator

logger = log_mgr.get_logger().getChild("webapi.dependencies")


@dataclass
class ServiceContainer:
    """Service objects shared by every request of one process."""

    settings: cfg.DiscoverySettings
    cache: CacheGateway
    registry: CatalogRegistry
    limiters: RateLimiterRegistry
    outbound_limiters: RateLimiterRegistry
    orchestrator: SearchOrchestrator
    activity: UserActivityStore
    aggregator: RecommendationAggregator
    related: RelatedBooksService
    daily_pick: DailyPickScheduler
    generator: Optional[RecommendationGenerator] = None

    async def aclose(self) -> None:
        aclose = getattr(self.generator, "aclose", None)
        if aclose is not None:
            await aclose()
        await self.registry.aclose()
        await self.cache.close()


def build_services(
    settings: Optional[cfg.DiscoverySettings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    cache_store: Optional[CacheStore] = None,
    generator: Optional[RecommendationGenerator] = None,
    activity: Optional[UserActivityStore] = None,
    daily_pick_store: Optional[DailyPickStore] = None,
    rng: Optional[random.Random] = None,
) -> ServiceContainer:
    """Construct every service from ``settings``.

    Keyword arguments replace the corresponding collaborator; tests use
    them to inject mock transports and in-memory stores.
    """
    settings = settings or cfg.get_settings()
    ttl = settings.cache_ttl

    if cache_store is None:
        cache_store = build_cache_store(cfg.secret_value(settings.redis_url))
    cache = CacheGateway(cache_store, namespace=settings.cache_namespace)
    registry = create_registry_from_settings(settings, http_client=http_client)
    limiters = RateLimiterRegistry.from_limits(
        settings.rate_limits, sweep_threshold=settings.rate_limit_sweep_threshold
    )
    outbound = RateLimiterRegistry.from_limits(
        settings.outbound_rate_limits, sweep_threshold=settings.rate_limit_sweep_threshold
    )

    if generator is None and settings.generator_enabled:
        generator = OllamaRecommendationGenerator(
            api_url=settings.generator_url,
            model=settings.generator_model,
            api_key=cfg.secret_value(settings.generator_api_key),
            timeout_seconds=settings.generator_timeout_seconds,
            client=http_client,
            cache=cache,
            cache_ttl=ttl.generator,
        )

    orchestrator = SearchOrchestrator(
        registry,
        cache,
        generator=generator,
        outbound_limiters=outbound,
        catalog_timeout=settings.catalog_timeout_seconds,
        generator_timeout=settings.generator_timeout_seconds,
        fanout_limit=settings.fanout_limit,
        search_ttl=ttl.search_results,
        book_ttl=ttl.book_metadata,
    )
    activity = activity if activity is not None else InMemoryActivityStore()
    aggregator = RecommendationAggregator(
        orchestrator,
        activity,
        cache,
        generator=generator,
        fanout_limit=settings.fanout_limit,
        generator_timeout=settings.generator_timeout_seconds,
        cache_ttl=ttl.recommendations,
        trending_min_books=settings.trending_min_books,
    )
    related = RelatedBooksService(
        orchestrator,
        cache,
        generator=generator,
        fanout_limit=settings.fanout_limit,
        generator_timeout=settings.generator_timeout_seconds,
        cache_ttl=ttl.related_books,
    )

    if daily_pick_store is None:
        init_schema()
        daily_pick_store = SqlDailyPickStore()
    daily_pick = DailyPickScheduler(
        daily_pick_store,
        window_size=settings.daily_pick_window_size,
        rng=rng,
    )

    logger.info(
        "Discovery services ready",
        extra={"event": "services.ready", "source": ",".join(registry.sources())},
    )
    return ServiceContainer(
        settings=settings,
        cache=cache,
        registry=registry,
        limiters=limiters,
        outbound_limiters=outbound,
        orchestrator=orchestrator,
        activity=activity,
        aggregator=aggregator,
        related=related,
        daily_pick=daily_pick,
        generator=generator,
    )


@lru_cache
def get_services() -> ServiceContainer:
    """Return the process-wide :class:`ServiceContainer`."""

    return build_services(cfg.get_settings())


@dataclass(frozen=True)
class RequestCaller:
    """Identity and network origin of the current request."""

    user_id: str | None
    client_ip: str


def get_request_caller(
    header_user_id: str | None = Header(default=None, alias="X-User-Id"),
    forwarded_for: str | None = Header(default=None, alias="X-Forwarded-For"),
    real_ip: str | None = Header(default=None, alias="X-Real-IP"),
) -> RequestCaller:
    """Resolve the caller from the headers set by the authenticating proxy."""

    user_id = (header_user_id or "").strip() or None
    client_ip = ""
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()
    if not client_ip:
        client_ip = (real_ip or "").strip() or "unknown"
    return RequestCaller(user_id=user_id, client_ip=client_ip)


def require_user(caller: RequestCaller = Depends(get_request_caller)) -> str:
    """Return the caller's user id or fail with 401."""

    if caller.user_id is None:
        raise Unauthorized("Authentication required")
    return caller.user_id


__all__ = [
    "RequestCaller",
    "ServiceContainer",
    "build_services",
    "get_request_caller",
    "get_services",
    "require_user",
]
