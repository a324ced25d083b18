"""Personalised home-feed recommendations assembled from independent sections."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional

from discovery import logging_manager as log_mgr
from discovery.errors import DiscoveryError, ValidationError
from discovery.metrics import RECOMMENDATION_SECTIONS

from ..cache import CacheGateway, CacheKeys, CacheTTL
from ..catalog.types import NormalizedBook, SearchRequest
from .activity import TRENDING_WINDOW_SECONDS, UserActivityStore
from .generator import GeneratorRequest, RecommendationGenerator, TitleSuggestion
from .sections import RecommendationResponse, RecommendationSection, SectionType, SeenBooks

if TYPE_CHECKING:
    from ..search_orchestrator import SearchOrchestrator

logger = log_mgr.get_logger().getChild("services.recommendations.aggregator")

MAX_HOME_RECOMMENDATIONS = 50
FAVORITES_LIMIT = 10
RECENT_ACTIVITY_LIMIT = 10
TRENDING_MIN_BOOKS = 5
TRENDING_TERMS = 3
TRENDING_SEARCHED_TERMS = 2
TRENDING_RESULTS_PER_TERM = 3
TRENDING_LIMIT = 6

# Failures a section absorbs without failing the whole response.
SECTION_ERRORS = (DiscoveryError, asyncio.TimeoutError, OSError)


async def resolve_suggestions(
    orchestrator: SearchOrchestrator,
    suggestions: List[TitleSuggestion],
    fanout_limit: int,
) -> List[Optional[NormalizedBook]]:
    """Resolve generator titles concurrently, keeping suggestion order."""
    semaphore = asyncio.Semaphore(max(1, fanout_limit))

    async def resolve(suggestion: TitleSuggestion) -> Optional[NormalizedBook]:
        async with semaphore:
            return await orchestrator.resolve(suggestion)

    return list(await asyncio.gather(*(resolve(suggestion) for suggestion in suggestions)))


class RecommendationAggregator:
    """Builds the home feed: favorites, generated picks, then trending.

    Sections are fail-soft: an error in one is logged and the section is
    omitted. A single :class:`SeenBooks` set deduplicates across sections.
    """

    def __init__(
        self,
        orchestrator: SearchOrchestrator,
        activity: UserActivityStore,
        cache: CacheGateway,
        *,
        generator: Optional[RecommendationGenerator] = None,
        fanout_limit: int = 5,
        generator_timeout: float = 15.0,
        cache_ttl: int = CacheTTL.RECOMMENDATIONS,
        trending_min_books: int = TRENDING_MIN_BOOKS,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._orchestrator = orchestrator
        self._activity = activity
        self._cache = cache
        self._generator = generator
        self._fanout_limit = fanout_limit
        self._generator_timeout = generator_timeout
        self._cache_ttl = cache_ttl
        self._trending_min_books = trending_min_books
        self._timer = timer

    async def home(
        self,
        user_id: str,
        max_recommendations: int = 10,
        include_favorites: bool = True,
        refresh: bool = False,
    ) -> RecommendationResponse:
        """Return the home feed for ``user_id``.

        Args:
            user_id: Authenticated caller.
            max_recommendations: Titles requested from the generator (1-50).
            include_favorites: Whether to lead with the caller's favorites.
            refresh: Skip the cached response but still write the new one.

        Raises:
            ValidationError: ``user_id`` is missing or the limit is out of range.
        """
        if not (user_id or "").strip():
            raise ValidationError("A user id is required")
        if not 1 <= max_recommendations <= MAX_HOME_RECOMMENDATIONS:
            raise ValidationError(
                f"maxRecommendations must be between 1 and {MAX_HOME_RECOMMENDATIONS}"
            )

        started = self._timer()
        cache_key = CacheKeys.home_recommendations(user_id, max_recommendations, include_favorites)
        if not refresh:
            cached = await self._cache.get(cache_key)
            if isinstance(cached, dict):
                return RecommendationResponse.from_dict(cached).mark_cached()

        seen = SeenBooks()
        sections: List[RecommendationSection] = []

        async def add(section_type: str, title: str, build: Callable[[], Awaitable[List[NormalizedBook]]]) -> None:
            section_started = self._timer()
            try:
                books = await build()
            except SECTION_ERRORS as exc:
                logger.warning(
                    "Skipping %s section for %s: %s",
                    section_type,
                    user_id,
                    exc,
                    extra={"event": "recommendations.section_failed", "section": section_type},
                )
                return
            if not books:
                return
            sections.append(
                RecommendationSection(
                    title=title,
                    type=section_type,
                    books=books,
                    processing_time_ms=(self._timer() - section_started) * 1000,
                )
            )
            RECOMMENDATION_SECTIONS.labels(section=section_type).inc()

        if include_favorites:
            await add(SectionType.FAVORITES, "Your Favorites", lambda: self._favorites(user_id, seen))
        await add(
            SectionType.GENERATED,
            "Recommended for You",
            lambda: self._generated(user_id, max_recommendations, seen),
        )
        if len(seen) < self._trending_min_books:
            await add(SectionType.TRENDING, "Trending Now", lambda: self._trending(seen))

        response = RecommendationResponse(
            sections=sections,
            processing_time_ms=(self._timer() - started) * 1000,
        )
        await self._cache.set(cache_key, response.to_dict(), self._cache_ttl)
        logger.info(
            "Built %d home sections for %s",
            len(sections),
            user_id,
            extra={
                "event": "recommendations.home",
                "duration_ms": round(response.processing_time_ms, 2),
            },
        )
        return response

    async def _favorites(self, user_id: str, seen: SeenBooks) -> List[NormalizedBook]:
        favorites = await self._activity.favorites(user_id)
        return seen.take((favorite.to_book() for favorite in favorites), FAVORITES_LIMIT)

    async def _generated(
        self, user_id: str, max_recommendations: int, seen: SeenBooks
    ) -> List[NormalizedBook]:
        if self._generator is None:
            return []
        preferences = await self._activity.preferences(user_id)
        recent = await self._activity.recent_activity(user_id, RECENT_ACTIVITY_LIMIT)
        request = GeneratorRequest(
            kind="home",
            preferences=preferences.as_terms(),
            favorite_genres=list(preferences.favorite_genres),
            recent_activity=[entry.describe() for entry in recent],
            exclude_titles=seen.titles(),
            max_recommendations=max_recommendations,
        )
        suggestions = await asyncio.wait_for(
            self._generator.suggest(request), self._generator_timeout
        )
        if not suggestions:
            return []
        resolved = await resolve_suggestions(self._orchestrator, suggestions, self._fanout_limit)
        return seen.take(resolved, max_recommendations)

    async def _trending(self, seen: SeenBooks) -> List[NormalizedBook]:
        terms = await self._activity.popular_terms(TRENDING_TERMS, TRENDING_WINDOW_SECONDS)
        candidates: List[NormalizedBook] = []
        for term in terms[:TRENDING_SEARCHED_TERMS]:
            try:
                result = await self._orchestrator.search(
                    SearchRequest(query=term, max_results=TRENDING_RESULTS_PER_TERM)
                )
            except DiscoveryError as exc:
                logger.debug("Trending search for %r failed: %s", term, exc)
                continue
            candidates.extend(result.books[:TRENDING_RESULTS_PER_TERM])
        return seen.take(candidates, TRENDING_LIMIT)


__all__ = ["RecommendationAggregator", "resolve_suggestions"]
