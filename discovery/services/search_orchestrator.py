"""Search orchestration: cache check, primary catalog, fallback catalog, merge."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar

from discovery import logging_manager as log_mgr
from discovery.errors import NotFound, ProviderUnavailable, ValidationError
from discovery.metrics import CATALOG_FAILURES, SEARCH_DURATION, SEARCH_REQUESTS

from .cache import CacheGateway, CacheKeys, CacheTTL
from .catalog.clients.base import BaseCatalogClient
from .catalog.normalization import dedupe_books
from .catalog.registry import CatalogRegistry
from .catalog.types import (
    BookSource,
    NormalizedBook,
    ResultOrigin,
    SearchMode,
    SearchRequest,
    SearchResult,
)
from .rate_limiter import RateLimiterRegistry
from .recommendations.generator import (
    GeneratorRequest,
    RecommendationGenerator,
    TitleSuggestion,
)

logger = log_mgr.get_logger().getChild("services.search_orchestrator")

T = TypeVar("T")

DEFAULT_CATALOG_TIMEOUT = 5.0
DEFAULT_GENERATOR_TIMEOUT = 15.0
DEFAULT_FANOUT_LIMIT = 5
MAX_PROMPT_SUGGESTIONS = 20
MIN_PROMPT_MATCHES = 3

Resolved = Tuple[NormalizedBook, ResultOrigin]


class SearchOrchestrator:
    """Turns a :class:`SearchRequest` into a deduplicated :class:`SearchResult`.

    Each request walks ``CacheCheck -> PrimaryFetch -> FallbackFetch ->
    Merge&Cache``. The fallback catalog is consulted only when the primary
    failed or returned nothing. Prompt-driven searches first ask the
    generator for concrete titles and resolve each one through the same
    chain; they degrade to a direct search when the generator fails or has
    nothing to offer.
    """

    def __init__(
        self,
        registry: CatalogRegistry,
        cache: CacheGateway,
        *,
        generator: Optional[RecommendationGenerator] = None,
        outbound_limiters: Optional[RateLimiterRegistry] = None,
        catalog_timeout: float = DEFAULT_CATALOG_TIMEOUT,
        generator_timeout: float = DEFAULT_GENERATOR_TIMEOUT,
        fanout_limit: int = DEFAULT_FANOUT_LIMIT,
        search_ttl: int = CacheTTL.SEARCH_RESULTS,
        book_ttl: int = CacheTTL.BOOK_METADATA,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._generator = generator
        self._outbound = outbound_limiters
        self._catalog_timeout = catalog_timeout
        self._generator_timeout = generator_timeout
        self._fanout_limit = max(1, fanout_limit)
        self._search_ttl = search_ttl
        self._book_ttl = book_ttl
        self._timer = timer

    @property
    def registry(self) -> CatalogRegistry:
        return self._registry

    @property
    def fanout_limit(self) -> int:
        return self._fanout_limit

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def search(self, request: SearchRequest) -> SearchResult:
        """Run ``request`` through the cache and catalog chain.

        Raises:
            ValidationError: The request is malformed.
            ProviderUnavailable: Every catalog failed.
        """
        errors = request.validate()
        if errors:
            raise ValidationError(errors)

        started = self._timer()
        query = request.query.strip()
        mode = request.mode
        cache_key = CacheKeys.search(mode.value, query, request.max_results, request.start_index)

        if request.use_cache and not request.refresh:
            cached = await self._cache.get(cache_key)
            result = self._result_from_cache(cached, request, started)
            if result is not None:
                self._record(result)
                return result

        books: Optional[List[NormalizedBook]] = None
        origin = ResultOrigin.PRIMARY
        if mode is SearchMode.PROMPT_DRIVEN:
            prompt_result = await self._prompt_fetch(query, request.fetch_size, request.max_results)
            if prompt_result is not None:
                books, origin = prompt_result
        if books is None:
            books, origin = await self._direct_fetch(query, request.fetch_size)

        merged = dedupe_books(books)
        page = merged[request.start_index : request.start_index + request.max_results]
        total_results = len(merged)

        if request.use_cache and page:
            await self._cache.set(
                cache_key,
                {
                    "books": [book.to_dict() for book in page],
                    "totalResults": total_results,
                    "resultOrigin": origin.value,
                },
                self._search_ttl,
            )

        result = SearchResult(
            books=page,
            total_results=total_results,
            search_time_ms=(self._timer() - started) * 1000,
            result_origin=origin,
            query=query,
            mode=mode,
        )
        self._record(result)
        logger.info(
            "Search for %r returned %d books",
            query,
            len(page),
            extra={
                "event": "search.completed",
                "source": origin.value,
                "duration_ms": round(result.search_time_ms, 2),
            },
        )
        return result

    async def resolve(self, suggestion: TitleSuggestion) -> Optional[NormalizedBook]:
        """Resolve a generator suggestion to its first catalog hit, or ``None``."""
        try:
            result = await self.search(
                SearchRequest(query=suggestion.search_terms(), max_results=1)
            )
        except (ProviderUnavailable, ValidationError) as exc:
            logger.debug("Could not resolve %r: %s", suggestion.title, exc)
            return None
        if not result.books:
            return None
        book = result.books[0]
        book.confidence = suggestion.confidence
        return book

    async def get_book(self, source: str, book_id: str) -> NormalizedBook:
        """Return a single catalog record, cache-aside.

        Raises:
            ValidationError: ``source`` is not a catalog namespace.
            NotFound: The catalog has no such book.
            ProviderUnavailable: The catalog failed.
        """
        try:
            book_source = BookSource(source)
        except ValueError as exc:
            raise ValidationError(f"Unknown book source: {source}") from exc
        if book_source is BookSource.FAVORITE or not (book_id or "").strip():
            raise ValidationError("A catalog source and book id are required")

        client = self._registry.get_client(book_source)
        if client is None:
            raise ProviderUnavailable(book_source.value, f"{book_source.value} is not configured")

        cache_key = CacheKeys.book(book_source.value, book_id)
        cached = await self._cache.get(cache_key)
        if isinstance(cached, dict):
            return NormalizedBook.from_dict(cached)

        book = await self._call(client, lambda: client.get_by_id(book_id))
        if book is None:
            raise NotFound(f"Book {book_source.value}/{book_id} was not found")
        await self._cache.set(cache_key, book.to_dict(), self._book_ttl)
        return book

    # ------------------------------------------------------------------
    # Fetch stages
    # ------------------------------------------------------------------
    async def _direct_fetch(self, query: str, size: int) -> Tuple[List[NormalizedBook], ResultOrigin]:
        chain = self._registry.chain()
        if not chain:
            raise ProviderUnavailable("catalog", "No catalog is configured")

        primary = chain[0]
        primary_error: Optional[ProviderUnavailable] = None
        try:
            books = await self._call(primary, lambda: primary.search(query, size))
        except ProviderUnavailable as exc:
            primary_error = exc
            books = []
        if books:
            return books, ResultOrigin.PRIMARY

        if len(chain) < 2:
            if primary_error is not None:
                raise primary_error
            return [], ResultOrigin.PRIMARY

        fallback = chain[1]
        logger.info(
            "Falling back to %s for %r",
            fallback.source,
            query,
            extra={"event": "search.fallback", "source": fallback.source},
        )
        try:
            books = await self._call(fallback, lambda: fallback.search(query, size))
        except ProviderUnavailable as exc:
            if primary_error is not None:
                raise ProviderUnavailable(
                    "catalog",
                    f"All catalogs failed: {primary_error.message}; {exc.message}",
                    cause=exc,
                ) from exc
            return [], ResultOrigin.PRIMARY
        return books, ResultOrigin.FALLBACK

    async def _prompt_fetch(
        self, query: str, size: int, max_results: int
    ) -> Optional[Tuple[List[NormalizedBook], ResultOrigin]]:
        suggestions = await self._suggest(query, size)
        if not suggestions:
            logger.info(
                "No generator titles for %r; degrading to direct search",
                query,
                extra={"event": "search.prompt_degraded"},
            )
            return None

        semaphore = asyncio.Semaphore(self._fanout_limit)

        async def resolve(suggestion: TitleSuggestion) -> Optional[Resolved]:
            async with semaphore:
                try:
                    books, origin = await self._direct_fetch(suggestion.search_terms(), 1)
                except ProviderUnavailable as exc:
                    logger.debug("Title %r unresolved: %s", suggestion.title, exc)
                    return None
            if not books:
                return None
            book = books[0]
            book.confidence = suggestion.confidence
            return book, origin

        resolved = [entry for entry in await asyncio.gather(*(resolve(s) for s in suggestions)) if entry]
        if not resolved:
            return None
        books = [book for book, _ in resolved]
        origins = [entry_origin for _, entry_origin in resolved]

        # Sparse matches are topped up with a direct search of the raw query.
        if len(books) < max(MIN_PROMPT_MATCHES, max_results / 2) and len(books) < size:
            try:
                extra, extra_origin = await self._direct_fetch(query, size - len(books))
            except ProviderUnavailable as exc:
                logger.info(
                    "Direct supplement for %r failed: %s",
                    query,
                    exc,
                    extra={"event": "search.prompt_supplement_failed"},
                )
            else:
                seen_ids = {book.id for book in books}
                supplement = [book for book in extra if book.id not in seen_ids]
                if supplement:
                    books.extend(supplement)
                    origins.append(extra_origin)

        origin = (
            ResultOrigin.PRIMARY
            if all(entry_origin is ResultOrigin.PRIMARY for entry_origin in origins)
            else ResultOrigin.FALLBACK
        )
        return books, origin

    async def _suggest(self, query: str, size: int) -> List[TitleSuggestion]:
        if self._generator is None:
            return []
        request = GeneratorRequest(
            kind="search",
            query=query,
            max_recommendations=min(max(size * 2, 5), MAX_PROMPT_SUGGESTIONS),
        )
        try:
            return await asyncio.wait_for(self._generator.suggest(request), self._generator_timeout)
        except asyncio.TimeoutError:
            logger.warning("Generator timed out for %r", query, extra={"event": "generator.timeout"})
        except ProviderUnavailable as exc:
            logger.warning(
                "Generator unavailable for %r: %s",
                query,
                exc,
                extra={"event": "generator.unavailable"},
            )
        return []

    async def _call(
        self, client: BaseCatalogClient, factory: Callable[[], Awaitable[T]]
    ) -> T:
        """Run one adapter call under the outbound limiter and timeout."""
        source = client.source
        limiter = self._outbound.get(source) if self._outbound is not None else None
        if limiter is not None and not limiter.admit(f"catalog:{source}").allowed:
            CATALOG_FAILURES.labels(source=source).inc()
            raise ProviderUnavailable(source, f"{source} outbound rate limit reached")
        started = self._timer()
        try:
            return await asyncio.wait_for(factory(), self._catalog_timeout)
        except asyncio.TimeoutError as exc:
            CATALOG_FAILURES.labels(source=source).inc()
            logger.warning(
                "%s timed out after %.1fs",
                source,
                self._catalog_timeout,
                extra={"event": "catalog.timeout", "source": source},
            )
            raise ProviderUnavailable(source, f"{source} timed out", cause=exc) from exc
        except ProviderUnavailable as exc:
            CATALOG_FAILURES.labels(source=source).inc()
            logger.warning(
                "%s unavailable: %s",
                source,
                exc,
                extra={
                    "event": "catalog.unavailable",
                    "source": source,
                    "duration_ms": round((self._timer() - started) * 1000, 2),
                },
            )
            raise

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _result_from_cache(
        self, cached: Any, request: SearchRequest, started: float
    ) -> Optional[SearchResult]:
        if not isinstance(cached, dict) or not isinstance(cached.get("books"), list):
            return None
        try:
            books = [NormalizedBook.from_dict(entry) for entry in cached["books"]]
        except (TypeError, ValueError) as exc:
            logger.debug("Ignoring unreadable cached search: %s", exc)
            return None
        return SearchResult(
            books=books,
            total_results=int(cached.get("totalResults", len(books))),
            search_time_ms=(self._timer() - started) * 1000,
            result_origin=ResultOrigin.CACHE,
            query=request.query.strip(),
            mode=request.mode,
        )

    def _record(self, result: SearchResult) -> None:
        SEARCH_REQUESTS.labels(mode=result.mode.value, origin=result.result_origin.value).inc()
        SEARCH_DURATION.labels(mode=result.mode.value).observe(result.search_time_ms / 1000)


__all__ = ["SearchOrchestrator"]
