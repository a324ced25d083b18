"""Book-page recommendations: same author, same genre, then generated picks."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, List, Optional

from discovery import logging_manager as log_mgr
from discovery.errors import DiscoveryError, ValidationError
from discovery.metrics import RECOMMENDATION_SECTIONS

from ..cache import CacheGateway, CacheKeys, CacheTTL
from ..catalog.normalization import string_list, title_key
from ..catalog.types import NormalizedBook, SearchRequest
from .aggregator import SECTION_ERRORS, resolve_suggestions
from .generator import GeneratorRequest, RecommendationGenerator
from .sections import RecommendationResponse, RecommendationSection, SectionType, SeenBooks

if TYPE_CHECKING:
    from ..search_orchestrator import SearchOrchestrator

logger = log_mgr.get_logger().getChild("services.recommendations.related")

MAX_RELATED_RECOMMENDATIONS = 20
DEFAULT_RELATED_RECOMMENDATIONS = 10
CONTEXT_AUTHORS = 2
CONTEXT_GENRES = 2
BOOKS_PER_AUTHOR = 3
BOOKS_PER_GENRE = 3
MAX_SIMILAR_SUGGESTIONS = 5


@dataclass(slots=True)
class BookContext:
    """What is known about the book the page is showing."""

    title: str
    authors: List[str] = field(default_factory=list)
    genres: List[str] = field(default_factory=list)

    @classmethod
    def from_book(cls, book: NormalizedBook) -> "BookContext":
        return cls(title=book.title, authors=list(book.authors), genres=list(book.categories))


@dataclass(slots=True)
class RelatedOptions:
    max_recommendations: int = DEFAULT_RELATED_RECOMMENDATIONS
    include_author_books: bool = True
    include_genre_books: bool = True
    exclude_current_book: bool = False

    def validate(self) -> List[str]:
        if not 1 <= self.max_recommendations <= MAX_RELATED_RECOMMENDATIONS:
            return [f"maxRecommendations must be between 1 and {MAX_RELATED_RECOMMENDATIONS}"]
        return []


def split_list_param(value: Optional[str]) -> List[str]:
    """Split a comma separated query parameter into trimmed entries."""
    if not value:
        return []
    return string_list([part for part in value.split(",")])


class RelatedBooksService:
    """Recommendations for a single book page; the caller may be anonymous."""

    def __init__(
        self,
        orchestrator: SearchOrchestrator,
        cache: CacheGateway,
        *,
        generator: Optional[RecommendationGenerator] = None,
        fanout_limit: int = 5,
        generator_timeout: float = 15.0,
        cache_ttl: int = CacheTTL.RELATED_BOOKS,
        timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._orchestrator = orchestrator
        self._cache = cache
        self._generator = generator
        self._fanout_limit = fanout_limit
        self._generator_timeout = generator_timeout
        self._cache_ttl = cache_ttl
        self._timer = timer

    async def related(
        self,
        book_id: str,
        options: Optional[RelatedOptions] = None,
        *,
        title: Optional[str] = None,
        authors: Optional[List[str]] = None,
        genres: Optional[List[str]] = None,
        refresh: bool = False,
    ) -> RecommendationResponse:
        """Return related-book sections for ``book_id``.

        When ``title`` is given the explicit context is used as-is; otherwise
        the book id is resolved through the search chain. An unresolvable
        book yields an empty response.
        """
        options = options or RelatedOptions()
        errors = options.validate()
        if not (book_id or "").strip():
            errors.insert(0, "A book id is required")
        if errors:
            raise ValidationError(errors)

        started = self._timer()
        cache_key = CacheKeys.related_books(
            book_id,
            max=options.max_recommendations,
            authors_on=options.include_author_books,
            genres_on=options.include_genre_books,
            exclude=options.exclude_current_book,
            title=title or "",
            authors=authors or [],
            genres=genres or [],
        )
        if not refresh:
            cached = await self._cache.get(cache_key)
            if isinstance(cached, dict):
                return RecommendationResponse.from_dict(cached).mark_cached()

        context = await self._context(book_id, title, authors, genres)
        response = RecommendationResponse()
        if context is not None:
            response.sections = await self._sections(book_id, context, options)
        response.processing_time_ms = (self._timer() - started) * 1000
        await self._cache.set(cache_key, response.to_dict(), self._cache_ttl)
        logger.info(
            "Built %d related sections for %s",
            len(response.sections),
            book_id,
            extra={
                "event": "recommendations.related",
                "duration_ms": round(response.processing_time_ms, 2),
            },
        )
        return response

    async def _context(
        self,
        book_id: str,
        title: Optional[str],
        authors: Optional[List[str]],
        genres: Optional[List[str]],
    ) -> Optional[BookContext]:
        if title and title.strip():
            return BookContext(
                title=title.strip(),
                authors=string_list(authors or []),
                genres=string_list(genres or []),
            )
        try:
            result = await self._orchestrator.search(SearchRequest(query=book_id, max_results=1))
        except DiscoveryError as exc:
            logger.warning("Could not resolve context for %s: %s", book_id, exc)
            return None
        if not result.books:
            return None
        return BookContext.from_book(result.books[0])

    async def _sections(
        self, book_id: str, context: BookContext, options: RelatedOptions
    ) -> List[RecommendationSection]:
        limit = options.max_recommendations
        current = title_key(context.title)
        seen = SeenBooks()
        sections: List[RecommendationSection] = []

        def is_current(book: NormalizedBook) -> bool:
            return bool(options.exclude_current_book and current and current in title_key(book.title))

        def append(section_type: str, title: str, books: List[NormalizedBook], section_started: float) -> None:
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

        if options.include_author_books:
            for author in context.authors[:CONTEXT_AUTHORS]:
                remaining = limit - len(seen)
                if remaining <= 0:
                    break
                section_started = self._timer()
                found = await self._search(f'inauthor:"{author}"', BOOKS_PER_AUTHOR)
                books = seen.take(
                    (book for book in found if not is_current(book)),
                    min(BOOKS_PER_AUTHOR, remaining),
                )
                append(SectionType.AUTHOR, f"Books by {author}", books, section_started)

        if options.include_genre_books:
            for genre in context.genres[:CONTEXT_GENRES]:
                remaining = limit - len(seen)
                if remaining <= 0:
                    break
                section_started = self._timer()
                found = await self._search(f'subject:"{genre}"', min(BOOKS_PER_GENRE + 1, remaining + 1))
                books = seen.take(
                    (book for book in found if not is_current(book)),
                    min(BOOKS_PER_GENRE, remaining),
                )
                append(SectionType.GENRE, f"{genre} books", books, section_started)

        remaining = limit - len(seen)
        if remaining > 0 and self._generator is not None:
            section_started = self._timer()
            try:
                books = await self._similar(context, remaining, seen, is_current)
            except SECTION_ERRORS as exc:
                logger.warning(
                    "Skipping similar section for %s: %s",
                    book_id,
                    exc,
                    extra={"event": "recommendations.section_failed", "section": SectionType.SIMILAR},
                )
                books = []
            append(SectionType.SIMILAR, "AI recommendations", books, section_started)
        return sections

    async def _search(self, query: str, max_results: int) -> List[NormalizedBook]:
        try:
            result = await self._orchestrator.search(SearchRequest(query=query, max_results=max_results))
        except DiscoveryError as exc:
            logger.warning("Related search %r failed: %s", query, exc)
            return []
        return result.books

    async def _similar(
        self,
        context: BookContext,
        remaining: int,
        seen: SeenBooks,
        is_current: Callable[[NormalizedBook], bool],
    ) -> List[NormalizedBook]:
        described = context.title
        if context.authors:
            described = f"{context.title} by {', '.join(context.authors)}"
        request = GeneratorRequest(
            kind="similar",
            query=described,
            favorite_genres=list(context.genres),
            exclude_titles=[context.title, *seen.titles()],
            max_recommendations=min(remaining + 2, MAX_SIMILAR_SUGGESTIONS),
        )
        suggestions = await asyncio.wait_for(self._generator.suggest(request), self._generator_timeout)
        resolved = await resolve_suggestions(
            self._orchestrator, suggestions[:remaining], self._fanout_limit
        )
        return seen.take((book for book in resolved if book is not None and not is_current(book)), remaining)


__all__ = [
    "BookContext",
    "RelatedBooksService",
    "RelatedOptions",
    "split_list_param",
]
