from __future__ import annotations

import asyncio

import pytest

from discovery.errors import NotFound, ProviderUnavailable, ValidationError
from discovery.services.cache import CacheGateway, InMemoryCacheStore
from discovery.services.catalog.types import (
    BookSource,
    ResultOrigin,
    SearchMode,
    SearchRequest,
)
from discovery.services.rate_limiter import RateLimitPolicy, RateLimiterRegistry
from discovery.services.recommendations.generator import TitleSuggestion
from tests.helpers.discovery_fakes import (
    BrokenCacheStore,
    FakeCatalogClient,
    FakeClock,
    FakeGenerator,
    build_orchestrator,
    make_book,
)


def _google(**kwargs) -> FakeCatalogClient:
    return FakeCatalogClient(BookSource.GOOGLE, **kwargs)


def _openlibrary(**kwargs) -> FakeCatalogClient:
    return FakeCatalogClient(BookSource.OPENLIBRARY, **kwargs)


def test_primary_results_skip_the_fallback():
    primary = _google(default=[make_book("g1", "Dune"), make_book("g2", "Dune Messiah")])
    fallback = _openlibrary(default=[make_book("OL1W", "Other", source="openlibrary")])
    orchestrator = build_orchestrator(primary, fallback)

    result = asyncio.run(orchestrator.search(SearchRequest(query="dune", max_results=10)))

    assert result.result_origin is ResultOrigin.PRIMARY
    assert [book.id for book in result.books] == ["g1", "g2"]
    assert fallback.search_calls == []


def test_empty_primary_uses_fallback():
    primary = _google(default=[])
    fallback = _openlibrary(default=[make_book("OL1W", "Dune", source="openlibrary")])
    result = asyncio.run(
        build_orchestrator(primary, fallback).search(SearchRequest(query="dune"))
    )
    assert result.result_origin is ResultOrigin.FALLBACK
    assert result.books[0].source is BookSource.OPENLIBRARY


def test_failed_primary_uses_fallback():
    primary = _google(error=ProviderUnavailable("google", "quota exceeded"))
    fallback = _openlibrary(default=[make_book("OL1W", "Dune", source="openlibrary")])
    result = asyncio.run(
        build_orchestrator(primary, fallback).search(SearchRequest(query="dune"))
    )
    assert result.result_origin is ResultOrigin.FALLBACK
    assert result.total_results == 1


def test_both_catalogs_failing_raises():
    primary = _google(error=ProviderUnavailable("google", "down"))
    fallback = _openlibrary(error=ProviderUnavailable("openlibrary", "down"))
    with pytest.raises(ProviderUnavailable):
        asyncio.run(build_orchestrator(primary, fallback).search(SearchRequest(query="dune")))


def test_empty_primary_and_failed_fallback_is_empty_result():
    primary = _google(default=[])
    fallback = _openlibrary(error=ProviderUnavailable("openlibrary", "down"))
    result = asyncio.run(build_orchestrator(primary, fallback).search(SearchRequest(query="dune")))
    assert result.books == []
    assert result.result_origin is ResultOrigin.PRIMARY


def test_slow_primary_times_out_into_fallback():
    primary = _google(default=[make_book("g1", "Dune")], delay=1.0)
    fallback = _openlibrary(default=[make_book("OL1W", "Dune", source="openlibrary")])
    orchestrator = build_orchestrator(primary, fallback, catalog_timeout=0.05)
    result = asyncio.run(orchestrator.search(SearchRequest(query="dune")))
    assert result.result_origin is ResultOrigin.FALLBACK


def test_results_are_deduplicated_and_paged():
    books = [
        make_book("a", "Dune"),
        make_book("b", "DUNE"),
        make_book("a", "Dune (copy)"),
        make_book("c", "Children of Dune"),
        make_book("d", "Chapterhouse"),
    ]
    orchestrator = build_orchestrator(_google(default=books))
    result = asyncio.run(
        orchestrator.search(SearchRequest(query="dune", max_results=10, start_index=1))
    )
    assert result.total_results == 3
    assert [book.id for book in result.books] == ["c", "d"]


def test_second_search_is_served_from_cache():
    primary = _google(default=[make_book("g1", "Dune")])
    orchestrator = build_orchestrator(primary)

    async def scenario():
        first = await orchestrator.search(SearchRequest(query="Dune"))
        second = await orchestrator.search(SearchRequest(query="  dune "))
        return first, second

    first, second = asyncio.run(scenario())
    assert first.result_origin is ResultOrigin.PRIMARY
    assert second.result_origin is ResultOrigin.CACHE
    assert second.cached is True
    assert [book.id for book in second.books] == ["g1"]
    assert len(primary.search_calls) == 1


def test_refresh_and_use_cache_bypass_reads():
    primary = _google(default=[make_book("g1", "Dune")])
    orchestrator = build_orchestrator(primary)

    async def scenario():
        await orchestrator.search(SearchRequest(query="dune"))
        refreshed = await orchestrator.search(SearchRequest(query="dune", refresh=True))
        uncached = await orchestrator.search(SearchRequest(query="dune", use_cache=False))
        return refreshed, uncached

    refreshed, uncached = asyncio.run(scenario())
    assert refreshed.result_origin is ResultOrigin.PRIMARY
    assert uncached.result_origin is ResultOrigin.PRIMARY
    assert len(primary.search_calls) == 3


def test_broken_cache_does_not_change_results():
    primary = _google(default=[make_book("g1", "Dune")])
    orchestrator = build_orchestrator(primary, cache=CacheGateway(BrokenCacheStore()))
    result = asyncio.run(orchestrator.search(SearchRequest(query="dune")))
    assert result.result_origin is ResultOrigin.PRIMARY
    assert [book.id for book in result.books] == ["g1"]


def test_invalid_requests_are_rejected_before_any_call():
    primary = _google(default=[make_book("g1", "Dune")])
    orchestrator = build_orchestrator(primary)
    for request in (
        SearchRequest(query="   "),
        SearchRequest(query="x" * 501),
        SearchRequest(query="dune", max_results=0),
        SearchRequest(query="dune", max_results=51),
        SearchRequest(query="dune", start_index=-1),
    ):
        with pytest.raises(ValidationError):
            asyncio.run(orchestrator.search(request))
    assert primary.search_calls == []


def test_no_configured_catalog_is_unavailable():
    with pytest.raises(ProviderUnavailable):
        asyncio.run(build_orchestrator().search(SearchRequest(query="dune")))


def test_outbound_limit_exhaustion_falls_back():
    clock = FakeClock()
    outbound = RateLimiterRegistry([RateLimitPolicy("google", 1, 60)], clock=clock)
    primary = _google(default=[make_book("g1", "Dune")])
    fallback = _openlibrary(default=[make_book("OL1W", "Dune", source="openlibrary")])
    orchestrator = build_orchestrator(primary, fallback, outbound_limiters=outbound)

    async def scenario():
        first = await orchestrator.search(SearchRequest(query="dune", use_cache=False))
        second = await orchestrator.search(SearchRequest(query="dune", use_cache=False))
        return first, second

    first, second = asyncio.run(scenario())
    assert first.result_origin is ResultOrigin.PRIMARY
    assert second.result_origin is ResultOrigin.FALLBACK
    assert len(primary.search_calls) == 1


def test_prompt_driven_search_resolves_generated_titles():
    primary = _google(
        results={
            "Dune Frank Herbert": [make_book("g1", "Dune", authors=["Frank Herbert"])],
            "Hyperion Dan Simmons": [make_book("g2", "Hyperion", authors=["Dan Simmons"])],
            "Unfindable": [],
        }
    )
    generator = FakeGenerator(
        [
            TitleSuggestion("Dune", "Frank Herbert", "classic", 0.9),
            TitleSuggestion("Unfindable", None, "n/a", 0.3),
            TitleSuggestion("Hyperion", "Dan Simmons", "space opera", 0.8),
        ]
    )
    orchestrator = build_orchestrator(primary, generator=generator)
    request = SearchRequest(query="epic science fiction", mode=SearchMode.PROMPT_DRIVEN, max_results=3)

    result = asyncio.run(orchestrator.search(request))

    assert [book.id for book in result.books] == ["g1", "g2"]
    assert [book.confidence for book in result.books] == [0.9, 0.8]
    assert result.result_origin is ResultOrigin.PRIMARY
    assert result.mode is SearchMode.PROMPT_DRIVEN
    assert generator.requests[0].max_recommendations == 6


def test_prompt_driven_search_degrades_when_generator_fails():
    primary = _google(default=[make_book("g1", "Space Book")])
    generator = FakeGenerator(error=ProviderUnavailable("generator", "offline"))
    orchestrator = build_orchestrator(primary, generator=generator)

    result = asyncio.run(
        orchestrator.search(SearchRequest(query="space", mode=SearchMode.PROMPT_DRIVEN))
    )
    assert [book.id for book in result.books] == ["g1"]
    assert primary.search_calls == [("space", 20)]


def test_prompt_driven_search_degrades_on_generator_timeout():
    primary = _google(default=[make_book("g1", "Space Book")])
    generator = FakeGenerator([TitleSuggestion("Late", None, "", 0.5)], delay=1.0)
    orchestrator = build_orchestrator(primary, generator=generator, generator_timeout=0.05)
    result = asyncio.run(
        orchestrator.search(SearchRequest(query="space", mode=SearchMode.PROMPT_DRIVEN))
    )
    assert [book.id for book in result.books] == ["g1"]


def test_prompt_driven_search_tops_up_sparse_matches_with_direct_hits():
    direct_hits = [make_book(f"d{i}", f"Space Opera {i}") for i in range(10)]
    primary = _google(
        results={
            "Hyperion Dan Simmons": [make_book("g1", "Hyperion", authors=["Dan Simmons"])],
            "space operas": [make_book("g1", "Hyperion")] + direct_hits,
        }
    )
    generator = FakeGenerator([TitleSuggestion("Hyperion", "Dan Simmons", "classic", 0.9)])
    orchestrator = build_orchestrator(primary, generator=generator)

    result = asyncio.run(
        orchestrator.search(
            SearchRequest(query="space operas", mode=SearchMode.PROMPT_DRIVEN, max_results=20)
        )
    )

    assert [book.id for book in result.books] == ["g1"] + [f"d{i}" for i in range(10)]
    assert result.books[0].confidence == 0.9
    assert ("space operas", 19) in primary.search_calls
    assert result.result_origin is ResultOrigin.PRIMARY
    assert generator.requests[0].max_recommendations == 20


def test_prompt_driven_search_skips_top_up_when_enough_titles_resolve():
    titles = [f"Title {i}" for i in range(4)]
    primary = _google(
        results={title: [make_book(f"g{i}", title)] for i, title in enumerate(titles)},
        default=[make_book("direct", "Direct Hit")],
    )
    generator = FakeGenerator([TitleSuggestion(title, None, "", 0.5) for title in titles])
    orchestrator = build_orchestrator(primary, generator=generator)

    result = asyncio.run(
        orchestrator.search(
            SearchRequest(query="anything", mode=SearchMode.PROMPT_DRIVEN, max_results=4)
        )
    )

    assert [book.id for book in result.books] == ["g0", "g1", "g2", "g3"]
    assert all(query != "anything" for query, _ in primary.search_calls)


class _QuotaOnQuery(FakeCatalogClient):
    """Answers title lookups but fails for one raw query."""

    def __init__(self, failing_query: str, **kwargs) -> None:
        super().__init__(BookSource.GOOGLE, **kwargs)
        self.failing_query = failing_query

    async def search(self, query: str, max_results: int):
        if query == self.failing_query:
            raise ProviderUnavailable("google", "quota exceeded")
        return await super().search(query, max_results)


def test_prompt_driven_top_up_failure_keeps_resolved_titles():
    primary = _QuotaOnQuery("deserts", results={"Dune": [make_book("g1", "Dune")]})
    generator = FakeGenerator([TitleSuggestion("Dune", None, "", 0.7)])
    orchestrator = build_orchestrator(primary, generator=generator)

    result = asyncio.run(
        orchestrator.search(SearchRequest(query="deserts", mode=SearchMode.PROMPT_DRIVEN))
    )
    assert [book.id for book in result.books] == ["g1"]


def test_prompt_driven_resolution_respects_fanout_limit():
    titles = [f"Title {i}" for i in range(6)]
    primary = _google(
        results={title: [make_book(f"g{i}", title)] for i, title in enumerate(titles)},
        delay=0.01,
    )
    generator = FakeGenerator([TitleSuggestion(title, None, "", 0.5) for title in titles])
    orchestrator = build_orchestrator(primary, generator=generator, fanout_limit=2)

    result = asyncio.run(
        orchestrator.search(
            SearchRequest(query="six books", mode=SearchMode.PROMPT_DRIVEN, max_results=6)
        )
    )

    assert len(result.books) == 6
    assert len(primary.search_calls) == 6
    assert primary.peak_in_flight == 2


def test_get_book_is_cached():
    book = make_book("g1", "Dune")
    primary = _google(books_by_id={"g1": book})
    orchestrator = build_orchestrator(primary)

    async def scenario():
        return await orchestrator.get_book("google", "g1"), await orchestrator.get_book("google", "g1")

    first, second = asyncio.run(scenario())
    assert first.title == second.title == "Dune"
    assert primary.lookup_calls == ["g1"]


def test_get_book_errors():
    orchestrator = build_orchestrator(_google(), _openlibrary())
    with pytest.raises(ValidationError):
        asyncio.run(orchestrator.get_book("amazon", "x"))
    with pytest.raises(ValidationError):
        asyncio.run(orchestrator.get_book("favorite", "x"))
    with pytest.raises(NotFound):
        asyncio.run(orchestrator.get_book("openlibrary", "OL0W"))


def test_get_book_for_unconfigured_source_is_unavailable():
    orchestrator = build_orchestrator(_google())
    with pytest.raises(ProviderUnavailable):
        asyncio.run(orchestrator.get_book("openlibrary", "OL1W"))


def test_resolve_returns_first_hit_or_none():
    primary = _google(results={"Dune Frank Herbert": [make_book("g1", "Dune")]})
    orchestrator = build_orchestrator(primary)
    hit = asyncio.run(orchestrator.resolve(TitleSuggestion("Dune", "Frank Herbert", "", 0.7)))
    miss = asyncio.run(orchestrator.resolve(TitleSuggestion("Nothing", None, "", 0.7)))
    assert hit is not None and hit.confidence == 0.7
    assert miss is None


def test_cache_store_is_shared_between_orchestrators():
    store = InMemoryCacheStore()
    first = build_orchestrator(_google(default=[make_book("g1", "Dune")]), cache=CacheGateway(store))
    second_primary = _google(default=[])
    second = build_orchestrator(second_primary, cache=CacheGateway(store))

    asyncio.run(first.search(SearchRequest(query="dune")))
    result = asyncio.run(second.search(SearchRequest(query="dune")))
    assert result.result_origin is ResultOrigin.CACHE
    assert second_primary.search_calls == []
