from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import httpx
import pytest

from discovery.errors import ProviderUnavailable
from discovery.services.catalog.clients.google_books import GoogleBooksClient, parse_volume
from discovery.services.catalog.clients.openlibrary import OpenLibraryClient
from discovery.services.catalog.types import UNKNOWN_AUTHOR, BookSource

GOOGLE_VOLUME: Dict[str, Any] = {
    "id": "zyTCAlFPjgYC",
    "volumeInfo": {
        "title": "The Google Story",
        "authors": ["David A. Vise", "Mark Malseed"],
        "publishedDate": "2005-11-15",
        "description": "<p>Here is the story <b>behind</b> Google.</p>",
        "industryIdentifiers": [
            {"type": "ISBN_10", "identifier": "055380457X"},
            {"type": "ISBN_13", "identifier": "978-0-553-80457-3"},
        ],
        "pageCount": 207,
        "categories": ["Browsers (Computer programs)"],
        "imageLinks": {
            "smallThumbnail": "http://books.google.com/small.jpg",
            "thumbnail": "http://books.google.com/thumb.jpg",
        },
        "language": "en",
    },
}


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_parse_volume_normalizes_google_fields():
    book = parse_volume(GOOGLE_VOLUME)
    assert book is not None
    assert book.source is BookSource.GOOGLE
    assert book.title == "The Google Story"
    assert book.authors == ["David A. Vise", "Mark Malseed"]
    assert book.description == "Here is the story behind Google."
    assert book.isbn == "9780553804573"
    assert book.image_url == "https://books.google.com/thumb.jpg"
    assert book.page_count == 207
    assert book.language == "en"


def test_parse_volume_defaults_missing_authors_and_skips_untitled():
    book = parse_volume({"id": "x", "volumeInfo": {"title": "Anonymous"}})
    assert book is not None
    assert book.authors == [UNKNOWN_AUTHOR]
    assert parse_volume({"id": "x", "volumeInfo": {}}) is None
    assert parse_volume({"volumeInfo": {"title": "No id"}}) is None


def test_google_search_pages_until_enough_results():
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        start = int(request.url.params["startIndex"])
        size = int(request.url.params["maxResults"])
        items = [
            {"id": f"v{start + i}", "volumeInfo": {"title": f"Book {start + i}"}}
            for i in range(size)
        ]
        return httpx.Response(200, json={"totalItems": 1000, "items": items})

    client = GoogleBooksClient(client=_client(handler), api_key="secret-key")
    books = asyncio.run(client.search("dune", 50))

    assert len(books) == 50
    assert [r.url.params["maxResults"] for r in requests] == ["40", "10"]
    assert [r.url.params["startIndex"] for r in requests] == ["0", "40"]
    assert requests[0].url.params["key"] == "secret-key"


def test_google_search_stops_on_short_page():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"totalItems": 1, "items": [GOOGLE_VOLUME]})

    books = asyncio.run(GoogleBooksClient(client=_client(handler)).search("google", 20))
    assert [book.id for book in books] == ["zyTCAlFPjgYC"]


def test_google_search_without_items_is_empty():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"totalItems": 0})

    assert asyncio.run(GoogleBooksClient(client=_client(handler)).search("nothing", 5)) == []


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(429, text="slow down"),
        httpx.Response(403, json={"error": {"errors": [{"reason": "dailyLimitExceeded"}]}}),
        httpx.Response(200, text="<html>not json</html>"),
    ],
)
def test_google_failures_become_provider_unavailable(response: httpx.Response):
    client = GoogleBooksClient(client=_client(lambda request: response))
    with pytest.raises(ProviderUnavailable) as excinfo:
        asyncio.run(client.search("dune", 5))
    assert excinfo.value.source == "google"


def test_transport_errors_become_provider_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderUnavailable):
        asyncio.run(OpenLibraryClient(client=_client(handler)).search("dune", 5))


def test_google_get_by_id_returns_none_on_404():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/volumes/zyTCAlFPjgYC"):
            return httpx.Response(200, json=GOOGLE_VOLUME)
        return httpx.Response(404, json={"error": "not found"})

    client = GoogleBooksClient(client=_client(handler))
    assert asyncio.run(client.get_by_id("zyTCAlFPjgYC")).title == "The Google Story"
    assert asyncio.run(client.get_by_id("missing")) is None


def test_openlibrary_search_parses_documents():
    seen: Dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(dict(request.url.params))
        return httpx.Response(
            200,
            json={
                "numFound": 2,
                "docs": [
                    {
                        "key": "/works/OL45804W",
                        "title": "Fantastic Mr Fox",
                        "author_name": ["Roald Dahl"],
                        "first_publish_year": 1970,
                        "isbn": ["bad", "0140328726"],
                        "subject": ["Animals", "Foxes", "Fiction", "Farmers", "Juvenile", "Extra"],
                        "cover_i": 6498519,
                        "language": ["eng"],
                        "number_of_pages_median": 96,
                    },
                    {"key": "/works/OL1W"},
                ],
            },
        )

    client = OpenLibraryClient(client=_client(handler), covers_url="https://covers.example/b")
    books = asyncio.run(client.search("fantastic mr fox", 10))

    assert seen["q"] == "fantastic mr fox"
    assert seen["limit"] == "10"
    assert len(books) == 1
    book = books[0]
    assert book.id == "OL45804W"
    assert book.source is BookSource.OPENLIBRARY
    assert book.authors == ["Roald Dahl"]
    assert book.published_date == "1970"
    assert book.isbn == "0140328726"
    assert book.image_url == "https://covers.example/b/id/6498519-L.jpg"
    assert len(book.categories) == 5
    assert book.page_count == 96
    assert book.language == "eng"


def test_openlibrary_get_by_id_resolves_author_names():
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/works/OL45804W.json":
            return httpx.Response(
                200,
                json={
                    "key": "/works/OL45804W",
                    "title": "Fantastic Mr Fox",
                    "description": {"type": "/type/text", "value": "A fox outwits farmers."},
                    "covers": [-1, 6498519],
                    "subjects": ["Foxes"],
                    "authors": [
                        {"author": {"key": "/authors/OL34184A"}},
                        {"author": {"key": "/authors/OL_MISSING"}},
                    ],
                },
            )
        if path == "/authors/OL34184A.json":
            return httpx.Response(200, json={"name": "Roald Dahl"})
        return httpx.Response(404)

    book = asyncio.run(OpenLibraryClient(client=_client(handler)).get_by_id("/works/OL45804W"))
    assert book is not None
    assert book.authors == ["Roald Dahl"]
    assert book.description == "A fox outwits farmers."
    assert book.image_url.endswith("/id/6498519-L.jpg")
    assert book.categories == ["Foxes"]


def test_openlibrary_unknown_work_is_none():
    client = OpenLibraryClient(client=_client(lambda request: httpx.Response(404)))
    assert asyncio.run(client.get_by_id("OL0W")) is None
