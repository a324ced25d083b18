"""Open Library API client."""

from __future__ import annotations

import asyncio
from typing import Any, List, Mapping, Optional
from urllib.parse import quote

import httpx

from discovery import logging_manager as log_mgr
from discovery.errors import ProviderUnavailable

from ..normalization import (
    normalize_isbn,
    normalize_text,
    openlibrary_cover_url,
    string_list,
)
from ..types import UNKNOWN_AUTHOR, BookSource, NormalizedBook
from .base import BaseCatalogClient

logger = log_mgr.get_logger().getChild("services.catalog.clients.openlibrary")

_OPENLIBRARY_BASE_URL = "https://openlibrary.org"
_OPENLIBRARY_COVERS_URL = "https://covers.openlibrary.org/b"
_SEARCH_FIELDS = (
    "key,title,author_name,first_publish_year,isbn,subject,cover_i,"
    "language,number_of_pages_median"
)
_MAX_CATEGORIES = 5
_MAX_AUTHOR_LOOKUPS = 3


def _work_id(key: Any) -> Optional[str]:
    text = normalize_text(key)
    if not text:
        return None
    return text.rsplit("/", 1)[-1] or None


def _description(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        value = value.get("value")
    return normalize_text(value)


def _first_isbn(values: Any) -> Optional[str]:
    if not isinstance(values, list):
        return None
    for candidate in values:
        normalized = normalize_isbn(candidate)
        if normalized:
            return normalized
    return None


class OpenLibraryClient(BaseCatalogClient):
    """Open Library adapter using ``search.json`` and the works API.

    Book identifiers are bare work ids such as ``OL45804W``.
    """

    name = BookSource.OPENLIBRARY
    requires_api_key = False

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
        timeout_seconds: float = 5.0,
        base_url: str = _OPENLIBRARY_BASE_URL,
        covers_url: str = _OPENLIBRARY_COVERS_URL,
    ) -> None:
        super().__init__(
            client=client, api_key=api_key, timeout_seconds=timeout_seconds, base_url=base_url
        )
        self._covers_url = covers_url.rstrip("/")

    def parse_search_doc(self, doc: Any) -> Optional[NormalizedBook]:
        """Translate one ``search.json`` document; ``None`` without key or title."""
        if not isinstance(doc, Mapping):
            return None
        book_id = _work_id(doc.get("key"))
        title = normalize_text(doc.get("title"))
        if not book_id or not title:
            return None

        year = doc.get("first_publish_year")
        published = str(year) if isinstance(year, int) and not isinstance(year, bool) else None
        pages = doc.get("number_of_pages_median")
        if isinstance(pages, bool) or not isinstance(pages, int) or pages <= 0:
            pages = None
        languages = string_list(doc.get("language"))

        return NormalizedBook(
            id=book_id,
            title=title,
            source=BookSource.OPENLIBRARY,
            authors=string_list(doc.get("author_name")),
            published_date=published,
            isbn=_first_isbn(doc.get("isbn")),
            image_url=openlibrary_cover_url(doc.get("cover_i"), base_url=self._covers_url),
            categories=string_list(doc.get("subject"))[:_MAX_CATEGORIES],
            page_count=pages,
            language=languages[0] if languages else None,
        )

    def parse_work(self, work: Any, authors: Optional[List[str]] = None) -> Optional[NormalizedBook]:
        """Translate a ``/works/<id>.json`` document."""
        if not isinstance(work, Mapping):
            return None
        book_id = _work_id(work.get("key"))
        title = normalize_text(work.get("title"))
        if not book_id or not title:
            return None

        covers = work.get("covers")
        cover_id = None
        if isinstance(covers, list):
            cover_id = next((c for c in covers if isinstance(c, int) and c > 0), None)

        subjects = work.get("subjects", work.get("subject"))
        return NormalizedBook(
            id=book_id,
            title=title,
            source=BookSource.OPENLIBRARY,
            authors=list(authors or []),
            description=_description(work.get("description")),
            published_date=normalize_text(work.get("first_publish_date")),
            image_url=openlibrary_cover_url(cover_id, base_url=self._covers_url),
            categories=string_list(subjects)[:_MAX_CATEGORIES],
        )

    async def search(self, query: str, max_results: int) -> List[NormalizedBook]:
        """Query ``search.json`` and normalize the returned documents."""
        logger.debug("Searching Open Library: %s", query, extra={"source": self.source})
        payload = await self._get_json(
            f"{self._base_url}/search.json",
            params={"q": query, "limit": max(1, int(max_results)), "fields": _SEARCH_FIELDS},
        )
        if not isinstance(payload, Mapping):
            raise ProviderUnavailable(self.source, "openlibrary returned an unexpected payload")
        docs = payload.get("docs") or []
        if not isinstance(docs, list):
            return []
        books = [book for book in (self.parse_search_doc(doc) for doc in docs) if book]
        return books[: max(1, int(max_results))]

    async def get_by_id(self, book_id: str) -> Optional[NormalizedBook]:
        """Fetch a work and resolve its first author names."""
        work_id = _work_id(book_id)
        if not work_id:
            return None
        work = await self._get_json(
            f"{self._base_url}/works/{quote(work_id, safe='')}.json",
            allow_not_found=True,
        )
        if work is None:
            return None
        authors = await self._author_names(work.get("authors") if isinstance(work, Mapping) else None)
        return self.parse_work(work, authors)

    async def _author_names(self, entries: Any) -> List[str]:
        if not isinstance(entries, list):
            return []
        keys: List[str] = []
        for entry in entries[:_MAX_AUTHOR_LOOKUPS]:
            author = entry.get("author") if isinstance(entry, Mapping) else None
            key = normalize_text(author.get("key")) if isinstance(author, Mapping) else None
            if key:
                keys.append(key)
        results = await asyncio.gather(*(self._author_name(key) for key in keys))
        return [name for name in results if name and name != UNKNOWN_AUTHOR]

    async def _author_name(self, key: str) -> Optional[str]:
        try:
            payload = await self._get_json(f"{self._base_url}{key}.json", allow_not_found=True)
        except ProviderUnavailable as exc:
            logger.debug("Author lookup failed for %s: %s", key, exc, extra={"source": self.source})
            return None
        if not isinstance(payload, Mapping):
            return None
        return normalize_text(payload.get("name") or payload.get("personal_name"))


__all__ = ["OpenLibraryClient"]
