"""Google Books API client."""

from __future__ import annotations

import re
from urllib.parse import quote
from typing import Any, Dict, List, Mapping, Optional

import httpx

from discovery import logging_manager as log_mgr
from discovery.errors import ProviderUnavailable

from ..normalization import (
    authors_or_unknown,
    normalize_isbn,
    normalize_text,
    select_thumbnail,
    string_list,
)
from ..types import BookSource, NormalizedBook
from .base import BaseCatalogClient

logger = log_mgr.get_logger().getChild("services.catalog.clients.google_books")

_GOOGLE_BOOKS_BASE_URL = "https://www.googleapis.com/books/v1"

# volumes endpoint refuses maxResults above 40
_PAGE_SIZE = 40


def _strip_html(text: str) -> str:
    """Strip HTML tags from text."""
    return re.sub(r"<[^>]+>", "", text).strip()


def _select_isbn(identifiers: Any) -> Optional[str]:
    """Prefer ISBN-13 over ISBN-10."""
    if not isinstance(identifiers, list):
        return None
    found: Dict[str, str] = {}
    for entry in identifiers:
        if not isinstance(entry, Mapping):
            continue
        value = normalize_isbn(entry.get("identifier"))
        id_type = entry.get("type")
        if value and id_type in {"ISBN_13", "ISBN_10"} and id_type not in found:
            found[id_type] = value
    return found.get("ISBN_13") or found.get("ISBN_10")


def parse_volume(item: Any) -> Optional[NormalizedBook]:
    """Translate one ``volumes`` item into a :class:`NormalizedBook`.

    Returns ``None`` when the item lacks an id or a title.
    """
    if not isinstance(item, Mapping):
        return None
    volume_id = normalize_text(item.get("id"))
    volume_info = item.get("volumeInfo")
    if not volume_id or not isinstance(volume_info, Mapping):
        return None
    title = normalize_text(volume_info.get("title"))
    if not title:
        return None

    description = normalize_text(volume_info.get("description"))
    if description:
        description = _strip_html(description) or None

    page_count = volume_info.get("pageCount")
    if isinstance(page_count, bool) or not isinstance(page_count, int) or page_count <= 0:
        page_count = None

    return NormalizedBook(
        id=volume_id,
        title=title,
        source=BookSource.GOOGLE,
        authors=authors_or_unknown(volume_info.get("authors")),
        description=description,
        published_date=normalize_text(volume_info.get("publishedDate")),
        isbn=_select_isbn(volume_info.get("industryIdentifiers")),
        image_url=select_thumbnail(volume_info.get("imageLinks")),
        categories=string_list(volume_info.get("categories")),
        page_count=page_count,
        language=normalize_text(volume_info.get("language")),
    )


class GoogleBooksClient(BaseCatalogClient):
    """Google Books volumes API adapter.

    An API key raises the daily quota but is not required.
    """

    name = BookSource.GOOGLE
    requires_api_key = False

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
        timeout_seconds: float = 5.0,
        base_url: str = _GOOGLE_BOOKS_BASE_URL,
    ) -> None:
        super().__init__(
            client=client, api_key=api_key, timeout_seconds=timeout_seconds, base_url=base_url
        )

    def _params(self, **params: Any) -> Dict[str, Any]:
        if self._api_key:
            params["key"] = self._api_key
        return params

    async def search(self, query: str, max_results: int) -> List[NormalizedBook]:
        """Search volumes, paging in blocks of 40 until ``max_results`` books are collected."""
        wanted = max(1, int(max_results))
        books: List[NormalizedBook] = []
        start_index = 0
        logger.debug("Searching Google Books: %s", query, extra={"source": self.source})

        while len(books) < wanted:
            page_size = min(_PAGE_SIZE, wanted - len(books))
            payload = await self._get_json(
                f"{self._base_url}/volumes",
                params=self._params(q=query, maxResults=page_size, startIndex=start_index),
            )
            if not isinstance(payload, Mapping):
                raise ProviderUnavailable(self.source, "google returned an unexpected payload")
            items = payload.get("items") or []
            if not isinstance(items, list) or not items:
                break
            for item in items:
                book = parse_volume(item)
                if book is not None:
                    books.append(book)
            start_index += len(items)
            total = payload.get("totalItems")
            if len(items) < page_size or (isinstance(total, int) and start_index >= total):
                break

        return books[:wanted]

    async def get_by_id(self, book_id: str) -> Optional[NormalizedBook]:
        """Fetch a single volume; ``None`` when Google reports it unknown."""
        volume_id = (book_id or "").strip()
        if not volume_id:
            return None
        payload = await self._get_json(
            f"{self._base_url}/volumes/{quote(volume_id, safe='')}",
            params=self._params(),
            allow_not_found=True,
        )
        if payload is None:
            return None
        return parse_volume(payload)


__all__ = ["GoogleBooksClient", "parse_volume"]
