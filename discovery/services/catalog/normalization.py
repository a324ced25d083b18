"""Helpers shared by the catalog adapters when normalizing provider payloads."""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from .types import UNKNOWN_AUTHOR, CuratedItem, NormalizedBook

GOOGLE_THUMBNAIL_ORDER = (
    "extraLarge",
    "large",
    "medium",
    "small",
    "thumbnail",
    "smallThumbnail",
)
OPENLIBRARY_COVER_SIZES = ("L", "M", "S")
CURATED_THUMBNAIL_ORDER = (
    "large_thumbnail",
    "medium_thumbnail",
    "thumbnail",
    "small_thumbnail",
)


def normalize_text(value: Any) -> Optional[str]:
    """Return ``value`` stripped, or ``None`` when it is not a usable string."""
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def normalize_isbn(value: Any) -> Optional[str]:
    """Normalize and validate an ISBN."""
    if not isinstance(value, str):
        return None
    cleaned = re.sub(r"[^0-9Xx]", "", value)
    if len(cleaned) in {10, 13}:
        return cleaned.upper()
    return None


def string_list(value: Any) -> List[str]:
    """Coerce a provider field that may be a string or a list of strings."""
    if isinstance(value, str):
        candidates: Iterable[Any] = [value]
    elif isinstance(value, (list, tuple)):
        candidates = value
    else:
        return []
    result: List[str] = []
    for candidate in candidates:
        text = normalize_text(candidate)
        if text and text not in result:
            result.append(text)
    return result


def authors_or_unknown(value: Any) -> List[str]:
    names = string_list(value)
    return names or [UNKNOWN_AUTHOR]


def primary_author(authors: Sequence[str]) -> str:
    for name in authors:
        text = normalize_text(name)
        if text:
            return text
    return UNKNOWN_AUTHOR


def https_url(url: Optional[str]) -> Optional[str]:
    """Upgrade a plain ``http://`` link to https."""
    if not url:
        return None
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


def select_thumbnail(links: Any, order: Sequence[str] = GOOGLE_THUMBNAIL_ORDER) -> Optional[str]:
    """Return the largest available image from ``links`` following ``order``."""
    if not isinstance(links, Mapping):
        return None
    for key in order:
        url = normalize_text(links.get(key))
        if url:
            return https_url(url)
    return None


def openlibrary_cover_url(
    cover_id: Any,
    *,
    base_url: str = "https://covers.openlibrary.org/b",
    sizes: Sequence[str] = OPENLIBRARY_COVER_SIZES,
) -> Optional[str]:
    """Render the largest cover variant for an Open Library cover id."""
    if isinstance(cover_id, bool) or not isinstance(cover_id, (int, str)):
        return None
    text = str(cover_id).strip()
    if not text or text == "-1" or not sizes:
        return None
    return f"{base_url.rstrip('/')}/id/{text}-{sizes[0]}.jpg"


def curated_thumbnail(item: CuratedItem) -> Optional[str]:
    for attribute in CURATED_THUMBNAIL_ORDER:
        url = normalize_text(getattr(item, attribute, None))
        if url:
            return https_url(url)
    return None


def title_key(title: Optional[str]) -> str:
    return (title or "").strip().lower()


def dedupe_books(books: Iterable[NormalizedBook]) -> List[NormalizedBook]:
    """Drop repeats by exact id or case-insensitive title, keeping first seen."""
    seen_ids: set[str] = set()
    seen_titles: set[str] = set()
    result: List[NormalizedBook] = []
    for book in books:
        key = title_key(book.title)
        if book.id in seen_ids or (key and key in seen_titles):
            continue
        seen_ids.add(book.id)
        if key:
            seen_titles.add(key)
        result.append(book)
    return result


__all__ = [
    "CURATED_THUMBNAIL_ORDER",
    "GOOGLE_THUMBNAIL_ORDER",
    "OPENLIBRARY_COVER_SIZES",
    "authors_or_unknown",
    "curated_thumbnail",
    "dedupe_books",
    "https_url",
    "normalize_isbn",
    "normalize_text",
    "openlibrary_cover_url",
    "primary_author",
    "select_thumbnail",
    "string_list",
    "title_key",
]
