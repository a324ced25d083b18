"""Core type definitions for catalog search and recommendations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

UNKNOWN_AUTHOR = "Unknown Author"

MAX_QUERY_LENGTH = 500
MAX_RESULTS_LIMIT = 50
DEFAULT_MAX_RESULTS = 20


class BookSource(str, Enum):
    """Namespace a book identifier belongs to."""

    GOOGLE = "google"
    OPENLIBRARY = "openlibrary"
    FAVORITE = "favorite"


class SearchMode(str, Enum):
    """How a search query is interpreted."""

    DIRECT = "direct"
    PROMPT_DRIVEN = "promptDriven"

    @classmethod
    def parse(cls, value: Any) -> "SearchMode":
        """Resolve ``value`` including the legacy ``searchMode``/``promptMode`` spellings."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            candidate = value.strip()
            alias = _MODE_ALIASES.get(candidate.lower())
            if alias is not None:
                return alias
        raise ValueError(f"Unsupported search mode: {value!r}")


_MODE_ALIASES = {
    "direct": SearchMode.DIRECT,
    "searchmode": SearchMode.DIRECT,
    "promptdriven": SearchMode.PROMPT_DRIVEN,
    "promptmode": SearchMode.PROMPT_DRIVEN,
}


class ResultOrigin(str, Enum):
    """Where the books of a search result came from."""

    CACHE = "cache"
    PRIMARY = "primaryCatalog"
    FALLBACK = "fallbackCatalog"


@dataclass(slots=True)
class NormalizedBook:
    """Provider-independent book record."""

    id: str
    title: str
    source: BookSource
    authors: List[str] = field(default_factory=lambda: [UNKNOWN_AUTHOR])
    description: Optional[str] = None
    published_date: Optional[str] = None
    isbn: Optional[str] = None
    image_url: Optional[str] = None
    categories: List[str] = field(default_factory=list)
    page_count: Optional[int] = None
    language: Optional[str] = None
    score: Optional[float] = None
    confidence: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.authors:
            self.authors = [UNKNOWN_AUTHOR]

    @property
    def primary_author(self) -> str:
        return self.authors[0] if self.authors else UNKNOWN_AUTHOR

    @property
    def identity(self) -> tuple[str, str]:
        return (self.source.value, self.id)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase wire names."""
        result: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "authors": list(self.authors),
            "categories": list(self.categories),
            "source": self.source.value,
        }
        optional = {
            "description": self.description,
            "publishedDate": self.published_date,
            "isbn": self.isbn,
            "imageUrl": self.image_url,
            "pageCount": self.page_count,
            "language": self.language,
            "score": self.score,
            "confidence": self.confidence,
        }
        result.update({key: value for key, value in optional.items() if value is not None})
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizedBook":
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title", ""),
            source=BookSource(data.get("source", BookSource.GOOGLE.value)),
            authors=list(data.get("authors") or []),
            description=data.get("description"),
            published_date=data.get("publishedDate"),
            isbn=data.get("isbn"),
            image_url=data.get("imageUrl"),
            categories=list(data.get("categories") or []),
            page_count=data.get("pageCount"),
            language=data.get("language"),
            score=data.get("score"),
            confidence=data.get("confidence"),
        )


@dataclass(slots=True)
class SearchRequest:
    """A single search as submitted by a caller."""

    query: str
    mode: SearchMode = SearchMode.DIRECT
    user_id: Optional[str] = None
    max_results: int = DEFAULT_MAX_RESULTS
    start_index: int = 0
    use_cache: bool = True
    refresh: bool = False

    def validate(self) -> List[str]:
        """Return a list of validation problems, empty when the request is usable."""
        errors: List[str] = []
        stripped = (self.query or "").strip()
        if not stripped:
            errors.append("Query is required")
        elif len(stripped) > MAX_QUERY_LENGTH:
            errors.append(f"Query must be at most {MAX_QUERY_LENGTH} characters")
        if not 1 <= self.max_results <= MAX_RESULTS_LIMIT:
            errors.append(f"maxResults must be between 1 and {MAX_RESULTS_LIMIT}")
        if self.start_index < 0:
            errors.append("startIndex must be zero or greater")
        return errors

    @property
    def fetch_size(self) -> int:
        return self.start_index + self.max_results


@dataclass(slots=True)
class SearchResult:
    """Outcome of an orchestrated search."""

    books: List[NormalizedBook]
    total_results: int
    search_time_ms: float
    result_origin: ResultOrigin
    query: str = ""
    mode: SearchMode = SearchMode.DIRECT

    @property
    def cached(self) -> bool:
        return self.result_origin is ResultOrigin.CACHE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "books": [book.to_dict() for book in self.books],
            "totalResults": self.total_results,
            "searchTimeMs": round(self.search_time_ms, 2),
            "resultOrigin": self.result_origin.value,
            "query": self.query,
            "mode": self.mode.value,
        }


@dataclass(slots=True)
class CuratedItem:
    """Entry of the curated pool the daily pick draws from."""

    item_ref: str
    title: str
    authors: List[str] = field(default_factory=list)
    large_thumbnail: Optional[str] = None
    medium_thumbnail: Optional[str] = None
    thumbnail: Optional[str] = None
    small_thumbnail: Optional[str] = None
    reason: Optional[str] = None

    @property
    def primary_author(self) -> str:
        return self.authors[0] if self.authors else UNKNOWN_AUTHOR


__all__ = [
    "BookSource",
    "CuratedItem",
    "DEFAULT_MAX_RESULTS",
    "MAX_QUERY_LENGTH",
    "MAX_RESULTS_LIMIT",
    "NormalizedBook",
    "ResultOrigin",
    "SearchMode",
    "SearchRequest",
    "SearchResult",
    "UNKNOWN_AUTHOR",
]
