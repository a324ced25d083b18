"""Section and response types shared by the recommendation services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..catalog.normalization import title_key
from ..catalog.types import NormalizedBook


class SectionType:
    FAVORITES = "favorites"
    GENERATED = "gpt_recommendations"
    TRENDING = "trending"
    AUTHOR = "author"
    GENRE = "genre"
    SIMILAR = "similar"


@dataclass(slots=True)
class RecommendationSection:
    """A titled group of books rendered as one row of the feed."""

    title: str
    type: str
    books: List[NormalizedBook] = field(default_factory=list)
    cached: bool = False
    processing_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "books": [book.to_dict() for book in self.books],
            "type": self.type,
            "cached": self.cached,
            "processingTimeMs": round(self.processing_time_ms, 2),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecommendationSection":
        return cls(
            title=str(data.get("title", "")),
            type=str(data.get("type", "")),
            books=[NormalizedBook.from_dict(entry) for entry in data.get("books") or []],
            cached=bool(data.get("cached", False)),
            processing_time_ms=float(data.get("processingTimeMs", 0.0)),
        )


@dataclass(slots=True)
class RecommendationResponse:
    sections: List[RecommendationSection] = field(default_factory=list)
    cached: bool = False
    processing_time_ms: float = 0.0

    @property
    def total_books(self) -> int:
        return sum(len(section.books) for section in self.sections)

    def books(self) -> List[NormalizedBook]:
        return [book for section in self.sections for book in section.books]

    def mark_cached(self) -> "RecommendationResponse":
        """Flag the response and every section as served from cache."""
        self.cached = True
        for section in self.sections:
            section.cached = True
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sections": [section.to_dict() for section in self.sections],
            "totalBooks": self.total_books,
            "cached": self.cached,
            "processingTimeMs": round(self.processing_time_ms, 2),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecommendationResponse":
        return cls(
            sections=[
                RecommendationSection.from_dict(entry)
                for entry in data.get("sections") or []
                if isinstance(entry, dict)
            ],
            cached=bool(data.get("cached", False)),
            processing_time_ms=float(data.get("processingTimeMs", 0.0)),
        )


class SeenBooks:
    """Running set of included book ids and lower-cased titles.

    One instance is shared by every section of a response; a book stays in
    the section that admitted it first.
    """

    def __init__(self, *, titles: Iterable[str] = ()) -> None:
        self._ids: set[str] = set()
        self._titles: set[str] = {title_key(title) for title in titles if title_key(title)}

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, book: object) -> bool:
        if not isinstance(book, NormalizedBook):
            return False
        key = title_key(book.title)
        return book.id in self._ids or bool(key and key in self._titles)

    def add(self, book: NormalizedBook) -> bool:
        """Record ``book``; return ``False`` when it was already included."""
        if book in self:
            return False
        self._ids.add(book.id)
        key = title_key(book.title)
        if key:
            self._titles.add(key)
        return True

    def take(self, books: Iterable[Optional[NormalizedBook]], limit: Optional[int] = None) -> List[NormalizedBook]:
        """Admit books in order until ``limit`` new ones were added."""
        accepted: List[NormalizedBook] = []
        for book in books:
            if limit is not None and len(accepted) >= limit:
                break
            if book is not None and self.add(book):
                accepted.append(book)
        return accepted

    def titles(self) -> List[str]:
        return sorted(self._titles)


__all__ = [
    "RecommendationResponse",
    "RecommendationSection",
    "SectionType",
    "SeenBooks",
]
