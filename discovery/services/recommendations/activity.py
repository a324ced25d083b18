"""User activity port: favorites, preferences and search history."""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

from ..catalog.types import BookSource, NormalizedBook

TRENDING_WINDOW_SECONDS = 7 * 24 * 60 * 60


@dataclass(slots=True)
class FavoriteRecord:
    """A book the user marked as favorite."""

    book_id: str
    title: str
    authors: List[str] = field(default_factory=list)
    thumbnail: Optional[str] = None
    description: Optional[str] = None
    categories: List[str] = field(default_factory=list)

    def to_book(self) -> NormalizedBook:
        return NormalizedBook(
            id=self.book_id,
            title=self.title,
            source=BookSource.FAVORITE,
            authors=list(self.authors),
            description=self.description,
            image_url=self.thumbnail,
            categories=list(self.categories),
            score=1.0,
        )


@dataclass(slots=True)
class UserPreferences:
    favorite_genres: List[str] = field(default_factory=list)
    favorite_authors: List[str] = field(default_factory=list)
    interests: List[str] = field(default_factory=list)

    def as_terms(self) -> List[str]:
        return [*self.favorite_genres, *self.favorite_authors, *self.interests]


@dataclass(slots=True)
class ActivityEntry:
    """One recorded user action."""

    kind: str
    term: str
    timestamp: float
    mode: Optional[str] = None
    result_count: Optional[int] = None

    def describe(self) -> str:
        return f'{self.kind}: "{self.term}"'


class UserActivityStore(Protocol):
    """Read/write access to per-user activity kept by the document store."""

    async def favorites(self, user_id: str) -> List[FavoriteRecord]:
        ...

    async def preferences(self, user_id: str) -> UserPreferences:
        ...

    async def recent_activity(self, user_id: str, limit: int = 10) -> List[ActivityEntry]:
        ...

    async def record_search(
        self, user_id: str, term: str, mode: str, result_count: int
    ) -> None:
        ...

    async def popular_terms(
        self, limit: int = 3, window_seconds: float = TRENDING_WINDOW_SECONDS
    ) -> List[str]:
        ...


class InMemoryActivityStore:
    """Process-local :class:`UserActivityStore` used in development and tests."""

    def __init__(self, *, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock = clock or time.time
        self._favorites: Dict[str, List[FavoriteRecord]] = defaultdict(list)
        self._preferences: Dict[str, UserPreferences] = {}
        self._activity: Dict[str, List[ActivityEntry]] = defaultdict(list)

    def add_favorite(self, user_id: str, favorite: FavoriteRecord) -> None:
        existing = self._favorites[user_id]
        if all(entry.book_id != favorite.book_id for entry in existing):
            existing.append(favorite)
            self._activity[user_id].append(
                ActivityEntry(kind="favorite", term=favorite.title, timestamp=self._clock())
            )

    def set_preferences(self, user_id: str, preferences: UserPreferences) -> None:
        self._preferences[user_id] = preferences

    async def favorites(self, user_id: str) -> List[FavoriteRecord]:
        return list(self._favorites.get(user_id, []))

    async def preferences(self, user_id: str) -> UserPreferences:
        return self._preferences.get(user_id) or UserPreferences()

    async def recent_activity(self, user_id: str, limit: int = 10) -> List[ActivityEntry]:
        entries = sorted(
            self._activity.get(user_id, []), key=lambda entry: entry.timestamp, reverse=True
        )
        return entries[: max(0, limit)]

    async def record_search(
        self, user_id: str, term: str, mode: str, result_count: int
    ) -> None:
        cleaned = " ".join((term or "").split())
        if not cleaned:
            return
        self._activity[user_id].append(
            ActivityEntry(
                kind="search",
                term=cleaned,
                timestamp=self._clock(),
                mode=mode,
                result_count=result_count,
            )
        )

    async def popular_terms(
        self, limit: int = 3, window_seconds: float = TRENDING_WINDOW_SECONDS
    ) -> List[str]:
        """Most frequent search terms inside the window, newest use breaking ties."""
        cutoff = self._clock() - window_seconds
        counts: Dict[str, int] = defaultdict(int)
        last_seen: Dict[str, float] = {}
        for entries in self._activity.values():
            for entry in entries:
                if entry.kind != "search" or entry.timestamp < cutoff:
                    continue
                key = entry.term.lower()
                counts[key] += 1
                last_seen[key] = max(last_seen.get(key, entry.timestamp), entry.timestamp)
        ranked = sorted(counts, key=lambda key: (-counts[key], -last_seen[key]))
        return ranked[: max(0, limit)]


__all__ = [
    "ActivityEntry",
    "FavoriteRecord",
    "InMemoryActivityStore",
    "TRENDING_WINDOW_SECONDS",
    "UserActivityStore",
    "UserPreferences",
]
