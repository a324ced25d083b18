"""Records exchanged by the daily-pick scheduler and its stores."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class PickAction(str, Enum):
    ALREADY_EXISTS = "already_exists"
    PICKED_NEW_BOOK = "picked_new_book"
    NO_BOOKS_AVAILABLE = "no_books_available"


@dataclass(frozen=True, slots=True)
class DailyPickRecord:
    """Snapshot of the book chosen for one UTC day; never mutated."""

    date: str
    item_ref: str
    title: str
    author: str
    created_at: datetime
    thumbnail: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "date": self.date,
            "itemRef": self.item_ref,
            "title": self.title,
            "author": self.author,
            "createdAt": self.created_at.isoformat(),
        }
        if self.thumbnail:
            payload["thumbnail"] = self.thumbnail
        if self.reason:
            payload["reason"] = self.reason
        return payload


@dataclass(slots=True)
class DailyPickOutcome:
    success: bool
    action: PickAction
    date: str
    window_size: int
    item_ref: Optional[str] = None
    title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "action": self.action.value,
            "date": self.date,
            "windowSize": self.window_size,
        }
        if self.item_ref is not None:
            payload["itemRef"] = self.item_ref
        if self.title is not None:
            payload["title"] = self.title
        return payload


@dataclass(slots=True)
class DailyPickStats:
    window_size: int
    curated_count: int
    oldest_date: Optional[str] = None
    newest_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "windowSize": self.window_size,
            "oldestDate": self.oldest_date,
            "newestDate": self.newest_date,
            "curatedBooksCount": self.curated_count,
        }


__all__ = ["DailyPickOutcome", "DailyPickRecord", "DailyPickStats", "PickAction"]
