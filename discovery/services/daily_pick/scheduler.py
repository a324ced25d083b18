"""Daily pick rotation: one curated book per UTC day, no repeats inside the window."""

from __future__ import annotations

import asyncio
import random
from datetime import date as date_type
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from discovery import logging_manager as log_mgr
from discovery.errors import InternalError
from discovery.metrics import DAILY_PICK_RUNS

from ..catalog.normalization import curated_thumbnail
from ..catalog.types import CuratedItem
from .stores import DailyPickStore
from .types import DailyPickOutcome, DailyPickRecord, DailyPickStats, PickAction

logger = log_mgr.get_logger().getChild("services.daily_pick.scheduler")

DEFAULT_WINDOW_SIZE = 300

DateLike = Union[str, date_type, datetime, None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DailyPickScheduler:
    """Selects the book of the day from the curated pool.

    Runs are idempotent per UTC date. A book is not picked again while its
    record sits in the rotation window; once every curated book is in the
    window the whole pool becomes eligible again for that single pick.
    Store calls are blocking and run in a worker thread.
    """

    def __init__(
        self,
        store: DailyPickStore,
        *,
        window_size: int = DEFAULT_WINDOW_SIZE,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self._store = store
        self._window_size = window_size
        self._rng = rng or random.Random()
        self._clock = clock

    @property
    def window_size(self) -> int:
        return self._window_size

    def _today(self, today: DateLike) -> str:
        if today is None:
            return self._clock().astimezone(timezone.utc).date().isoformat()
        if isinstance(today, datetime):
            if today.tzinfo is None:
                today = today.replace(tzinfo=timezone.utc)
            return today.astimezone(timezone.utc).date().isoformat()
        if isinstance(today, date_type):
            return today.isoformat()
        return date_type.fromisoformat(str(today).strip()).isoformat()

    async def run(self, today: DateLike = None) -> DailyPickOutcome:
        """Pick the book for ``today`` (UTC date) unless one already exists."""
        day = self._today(today)
        outcome = await asyncio.to_thread(self._run, day)
        DAILY_PICK_RUNS.labels(action=outcome.action.value).inc()
        return outcome

    def _run(self, day: str) -> DailyPickOutcome:
        existing = self._store.get(day)
        if existing is not None:
            logger.info(
                "Daily pick already exists for %s",
                day,
                extra={"event": "daily_pick.already_exists"},
            )
            return self._already_exists(existing, day)

        pool = self._store.curated_pool()
        if not pool:
            logger.error(
                "No curated books available for the daily pick",
                extra={"event": "daily_pick.no_books_available"},
            )
            return DailyPickOutcome(
                success=False,
                action=PickAction.NO_BOOKS_AVAILABLE,
                date=day,
                window_size=len(self._store.window()),
            )

        window = self._store.window()
        recently_used = {record.item_ref for record in window}
        available = [item for item in pool if item.item_ref not in recently_used]
        if not available:
            logger.info(
                "Every curated book is in the window; choosing from the full pool",
                extra={"event": "daily_pick.reset"},
            )
            available = pool

        chosen = self._rng.choice(available)
        record = self._snapshot(chosen, day)
        if not self._store.insert(record, max_window=self._window_size):
            existing = self._store.get(day)
            if existing is not None:
                return self._already_exists(existing, day)
            raise InternalError(f"Daily pick insert for {day} was rejected")

        window_size = min(len(window) + 1, self._window_size)
        logger.info(
            "Picked %r by %s for %s",
            record.title,
            record.author,
            day,
            extra={"event": "daily_pick.picked", "window_size": window_size},
        )
        return DailyPickOutcome(
            success=True,
            action=PickAction.PICKED_NEW_BOOK,
            date=day,
            window_size=window_size,
            item_ref=record.item_ref,
            title=record.title,
        )

    def _already_exists(self, record: DailyPickRecord, day: str) -> DailyPickOutcome:
        return DailyPickOutcome(
            success=True,
            action=PickAction.ALREADY_EXISTS,
            date=day,
            window_size=len(self._store.window()),
            item_ref=record.item_ref,
            title=record.title,
        )

    def _snapshot(self, item: CuratedItem, day: str) -> DailyPickRecord:
        return DailyPickRecord(
            date=day,
            item_ref=item.item_ref,
            title=item.title,
            author=item.primary_author,
            created_at=self._clock(),
            thumbnail=curated_thumbnail(item),
            reason=item.reason,
        )

    async def current(self) -> Optional[DailyPickRecord]:
        """Return the most recent record by date."""
        return await asyncio.to_thread(self._store.latest)

    async def stats(self) -> DailyPickStats:
        return await asyncio.to_thread(self._stats)

    def _stats(self) -> DailyPickStats:
        window = self._store.window()
        dates = sorted(record.date for record in window)
        return DailyPickStats(
            window_size=len(window),
            curated_count=len(self._store.curated_pool()),
            oldest_date=dates[0] if dates else None,
            newest_date=dates[-1] if dates else None,
        )


__all__ = ["DEFAULT_WINDOW_SIZE", "DailyPickScheduler"]
