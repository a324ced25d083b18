"""Durable storage for the curated pool and the daily-pick rotation window."""

from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from discovery import logging_manager as log_mgr
from discovery.database.engine import get_db_session
from discovery.database.models.daily_pick import CuratedBookModel, DailyPickModel

from ..catalog.types import CuratedItem
from .types import DailyPickRecord

logger = log_mgr.get_logger().getChild("services.daily_pick.stores")


class DailyPickStore(Protocol):
    """Storage used by :class:`DailyPickScheduler`.

    ``insert`` is conditional on the unique ``date``: it returns ``False``
    without changing anything when a record for that day already exists.
    Before inserting it evicts the oldest records so the window never
    exceeds ``max_window``.
    """

    def curated_pool(self) -> List[CuratedItem]:
        ...

    def window(self) -> List[DailyPickRecord]:
        ...

    def get(self, date: str) -> Optional[DailyPickRecord]:
        ...

    def latest(self) -> Optional[DailyPickRecord]:
        ...

    def insert(self, record: DailyPickRecord, *, max_window: int) -> bool:
        ...


class InMemoryDailyPickStore:
    """Process-local store guarded by a lock."""

    def __init__(self, curated: Iterable[CuratedItem] = ()) -> None:
        self._lock = threading.Lock()
        self._curated: Dict[str, CuratedItem] = {}
        self._records: Dict[str, DailyPickRecord] = {}
        self.add_curated(curated)

    def add_curated(self, items: Iterable[CuratedItem]) -> int:
        count = 0
        with self._lock:
            for item in items:
                self._curated[item.item_ref] = item
                count += 1
        return count

    def curated_pool(self) -> List[CuratedItem]:
        with self._lock:
            return list(self._curated.values())

    def window(self) -> List[DailyPickRecord]:
        with self._lock:
            return [self._records[date] for date in sorted(self._records)]

    def get(self, date: str) -> Optional[DailyPickRecord]:
        with self._lock:
            return self._records.get(date)

    def latest(self) -> Optional[DailyPickRecord]:
        with self._lock:
            if not self._records:
                return None
            return self._records[max(self._records)]

    def insert(self, record: DailyPickRecord, *, max_window: int) -> bool:
        with self._lock:
            if record.date in self._records:
                return False
            for date in sorted(self._records)[: max(0, len(self._records) - max_window + 1)]:
                evicted = self._records.pop(date)
                logger.info(
                    "Evicted daily pick %s (%s)",
                    evicted.date,
                    evicted.title,
                    extra={"event": "daily_pick.evicted"},
                )
            self._records[record.date] = record
            return True


class SqlDailyPickStore:
    """SQLAlchemy-backed store relying on the unique ``date`` column."""

    def __init__(self, session_factory: Optional[sessionmaker[Session]] = None) -> None:
        self._factory = session_factory

    def add_curated(self, items: Iterable[CuratedItem]) -> int:
        """Insert or update curated pool entries; returns how many were written."""
        count = 0
        with get_db_session(self._factory) as session:
            for item in items:
                session.merge(
                    CuratedBookModel(
                        item_ref=item.item_ref,
                        title=item.title,
                        authors=list(item.authors),
                        large_thumbnail=item.large_thumbnail,
                        medium_thumbnail=item.medium_thumbnail,
                        thumbnail=item.thumbnail,
                        small_thumbnail=item.small_thumbnail,
                        reason=item.reason,
                    )
                )
                count += 1
        return count

    def curated_pool(self) -> List[CuratedItem]:
        with get_db_session(self._factory) as session:
            models = (
                session.execute(
                    select(CuratedBookModel).order_by(
                        CuratedBookModel.created_at, CuratedBookModel.item_ref
                    )
                )
                .scalars()
                .all()
            )
            return [self._model_to_item(m) for m in models]

    def window(self) -> List[DailyPickRecord]:
        with get_db_session(self._factory) as session:
            models = (
                session.execute(select(DailyPickModel).order_by(DailyPickModel.date.asc()))
                .scalars()
                .all()
            )
            return [self._model_to_record(m) for m in models]

    def get(self, date: str) -> Optional[DailyPickRecord]:
        with get_db_session(self._factory) as session:
            model = session.execute(
                select(DailyPickModel).where(DailyPickModel.date == date)
            ).scalar_one_or_none()
            return self._model_to_record(model) if model else None

    def latest(self) -> Optional[DailyPickRecord]:
        with get_db_session(self._factory) as session:
            model = session.execute(
                select(DailyPickModel).order_by(DailyPickModel.date.desc()).limit(1)
            ).scalar_one_or_none()
            return self._model_to_record(model) if model else None

    def insert(self, record: DailyPickRecord, *, max_window: int) -> bool:
        try:
            with get_db_session(self._factory) as session:
                count = session.execute(
                    select(func.count()).select_from(DailyPickModel)
                ).scalar_one()
                overflow = count - max_window + 1
                if overflow > 0:
                    oldest = (
                        session.execute(
                            select(DailyPickModel)
                            .order_by(DailyPickModel.date.asc())
                            .limit(overflow)
                        )
                        .scalars()
                        .all()
                    )
                    for model in oldest:
                        logger.info(
                            "Evicted daily pick %s (%s)",
                            model.date,
                            model.title,
                            extra={"event": "daily_pick.evicted"},
                        )
                        session.delete(model)
                session.add(
                    DailyPickModel(
                        date=record.date,
                        item_ref=record.item_ref,
                        title=record.title,
                        author=record.author,
                        thumbnail=record.thumbnail,
                        reason=record.reason,
                        created_at=record.created_at,
                    )
                )
                session.flush()
        except IntegrityError:
            logger.info(
                "Daily pick for %s was inserted concurrently",
                record.date,
                extra={"event": "daily_pick.conflict"},
            )
            return False
        return True

    @staticmethod
    def _model_to_item(model: CuratedBookModel) -> CuratedItem:
        return CuratedItem(
            item_ref=model.item_ref,
            title=model.title,
            authors=list(model.authors or []),
            large_thumbnail=model.large_thumbnail,
            medium_thumbnail=model.medium_thumbnail,
            thumbnail=model.thumbnail,
            small_thumbnail=model.small_thumbnail,
            reason=model.reason,
        )

    @staticmethod
    def _model_to_record(model: DailyPickModel) -> DailyPickRecord:
        return DailyPickRecord(
            date=model.date,
            item_ref=model.item_ref,
            title=model.title,
            author=model.author,
            created_at=model.created_at,
            thumbnail=model.thumbnail,
            reason=model.reason,
        )


__all__ = ["DailyPickStore", "InMemoryDailyPickStore", "SqlDailyPickStore"]
