from __future__ import annotations

import asyncio
import os
import random
import time
from datetime import date, datetime, timedelta, timezone
from typing import List

import pytest

from discovery.database.engine import create_database_engine, get_session_factory, init_schema
from discovery.services.catalog.types import CuratedItem
from discovery.services.daily_pick import (
    DailyPickRecord,
    DailyPickScheduler,
    InMemoryDailyPickStore,
    PickAction,
    SqlDailyPickStore,
)


def _curated(count: int) -> List[CuratedItem]:
    return [
        CuratedItem(
            item_ref=f"item-{index:03d}",
            title=f"Curated {index}",
            authors=[f"Author {index}"],
            medium_thumbnail=f"http://img.example/{index}-m.jpg",
            small_thumbnail=f"http://img.example/{index}-s.jpg",
            reason="Staff favourite",
        )
        for index in range(count)
    ]


def _fixed_clock() -> datetime:
    return datetime(2024, 1, 1, 0, 5, tzinfo=timezone.utc)


@pytest.fixture
def sql_store() -> SqlDailyPickStore:
    engine = create_database_engine("sqlite:///:memory:")
    init_schema(engine)
    store = SqlDailyPickStore(get_session_factory(engine))
    yield store
    engine.dispose()


def _days(start: date, count: int) -> List[str]:
    return [(start + timedelta(days=offset)).isoformat() for offset in range(count)]


def test_first_run_picks_and_second_run_is_idempotent():
    store = InMemoryDailyPickStore(_curated(3))
    scheduler = DailyPickScheduler(store, rng=random.Random(7), clock=_fixed_clock)

    async def scenario():
        return await scheduler.run("2024-01-01"), await scheduler.run("2024-01-01")

    first, second = asyncio.run(scenario())
    assert first.action is PickAction.PICKED_NEW_BOOK
    assert first.success is True
    assert first.window_size == 1
    assert second.action is PickAction.ALREADY_EXISTS
    assert second.item_ref == first.item_ref
    assert second.window_size == 1
    assert len(store.window()) == 1


def test_snapshot_copies_curated_fields():
    store = InMemoryDailyPickStore(_curated(1))
    scheduler = DailyPickScheduler(store, clock=_fixed_clock)
    asyncio.run(scheduler.run(date(2024, 1, 1)))
    record = store.get("2024-01-01")
    assert record is not None
    assert record.item_ref == "item-000"
    assert record.author == "Author 0"
    assert record.thumbnail == "https://img.example/0-m.jpg"
    assert record.reason == "Staff favourite"
    assert record.created_at == _fixed_clock()
    assert record.to_dict()["itemRef"] == "item-000"


def test_defaults_to_today_in_utc():
    store = InMemoryDailyPickStore(_curated(1))
    late_evening = datetime(2024, 3, 9, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    scheduler = DailyPickScheduler(store, clock=lambda: late_evening)
    outcome = asyncio.run(scheduler.run())
    assert outcome.date == "2024-03-10"


@pytest.fixture
def utc_plus_fourteen():
    original = os.environ.get("TZ")
    os.environ["TZ"] = "XST-14"
    time.tzset()
    yield
    if original is None:
        os.environ.pop("TZ", None)
    else:
        os.environ["TZ"] = original
    time.tzset()


@pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")
def test_naive_datetimes_are_read_as_utc(utc_plus_fourteen):
    store = InMemoryDailyPickStore(_curated(1))
    scheduler = DailyPickScheduler(store)
    outcome = asyncio.run(scheduler.run(datetime(2024, 3, 9, 5, 0)))
    assert outcome.date == "2024-03-09"


def test_empty_pool_reports_no_books_available():
    scheduler = DailyPickScheduler(InMemoryDailyPickStore())
    outcome = asyncio.run(scheduler.run("2024-01-01"))
    assert outcome.success is False
    assert outcome.action is PickAction.NO_BOOKS_AVAILABLE
    assert outcome.to_dict() == {
        "success": False,
        "action": "no_books_available",
        "date": "2024-01-01",
        "windowSize": 0,
    }


def test_no_repeats_until_the_pool_is_exhausted():
    store = InMemoryDailyPickStore(_curated(10))
    scheduler = DailyPickScheduler(store, rng=random.Random(3))

    async def scenario():
        return [await scheduler.run(day) for day in _days(date(2024, 1, 1), 10)]

    outcomes = asyncio.run(scenario())
    picked = [outcome.item_ref for outcome in outcomes]
    assert len(set(picked)) == 10


def test_full_window_resets_to_the_whole_pool():
    store = InMemoryDailyPickStore(_curated(3))
    scheduler = DailyPickScheduler(store, rng=random.Random(11))

    async def scenario():
        return [await scheduler.run(day) for day in _days(date(2024, 1, 1), 4)]

    outcomes = asyncio.run(scenario())
    assert [outcome.action for outcome in outcomes] == [PickAction.PICKED_NEW_BOOK] * 4
    assert len({outcome.item_ref for outcome in outcomes[:3]}) == 3
    assert outcomes[3].item_ref in {"item-000", "item-001", "item-002"}
    assert outcomes[3].window_size == 4


def test_window_is_bounded_and_evicts_oldest():
    store = InMemoryDailyPickStore(_curated(5))
    scheduler = DailyPickScheduler(store, window_size=3, rng=random.Random(5))
    days = _days(date(2024, 1, 1), 5)

    async def scenario():
        return [await scheduler.run(day) for day in days]

    outcomes = asyncio.run(scenario())
    assert [o.window_size for o in outcomes] == [1, 2, 3, 3, 3]
    assert [record.date for record in store.window()] == days[-3:]


def test_three_book_rotation_is_a_permutation():
    store = InMemoryDailyPickStore(_curated(3))
    scheduler = DailyPickScheduler(store, window_size=300, rng=random.Random(42))

    async def scenario():
        return [await scheduler.run(day) for day in _days(date(2024, 5, 1), 3)]

    picked = sorted(outcome.item_ref for outcome in asyncio.run(scenario()))
    assert picked == ["item-000", "item-001", "item-002"]


def test_rotation_at_default_window_size():
    store = InMemoryDailyPickStore(_curated(400))
    scheduler = DailyPickScheduler(store, rng=random.Random(1))

    async def scenario():
        return [await scheduler.run(day) for day in _days(date(2023, 1, 1), 320)]

    outcomes = asyncio.run(scenario())
    assert outcomes[-1].window_size == 300
    assert len(store.window()) == 300
    for index in range(len(outcomes)):
        recent = outcomes[max(0, index - 299) : index]
        assert outcomes[index].item_ref not in {o.item_ref for o in recent}


def test_stats_and_current():
    store = InMemoryDailyPickStore(_curated(4))
    scheduler = DailyPickScheduler(store)

    async def scenario():
        await scheduler.run("2024-01-02")
        await scheduler.run("2024-01-01")
        return await scheduler.stats(), await scheduler.current()

    stats, current = asyncio.run(scenario())
    assert stats.to_dict() == {
        "windowSize": 2,
        "oldestDate": "2024-01-01",
        "newestDate": "2024-01-02",
        "curatedBooksCount": 4,
    }
    assert current is not None and current.date == "2024-01-02"


def test_invalid_dates_and_window_sizes_are_rejected():
    with pytest.raises(ValueError):
        DailyPickScheduler(InMemoryDailyPickStore(), window_size=0)
    with pytest.raises(ValueError):
        asyncio.run(DailyPickScheduler(InMemoryDailyPickStore()).run("not-a-date"))


def test_sql_store_round_trip_and_idempotency(sql_store: SqlDailyPickStore):
    assert sql_store.add_curated(_curated(3)) == 3
    assert [item.item_ref for item in sql_store.curated_pool()] == ["item-000", "item-001", "item-002"]

    scheduler = DailyPickScheduler(sql_store, rng=random.Random(9), clock=_fixed_clock)

    async def scenario():
        return await scheduler.run("2024-01-01"), await scheduler.run("2024-01-01")

    first, second = asyncio.run(scenario())
    assert first.action is PickAction.PICKED_NEW_BOOK
    assert second.action is PickAction.ALREADY_EXISTS
    record = sql_store.get("2024-01-01")
    assert record is not None and record.item_ref == first.item_ref
    assert sql_store.latest().date == "2024-01-01"


def test_sql_store_rejects_duplicate_dates(sql_store: SqlDailyPickStore):
    record = DailyPickRecord(
        date="2024-01-01",
        item_ref="item-000",
        title="Curated 0",
        author="Author 0",
        created_at=_fixed_clock(),
    )
    assert sql_store.insert(record, max_window=300) is True
    duplicate = DailyPickRecord(
        date="2024-01-01",
        item_ref="item-001",
        title="Curated 1",
        author="Author 1",
        created_at=_fixed_clock(),
    )
    assert sql_store.insert(duplicate, max_window=300) is False
    assert [r.item_ref for r in sql_store.window()] == ["item-000"]


def test_sql_store_evicts_oldest_beyond_window(sql_store: SqlDailyPickStore):
    sql_store.add_curated(_curated(6))
    scheduler = DailyPickScheduler(sql_store, window_size=4, rng=random.Random(2))
    days = _days(date(2024, 2, 1), 6)

    async def scenario():
        return [await scheduler.run(day) for day in days]

    outcomes = asyncio.run(scenario())
    assert outcomes[-1].window_size == 4
    assert [record.date for record in sql_store.window()] == days[-4:]


class _RacingStore(InMemoryDailyPickStore):
    """Simulates another process inserting the same date first."""

    def insert(self, record: DailyPickRecord, *, max_window: int) -> bool:
        winner = DailyPickRecord(
            date=record.date,
            item_ref="item-winner",
            title="Winner",
            author="Someone",
            created_at=record.created_at,
        )
        super().insert(winner, max_window=max_window)
        return False


def test_concurrent_insert_reports_existing_pick():
    scheduler = DailyPickScheduler(_RacingStore(_curated(2)))
    outcome = asyncio.run(scheduler.run("2024-01-01"))
    assert outcome.action is PickAction.ALREADY_EXISTS
    assert outcome.item_ref == "item-winner"
