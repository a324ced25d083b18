"""Book-of-the-day rotation over the curated pool."""

from .scheduler import DEFAULT_WINDOW_SIZE, DailyPickScheduler
from .stores import DailyPickStore, InMemoryDailyPickStore, SqlDailyPickStore
from .types import DailyPickOutcome, DailyPickRecord, DailyPickStats, PickAction

__all__ = [
    "DEFAULT_WINDOW_SIZE",
    "DailyPickOutcome",
    "DailyPickRecord",
    "DailyPickScheduler",
    "DailyPickStats",
    "DailyPickStore",
    "InMemoryDailyPickStore",
    "PickAction",
    "SqlDailyPickStore",
]
