"""SQLAlchemy models; import all to register with Base.metadata."""

from .daily_pick import CuratedBookModel, DailyPickModel

__all__ = ["CuratedBookModel", "DailyPickModel"]
