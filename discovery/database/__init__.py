"""SQLAlchemy database layer for the discovery service.

Provides the engine, session factory and declarative base used by the
durable daily-pick store.
"""

from .base import Base
from .engine import dispose_engine, get_db_session, get_engine, init_schema

__all__ = ["Base", "dispose_engine", "get_db_session", "get_engine", "init_schema"]
