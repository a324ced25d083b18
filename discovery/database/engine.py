"""SQLAlchemy engine singleton and session helpers."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config_manager import get_settings, secret_value
from ..config_manager.constants import DEFAULT_DATABASE_URL, PROJECT_DIR
from .base import Base

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_database_url() -> str:
    return secret_value(get_settings().database_url) or DEFAULT_DATABASE_URL


def create_database_engine(url: str) -> Engine:
    """Create an engine for ``url`` with options suited to its backend.

    SQLite URLs get a thread-shareable connection (a single static one for
    in-memory databases) and relative file paths resolve under the project
    directory.
    """
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return create_engine(
            url,
            pool_size=10,
            max_overflow=5,
            pool_pre_ping=True,
            pool_recycle=3600,
            echo=False,
        )

    database = parsed.database or ""
    if not database or database == ":memory:":
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False,
        )
    path = Path(database)
    if not path.is_absolute():
        path = PROJECT_DIR / path
    path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        parsed.set(database=str(path)),
        connect_args={"check_same_thread": False},
        echo=False,
    )


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_database_engine(get_database_url())
    return _engine


def get_session_factory(engine: Optional[Engine] = None) -> sessionmaker[Session]:
    global _session_factory
    if engine is not None:
        return sessionmaker(bind=engine, expire_on_commit=False)
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            expire_on_commit=False,
        )
    return _session_factory


@contextmanager
def get_db_session(factory: Optional[sessionmaker[Session]] = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_schema(engine: Optional[Engine] = None) -> None:
    """Create every table registered on :class:`Base`."""
    from . import models  # noqa: F401  registers the mappings

    Base.metadata.create_all(engine or get_engine())


def dispose_engine() -> None:
    """Dispose the global engine and clear the factory."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
