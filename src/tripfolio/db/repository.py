"""Database engine and session management for the slot and image stores."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from tripfolio.config import get_settings
from tripfolio.db.models import BlobBase, StateBase

STATE_STORE = "state"
BLOB_STORE = "blobs"

_BASES: dict[str, type[DeclarativeBase]] = {STATE_STORE: StateBase, BLOB_STORE: BlobBase}

_engines: dict[str, Engine] = {}
_session_factories: dict[str, sessionmaker[Session]] = {}
logger = logging.getLogger(__name__)


def _database_path(store: str) -> Path:
    settings = get_settings()
    if store == BLOB_STORE:
        return settings.blob_database_path
    return settings.database_path


def get_engine(store: str = STATE_STORE, database_path: Path | None = None) -> Engine:
    """Return the shared SQLAlchemy engine for ``store``, creating its schema on first use."""

    if store not in _BASES:
        raise ValueError(f"Unknown store {store!r}")
    engine = _engines.get(store)
    if engine is not None:
        return engine

    db_path = database_path or _database_path(store)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    # Image-store calls run in worker threads via asyncio.to_thread.
    engine = create_engine(
        f"sqlite:///{db_path}",
        future=True,
        echo=False,
        connect_args={"check_same_thread": False},
    )
    try:
        _BASES[store].metadata.create_all(engine)
    except OperationalError as exc:
        if "already exists" in str(exc).lower():
            logger.debug("Schema for %s store already initialized: %s", store, exc)
        else:
            raise
    _engines[store] = engine
    _session_factories[store] = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, future=True
    )
    logger.debug("Opened %s store at %s", store, db_path)
    return engine


def get_session(store: str = STATE_STORE) -> Session:
    """Return a new SQLAlchemy session bound to ``store``."""

    if store not in _session_factories:
        get_engine(store)
    return _session_factories[store]()


@contextmanager
def session_scope(store: str = STATE_STORE) -> Generator[Session, None, None]:
    """Context manager yielding a session with automatic commit/rollback."""

    session = get_session(store)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_repository_state() -> None:
    """Dispose cached engines and session factories (intended for testing)."""

    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
    _session_factories.clear()


__all__ = [
    "BLOB_STORE",
    "STATE_STORE",
    "get_engine",
    "get_session",
    "reset_repository_state",
    "session_scope",
]
