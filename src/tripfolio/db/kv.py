"""Named JSON slots persisted in the state database."""

from __future__ import annotations

import json
import logging
from contextlib import AbstractContextManager
from functools import partial
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tripfolio.errors import PersistenceError

from .models import SlotORM
from .repository import STATE_STORE, session_scope

logger = logging.getLogger(__name__)

RECEIPTS_SLOT = "receipts"
TRIPS_SLOT = "trips"
CUSTOM_CATEGORIES_SLOT = "customCategories"
HOME_CURRENCY_SLOT = "homeCurrency"
RATES_CACHE_SLOT = "ratesCache"
RATES_UPDATED_SLOT = "ratesLastUpdated"


ScopeFactory = Callable[[], AbstractContextManager[Session]]


def _encode_value(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _decode_value(key: str, raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("Slot %s holds invalid JSON: %s", key, exc)
        raise PersistenceError(f"Slot {key!r} is corrupt: {exc}") from exc


class KeyValueStore:
    """Synchronous slot store. Every call commits before returning.

    Collections must be mutated through :meth:`update`, which applies a pure function to
    the freshly read value inside one session. Callers never write back a copy they read
    before an ``await``.
    """

    def __init__(self, scope: Optional[ScopeFactory] = None) -> None:
        self._scope = scope or partial(session_scope, STATE_STORE)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the decoded value stored under ``key`` or ``default`` when absent."""

        try:
            with self._scope() as session:
                row = session.get(SlotORM, key)
                if row is None:
                    return default
                return _decode_value(key, row.value)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Unable to read slot {key!r}: {exc}") from exc

    def set(self, key: str, value: Any) -> None:
        """Persist ``value`` under ``key``; failures raise :class:`PersistenceError`."""

        encoded = _encode_value(value)
        try:
            with self._scope() as session:
                session.merge(SlotORM(key=key, value=encoded))
        except SQLAlchemyError as exc:
            logger.error("Persisting slot %s failed: %s", key, exc)
            raise PersistenceError(f"Unable to persist slot {key!r}: {exc}") from exc

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """Read-modify-write ``key`` with ``fn(previous)`` and return the new value."""

        try:
            with self._scope() as session:
                row = session.get(SlotORM, key)
                previous = default if row is None else _decode_value(key, row.value)
                new_value = fn(previous)
                encoded = _encode_value(new_value)
                if row is None:
                    session.add(SlotORM(key=key, value=encoded))
                else:
                    row.value = encoded
        except SQLAlchemyError as exc:
            logger.error("Updating slot %s failed: %s", key, exc)
            raise PersistenceError(f"Unable to persist slot {key!r}: {exc}") from exc
        return new_value

    def delete(self, key: str) -> None:
        try:
            with self._scope() as session:
                row = session.get(SlotORM, key)
                if row is not None:
                    session.delete(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Unable to delete slot {key!r}: {exc}") from exc


__all__ = [
    "CUSTOM_CATEGORIES_SLOT",
    "HOME_CURRENCY_SLOT",
    "KeyValueStore",
    "RATES_CACHE_SLOT",
    "RATES_UPDATED_SLOT",
    "RECEIPTS_SLOT",
    "TRIPS_SLOT",
]
