"""Receipt image payloads stored apart from the slot database."""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractContextManager
from functools import partial
from typing import Callable, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tripfolio.errors import BlobStoreError

from .models import ReceiptImageORM
from .repository import BLOB_STORE, session_scope

logger = logging.getLogger(__name__)


class BlobStore:
    """Async key/payload store for receipt images.

    The SQLAlchemy work is synchronous; each call runs in a worker thread so the event
    loop keeps serving other handlers while an image is written.
    """

    def __init__(
        self, scope: Optional[Callable[[], AbstractContextManager[Session]]] = None
    ) -> None:
        self._scope = scope or partial(session_scope, BLOB_STORE)

    async def save(self, blob_id: str, payload: bytes) -> None:
        await self._run("save", self._save_sync, blob_id, bytes(payload))

    async def get(self, blob_id: str) -> Optional[bytes]:
        return await self._run("get", self._get_sync, blob_id)

    async def delete(self, blob_id: str) -> None:
        await self._run("delete", self._delete_sync, blob_id)

    async def get_all(self) -> Dict[str, bytes]:
        return await self._run("get_all", self._get_all_sync)

    async def clear(self) -> None:
        await self._run("clear", self._clear_sync)

    async def _run(self, operation: str, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except SQLAlchemyError as exc:
            raise BlobStoreError(f"Image store {operation} failed: {exc}") from exc

    def _save_sync(self, blob_id: str, payload: bytes) -> None:
        with self._scope() as session:
            session.merge(ReceiptImageORM(id=blob_id, payload=payload, size_bytes=len(payload)))
        logger.debug("Stored image for receipt %s (%d bytes)", blob_id, len(payload))

    def _get_sync(self, blob_id: str) -> Optional[bytes]:
        with self._scope() as session:
            record = session.get(ReceiptImageORM, blob_id)
            if record is None:
                return None
            return bytes(record.payload)

    def _delete_sync(self, blob_id: str) -> None:
        with self._scope() as session:
            record = session.get(ReceiptImageORM, blob_id)
            if record is not None:
                session.delete(record)

    def _get_all_sync(self) -> Dict[str, bytes]:
        with self._scope() as session:
            rows = session.execute(select(ReceiptImageORM)).scalars().all()
            return {row.id: bytes(row.payload) for row in rows}

    def _clear_sync(self) -> None:
        with self._scope() as session:
            session.execute(delete(ReceiptImageORM))


__all__ = ["BlobStore"]
