"""Receipt collection persisted in the ``receipts`` slot.

Image payloads go to the :class:`~tripfolio.db.blobs.BlobStore`; metadata goes to the
slot store. Creation saves the image first, deletion removes metadata first.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from tripfolio import metrics
from tripfolio.errors import BlobStoreError, PersistenceError
from tripfolio.models.receipt import (
    SYNC_ORDER,
    Receipt,
    ReceiptDraft,
    SyncStatus,
    sort_receipts,
)
from tripfolio.outcome import Outcome

from .blobs import BlobStore
from .kv import RECEIPTS_SLOT, KeyValueStore

logger = logging.getLogger(__name__)

IMAGE_SAVE_FAILED = "The receipt image could not be saved, so the receipt was not created."
METADATA_SAVE_FAILED = "The receipt could not be saved."
RECEIPT_NOT_FOUND = "Receipt not found."


def _load(raw: Optional[list]) -> List[Receipt]:
    return [Receipt.model_validate(entry) for entry in raw or []]


def _dump(receipts: Iterable[Receipt]) -> List[dict]:
    return [receipt.to_storage() for receipt in sort_receipts(list(receipts))]


def _rewrite(transform: Callable[[Receipt], Receipt]) -> Callable[[Optional[list]], List[dict]]:
    """Lift a per-receipt transform into a slot update function."""

    def apply(previous: Optional[list]) -> List[dict]:
        return _dump(transform(receipt) for receipt in _load(previous))

    return apply


def lift_legacy_category(entry: Any) -> Any:
    """Return ``entry`` with an old receipt-level ``category`` copied onto its items.

    Entries that need no change are returned as the same object. Items that already carry
    a category win over the receipt-level one.
    """

    if not isinstance(entry, dict) or not entry.get("category"):
        return entry
    items = entry.get("items") or []
    if any(isinstance(item, dict) and item.get("category") for item in items):
        return entry
    legacy = entry["category"]
    lifted = {key: value for key, value in entry.items() if key != "category"}
    lifted["items"] = [{**item, "category": legacy} for item in items]
    return lifted


class ReceiptRepository:
    """Commands and queries over stored receipts."""

    def __init__(
        self,
        kv: KeyValueStore,
        blobs: BlobStore,
        is_online: Callable[[], bool],
    ) -> None:
        self._kv = kv
        self._blobs = blobs
        self._is_online = is_online

    # Queries -----------------------------------------------------------------

    def list_receipts(self) -> List[Receipt]:
        """Return all receipts, newest first."""

        return sort_receipts(_load(self._kv.get(RECEIPTS_SLOT, [])))

    def get_receipt(self, receipt_id: str) -> Optional[Receipt]:
        for receipt in self.list_receipts():
            if receipt.id == receipt_id:
                return receipt
        return None

    def receipts_for_trip(self, trip_id: str) -> List[Receipt]:
        return [receipt for receipt in self.list_receipts() if receipt.trip_id == trip_id]

    def status_counts(self) -> dict[str, int]:
        counts = {status: 0 for status in SYNC_ORDER}
        for receipt in self.list_receipts():
            counts[receipt.status] += 1
        return counts

    async def get_image(self, receipt_id: str) -> Optional[bytes]:
        return await self._blobs.get(receipt_id)

    # Commands ----------------------------------------------------------------

    def _new_receipt(self, draft: ReceiptDraft) -> Receipt:
        status: SyncStatus = "synced" if self._is_online() else "pending"
        return Receipt(
            id=uuid4().hex,
            merchant=draft.merchant,
            date=draft.date,
            location=draft.location,
            currency=draft.currency.strip().upper(),
            items=list(draft.items or []),
            status=status,
            trip_id=draft.trip_id,
            created_at=datetime.now(timezone.utc),
        )

    async def add_receipt(self, draft: ReceiptDraft, image: bytes) -> Outcome[Receipt]:
        """Save the image, then the metadata. A failed image save creates nothing."""

        result = await self.add_receipts([(draft, image)])
        if not result.ok:
            return Outcome.failure(result.reason or METADATA_SAVE_FAILED)
        committed = result.value or []
        if not committed:
            return Outcome.failure(IMAGE_SAVE_FAILED)
        return Outcome.success(committed[0])

    async def add_receipts(
        self, batch: Sequence[Tuple[ReceiptDraft, bytes]]
    ) -> Outcome[List[Receipt]]:
        """Create several receipts from one user action.

        Each image is saved independently; a failed image excludes only its receipt. The
        survivors are committed with a single slot write.
        """

        created: List[Receipt] = []
        for draft, image in batch:
            receipt = self._new_receipt(draft)
            try:
                await self._blobs.save(receipt.id, image)
            except BlobStoreError as exc:
                metrics.BLOB_FAILURES.labels(operation="save").inc()
                logger.error(
                    "Skipping receipt from %s: image save failed: %s",
                    draft.merchant.original or draft.merchant.translated,
                    exc,
                )
                continue
            created.append(receipt)

        if not created:
            return Outcome.success([])

        def insert(previous: Optional[list]) -> List[dict]:
            return _dump([*_load(previous), *created])

        try:
            self._kv.update(RECEIPTS_SLOT, insert, [])
        except PersistenceError:
            logger.exception("Receipt metadata write failed; discarding %d image(s)", len(created))
            for receipt in created:
                await self._discard_image(receipt.id)
            return Outcome.failure(METADATA_SAVE_FAILED)

        for receipt in created:
            logger.info(
                "Created receipt status=%s total=%.2f %s",
                receipt.status,
                receipt.total,
                receipt.currency,
                extra={"receipt_id": receipt.id},
            )
        return Outcome.success(created)

    def update_receipt(self, receipt: Receipt) -> Outcome[Receipt]:
        """Replace the stored receipt with the same id.

        The caller supplies the complete entity. The total is recomputed and the sync
        status never moves backwards.
        """

        stored: dict[str, Receipt] = {}

        def replace(previous: Optional[list]) -> List[dict]:
            receipts = _load(previous)
            for index, current in enumerate(receipts):
                if current.id == receipt.id:
                    status = max(current.status, receipt.status, key=SYNC_ORDER.__getitem__)
                    stored["receipt"] = receipt.evolve(
                        status=status,
                        created_at=receipt.created_at or current.created_at,
                    )
                    receipts[index] = stored["receipt"]
                    return _dump(receipts)
            raise LookupError(receipt.id)

        try:
            self._kv.update(RECEIPTS_SLOT, replace, [])
        except LookupError:
            return Outcome.failure(RECEIPT_NOT_FOUND)
        except PersistenceError:
            return Outcome.failure(METADATA_SAVE_FAILED)
        return Outcome.success(stored["receipt"])

    async def delete_receipt(self, receipt_id: str) -> Outcome[None]:
        """Remove metadata, then try to remove the image. Unknown ids are a no-op."""

        removed: list[str] = []

        def remove(previous: Optional[list]) -> List[dict]:
            receipts = _load(previous)
            kept = [receipt for receipt in receipts if receipt.id != receipt_id]
            if len(kept) != len(receipts):
                removed.append(receipt_id)
            return _dump(kept)

        try:
            self._kv.update(RECEIPTS_SLOT, remove, [])
        except PersistenceError:
            return Outcome.failure(METADATA_SAVE_FAILED)

        if not removed:
            logger.debug("Delete requested for unknown receipt %s", receipt_id)
            return Outcome.success()

        await self._discard_image(receipt_id)
        logger.info("Deleted receipt", extra={"receipt_id": receipt_id})
        return Outcome.success()

    async def _discard_image(self, receipt_id: str) -> None:
        try:
            await self._blobs.delete(receipt_id)
        except BlobStoreError as exc:
            metrics.BLOB_FAILURES.labels(operation="delete").inc()
            logger.warning(
                "Receipt image left orphaned after delete failure: %s",
                exc,
                extra={"receipt_id": receipt_id},
            )

    # Bulk rewrites used by sync, cascades and snapshot import ------------------

    def advance_status(
        self,
        from_status: SyncStatus,
        to_status: SyncStatus,
        receipt_ids: Optional[Iterable[str]] = None,
    ) -> List[str]:
        """Move receipts currently in ``from_status`` to ``to_status``; return their ids."""

        if SYNC_ORDER[to_status] <= SYNC_ORDER[from_status]:
            raise ValueError(f"Sync status cannot move from {from_status} to {to_status}")
        wanted = set(receipt_ids) if receipt_ids is not None else None
        moved: List[str] = []

        def advance(receipt: Receipt) -> Receipt:
            if receipt.status != from_status:
                return receipt
            if wanted is not None and receipt.id not in wanted:
                return receipt
            moved.append(receipt.id)
            return receipt.evolve(status=to_status)

        self._kv.update(RECEIPTS_SLOT, _rewrite(advance), [])
        return moved

    def unassign_trip(self, trip_id: str) -> int:
        """Clear ``tripId`` on every receipt pointing at ``trip_id``."""

        changed: List[str] = []

        def unassign(receipt: Receipt) -> Receipt:
            if receipt.trip_id != trip_id:
                return receipt
            changed.append(receipt.id)
            return receipt.evolve(trip_id=None)

        self._kv.update(RECEIPTS_SLOT, _rewrite(unassign), [])
        return len(changed)

    def replace_category(self, old: str, new: str) -> int:
        """Rewrite every item categorized ``old`` to ``new``; return the item count."""

        changed: List[str] = []

        def recategorize(receipt: Receipt) -> Receipt:
            if not any(item.category == old for item in receipt.items):
                return receipt
            items = []
            for item in receipt.items:
                if item.category == old:
                    changed.append(receipt.id)
                    item = item.model_copy(update={"category": new})
                items.append(item)
            return receipt.evolve(items=items)

        self._kv.update(RECEIPTS_SLOT, _rewrite(recategorize), [])
        return len(changed)

    def replace_all(self, receipts: Sequence[Receipt]) -> None:
        self._kv.set(RECEIPTS_SLOT, _dump(receipts))

    def migrate_legacy_categories(self) -> int:
        """Move receipt-level categories written by older versions down onto items."""

        current = self._kv.get(RECEIPTS_SLOT, [])
        migrated = 0
        entries: list[Any] = []
        for entry in current or []:
            lifted = lift_legacy_category(entry)
            if lifted is not entry:
                migrated += 1
            entries.append(lifted)
        if migrated:
            self._kv.set(RECEIPTS_SLOT, entries)
            logger.info("Migrated %d receipt(s) to item-level categories", migrated)
        return migrated


__all__ = [
    "ReceiptRepository",
    "IMAGE_SAVE_FAILED",
    "METADATA_SAVE_FAILED",
    "RECEIPT_NOT_FOUND",
    "lift_legacy_category",
]
