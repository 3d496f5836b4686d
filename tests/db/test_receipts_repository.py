"""Tests for the receipt repository."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from tripfolio.db.kv import RECEIPTS_SLOT
from tripfolio.db.receipts import IMAGE_SAVE_FAILED, RECEIPT_NOT_FOUND
from tripfolio.errors import BlobStoreError, PersistenceError
from tripfolio.models.receipt import LocalizedText, Receipt, ReceiptDraft, ReceiptItem


class FlakyBlobs:
    """Blob store double that fails for selected payloads."""

    def __init__(self, fail_on=(), fail_delete=False):
        self.saved = {}
        self.fail_on = set(fail_on)
        self.fail_delete = fail_delete
        self.deleted = []

    async def save(self, blob_id, payload):
        if payload in self.fail_on:
            raise BlobStoreError("quota exceeded")
        self.saved[blob_id] = payload

    async def get(self, blob_id):
        return self.saved.get(blob_id)

    async def delete(self, blob_id):
        if self.fail_delete:
            raise BlobStoreError("locked")
        self.deleted.append(blob_id)
        self.saved.pop(blob_id, None)


@pytest.mark.asyncio
async def test_add_receipt_recomputes_total_and_status(store, draft_factory):
    outcome = await store.receipts.add_receipt(draft_factory(prices=(500.0, 300.0)), b"img")

    assert outcome.ok
    receipt = outcome.value
    assert receipt.total == 800.0
    assert receipt.status == "synced"
    assert receipt.created_at is not None
    assert await store.receipts.get_image(receipt.id) == b"img"
    assert store.receipts.list_receipts() == [receipt]


@pytest.mark.asyncio
async def test_offline_receipt_starts_pending(offline_store, draft_factory):
    outcome = await offline_store.receipts.add_receipt(draft_factory(), b"img")
    assert outcome.value.status == "pending"
    assert offline_store.receipts.status_counts() == {"pending": 1, "syncing": 0, "synced": 0}


@pytest.mark.asyncio
async def test_missing_items_create_zero_total(store):
    draft = ReceiptDraft(
        merchant=LocalizedText(original="駅", translated="Station"),
        date=date(2024, 4, 1),
        currency="jpy",
    )
    receipt = (await store.receipts.add_receipt(draft, b"img")).value
    assert receipt.items == []
    assert receipt.total == 0.0
    assert receipt.currency == "JPY"


@pytest.mark.asyncio
async def test_update_receipt_recomputes_total_after_item_removed(store, draft_factory):
    receipt = (await store.receipts.add_receipt(draft_factory(prices=(500.0, 300.0)), b"img")).value

    edited = receipt.evolve(items=receipt.items[:1], total=9999.0)
    outcome = store.receipts.update_receipt(edited)

    assert outcome.ok
    assert outcome.value.total == 500.0
    assert store.receipts.get_receipt(receipt.id).total == 500.0


@pytest.mark.asyncio
async def test_update_receipt_never_regresses_status(store, draft_factory):
    receipt = (await store.receipts.add_receipt(draft_factory(), b"img")).value
    assert receipt.status == "synced"

    outcome = store.receipts.update_receipt(receipt.evolve(status="pending", location="Kyoto"))

    assert outcome.value.status == "synced"
    assert store.receipts.get_receipt(receipt.id).location == "Kyoto"


def test_update_unknown_receipt_fails(store):
    ghost = Receipt(
        id="ghost",
        merchant=LocalizedText(original="x", translated="x"),
        date=date(2024, 1, 1),
        currency="JPY",
    )
    outcome = store.receipts.update_receipt(ghost)
    assert not outcome.ok
    assert outcome.reason == RECEIPT_NOT_FOUND


@pytest.mark.asyncio
async def test_failed_image_save_creates_nothing(store, draft_factory):
    store.receipts._blobs = FlakyBlobs(fail_on={b"bad"})

    outcome = await store.receipts.add_receipt(draft_factory(), b"bad")

    assert not outcome.ok
    assert outcome.reason == IMAGE_SAVE_FAILED
    assert store.receipts.list_receipts() == []


@pytest.mark.asyncio
async def test_batch_skips_failed_images_and_writes_once(store, draft_factory, monkeypatch):
    blobs = FlakyBlobs(fail_on={b"bad"})
    store.receipts._blobs = blobs
    writes = []
    original_update = store.kv.update

    def counting_update(key, fn, default=None):
        writes.append(key)
        return original_update(key, fn, default)

    monkeypatch.setattr(store.kv, "update", counting_update)

    outcome = await store.receipts.add_receipts(
        [
            (draft_factory(merchant="A"), b"ok-1"),
            (draft_factory(merchant="B"), b"bad"),
            (draft_factory(merchant="C"), b"ok-2"),
        ]
    )

    assert outcome.ok
    assert sorted(receipt.merchant.original for receipt in outcome.value) == ["A", "C"]
    assert writes == [RECEIPTS_SLOT]
    assert len(blobs.saved) == 2


@pytest.mark.asyncio
async def test_metadata_failure_discards_saved_images(store, draft_factory, monkeypatch):
    blobs = FlakyBlobs()
    store.receipts._blobs = blobs

    def failing_update(key, fn, default=None):
        raise PersistenceError("disk full")

    monkeypatch.setattr(store.kv, "update", failing_update)

    outcome = await store.receipts.add_receipt(draft_factory(), b"img")

    assert not outcome.ok
    assert blobs.saved == {}
    assert len(blobs.deleted) == 1


@pytest.mark.asyncio
async def test_delete_tolerates_orphaned_image(store, draft_factory):
    receipt = (await store.receipts.add_receipt(draft_factory(), b"img")).value
    store.receipts._blobs = FlakyBlobs(fail_delete=True)

    outcome = await store.receipts.delete_receipt(receipt.id)

    assert outcome.ok
    assert store.receipts.get_receipt(receipt.id) is None


@pytest.mark.asyncio
async def test_delete_unknown_receipt_is_noop(store):
    outcome = await store.receipts.delete_receipt("missing")
    assert outcome.ok


def test_receipts_ordered_by_date_then_creation_then_id(store):
    def make(receipt_id, day, minute):
        return Receipt(
            id=receipt_id,
            merchant=LocalizedText(original=receipt_id, translated=receipt_id),
            date=day,
            currency="JPY",
            created_at=datetime(2024, 4, 2, 12, minute, tzinfo=timezone.utc),
        )

    store.receipts.replace_all(
        [
            make("older", date(2024, 3, 1), 59),
            make("first", date(2024, 4, 2), 1),
            make("b-second", date(2024, 4, 2), 5),
            make("c-second", date(2024, 4, 2), 5),
        ]
    )

    ordered = [receipt.id for receipt in store.receipts.list_receipts()]
    assert ordered == ["c-second", "b-second", "first", "older"]


def test_migrate_legacy_categories_moves_category_to_items(store):
    legacy = {
        "id": "legacy-1",
        "merchant": {"original": "セブン", "translated": "7-Eleven"},
        "date": "2023-11-02",
        "total": 420,
        "currency": "JPY",
        "category": "Groceries",
        "items": [
            {"description": {"original": "牛乳", "translated": "Milk"}, "price": 220},
            {"description": {"original": "パン", "translated": "Bread"}, "price": 200},
        ],
        "status": "synced",
    }
    store.kv.set(RECEIPTS_SLOT, [legacy])

    assert store.receipts.migrate_legacy_categories() == 1
    assert store.receipts.migrate_legacy_categories() == 0

    receipt = store.receipts.get_receipt("legacy-1")
    assert [item.category for item in receipt.items] == ["Groceries", "Groceries"]
    assert "category" not in store.kv.get(RECEIPTS_SLOT)[0]


def test_created_at_is_preserved_on_update(store):
    created = datetime(2024, 4, 2, 9, 30, tzinfo=timezone.utc)
    receipt = Receipt(
        id="r1",
        merchant=LocalizedText(original="a", translated="a"),
        date=date(2024, 4, 2),
        currency="JPY",
        items=[ReceiptItem(price=100.0)],
        created_at=created,
    )
    store.receipts.replace_all([receipt])

    outcome = store.receipts.update_receipt(receipt.evolve(created_at=None, location="Osaka"))

    assert outcome.value.created_at == created
