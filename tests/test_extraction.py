"""Tests for extraction results and the intake queue."""

from __future__ import annotations

from datetime import date

import pytest

from tripfolio.extraction import IntakeQueue, draft_from_extraction
from tripfolio.models.extraction import ExtractedLocation, ExtractedReceipt
from tripfolio.models.receipt import LocalizedText, ReceiptItem


def _extracted(items=None, total=None, location=None) -> ExtractedReceipt:
    return ExtractedReceipt(
        merchant=LocalizedText(original="ファミリーマート", translated="FamilyMart"),
        date=date(2024, 4, 3),
        location=location,
        total=total,
        currency="JPY",
        items=items if items is not None else [],
    )


class ScriptedExtractor:
    """Returns queued results in order; exceptions in the script are raised."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def extract(self, image, categories, coordinates=None):
        self.calls.append((image, list(categories)))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def test_draft_ignores_stated_total_and_unknown_categories():
    extracted = _extracted(
        items=[
            ReceiptItem(description=LocalizedText(original="茶", translated="Tea"), price=160.0, category="Food & Drink"),
            ReceiptItem(description=LocalizedText(original="傘", translated="Umbrella"), price=700.0, category="Rain Gear"),
        ],
        total=999.0,
        location=ExtractedLocation(determined=" Shibuya, Tokyo ", suggestions=["Shinjuku"]),
    )

    draft = draft_from_extraction(extracted, ["Food & Drink", "Other"])

    assert [item.category for item in draft.items] == ["Food & Drink", "Other"]
    assert sum(item.price for item in draft.items) == 860.0
    assert draft.location == "Shibuya, Tokyo"


def test_draft_without_items_uses_stated_total_as_single_line():
    draft = draft_from_extraction(_extracted(total=540.0), ["Other"])

    assert len(draft.items) == 1
    assert draft.items[0].price == 540.0
    assert draft.items[0].category == "Other"
    assert draft.location is None


@pytest.mark.asyncio
async def test_failed_job_does_not_block_the_rest(store):
    extractor = ScriptedExtractor(_extracted(total=100.0), RuntimeError("blurry image"), _extracted(total=200.0))
    queue = IntakeQueue(extractor, store.receipts, store.categories.all_categories)
    first = queue.enqueue(b"one")
    second = queue.enqueue(b"two")
    third = queue.enqueue(b"three")

    assert await queue.process_all() == 3

    assert (first.status, second.status, third.status) == ("done", "error", "done")
    assert second.error == "blurry image"
    assert [call[0] for call in extractor.calls] == [b"one", b"two", b"three"]

    outcome = await queue.commit(trip_id="japan")

    assert outcome.ok
    assert len(outcome.value) == 2
    assert all(receipt.trip_id == "japan" for receipt in store.receipts.list_receipts())
    assert [job.id for job in queue.jobs] == [second.id]


@pytest.mark.asyncio
async def test_requeue_retries_only_when_asked(store):
    extractor = ScriptedExtractor(RuntimeError("timeout"), _extracted(total=50.0))
    queue = IntakeQueue(extractor, store.receipts, store.categories.all_categories)
    job = queue.enqueue(b"img")

    await queue.process_all()
    assert job.status == "error"
    assert await queue.process_next() is None

    assert queue.requeue(job.id)
    await queue.process_all()
    assert job.status == "done"


@pytest.mark.asyncio
async def test_commit_with_nothing_ready_fails(store):
    queue = IntakeQueue(ScriptedExtractor(), store.receipts, store.categories.all_categories)
    assert not (await queue.commit()).ok
