"""Receipt extraction contract and the batch intake queue built on it."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Literal, Optional, Protocol, Sequence
from uuid import uuid4

from tripfolio.categories import resolve_category
from tripfolio.db.receipts import ReceiptRepository
from tripfolio.models.extraction import Coordinates, ExtractedReceipt
from tripfolio.models.receipt import LocalizedText, Receipt, ReceiptDraft, ReceiptItem
from tripfolio.outcome import Outcome

logger = logging.getLogger(__name__)

JobStatus = Literal["queued", "processing", "done", "error"]

EXTRACTION_FAILED = "Failed to analyze receipt. The image might be unclear or the format unsupported."
NOTHING_TO_SAVE = "No processed receipts to save."


class ReceiptExtractor(Protocol):
    """External service turning a receipt image into structured data."""

    async def extract(
        self,
        image: bytes,
        categories: Sequence[str],
        coordinates: Optional[Coordinates] = None,
    ) -> ExtractedReceipt:
        ...


def draft_from_extraction(
    extracted: ExtractedReceipt,
    categories: Sequence[str],
    trip_id: Optional[str] = None,
) -> ReceiptDraft:
    """Convert an extraction result into a receipt draft.

    The stated total is only used when no items were itemized, in which case it becomes a
    single uncategorized line; otherwise the total comes from the items. Item categories
    outside ``categories`` become the fallback category.
    """

    items: List[ReceiptItem] = []
    for item in extracted.items:
        resolution = resolve_category(item.category, categories)
        items.append(item.model_copy(update={"category": resolution.name}))

    if not items and extracted.total and extracted.total > 0:
        items.append(
            ReceiptItem(
                description=LocalizedText(original="不明", translated="Uncategorized Item"),
                price=extracted.total,
            )
        )

    location = None
    if extracted.location is not None and extracted.location.determined.strip():
        location = extracted.location.determined.strip()

    return ReceiptDraft(
        merchant=extracted.merchant,
        date=extracted.date,
        location=location,
        currency=extracted.currency,
        items=items,
        trip_id=trip_id,
    )


@dataclass
class IntakeJob:
    image: bytes
    coordinates: Optional[Coordinates] = None
    id: str = field(default_factory=lambda: uuid4().hex)
    status: JobStatus = "queued"
    draft: Optional[ReceiptDraft] = None
    suggestions: List[str] = field(default_factory=list)
    error: Optional[str] = None


class IntakeQueue:
    """Extract queued images one at a time, then save the successful ones together."""

    def __init__(
        self,
        extractor: ReceiptExtractor,
        receipts: ReceiptRepository,
        categories: Callable[[], List[str]],
    ) -> None:
        self._extractor = extractor
        self._receipts = receipts
        self._categories = categories
        self._jobs: List[IntakeJob] = []

    @property
    def jobs(self) -> List[IntakeJob]:
        return list(self._jobs)

    def enqueue(self, image: bytes, coordinates: Optional[Coordinates] = None) -> IntakeJob:
        job = IntakeJob(image=image, coordinates=coordinates)
        self._jobs.append(job)
        return job

    def requeue(self, job_id: str) -> bool:
        """Put a failed job back in line; failed extractions are never retried automatically."""

        for job in self._jobs:
            if job.id == job_id and job.status == "error":
                job.status = "queued"
                job.error = None
                return True
        return False

    def remove(self, job_id: str) -> None:
        self._jobs = [job for job in self._jobs if job.id != job_id]

    async def process_next(self) -> Optional[IntakeJob]:
        job = next((job for job in self._jobs if job.status == "queued"), None)
        if job is None:
            return None

        job.status = "processing"
        categories = self._categories()
        try:
            extracted = await self._extractor.extract(job.image, categories, job.coordinates)
        except Exception as exc:
            job.status = "error"
            job.error = str(exc) or EXTRACTION_FAILED
            logger.warning("Extraction failed for intake job %s: %s", job.id, exc)
            return job

        job.draft = draft_from_extraction(extracted, categories)
        if extracted.location is not None:
            job.suggestions = list(extracted.location.suggestions)
        job.status = "done"
        return job

    async def process_all(self) -> int:
        """Drain the queue sequentially; returns the number of jobs handled."""

        handled = 0
        while await self.process_next() is not None:
            handled += 1
        return handled

    async def commit(self, trip_id: Optional[str] = None) -> Outcome[List[Receipt]]:
        """Save every finished job as a receipt and drop them from the queue.

        Jobs whose image could not be stored are dropped too; failed extractions stay.
        """

        ready = [job for job in self._jobs if job.status == "done" and job.draft is not None]
        if not ready:
            return Outcome.failure(NOTHING_TO_SAVE)

        batch = []
        for job in ready:
            draft = job.draft
            if trip_id is not None:
                draft = draft.model_copy(update={"trip_id": trip_id})
            batch.append((draft, job.image))

        result = await self._receipts.add_receipts(batch)
        if result.ok:
            saved = {job.id for job in ready}
            self._jobs = [job for job in self._jobs if job.id not in saved]
            logger.info("Saved %d of %d processed receipt(s)", len(result.value or []), len(ready))
        return result


__all__ = [
    "IntakeJob",
    "IntakeQueue",
    "ReceiptExtractor",
    "draft_from_extraction",
]
