"""Pydantic models for receipts and their line items."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

SyncStatus = Literal["pending", "syncing", "synced"]

# Position of each status in the one-way sync progression.
SYNC_ORDER: dict[str, int] = {"pending": 0, "syncing": 1, "synced": 2}


class LocalizedText(BaseModel):
    """Text as printed on the receipt plus its translation."""

    original: str = ""
    translated: str = ""

    model_config = ConfigDict(frozen=True)


class ReceiptItem(BaseModel):
    """Single purchased line; price may be zero or negative for fees and discounts."""

    description: LocalizedText = Field(default_factory=LocalizedText)
    price: float = 0.0
    category: str = "Other"

    model_config = ConfigDict(frozen=True)


def items_total(items: list[ReceiptItem]) -> float:
    """Sum of item prices; the only source of truth for a receipt total."""

    return sum((item.price for item in items), 0.0)


class ReceiptDraft(BaseModel):
    """Receipt fields supplied by the user or the extraction service before creation."""

    merchant: LocalizedText
    date: date
    location: Optional[str] = None
    currency: str
    items: Optional[list[ReceiptItem]] = None
    trip_id: Optional[str] = Field(default=None, alias="tripId")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Receipt(BaseModel):
    """Stored receipt metadata. The image payload lives in the blob store under ``id``."""

    id: str
    merchant: LocalizedText
    date: date
    location: Optional[str] = None
    total: float = 0.0
    currency: str
    items: list[ReceiptItem] = Field(default_factory=list)
    status: SyncStatus = "pending"
    trip_id: Optional[str] = Field(default=None, alias="tripId")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_validator(mode="after")
    def _recompute_total(self) -> "Receipt":
        # Stored totals are never trusted; items are the source of truth.
        object.__setattr__(self, "total", items_total(self.items))
        return self

    def evolve(self, **changes) -> "Receipt":
        """Copy with ``changes`` applied, re-running validation so the total stays derived."""

        data = self.model_dump()
        data.update(changes)
        return Receipt.model_validate(data)

    def to_storage(self) -> dict:
        """JSON-safe dict using the camelCase wire names."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def sort_key(receipt: Receipt) -> tuple:
    """Ordering key for newest-first lists: date, then creation time, then id."""

    created = receipt.created_at.timestamp() if receipt.created_at else 0.0
    return (receipt.date.toordinal(), created, receipt.id)


def sort_receipts(receipts: list[Receipt]) -> list[Receipt]:
    return sorted(receipts, key=sort_key, reverse=True)


__all__ = [
    "LocalizedText",
    "Receipt",
    "ReceiptDraft",
    "ReceiptItem",
    "SYNC_ORDER",
    "SyncStatus",
    "items_total",
    "sort_key",
    "sort_receipts",
]
