"""Pydantic models defining shared data contracts."""

from tripfolio.models.extraction import Coordinates, ExtractedLocation, ExtractedReceipt
from tripfolio.models.filters import (
    AmountRange,
    CategoryShare,
    CurrencySpending,
    DateRange,
    ReceiptFilters,
    SpendingSummary,
)
from tripfolio.models.receipt import (
    LocalizedText,
    Receipt,
    ReceiptDraft,
    ReceiptItem,
    SyncStatus,
)
from tripfolio.models.snapshot import Snapshot, SnapshotData
from tripfolio.models.trip import Trip, TripDraft

__all__ = [
    "AmountRange",
    "CategoryShare",
    "Coordinates",
    "CurrencySpending",
    "DateRange",
    "ExtractedLocation",
    "ExtractedReceipt",
    "LocalizedText",
    "Receipt",
    "ReceiptDraft",
    "ReceiptFilters",
    "ReceiptItem",
    "Snapshot",
    "SnapshotData",
    "SpendingSummary",
    "SyncStatus",
    "Trip",
    "TripDraft",
]
