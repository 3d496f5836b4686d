"""Contract for structured data returned by the receipt extraction service."""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tripfolio.models.receipt import LocalizedText, ReceiptItem


class ExtractedLocation(BaseModel):
    """Best-guess location plus alternatives when the service is unsure."""

    determined: str = ""
    suggestions: list[str] = Field(default_factory=list)


class ExtractedReceipt(BaseModel):
    merchant: LocalizedText
    date: date
    location: Optional[ExtractedLocation] = None
    total: Optional[float] = None
    currency: str
    items: list[ReceiptItem] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class Coordinates(BaseModel):
    latitude: float
    longitude: float
