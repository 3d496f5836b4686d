"""Filter criteria and aggregation result models."""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class DateRange(BaseModel):
    """Inclusive calendar range; either bound may be open."""

    start: Optional[date] = None
    end: Optional[date] = None

    model_config = ConfigDict(frozen=True)


class AmountRange(BaseModel):
    """Inclusive bounds applied to a receipt total."""

    min: Optional[float] = None
    max: Optional[float] = None

    model_config = ConfigDict(frozen=True)


class ReceiptFilters(BaseModel):
    """Structured filters selected alongside the trip and free-text search."""

    date_range: DateRange = Field(default_factory=DateRange, alias="dateRange")
    categories: list[str] = Field(default_factory=list)
    amount_range: AmountRange = Field(default_factory=AmountRange, alias="amountRange")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class CategoryShare(BaseModel):
    category: str
    total: float
    percentage: float

    model_config = ConfigDict(frozen=True)


class CurrencySpending(BaseModel):
    """Category breakdown for one currency; shares never mix currencies."""

    currency: str
    overall_total: float
    categories: list[CategoryShare] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class SpendingSummary(BaseModel):
    """Aggregate view over a filtered receipt list."""

    receipt_count: int
    totals_by_currency: dict[str, float] = Field(default_factory=dict)
    category_spending: list[CurrencySpending] = Field(default_factory=list)
    earliest: Optional[date] = None
    latest: Optional[date] = None
    home_currency: Optional[str] = None
    converted_total: Optional[float] = None
