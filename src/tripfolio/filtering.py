"""Receipt filtering and spending aggregation.

Every function here is pure: inputs are never mutated and identical inputs give identical
outputs, in the same order.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from tripfolio.categories import FALLBACK_CATEGORY
from tripfolio.currencies import normalize_code
from tripfolio.models.filters import (
    CategoryShare,
    CurrencySpending,
    ReceiptFilters,
)
from tripfolio.models.receipt import Receipt


def _matches_trip(receipt: Receipt, trip_id: Optional[str]) -> bool:
    return trip_id is None or receipt.trip_id == trip_id


def _matches_search(receipt: Receipt, term: str) -> bool:
    if not term:
        return True
    haystacks = [receipt.merchant.original, receipt.merchant.translated]
    for item in receipt.items:
        haystacks.append(item.description.original)
        haystacks.append(item.description.translated)
    return any(term in (text or "").lower() for text in haystacks)


def _matches_dates(receipt: Receipt, filters: ReceiptFilters) -> bool:
    start, end = filters.date_range.start, filters.date_range.end
    if start is not None and receipt.date < start:
        return False
    if end is not None and receipt.date > end:
        return False
    return True


def _matches_categories(receipt: Receipt, filters: ReceiptFilters) -> bool:
    if not filters.categories:
        return True
    wanted = set(filters.categories)
    return any(item.category in wanted for item in receipt.items)


def _matches_amount(receipt: Receipt, filters: ReceiptFilters) -> bool:
    low, high = filters.amount_range.min, filters.amount_range.max
    if low is not None and receipt.total < low:
        return False
    if high is not None and receipt.total > high:
        return False
    return True


def filter_receipts(
    receipts: Sequence[Receipt],
    trip_id: Optional[str] = None,
    search_term: str = "",
    filters: Optional[ReceiptFilters] = None,
) -> List[Receipt]:
    """Return the receipts passing trip, search, date, category and amount predicates."""

    criteria = filters or ReceiptFilters()
    term = (search_term or "").strip().lower()
    return [
        receipt
        for receipt in receipts
        if _matches_trip(receipt, trip_id)
        and _matches_search(receipt, term)
        and _matches_dates(receipt, criteria)
        and _matches_categories(receipt, criteria)
        and _matches_amount(receipt, criteria)
    ]


def has_active_filters(filters: Optional[ReceiptFilters]) -> bool:
    if filters is None:
        return False
    return bool(
        filters.date_range.start
        or filters.date_range.end
        or filters.categories
        or filters.amount_range.min is not None
        or filters.amount_range.max is not None
    )


def totals_by_currency(receipts: Iterable[Receipt]) -> Dict[str, float]:
    """Sum of receipt totals per currency, currencies in first-seen order."""

    totals: Dict[str, float] = {}
    for receipt in receipts:
        currency = normalize_code(receipt.currency)
        totals[currency] = totals.get(currency, 0.0) + receipt.total
    return totals


def category_spending(
    receipts: Iterable[Receipt],
    known_categories: Optional[Iterable[str]] = None,
) -> List[CurrencySpending]:
    """Item spending grouped by currency, then category.

    Percentages are shares of their own currency group. Categories outside
    ``known_categories`` (when given) count toward the fallback category.
    """

    known = set(known_categories) if known_categories is not None else None
    groups: Dict[str, Dict[str, float]] = {}
    for receipt in receipts:
        currency = normalize_code(receipt.currency)
        group = groups.setdefault(currency, {})
        for item in receipt.items:
            category = item.category or FALLBACK_CATEGORY
            if known is not None and category not in known:
                category = FALLBACK_CATEGORY
            group[category] = group.get(category, 0.0) + item.price

    breakdown: List[CurrencySpending] = []
    for currency in sorted(groups):
        group = groups[currency]
        overall = sum(group.values(), 0.0)
        shares = [
            CategoryShare(
                category=category,
                total=amount,
                percentage=(amount / overall * 100.0) if overall > 0 else 0.0,
            )
            for category, amount in sorted(group.items(), key=lambda entry: (-entry[1], entry[0]))
        ]
        breakdown.append(CurrencySpending(currency=currency, overall_total=overall, categories=shares))
    return breakdown


def date_bounds(receipts: Iterable[Receipt]) -> Tuple[Optional[date], Optional[date]]:
    """Earliest and latest receipt dates, used to prefill the date filter."""

    dates = [receipt.date for receipt in receipts]
    if not dates:
        return None, None
    return min(dates), max(dates)


def used_categories(receipts: Iterable[Receipt]) -> List[str]:
    """Distinct item categories in use, sorted for display."""

    return sorted({item.category for receipt in receipts for item in receipt.items})


__all__ = [
    "category_spending",
    "date_bounds",
    "filter_receipts",
    "has_active_filters",
    "totals_by_currency",
    "used_categories",
]
