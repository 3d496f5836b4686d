"""Spreadsheet export of receipts."""

from __future__ import annotations

import csv
import io
import json
from datetime import date
from typing import Iterable, Optional

from tripfolio.models.receipt import Receipt

CSV_HEADERS = (
    "Date",
    "Merchant (Original)",
    "Merchant (Translated)",
    "Total Amount",
    "Currency",
    "Items (JSON)",
    "Image ID (Stored Locally)",
)


def _items_json(receipt: Receipt) -> str:
    items = [item.model_dump(mode="json", by_alias=True) for item in receipt.items]
    return json.dumps(items, ensure_ascii=False, separators=(",", ":"))


def _format_amount(value: float) -> str:
    return str(int(value)) if value.is_integer() else repr(value)


def receipts_to_csv(receipts: Iterable[Receipt]) -> str:
    """Render receipts as CSV text, one row per receipt, header first."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for receipt in receipts:
        writer.writerow(
            [
                receipt.date.isoformat(),
                receipt.merchant.original,
                receipt.merchant.translated,
                _format_amount(receipt.total),
                receipt.currency,
                _items_json(receipt),
                receipt.id,
            ]
        )
    return buffer.getvalue()


def csv_filename(day: Optional[date] = None) -> str:
    if day is None:
        return "receipts.csv"
    return f"receipts_{day.isoformat()}.csv"


__all__ = ["CSV_HEADERS", "csv_filename", "receipts_to_csv"]
