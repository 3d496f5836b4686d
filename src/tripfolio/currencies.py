"""Supported currency codes."""

from __future__ import annotations

from typing import Optional

SUPPORTED_CURRENCIES: dict[str, str] = {
    "USD": "United States Dollar",
    "EUR": "Euro",
    "JPY": "Japanese Yen",
    "GBP": "British Pound Sterling",
    "AUD": "Australian Dollar",
    "CAD": "Canadian Dollar",
    "CHF": "Swiss Franc",
    "CNY": "Chinese Yuan",
    "HKD": "Hong Kong Dollar",
    "NZD": "New Zealand Dollar",
}

UNKNOWN_CURRENCY = "UNKNOWN"


def normalize_code(code: Optional[str]) -> str:
    """Upper-case a currency code; blank codes become :data:`UNKNOWN_CURRENCY`."""

    if not code or not code.strip():
        return UNKNOWN_CURRENCY
    return code.strip().upper()


def is_supported(code: str) -> bool:
    return code.strip().upper() in SUPPORTED_CURRENCIES


__all__ = ["SUPPORTED_CURRENCIES", "UNKNOWN_CURRENCY", "is_supported", "normalize_code"]
