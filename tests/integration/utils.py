"""Shared helpers for integration tests."""

from __future__ import annotations

import base64
from typing import Optional

from tripfolio.config import get_settings


def auth_headers() -> dict[str, str]:
    token = get_settings().api_token
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


def receipt_payload(
    merchant: str = "Lawson",
    day: str = "2024-04-02",
    prices: tuple = (500, 300),
    currency: str = "JPY",
    category: str = "Food & Drink",
    trip_id: Optional[str] = None,
    image: bytes = b"\xff\xd8jpeg",
) -> dict:
    return {
        "merchant": {"original": merchant, "translated": merchant},
        "date": day,
        "currency": currency,
        "tripId": trip_id,
        "items": [
            {
                "description": {"original": f"item {index}", "translated": f"Item {index}"},
                "price": price,
                "category": category,
            }
            for index, price in enumerate(prices)
        ],
        "image": base64.b64encode(image).decode("ascii"),
    }
