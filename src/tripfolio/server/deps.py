"""Dependency definitions for the Tripfolio API server."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import Depends, HTTPException, Query, Request, status

from tripfolio.config import get_settings
from tripfolio.models.filters import AmountRange, DateRange, ReceiptFilters
from tripfolio.store import LocalStore
from tripfolio.store import get_store as get_default_store


class ReceiptQuery:
    """Trip selection, free-text search and structured filters taken from query params."""

    def __init__(
        self,
        trip_id: Optional[str] = Query(default=None),
        search: str = Query(default=""),
        start: Optional[date] = Query(default=None),
        end: Optional[date] = Query(default=None),
        category: Optional[list[str]] = Query(default=None),
        min_amount: Optional[float] = Query(default=None),
        max_amount: Optional[float] = Query(default=None),
    ) -> None:
        self.trip_id = trip_id or None
        self.search = search
        self.filters = ReceiptFilters(
            date_range=DateRange(start=start, end=end),
            categories=list(category or []),
            amount_range=AmountRange(min=min_amount, max=max_amount),
        )


def get_store() -> LocalStore:
    """Return the process-wide store; overridden in tests."""

    return get_default_store()


def require_api_token(
    request: Request,
    settings=Depends(get_settings),
) -> None:
    """Ensure requests carry the configured API token when required."""

    token = settings.api_token
    if not token:
        return

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.split("Bearer ")[-1].strip() == token:
        return

    if request.headers.get("X-API-Key") == token:
        return

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
