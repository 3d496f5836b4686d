"""Shared pytest fixtures for the Tripfolio test suite."""

from __future__ import annotations

from datetime import date
from typing import Generator, List, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tripfolio.config import get_settings
from tripfolio.db.repository import reset_repository_state
from tripfolio.models.receipt import LocalizedText, ReceiptDraft, ReceiptItem
from tripfolio.rates import RateNotPublished
from tripfolio.server import deps
from tripfolio.server.app import create_app
from tripfolio.store import LocalStore, reset_store


class FakeRateSource:
    """Rate source returning canned rates and recording every request."""

    def __init__(self, rates: Optional[dict] = None, unpublished: tuple = ()) -> None:
        self.rates = rates or {}
        self.unpublished = set(unpublished)
        self.calls: List[tuple] = []

    async def fetch_rate(self, day, from_currency, to_currency):
        self.calls.append((day, from_currency, to_currency))
        if day in self.unpublished:
            raise RateNotPublished(day)
        return self.rates.get((from_currency, to_currency))


class FakeSleep:
    """Stand-in for ``asyncio.sleep`` that returns immediately."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_draft(
    merchant: str = "Lawson",
    day: date = date(2024, 4, 2),
    prices: tuple = (500.0, 300.0),
    currency: str = "JPY",
    category: str = "Food & Drink",
    trip_id: Optional[str] = None,
) -> ReceiptDraft:
    items = [
        ReceiptItem(
            description=LocalizedText(original=f"item {index}", translated=f"Item {index}"),
            price=price,
            category=category,
        )
        for index, price in enumerate(prices)
    ]
    return ReceiptDraft(
        merchant=LocalizedText(original=merchant, translated=merchant),
        date=day,
        currency=currency,
        items=items,
        trip_id=trip_id,
    )


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Ensure each test uses isolated SQLite database locations."""

    monkeypatch.setenv("TRIPFOLIO_DATABASE_PATH", str(tmp_path / "state.db"))
    monkeypatch.setenv("TRIPFOLIO_BLOB_DATABASE_PATH", str(tmp_path / "images.db"))
    get_settings.cache_clear()
    reset_repository_state()
    reset_store()
    yield
    reset_store()
    reset_repository_state()
    monkeypatch.delenv("TRIPFOLIO_DATABASE_PATH", raising=False)
    monkeypatch.delenv("TRIPFOLIO_BLOB_DATABASE_PATH", raising=False)
    get_settings.cache_clear()


@pytest.fixture()
def rate_source() -> FakeRateSource:
    return FakeRateSource(rates={("JPY", "USD"): 0.0067, ("EUR", "USD"): 1.08})


@pytest.fixture()
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture()
def store(rate_source, fake_sleep) -> LocalStore:
    """Online store with a canned rate source and an instant sync delay."""

    return LocalStore(rate_source=rate_source, sleep=fake_sleep, online=True)


@pytest.fixture()
def offline_store(rate_source, fake_sleep) -> LocalStore:
    return LocalStore(rate_source=rate_source, sleep=fake_sleep, online=False)


@pytest.fixture()
def app(store) -> Generator[FastAPI, None, None]:
    """Create a new FastAPI app instance for each test and reset overrides."""

    application = create_app()
    application.dependency_overrides[deps.get_store] = lambda: store
    yield application
    application.dependency_overrides.clear()


@pytest.fixture()
def client(app) -> TestClient:
    """Return a test client bound to the FastAPI app."""

    return TestClient(app)


@pytest.fixture()
def draft_factory():
    return make_draft


@pytest.fixture()
def rate_source_factory():
    return FakeRateSource
