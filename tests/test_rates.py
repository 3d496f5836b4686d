"""Tests for the exchange-rate cache and the Frankfurter client."""

from __future__ import annotations

from datetime import date

import httpx
import pytest

from tripfolio.db.kv import RATES_CACHE_SLOT, RATES_UPDATED_SLOT
from tripfolio.rates import CurrencyRateCache, FrankfurterRateSource, RateNotPublished, cache_key


@pytest.mark.asyncio
async def test_identity_pair_needs_no_lookup(store, rate_source):
    assert await store.rates.get_rate(date(2024, 4, 2), "jpy", "JPY") == 1.0
    assert rate_source.calls == []
    assert store.kv.get(RATES_CACHE_SLOT) is None


@pytest.mark.asyncio
async def test_second_lookup_is_served_from_cache(store, rate_source):
    day = date(2024, 4, 2)
    first = await store.rates.get_rate(day, "JPY", "USD")
    second = await store.rates.get_rate(day, "JPY", "USD")

    assert first == second == 0.0067
    assert len(rate_source.calls) == 1
    assert store.kv.get(RATES_CACHE_SLOT) == {"2024-04-02_JPY_USD": 0.0067}
    assert store.rates.rates_last_updated() is not None


@pytest.mark.asyncio
async def test_weekend_walks_back_and_caches_requested_date(store, rate_source_factory):
    saturday, friday = date(2024, 4, 6), date(2024, 4, 5)
    source = rate_source_factory(rates={("JPY", "USD"): 0.0066}, unpublished={saturday})
    rates = CurrencyRateCache(store.kv, source, floor_year=1999)

    assert await rates.get_rate(saturday, "JPY", "USD") == 0.0066

    assert [call[0] for call in source.calls] == [saturday, friday]
    assert cache_key(saturday, "JPY", "USD") in store.kv.get(RATES_CACHE_SLOT)
    assert cache_key(friday, "JPY", "USD") not in store.kv.get(RATES_CACHE_SLOT)


@pytest.mark.asyncio
async def test_walk_stops_at_floor_year(store, rate_source_factory):
    source = rate_source_factory(unpublished={date(2000, 1, 1), date(1999, 12, 31)})
    rates = CurrencyRateCache(store.kv, source, floor_year=2000)

    assert await rates.get_rate(date(2000, 1, 1), "EUR", "USD") is None
    assert [call[0] for call in source.calls] == [date(2000, 1, 1)]
    assert store.kv.get(RATES_UPDATED_SLOT) is None


@pytest.mark.asyncio
async def test_network_errors_yield_none(store):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    source = FrankfurterRateSource("https://rates.test", transport=httpx.MockTransport(handler))
    rates = CurrencyRateCache(store.kv, source)

    assert await rates.get_rate(date(2024, 4, 2), "JPY", "USD") is None


@pytest.mark.asyncio
async def test_frankfurter_source_parses_rates_and_404():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        if request.url.path == "/2024-04-06":
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(
            200, json={"amount": 1.0, "base": "JPY", "date": "2024-04-05", "rates": {"USD": 0.0066}}
        )

    source = FrankfurterRateSource("https://rates.test/", transport=httpx.MockTransport(handler))

    assert await source.fetch_rate(date(2024, 4, 5), "JPY", "USD") == 0.0066
    assert await source.fetch_rate(date(2024, 4, 5), "JPY", "EUR") is None
    with pytest.raises(RateNotPublished):
        await source.fetch_rate(date(2024, 4, 6), "JPY", "USD")
    assert seen[0].params["from"] == "JPY"
    assert seen[0].params["to"] == "USD"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"rates": ["USD", 0.0067]},
        ["not", "an", "object"],
        {"rates": {"USD": "n/a"}},
    ],
)
async def test_malformed_rate_response_yields_none(store, body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=body)

    source = FrankfurterRateSource("https://rates.test", transport=httpx.MockTransport(handler))
    rates = CurrencyRateCache(store.kv, source)

    assert await rates.get_rate(date(2024, 4, 2), "JPY", "USD") is None
    assert store.kv.get(RATES_CACHE_SLOT) is None


@pytest.mark.asyncio
async def test_convert_total_uses_each_receipt_date(store, draft_factory):
    await store.receipts.add_receipt(draft_factory(prices=(1000.0,), currency="JPY"), b"1")
    await store.receipts.add_receipt(draft_factory(prices=(10.0,), currency="USD"), b"2")

    total = await store.rates.convert_total(store.receipts.list_receipts(), "USD")

    assert total == pytest.approx(1000 * 0.0067 + 10.0)


@pytest.mark.asyncio
async def test_convert_total_is_none_when_any_rate_missing(store, draft_factory):
    await store.receipts.add_receipt(draft_factory(prices=(10.0,), currency="GBP"), b"1")
    assert await store.rates.convert_total(store.receipts.list_receipts(), "USD") is None


def test_home_currency_preference(store):
    assert store.rates.home_currency() is None
    assert store.rates.set_home_currency("usd").value == "USD"
    assert store.rates.home_currency() == "USD"

    rejected = store.rates.set_home_currency("XYZ")
    assert not rejected.ok
    assert store.rates.home_currency() == "USD"

    assert store.rates.set_home_currency(None).ok
    assert store.rates.home_currency() is None
