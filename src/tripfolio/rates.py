"""Historical exchange rates with a persistent cache and calendar fallback."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Protocol

import httpx

from tripfolio import metrics
from tripfolio.config import get_settings
from tripfolio.currencies import is_supported
from tripfolio.db.kv import (
    HOME_CURRENCY_SLOT,
    RATES_CACHE_SLOT,
    RATES_UPDATED_SLOT,
    KeyValueStore,
)
from tripfolio.errors import PersistenceError
from tripfolio.models.receipt import Receipt
from tripfolio.outcome import Outcome

logger = logging.getLogger(__name__)


class RateNotPublished(Exception):
    """The rate source has no data for the requested day (weekend, holiday, ...)."""

    def __init__(self, day: date) -> None:
        super().__init__(f"No exchange rate published for {day.isoformat()}")
        self.day = day


class RateSource(Protocol):
    async def fetch_rate(self, day: date, from_currency: str, to_currency: str) -> Optional[float]:
        """Return the rate, ``None`` when the response lacks it, or raise RateNotPublished."""


class FrankfurterRateSource:
    """Client for the Frankfurter API (``GET /{date}?from=X&to=Y``)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.rates_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.rate_timeout_seconds
        self._transport = transport

    async def fetch_rate(self, day: date, from_currency: str, to_currency: str) -> Optional[float]:
        endpoint = f"{self._base_url}/{day.isoformat()}"
        params = {"from": from_currency, "to": to_currency}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(endpoint, params=params)

        if response.status_code == httpx.codes.NOT_FOUND:
            raise RateNotPublished(day)
        response.raise_for_status()

        payload = response.json()
        rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(rates, dict):
            raise ValueError(f"Malformed rate response for {day}")
        rate = rates.get(to_currency)
        if rate is None:
            logger.warning("Rate for %s not found in response for %s", to_currency, day)
            return None
        return float(rate)


def cache_key(day: date, from_currency: str, to_currency: str) -> str:
    return f"{day.isoformat()}_{from_currency}_{to_currency}"


class CurrencyRateCache:
    """Memoizes rates per (requested date, from, to) and owns the home-currency preference."""

    def __init__(
        self,
        kv: KeyValueStore,
        source: Optional[RateSource] = None,
        *,
        floor_year: Optional[int] = None,
    ) -> None:
        self._kv = kv
        self._source = source or FrankfurterRateSource()
        self._floor_year = floor_year if floor_year is not None else get_settings().rate_floor_year

    async def get_rate(self, day: date, from_currency: str, to_currency: str) -> Optional[float]:
        """Return the rate converting ``from_currency`` into ``to_currency`` on ``day``.

        ``None`` means no rate could be found; callers omit converted figures rather than
        fail.
        """

        source_code = from_currency.strip().upper()
        target_code = to_currency.strip().upper()
        if source_code == target_code:
            metrics.RATE_LOOKUPS.labels(result="identity").inc()
            return 1.0

        key = cache_key(day, source_code, target_code)
        cached = (self._kv.get(RATES_CACHE_SLOT, {}) or {}).get(key)
        if cached is not None:
            metrics.RATE_LOOKUPS.labels(result="cache_hit").inc()
            return float(cached)

        rate = await self._resolve(day, source_code, target_code)
        if rate is None:
            metrics.RATE_LOOKUPS.labels(result="unavailable").inc()
            return None

        def remember(previous: Optional[dict]) -> dict:
            entries = dict(previous or {})
            # First writer wins; entries are immutable once stored.
            entries.setdefault(key, rate)
            return entries

        try:
            self._kv.update(RATES_CACHE_SLOT, remember, {})
            self._kv.set(RATES_UPDATED_SLOT, datetime.now(timezone.utc).isoformat())
        except PersistenceError:
            logger.warning("Could not cache rate %s; returning uncached value", key)
        metrics.RATE_LOOKUPS.labels(result="fetched").inc()
        return rate

    async def _resolve(self, day: date, source_code: str, target_code: str) -> Optional[float]:
        """Fetch the rate, stepping back a day at a time while the source has no data."""

        current = day
        while True:
            try:
                return await self._source.fetch_rate(current, source_code, target_code)
            except RateNotPublished:
                previous = current - timedelta(days=1)
                if previous.year < self._floor_year:
                    logger.warning(
                        "No %s->%s rate on or before %s since %d",
                        source_code,
                        target_code,
                        day,
                        self._floor_year,
                    )
                    return None
                logger.debug("No rate for %s; trying %s", current, previous)
                current = previous
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
                logger.warning(
                    "Exchange rate lookup %s->%s for %s failed: %s",
                    source_code,
                    target_code,
                    current,
                    exc,
                )
                return None

    async def convert_total(
        self, receipts: Iterable[Receipt], home_currency: str
    ) -> Optional[float]:
        """Sum receipt totals converted at each receipt's own date.

        Returns ``None`` as soon as one rate is unavailable.
        """

        total = 0.0
        for receipt in receipts:
            rate = await self.get_rate(receipt.date, receipt.currency, home_currency)
            if rate is None:
                return None
            total += receipt.total * rate
        return total

    # Preferences -------------------------------------------------------------

    def home_currency(self) -> Optional[str]:
        return self._kv.get(HOME_CURRENCY_SLOT, None)

    def set_home_currency(self, code: Optional[str]) -> Outcome[Optional[str]]:
        if code is None or not code.strip():
            self._kv.set(HOME_CURRENCY_SLOT, None)
            return Outcome.success(None)
        normalized = code.strip().upper()
        if not is_supported(normalized):
            return Outcome.failure(f'Currency "{code}" is not supported.')
        self._kv.set(HOME_CURRENCY_SLOT, normalized)
        return Outcome.success(normalized)

    def rates_last_updated(self) -> Optional[str]:
        return self._kv.get(RATES_UPDATED_SLOT, None)


__all__ = [
    "CurrencyRateCache",
    "FrankfurterRateSource",
    "RateNotPublished",
    "RateSource",
    "cache_key",
]
