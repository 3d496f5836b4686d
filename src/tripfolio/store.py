"""Single state-owning service wiring the stores, repositories and engines together."""

from __future__ import annotations

import logging
from typing import Optional

from tripfolio.config import Settings, get_settings
from tripfolio.db.blobs import BlobStore
from tripfolio.db.categories import CategoryRepository
from tripfolio.db.kv import KeyValueStore
from tripfolio.db.receipts import ReceiptRepository
from tripfolio.db.trips import TripRepository
from tripfolio.rates import CurrencyRateCache, RateSource
from tripfolio.sync import Sleeper, SyncEngine

logger = logging.getLogger(__name__)


class LocalStore:
    """Everything the server and CLI need, built over one pair of databases."""

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        kv: Optional[KeyValueStore] = None,
        blobs: Optional[BlobStore] = None,
        rate_source: Optional[RateSource] = None,
        sleep: Optional[Sleeper] = None,
        online: Optional[bool] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.kv = kv or KeyValueStore()
        self.blobs = blobs or BlobStore()

        start_online = self.settings.start_online if online is None else online
        # The receipt repository asks the sync engine for connectivity at creation time,
        # so the engine is bound after both exist.
        self.receipts = ReceiptRepository(self.kv, self.blobs, is_online=lambda: self.sync.is_online)
        sync_kwargs = {"online": start_online}
        if sleep is not None:
            sync_kwargs["sleep"] = sleep
        self.sync = SyncEngine(self.receipts, **sync_kwargs)

        self.trips = TripRepository(self.kv, self.receipts)
        self.categories = CategoryRepository(self.kv, self.receipts)
        self.rates = CurrencyRateCache(
            self.kv, rate_source, floor_year=self.settings.rate_floor_year
        )

        migrated = self.receipts.migrate_legacy_categories()
        if migrated:
            logger.info("Legacy category migration updated %d receipt(s)", migrated)


_store: Optional[LocalStore] = None


def get_store() -> LocalStore:
    """Return the process-wide store, creating it on first use."""

    global _store
    if _store is None:
        _store = LocalStore()
    return _store


def reset_store() -> None:
    global _store
    _store = None


__all__ = ["LocalStore", "get_store", "reset_store"]
