"""Trip collection persisted in the ``trips`` slot."""

from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional
from uuid import uuid4

from tripfolio.categories import fold
from tripfolio.errors import PersistenceError
from tripfolio.models.trip import Trip, TripDraft
from tripfolio.outcome import Outcome

from .kv import TRIPS_SLOT, KeyValueStore
from .receipts import ReceiptRepository

logger = logging.getLogger(__name__)

FIELDS_REQUIRED = "All fields are required."
DATES_OUT_OF_ORDER = "Start date cannot be after end date."
TRIP_NOT_FOUND = "Trip not found."
TRIP_SAVE_FAILED = "The trip could not be saved."


def _load(raw: Optional[list]) -> List[Trip]:
    return [Trip.model_validate(entry) for entry in raw or []]


class TripRepository:
    """Trips plus the receipt unassignment cascade on delete."""

    def __init__(self, kv: KeyValueStore, receipts: ReceiptRepository) -> None:
        self._kv = kv
        self._receipts = receipts

    def list_trips(self) -> List[Trip]:
        return _load(self._kv.get(TRIPS_SLOT, []))

    def get_trip(self, trip_id: str) -> Optional[Trip]:
        return next((trip for trip in self.list_trips() if trip.id == trip_id), None)

    def _validate(
        self,
        name: str,
        start_date: Optional[date],
        end_date: Optional[date],
        exclude_id: Optional[str] = None,
    ) -> Optional[str]:
        if not name.strip() or start_date is None or end_date is None:
            return FIELDS_REQUIRED
        if start_date > end_date:
            return DATES_OUT_OF_ORDER
        for trip in self.list_trips():
            if trip.id != exclude_id and fold(trip.name) == fold(name):
                return f'A trip named "{name.strip()}" already exists.'
        return None

    def add_trip(self, draft: TripDraft) -> Outcome[Trip]:
        reason = self._validate(draft.name, draft.start_date, draft.end_date)
        if reason:
            return Outcome.failure(reason)

        trip = Trip(
            id=uuid4().hex,
            name=draft.name.strip(),
            start_date=draft.start_date,
            end_date=draft.end_date,
        )
        try:
            self._kv.update(TRIPS_SLOT, lambda previous: [*(previous or []), trip.to_storage()], [])
        except PersistenceError:
            return Outcome.failure(TRIP_SAVE_FAILED)
        logger.info("Created trip %s", trip.name, extra={"trip_id": trip.id})
        return Outcome.success(trip)

    def update_trip(self, trip: Trip) -> Outcome[Trip]:
        if self.get_trip(trip.id) is None:
            return Outcome.failure(TRIP_NOT_FOUND)
        reason = self._validate(trip.name, trip.start_date, trip.end_date, exclude_id=trip.id)
        if reason:
            return Outcome.failure(reason)

        updated = trip.model_copy(update={"name": trip.name.strip()})

        def replace(previous: Optional[list]) -> list:
            return [
                updated.to_storage() if current.id == updated.id else current.to_storage()
                for current in _load(previous)
            ]

        try:
            self._kv.update(TRIPS_SLOT, replace, [])
        except PersistenceError:
            return Outcome.failure(TRIP_SAVE_FAILED)
        return Outcome.success(updated)

    def delete_trip(self, trip_id: str) -> Outcome[int]:
        """Unassign the trip's receipts, then remove the trip.

        Returns the number of receipts that lost their trip. Receipts are never deleted,
        and an unknown trip id is not an error.
        """

        try:
            unassigned = self._receipts.unassign_trip(trip_id)
            self._kv.update(
                TRIPS_SLOT,
                lambda previous: [t.to_storage() for t in _load(previous) if t.id != trip_id],
                [],
            )
        except PersistenceError:
            return Outcome.failure(TRIP_SAVE_FAILED)
        logger.info("Deleted trip; %d receipt(s) unassigned", unassigned, extra={"trip_id": trip_id})
        return Outcome.success(unassigned)

    def replace_all(self, trips: List[Trip]) -> None:
        self._kv.set(TRIPS_SLOT, [trip.to_storage() for trip in trips])


__all__ = ["TripRepository", "FIELDS_REQUIRED", "DATES_OUT_OF_ORDER", "TRIP_NOT_FOUND"]
