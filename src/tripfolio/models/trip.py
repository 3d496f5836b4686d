"""Pydantic models for trips."""

from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TripDraft(BaseModel):
    """Trip fields entered by the user; validated by the trip repository, not here."""

    name: str = ""
    start_date: Optional[date] = Field(default=None, alias="startDate")
    end_date: Optional[date] = Field(default=None, alias="endDate")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Trip(BaseModel):
    """Named date span that receipts may point at through ``tripId``."""

    id: str
    name: str
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
