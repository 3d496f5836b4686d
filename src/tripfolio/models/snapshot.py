"""Backup/restore document models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from tripfolio.models.receipt import Receipt
from tripfolio.models.trip import Trip

SNAPSHOT_VERSION = 1


class SnapshotData(BaseModel):
    """Full local state. Every field is required so partial documents are rejected."""

    receipts: list[Receipt]
    trips: list[Trip]
    custom_categories: list[str] = Field(alias="customCategories")
    images: dict[str, str]

    model_config = ConfigDict(populate_by_name=True)


class Snapshot(BaseModel):
    version: Literal[1] = SNAPSHOT_VERSION
    exported_at: datetime = Field(alias="exportedAt")
    data: SnapshotData

    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
