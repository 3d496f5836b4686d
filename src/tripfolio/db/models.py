"""SQLAlchemy models for the two local stores.

Slot data and receipt images live in separate SQLite files with separate declarative
bases, so a failure in one store never rolls back or blocks the other.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, LargeBinary, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class StateBase(DeclarativeBase):
    """Declarative base for the slot store."""


class BlobBase(DeclarativeBase):
    """Declarative base for the receipt image store."""


class SlotORM(StateBase):
    """One named JSON value (receipts collection, trips, rate cache, ...)."""

    __tablename__ = "kv_slots"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class ReceiptImageORM(BlobBase):
    """Receipt image payload keyed by the owning receipt id."""

    __tablename__ = "receipt_images"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    payload: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )


__all__ = ["StateBase", "BlobBase", "SlotORM", "ReceiptImageORM"]
