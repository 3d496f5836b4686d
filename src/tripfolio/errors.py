"""Exception types raised by the storage and snapshot layers."""

from __future__ import annotations


class PersistenceError(RuntimeError):
    """A write or read against local storage failed."""


class BlobStoreError(PersistenceError):
    """The receipt image store rejected an operation."""


class SnapshotFormatError(ValueError):
    """A snapshot document is malformed and cannot be imported."""


__all__ = ["PersistenceError", "BlobStoreError", "SnapshotFormatError"]
