"""Export and restore the full local state as one JSON document."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict

from pydantic import ValidationError

from tripfolio.db.receipts import lift_legacy_category
from tripfolio.errors import PersistenceError, SnapshotFormatError
from tripfolio.models.snapshot import SNAPSHOT_VERSION, Snapshot, SnapshotData
from tripfolio.outcome import Outcome

if TYPE_CHECKING:
    from tripfolio.store import LocalStore

logger = logging.getLogger(__name__)

INVALID_SNAPSHOT = "Invalid backup file."
RESTORE_FAILED = "The backup could not be restored."


async def export_snapshot(store: "LocalStore") -> Snapshot:
    """Collect receipts, trips, custom categories and every image payload."""

    images = await store.blobs.get_all()
    data = SnapshotData(
        receipts=store.receipts.list_receipts(),
        trips=store.trips.list_trips(),
        custom_categories=store.categories.custom_categories(),
        images={
            receipt_id: base64.b64encode(payload).decode("ascii")
            for receipt_id, payload in images.items()
        },
    )
    snapshot = Snapshot(exported_at=datetime.now(timezone.utc), data=data)
    logger.info(
        "Exported snapshot with %d receipt(s), %d trip(s), %d image(s)",
        len(data.receipts),
        len(data.trips),
        len(data.images),
    )
    return snapshot


async def write_snapshot(store: "LocalStore", path: Path) -> Path:
    snapshot = await export_snapshot(store)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(snapshot.to_document(), indent=2), encoding="utf-8")
    return path


def parse_snapshot(payload: Any) -> tuple[Snapshot, Dict[str, bytes]]:
    """Validate a decoded document and decode its images.

    Raises :class:`SnapshotFormatError` describing the first problem found.
    """

    if not isinstance(payload, dict):
        raise SnapshotFormatError("Backup must be a JSON object.")
    if payload.get("version") != SNAPSHOT_VERSION:
        raise SnapshotFormatError(f"Unsupported backup version: {payload.get('version')!r}")
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("receipts"), list):
        receipts = [lift_legacy_category(entry) for entry in data["receipts"]]
        payload = {**payload, "data": {**data, "receipts": receipts}}
    try:
        snapshot = Snapshot.model_validate(payload)
    except ValidationError as exc:
        raise SnapshotFormatError(str(exc)) from exc

    images: Dict[str, bytes] = {}
    for receipt_id, encoded in snapshot.data.images.items():
        try:
            images[receipt_id] = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SnapshotFormatError(f"Image for receipt {receipt_id} is not valid base64") from exc
    return snapshot, images


async def import_snapshot(store: "LocalStore", payload: Any) -> Outcome[Snapshot]:
    """Replace all local state with the snapshot contents.

    The document is fully validated first; a malformed document leaves the current state
    untouched.
    """

    try:
        snapshot, images = parse_snapshot(payload)
    except SnapshotFormatError as exc:
        logger.warning("Rejected snapshot import: %s", exc)
        return Outcome.failure(INVALID_SNAPSHOT)

    data = snapshot.data
    try:
        store.receipts.replace_all(data.receipts)
        store.trips.replace_all(data.trips)
        store.categories.replace_custom(data.custom_categories)
        await store.blobs.clear()
        for receipt_id, image in images.items():
            await store.blobs.save(receipt_id, image)
    except PersistenceError:
        logger.exception("Snapshot restore failed part-way")
        return Outcome.failure(RESTORE_FAILED)

    logger.info(
        "Imported snapshot exported at %s (%d receipt(s), %d image(s))",
        snapshot.exported_at.isoformat(),
        len(data.receipts),
        len(images),
    )
    return Outcome.success(snapshot)


async def read_snapshot(store: "LocalStore", path: Path) -> Outcome[Snapshot]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.warning("Backup file %s is not valid JSON: %s", path, exc)
        return Outcome.failure(INVALID_SNAPSHOT)
    return await import_snapshot(store, payload)


__all__ = [
    "INVALID_SNAPSHOT",
    "export_snapshot",
    "import_snapshot",
    "parse_snapshot",
    "read_snapshot",
    "write_snapshot",
]
