"""Connectivity-driven receipt sync status.

Receipts move ``pending -> syncing -> synced`` and never back. Reconnecting moves every
pending receipt to ``syncing`` in one batch; after a fixed simulated upload latency the
batch becomes ``synced`` even if connectivity dropped in the meantime.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from tripfolio import metrics
from tripfolio.db.receipts import ReceiptRepository

logger = logging.getLogger(__name__)

SYNC_DELAY_SECONDS = 2.5

Sleeper = Callable[[float], Awaitable[None]]


class SyncEngine:
    """Tracks connectivity and advances receipt sync status."""

    def __init__(
        self,
        receipts: ReceiptRepository,
        *,
        online: bool = True,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._receipts = receipts
        self._online = online
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

    @property
    def is_online(self) -> bool:
        return self._online

    def record_connectivity(self, online: bool) -> List[str]:
        """Record connectivity and, when online, begin syncing every pending receipt.

        Returns the ids moved to ``syncing``; the caller is responsible for completing the
        batch with :meth:`complete_sync`.
        """

        was_online = self._online
        self._online = online
        if online != was_online:
            logger.info("Connectivity changed: %s", "online" if online else "offline")
        if not online:
            return []
        return self.begin_sync()

    async def set_connectivity(self, online: bool) -> Optional[asyncio.Task]:
        """Record connectivity; on (re)connect start syncing all pending receipts.

        Returns the task completing the batch, or ``None`` when nothing was pending or the
        device is offline.
        """

        batch = self.record_connectivity(online)
        if not batch:
            return None
        task = asyncio.create_task(self.complete_sync(batch))
        # Keep a reference so the task is not garbage collected mid-delay.
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def begin_sync(self) -> List[str]:
        """Move every pending receipt to ``syncing`` and return the batch ids.

        Receipts already ``syncing`` whose completion never ran (a restart during the
        delay, or a restored backup) join the batch so they still reach ``synced``.
        """

        batch = self._receipts.advance_status("pending", "syncing")
        if batch:
            metrics.SYNC_TRANSITIONS.labels(status="syncing").inc(len(batch))
            logger.info("Syncing %d pending receipt(s)", len(batch))
        started = set(batch)
        stranded = [
            receipt.id
            for receipt in self._receipts.list_receipts()
            if receipt.status == "syncing" and receipt.id not in started
        ]
        if stranded:
            logger.info("Resuming %d receipt(s) left in syncing", len(stranded))
        return batch + stranded

    async def complete_sync(self, receipt_ids: List[str]) -> List[str]:
        """Wait out the upload latency, then mark the batch ``synced``."""

        await self._sleep(SYNC_DELAY_SECONDS)
        # Re-read after the delay: receipts may have been edited or deleted meanwhile.
        synced = self._receipts.advance_status("syncing", "synced", receipt_ids)
        if synced:
            metrics.SYNC_TRANSITIONS.labels(status="synced").inc(len(synced))
        logger.info("Synced %d receipt(s)", len(synced))
        return synced

    async def drain(self) -> None:
        """Wait for in-flight batches (used at shutdown and in tests)."""

        if self._tasks:
            await asyncio.gather(*list(self._tasks))


__all__ = ["SYNC_DELAY_SECONDS", "SyncEngine"]
