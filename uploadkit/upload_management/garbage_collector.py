"""Age out stale ledger chunk entries."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from uploadkit.const import LEDGER_TTL
from uploadkit.models import utc_now
from uploadkit.state_management.state_store import StateStore

logger = logging.getLogger(__name__)


def _as_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class GarbageCollector:
    """Delete ledger chunk entries older than the retention window.

    An active session rewrites the timestamps of its own entries as it goes,
    so only abandoned entries age out and no coordination with running
    uploads is needed. Session metadata and blob records are never touched.
    """

    def __init__(self, store: StateStore, ttl: timedelta = LEDGER_TTL) -> None:
        """Initialize the collector.

        Args:
            store: Local durable store holding the ledger.
            ttl: Age beyond which an entry is removed.
        """
        self._store = store
        self._ttl = ttl

    def is_stale(self, timestamp: datetime | None, now: datetime) -> bool:
        """Return True if an entry written at ``timestamp`` should be removed.

        Entries without a timestamp predate timestamping and are stale.
        """
        if timestamp is None:
            return True
        return _as_aware_utc(timestamp) < now - self._ttl

    async def collect(self, now: datetime | None = None) -> int:
        """Remove stale, legacy and malformed chunk entries.

        Args:
            now: Reference time, defaulting to the current UTC time.

        Returns:
            Number of entries removed.
        """
        now = _as_aware_utc(now) if now is not None else utc_now()
        removed = 0
        for file_id, chunk_index, record in await self._store.scan_all_chunks():
            if record is not None and not self.is_stale(record.timestamp, now):
                continue
            await self._store.delete_chunk(file_id, chunk_index)
            removed += 1
            logger.debug(
                "Removed %s ledger entry %s/%d",
                "malformed" if record is None else "stale",
                file_id,
                chunk_index,
            )
        if removed:
            logger.info("Garbage collector removed %d ledger entries", removed)
        return removed
