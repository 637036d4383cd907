"""Reconstruct the file listing from durable state."""

from __future__ import annotations

import logging

from uploadkit.models import BlobRecord, FileListingEntry, ListingStatus
from uploadkit.state_management.state_store import StateStore

logger = logging.getLogger(__name__)


class FileRegistry:
    """Join blob records with their ledger entries.

    A file is listed as COMPLETED as soon as any of its chunks is recorded,
    which is looser than a session's own completion rule (every chunk
    recorded). Partially uploaded files therefore show as completed.
    """

    def __init__(self, store: StateStore) -> None:
        """Initialize the registry over ``store``."""
        self._store = store

    async def uploaded_chunks(self, file_id: str) -> list[int]:
        """Return the uploaded chunk indices of a file, ascending."""
        return [
            record.chunk_index
            for record in await self._store.scan_chunks(file_id)
            if record.uploaded
        ]

    async def _entry_for(self, blob: BlobRecord) -> FileListingEntry:
        uploaded = await self.uploaded_chunks(blob.file_id)
        return FileListingEntry(
            file_id=blob.file_id,
            file_name=blob.file_name,
            size=str(blob.file_size),
            uploaded_chunks=[str(index) for index in uploaded],
            status=ListingStatus.COMPLETED if uploaded else ListingStatus.IN_PROGRESS,
        )

    async def list_files(self) -> list[FileListingEntry]:
        """Return one entry per known file, completed entries first.

        Within each status group the blob registry order is kept.
        """
        blobs = await self._store.list_blobs()
        entries = [await self._entry_for(blob) for blob in blobs]
        # sorted() is stable
        return sorted(
            entries, key=lambda entry: entry.status is not ListingStatus.COMPLETED
        )
