"""Protocol for the local durable store."""

from __future__ import annotations

from typing import Protocol

from uploadkit.models import BlobRecord, ChunkRecord, UploadMetadata


class StateStore(Protocol):
    """Persistence interface for the ledger and the blob registry.

    Every write touches a single key. Records that fail to deserialize are
    reported as absent.
    """

    async def put_chunk(self, record: ChunkRecord) -> None:
        """Insert or overwrite the ledger entry for one chunk."""
        ...

    async def get_chunk(self, file_id: str, chunk_index: int) -> ChunkRecord | None:
        """Return the ledger entry for one chunk, if any."""
        ...

    async def scan_chunks(self, file_id: str) -> list[ChunkRecord]:
        """Return every readable chunk entry for a file, ordered by index."""
        ...

    async def scan_all_chunks(self) -> list[tuple[str, int, ChunkRecord | None]]:
        """Return every chunk entry as (file_id, chunk_index, record-or-None)."""
        ...

    async def delete_chunk(self, file_id: str, chunk_index: int) -> None:
        """Delete the ledger entry for one chunk."""
        ...

    async def put_session_metadata(self, record: UploadMetadata) -> None:
        """Insert or overwrite the session-level ledger entry for a file."""
        ...

    async def get_session_metadata(self, file_id: str) -> UploadMetadata | None:
        """Return the session-level ledger entry for a file, if any."""
        ...

    async def delete_ledger(self, file_id: str) -> int:
        """Delete every ledger entry for a file; return the number removed."""
        ...

    async def put_blob(self, record: BlobRecord) -> None:
        """Store a blob record. An existing record for the file is kept."""
        ...

    async def get_blob(self, file_id: str) -> BlobRecord | None:
        """Return the blob record for a file, if any."""
        ...

    async def list_blobs(self) -> list[BlobRecord]:
        """Return every readable blob record in storage order."""
        ...

    async def delete_blob(self, file_id: str) -> bool:
        """Delete a blob record; return True if one existed."""
        ...

    async def close(self) -> None:
        """Release underlying resources."""
        ...
