"""SQLite-backed ledger and blob registry."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, select, text
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from uploadkit.exceptions import LocalStoreError
from uploadkit.models import BlobRecord, ChunkRecord, UploadMetadata

from .state_store import StateStore
from .tables import blobs, ledger_chunks, ledger_sessions, metadata

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _parse(model: type[ModelT], payload: str) -> ModelT | None:
    """Deserialize a stored payload, returning None if it is malformed."""
    try:
        return model.model_validate_json(payload)
    except ValidationError as exc:
        logger.debug("Discarding malformed %s record: %s", model.__name__, exc)
        return None


class SqliteStateStore(StateStore):
    """SQLite StateStore for upload bookkeeping."""

    def __init__(self, db_path: Path) -> None:
        """Initialize the SQLite engine.

        Raises:
            LocalStoreError: If the database directory cannot be created.
        """
        db_path = Path(db_path)
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LocalStoreError(f"Cannot create store directory: {exc}") from exc
        self._db_path = db_path

        self._engine: AsyncEngine = create_async_engine(
            f"sqlite+aiosqlite:///{db_path}",
            future=True,
        )

    @property
    def db_path(self) -> Path:
        """Location of the database file."""
        return self._db_path

    @asynccontextmanager
    async def _begin(self) -> AsyncIterator[AsyncConnection]:
        """Open a transaction, translating database failures to LocalStoreError."""
        try:
            async with self._engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise LocalStoreError(f"Local store operation failed: {exc}") from exc

    async def init_async_store(self) -> None:
        """Apply pragmas and ensure schema."""
        await self._apply_pragmas()
        await self._ensure_schema()

    async def _apply_pragmas(self) -> None:
        """Apply database pragmas.

        WAL journaling keeps readers from blocking the single writer of a
        session. NORMAL synchronous mode is durable across application
        crashes, which is what the ledger needs.
        """
        async with self._begin() as conn:
            await conn.execute(text("PRAGMA journal_mode=WAL;"))
            await conn.execute(text("PRAGMA synchronous=NORMAL;"))

    async def _ensure_schema(self) -> None:
        """Create the tables if they do not exist yet."""
        async with self._begin() as conn:
            await conn.run_sync(metadata.create_all)

    # Ledger: chunk entries

    async def put_chunk(self, record: ChunkRecord) -> None:
        """Insert or overwrite the ledger entry for one chunk.

        Args:
            record: The chunk record. Its (file_id, chunk_index) is the key.
        """
        now = _utc_now()
        stmt = insert(ledger_chunks).values(
            file_id=record.file_id,
            chunk_index=record.chunk_index,
            payload=record.to_json(),
            last_updated=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["file_id", "chunk_index"],
            set_={"payload": stmt.excluded.payload, "last_updated": now},
        )
        async with self._begin() as conn:
            await conn.execute(stmt)

    async def get_chunk(self, file_id: str, chunk_index: int) -> ChunkRecord | None:
        """Return the ledger entry for one chunk.

        A malformed entry is removed and reported as absent.
        """
        async with self._begin() as conn:
            payload = (
                await conn.execute(
                    select(ledger_chunks.c.payload)
                    .where(ledger_chunks.c.file_id == file_id)
                    .where(ledger_chunks.c.chunk_index == chunk_index)
                )
            ).scalar_one_or_none()
            if payload is None:
                return None
            record = _parse(ChunkRecord, payload)
            if record is None:
                await conn.execute(
                    delete(ledger_chunks)
                    .where(ledger_chunks.c.file_id == file_id)
                    .where(ledger_chunks.c.chunk_index == chunk_index)
                )
        return record

    async def scan_chunks(self, file_id: str) -> list[ChunkRecord]:
        """Return every readable chunk entry for a file, ordered by index.

        Malformed entries are skipped and removed.
        """
        records: list[ChunkRecord] = []
        malformed: list[int] = []
        async with self._begin() as conn:
            rows = (
                await conn.execute(
                    select(ledger_chunks.c.chunk_index, ledger_chunks.c.payload)
                    .where(ledger_chunks.c.file_id == file_id)
                    .order_by(ledger_chunks.c.chunk_index.asc())
                )
            ).all()
            for chunk_index, payload in rows:
                record = _parse(ChunkRecord, payload)
                if record is None:
                    malformed.append(chunk_index)
                else:
                    records.append(record)
            if malformed:
                await conn.execute(
                    delete(ledger_chunks)
                    .where(ledger_chunks.c.file_id == file_id)
                    .where(ledger_chunks.c.chunk_index.in_(malformed))
                )
        return records

    async def scan_all_chunks(self) -> list[tuple[str, int, ChunkRecord | None]]:
        """Return every chunk entry in the ledger.

        Returns:
            Tuples of (file_id, chunk_index, record). ``record`` is None when
            the stored payload is malformed.
        """
        async with self._begin() as conn:
            rows = (
                await conn.execute(
                    select(
                        ledger_chunks.c.file_id,
                        ledger_chunks.c.chunk_index,
                        ledger_chunks.c.payload,
                    ).order_by(
                        ledger_chunks.c.file_id.asc(),
                        ledger_chunks.c.chunk_index.asc(),
                    )
                )
            ).all()
        return [
            (file_id, chunk_index, _parse(ChunkRecord, payload))
            for file_id, chunk_index, payload in rows
        ]

    async def delete_chunk(self, file_id: str, chunk_index: int) -> None:
        """Delete the ledger entry for one chunk."""
        async with self._begin() as conn:
            await conn.execute(
                delete(ledger_chunks)
                .where(ledger_chunks.c.file_id == file_id)
                .where(ledger_chunks.c.chunk_index == chunk_index)
            )

    # Ledger: session entries

    async def put_session_metadata(self, record: UploadMetadata) -> None:
        """Insert or overwrite the session-level ledger entry for a file."""
        now = _utc_now()
        stmt = insert(ledger_sessions).values(
            file_id=record.file_id,
            payload=record.to_json(),
            last_updated=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["file_id"],
            set_={"payload": stmt.excluded.payload, "last_updated": now},
        )
        async with self._begin() as conn:
            await conn.execute(stmt)

    async def get_session_metadata(self, file_id: str) -> UploadMetadata | None:
        """Return the session-level ledger entry for a file.

        A malformed entry is removed and reported as absent.
        """
        async with self._begin() as conn:
            payload = (
                await conn.execute(
                    select(ledger_sessions.c.payload).where(
                        ledger_sessions.c.file_id == file_id
                    )
                )
            ).scalar_one_or_none()
            if payload is None:
                return None
            record = _parse(UploadMetadata, payload)
            if record is None:
                await conn.execute(
                    delete(ledger_sessions).where(ledger_sessions.c.file_id == file_id)
                )
        return record

    async def delete_ledger(self, file_id: str) -> int:
        """Delete every ledger entry (chunks and session) for a file.

        Returns:
            Number of rows removed.
        """
        async with self._begin() as conn:
            chunk_result = await conn.execute(
                delete(ledger_chunks).where(ledger_chunks.c.file_id == file_id)
            )
            session_result = await conn.execute(
                delete(ledger_sessions).where(ledger_sessions.c.file_id == file_id)
            )
        return int(chunk_result.rowcount or 0) + int(session_result.rowcount or 0)

    # Blob registry

    async def put_blob(self, record: BlobRecord) -> None:
        """Store a blob record.

        Blob records are never mutated, so an existing record for the same
        file is left untouched.
        """
        stmt = (
            insert(blobs)
            .values(
                file_id=record.file_id,
                payload=record.to_json(),
                stored_at=_as_naive_utc(record.stored_at),
            )
            .on_conflict_do_nothing(index_elements=["file_id"])
        )
        async with self._begin() as conn:
            await conn.execute(stmt)

    async def get_blob(self, file_id: str) -> BlobRecord | None:
        """Return the blob record for a file.

        A malformed record is removed and reported as absent.
        """
        async with self._begin() as conn:
            payload = (
                await conn.execute(
                    select(blobs.c.payload).where(blobs.c.file_id == file_id)
                )
            ).scalar_one_or_none()
            if payload is None:
                return None
            record = _parse(BlobRecord, payload)
            if record is None:
                await conn.execute(delete(blobs).where(blobs.c.file_id == file_id))
        return record

    async def list_blobs(self) -> list[BlobRecord]:
        """Return every readable blob record, oldest first.

        Malformed records are skipped and removed.
        """
        records: list[BlobRecord] = []
        malformed: list[str] = []
        async with self._begin() as conn:
            rows = (
                await conn.execute(
                    select(blobs.c.file_id, blobs.c.payload).order_by(
                        blobs.c.stored_at.asc()
                    )
                )
            ).all()
            for file_id, payload in rows:
                record = _parse(BlobRecord, payload)
                if record is None:
                    malformed.append(file_id)
                else:
                    records.append(record)
            if malformed:
                await conn.execute(delete(blobs).where(blobs.c.file_id.in_(malformed)))
        return records

    async def delete_blob(self, file_id: str) -> bool:
        """Delete the blob record for a file.

        Returns:
            True if a record was removed.
        """
        async with self._begin() as conn:
            result = await conn.execute(delete(blobs).where(blobs.c.file_id == file_id))
        return bool(result.rowcount)

    async def close(self) -> None:
        """Close the database connection and dispose of the engine.

        This must be called before the event loop closes to prevent
        aiosqlite worker thread exceptions.
        """
        await self._engine.dispose()
