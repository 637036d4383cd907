"""Upload manager for orchestrating chunked uploads.

This module provides the UploadManager class that wires the session
initializer, chunk transmitter, file registry, garbage collector and
deletion coordinator around one local durable store and one upload service
client.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path

from uploadkit.config_manager.upload_config import UploadConfig
from uploadkit.event_emitter import Emitter, ProgressCallback, ProgressEmitter
from uploadkit.exceptions import RemoteError, UploadNotFoundError
from uploadkit.models import (
    ChunkRecord,
    DeleteOutcome,
    FileListingEntry,
    UploadMetadata,
    UploadMode,
    UploadSession,
)
from uploadkit.state_management.state_store import StateStore

from .api_client import UploadApi
from .chunk_transmitter import ChunkTransmitter
from .deletion_coordinator import DeletionCoordinator
from .file_registry import FileRegistry
from .garbage_collector import GarbageCollector
from .session_initializer import SessionInitializer, is_local_file_id

logger = logging.getLogger(__name__)


class UploadManager:
    """Entry point for uploading, listing and deleting files.

    The store and the service client are injected, so several managers with
    isolated stores can coexist. Progress goes to ``emitter`` and to an
    optional per-call callback.
    """

    def __init__(
        self,
        config: UploadConfig,
        store: StateStore,
        api: UploadApi | None = None,
        emitter: Emitter | None = None,
    ) -> None:
        """Initialize the upload manager.

        Args:
            config: Effective configuration.
            store: Initialized local durable store.
            api: Upload service client. Ignored when ``config.offline``.
            emitter: Emitter for progress and lifecycle events. A private
                one is created when omitted.
        """
        self._config = config
        self._store = store
        self._api = None if config.offline else api
        self.emitter = emitter or Emitter()

        self._registry = FileRegistry(store)
        self._garbage_collector = GarbageCollector(store)
        self._deletion = DeletionCoordinator(
            self._api, store, ProgressEmitter(self.emitter)
        )

        logger.info("UploadManager initialized (offline=%s)", self._api is None)

    async def start(self) -> int:
        """Run start-up housekeeping.

        Returns:
            Number of ledger entries removed by garbage collection.
        """
        if not self._config.gc_on_start:
            return 0
        return await self.collect_garbage()

    def _transmitter(self, progress: ProgressEmitter) -> ChunkTransmitter:
        return ChunkTransmitter(
            self._api,
            self._store,
            progress,
            remote_chunk_delay=self._config.remote_chunk_delay,
            local_chunk_delay=self._config.local_chunk_delay,
        )

    async def upload_file(
        self,
        file_path: str | Path,
        user_id: str | None = None,
        progress_callback: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> UploadSession:
        """Upload a file in 4 MiB chunks.

        Remote failures never fail the call: the session degrades to local
        bookkeeping and still completes.

        Args:
            file_path: File to upload.
            user_id: Uploading user; defaults to ``config.user_id``.
            progress_callback: Receives an UploadProgress after every chunk.
            cancel_event: Set it to stop at the next chunk boundary.

        Returns:
            The completed session.

        Raises:
            FileNotFoundError: If the file does not exist.
            UploadCancelledError: If ``cancel_event`` was set.
            LocalStoreError: If local bookkeeping fails.
        """
        file_path = Path(file_path)
        progress = ProgressEmitter(self.emitter, progress_callback)
        initializer = SessionInitializer(self._api, self._store, progress)
        session = await initializer.initialize(
            file_path, user_id or self._config.user_id
        )
        return await self._transmitter(progress).transmit(
            session, file_path, cancel_event
        )

    async def resume_upload(
        self,
        file_path: str | Path,
        file_id: str,
        progress_callback: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> UploadSession:
        """Continue an interrupted upload, skipping chunks already recorded.

        The session keeps its identifier and mode. A session that degraded
        or started with a local identifier stays local.

        Raises:
            UploadNotFoundError: If no session record exists for ``file_id``.
            ValueError: If ``file_path`` has a different size than recorded.
        """
        file_path = Path(file_path)
        record = await self._store.get_session_metadata(file_id)
        if record is None:
            raise UploadNotFoundError(f"No upload session recorded for {file_id}")

        total_size = file_path.stat().st_size
        if str(total_size) != record.size:
            raise ValueError(
                f"{file_path} is {total_size} bytes but upload {file_id} "
                f"recorded {record.size}"
            )

        mode = record.mode or UploadMode.LOCAL_FALLBACK
        if self._api is None or is_local_file_id(file_id):
            mode = UploadMode.LOCAL_FALLBACK

        session = UploadSession(
            file_id=file_id,
            file_name=record.file_name,
            total_size=total_size,
            user_id=record.user_id or self._config.user_id,
            mode=mode,
            uploaded_chunk_indices=await self._registry.uploaded_chunks(file_id),
        )
        logger.info(
            "Resuming upload %s at %d/%d chunks, mode=%s",
            file_id,
            len(session.uploaded_chunk_indices),
            session.total_chunks,
            session.mode.value,
        )
        progress = ProgressEmitter(self.emitter, progress_callback)
        return await self._transmitter(progress).transmit(
            session, file_path, cancel_event
        )

    async def list_files(self) -> list[FileListingEntry]:
        """Return the file listing, completed entries first."""
        return await self._registry.list_files()

    async def delete_file(self, file_id: str) -> DeleteOutcome:
        """Delete a file remotely (best effort) and locally (always)."""
        return await self._deletion.delete(file_id)

    async def collect_garbage(self, now: datetime | None = None) -> int:
        """Remove stale ledger entries; return how many were removed."""
        return await self._garbage_collector.collect(now)

    async def get_uploaded_chunks(self, file_id: str) -> list[int]:
        """Return the uploaded chunk indices of a file, ascending."""
        return await self._registry.uploaded_chunks(file_id)

    async def get_chunk_record(self, file_id: str, chunk_index: int) -> ChunkRecord:
        """Return the ledger entry for one chunk.

        Raises:
            UploadNotFoundError: If no entry exists.
        """
        record = await self._store.get_chunk(file_id, chunk_index)
        if record is None:
            raise UploadNotFoundError(
                f"No ledger entry for chunk {chunk_index} of {file_id}"
            )
        return record

    async def get_upload_metadata(self, file_id: str) -> UploadMetadata:
        """Return upload metadata from the service, or the local ledger.

        Raises:
            UploadNotFoundError: If neither source knows the upload.
        """
        if self._api is not None and not is_local_file_id(file_id):
            try:
                return await self._api.get_upload_metadata(file_id)
            except RemoteError as e:
                logger.info("Metadata for %s unavailable remotely: %s", file_id, e)

        record = await self._store.get_session_metadata(file_id)
        if record is None:
            raise UploadNotFoundError(f"Upload metadata not found for {file_id}")
        return record

