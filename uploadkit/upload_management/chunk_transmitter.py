"""Sequential chunk transmission with local fallback.

Chunks are processed strictly in index order. Chunk ``i + 1`` starts only
after the ledger write for chunk ``i`` has completed, so progress events are
monotonic and the ledger never runs ahead of what observers were told.

Once the loop has processed every chunk the session is reported COMPLETED,
even if the session degraded part-way and the service holds only a prefix of
the file. Chunks sent before the failure are not retried and chunks after it
are recorded locally only.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import BinaryIO

from uploadkit.const import LOCAL_CHUNK_DELAY_SECONDS, REMOTE_CHUNK_DELAY_SECONDS
from uploadkit.event_emitter import Emitter, ProgressEmitter
from uploadkit.exceptions import LocalStoreError, RemoteError, UploadCancelledError
from uploadkit.models import ChunkRecord, UploadMode, UploadSession, utc_now
from uploadkit.state_management.state_store import StateStore

from .api_client import UploadApi
from .chunk_planner import ChunkDescriptor, iter_chunks, read_chunk

logger = logging.getLogger(__name__)


class ChunkTransmitter:
    """Send the chunks of one session and keep the ledger in step."""

    def __init__(
        self,
        api: UploadApi | None,
        store: StateStore,
        progress: ProgressEmitter,
        remote_chunk_delay: float = REMOTE_CHUNK_DELAY_SECONDS,
        local_chunk_delay: float = LOCAL_CHUNK_DELAY_SECONDS,
    ) -> None:
        """Initialize the transmitter.

        Args:
            api: Upload service client. None means every chunk is local.
            store: Local durable store holding the ledger.
            progress: Publisher for per-chunk snapshots.
            remote_chunk_delay: Pause after each chunk in REMOTE mode.
            local_chunk_delay: Pause after each chunk in LOCAL_FALLBACK mode.
        """
        self._api = api
        self._store = store
        self._progress = progress
        self._remote_chunk_delay = remote_chunk_delay
        self._local_chunk_delay = local_chunk_delay

    async def transmit(
        self,
        session: UploadSession,
        file_path: Path,
        cancel_event: asyncio.Event | None = None,
    ) -> UploadSession:
        """Process every chunk of ``session`` not yet recorded.

        Args:
            session: Session produced by the initializer, or a resumed one
                whose ``uploaded_chunk_indices`` are skipped.
            file_path: Source file.
            cancel_event: Checked before each chunk; when set the partial
                state is persisted and the upload stops.

        Returns:
            The session, COMPLETED.

        Raises:
            UploadCancelledError: If ``cancel_event`` was set.
            LocalStoreError: If the ledger cannot be written.
            OSError: If the source file cannot be read.
        """
        try:
            with open(file_path, "rb") as f:
                for descriptor in iter_chunks(session.total_size, session.chunk_size):
                    if session.has_chunk(descriptor.index):
                        continue
                    if cancel_event is not None and cancel_event.is_set():
                        await self._store.put_session_metadata(session.to_metadata())
                        logger.info(
                            "Upload %s cancelled at chunk %d/%d",
                            session.file_id,
                            descriptor.index,
                            session.total_chunks,
                        )
                        raise UploadCancelledError(
                            session.file_id, len(session.uploaded_chunk_indices)
                        )
                    await self._process_chunk(session, f, descriptor)
        except (LocalStoreError, OSError) as e:
            session.fail()
            logger.error("Upload %s failed locally: %s", session.file_id, e)
            await self._persist_failed_session(session)
            self._progress.publish(session.snapshot())
            self._progress.emit(Emitter.UPLOAD_FAILED, session.file_id, str(e))
            raise

        session.complete()
        await self._store.put_session_metadata(session.to_metadata(utc_now()))
        snapshot = session.snapshot()
        self._progress.emit(Emitter.UPLOAD_COMPLETE, snapshot)
        logger.info(
            "Upload %s complete: %d chunks, mode=%s",
            session.file_id,
            session.total_chunks,
            session.mode.value,
        )
        return session

    async def _process_chunk(
        self, session: UploadSession, f: BinaryIO, descriptor: ChunkDescriptor
    ) -> None:
        if session.mode is UploadMode.REMOTE:
            await self._send_chunk(session, f, descriptor)

        await self._store.put_chunk(
            ChunkRecord(
                file_id=session.file_id,
                chunk_index=descriptor.index,
                total_chunks=session.total_chunks,
                uploaded=True,
                timestamp=utc_now(),
            )
        )
        session.mark_chunk_uploaded(descriptor.index)
        self._progress.publish(session.snapshot())
        logger.debug(
            "Recorded chunk %d/%d of %s",
            descriptor.index + 1,
            session.total_chunks,
            session.file_id,
        )

        delay = (
            self._remote_chunk_delay
            if session.mode is UploadMode.REMOTE
            else self._local_chunk_delay
        )
        if delay > 0:
            await asyncio.sleep(delay)

    async def _send_chunk(
        self, session: UploadSession, f: BinaryIO, descriptor: ChunkDescriptor
    ) -> None:
        """Send one chunk; on any remote failure degrade the session."""
        if self._api is None:
            if session.degrade():
                await self._store.put_session_metadata(session.to_metadata())
            return
        content = read_chunk(f, descriptor)
        try:
            await self._api.upload_chunk(session.file_id, descriptor.index, content)
        except RemoteError as e:
            if session.degrade():
                logger.warning(
                    "Chunk %d of %s failed, continuing in local mode: %s",
                    descriptor.index,
                    session.file_id,
                    e,
                )
                # resume must not return to remote mode
                await self._store.put_session_metadata(session.to_metadata())
                self._progress.emit(Emitter.UPLOAD_DEGRADED, session.file_id, str(e))

    async def _persist_failed_session(self, session: UploadSession) -> None:
        """Record the failed status and mode, if the store still accepts writes."""
        try:
            await self._store.put_session_metadata(session.to_metadata())
        except LocalStoreError as e:
            logger.warning(
                "Could not record failure of upload %s: %s", session.file_id, e
            )
