"""Negotiate the identity of a new upload session."""

from __future__ import annotations

import logging
import mimetypes
import uuid
from datetime import datetime, timezone
from pathlib import Path

from uploadkit.const import DEFAULT_MIME_TYPE, LOCAL_FILE_ID_PREFIX
from uploadkit.event_emitter import Emitter, ProgressEmitter
from uploadkit.exceptions import RemoteError
from uploadkit.models import BlobRecord, UploadMode, UploadSession, utc_now
from uploadkit.state_management.state_store import StateStore

from .api_client import UploadApi
from .chunk_planner import total_chunks_for

logger = logging.getLogger(__name__)


def generate_local_file_id() -> str:
    """Return a fresh identifier that cannot be mistaken for a service one."""
    return f"{LOCAL_FILE_ID_PREFIX}{uuid.uuid4()}"


def is_local_file_id(file_id: str) -> bool:
    """Return True if ``file_id`` was synthesized on this client."""
    return file_id.startswith(LOCAL_FILE_ID_PREFIX)


def guess_mime_type(file_path: Path) -> str:
    """Return the MIME type for a file name, defaulting to octet-stream."""
    mime_type, _ = mimetypes.guess_type(file_path.name)
    return mime_type or DEFAULT_MIME_TYPE


class SessionInitializer:
    """Start upload sessions.

    The service is asked for an identifier exactly once. Any failure makes
    the session use a local identifier and LOCAL_FALLBACK for its whole
    life; a retry could split one file across two identifier spaces.
    """

    def __init__(
        self,
        api: UploadApi | None,
        store: StateStore,
        progress: ProgressEmitter | None = None,
    ) -> None:
        """Initialize the session initializer.

        Args:
            api: Upload service client, or None to work offline.
            store: Local durable store receiving the blob record.
            progress: Publisher for the degradation event.
        """
        self._api = api
        self._store = store
        self._progress = progress or ProgressEmitter()

    async def _negotiate_file_id(
        self, file_name: str, total_chunks: int, user_id: str
    ) -> tuple[str, UploadMode, str | None]:
        if self._api is None:
            return generate_local_file_id(), UploadMode.LOCAL_FALLBACK, "offline"
        try:
            file_id = await self._api.init_upload(file_name, total_chunks, user_id)
        except RemoteError as e:
            logger.warning(
                "Upload service unavailable for %s, using local mode: %s", file_name, e
            )
            return generate_local_file_id(), UploadMode.LOCAL_FALLBACK, str(e)
        return file_id, UploadMode.REMOTE, None

    async def initialize(self, file_path: Path, user_id: str) -> UploadSession:
        """Create a session for ``file_path`` and persist its blob record.

        The blob record and an initial session record are written before
        any chunk is sent, so an interrupted upload stays discoverable.

        Args:
            file_path: File to upload.
            user_id: Identifier of the uploading user.

        Returns:
            The new session, in REMOTE or LOCAL_FALLBACK mode.

        Raises:
            FileNotFoundError: If the file does not exist.
            LocalStoreError: If the records cannot be persisted.
        """
        file_path = Path(file_path)
        stat = file_path.stat()
        total_chunks = total_chunks_for(stat.st_size)

        file_id, mode, reason = await self._negotiate_file_id(
            file_path.name, total_chunks, user_id
        )
        session = UploadSession(
            file_id=file_id,
            file_name=file_path.name,
            total_size=stat.st_size,
            user_id=user_id,
            mode=mode,
        )
        if reason is not None:
            self._progress.emit(Emitter.UPLOAD_DEGRADED, file_id, reason)

        await self._store.put_blob(
            BlobRecord(
                file_id=file_id,
                file_name=file_path.name,
                file_size=stat.st_size,
                mime_type=guess_mime_type(file_path),
                last_modified_at=datetime.fromtimestamp(
                    stat.st_mtime, tz=timezone.utc
                ),
                stored_at=utc_now(),
            )
        )
        await self._store.put_session_metadata(session.to_metadata())

        logger.info(
            "Initialized upload %s for %s: %d bytes, %d chunks, mode=%s",
            file_id,
            file_path.name,
            stat.st_size,
            total_chunks,
            mode.value,
        )
        return session
