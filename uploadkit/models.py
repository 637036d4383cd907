"""Models used by the upload orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from uploadkit.const import CHUNK_SIZE
from uploadkit.upload_management.chunk_planner import total_chunks_for


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class UploadMode(str, Enum):
    """Where chunks of a session end up.

    State transitions:
    - REMOTE -> LOCAL_FALLBACK (first remote failure)
    - LOCAL_FALLBACK never reverts
    """

    REMOTE = "remote"
    LOCAL_FALLBACK = "local_fallback"


class UploadStatus(str, Enum):
    """Lifecycle states for an upload session."""

    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"


class ListingStatus(str, Enum):
    """Status shown for a file in the registry listing."""

    COMPLETED = "completed"
    IN_PROGRESS = "in_progress"


class DeleteOutcome(str, Enum):
    """Result of the remote half of a deletion."""

    DELETED = "deleted"
    NOT_IMPLEMENTED = "not_implemented"
    FAILED = "failed"
    SKIPPED = "skipped"


class _CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        """Serialize with camelCase keys."""
        return self.model_dump_json(by_alias=True)


class ChunkRecord(_CamelModel):
    """Ledger entry marking one chunk of a file as processed.

    ``timestamp`` is optional only so that legacy entries written without
    one can still be read and aged out.
    """

    file_id: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=0)
    uploaded: bool = True
    timestamp: datetime | None = None


class BlobRecord(_CamelModel):
    """Descriptive record of one file, written before its first chunk."""

    file_id: str
    file_name: str
    file_size: int = Field(ge=0)
    mime_type: str
    last_modified_at: datetime | None = None
    stored_at: datetime


class UploadProgress(_CamelModel):
    """Snapshot of a session published after every processed chunk."""

    file_id: str
    file_name: str
    uploaded_chunks: list[int]
    total_chunks: int
    progress: float = Field(ge=0, le=100)
    status: UploadStatus


class UploadMetadata(_CamelModel):
    """Session-level record kept in the ledger and served by the upload service."""

    file_id: str
    file_name: str
    size: str
    uploaded_chunks: list[str] = Field(default_factory=list)
    status: UploadStatus
    user_id: str | None = None
    uploaded_at: datetime | None = None
    mode: UploadMode | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _accept_service_status(cls, value: Any) -> Any:
        """The upload service reports unfinished uploads as ``in_progress``."""
        if value == ListingStatus.IN_PROGRESS.value:
            return UploadStatus.UPLOADING
        return value


class FileListingEntry(_CamelModel):
    """One row of the file listing, derived from a blob and its ledger."""

    file_id: str
    file_name: str
    size: str
    uploaded_chunks: list[str]
    status: ListingStatus


@dataclass
class UploadSession:
    """In-memory state of a single upload call.

    ``total_chunks`` is computed once from ``total_size`` and never changes.
    ``uploaded_chunk_indices`` keeps completion order and holds each index at
    most once.
    """

    file_id: str
    file_name: str
    total_size: int
    user_id: str
    mode: UploadMode = UploadMode.REMOTE
    status: UploadStatus = UploadStatus.UPLOADING
    uploaded_chunk_indices: list[int] = field(default_factory=list)
    chunk_size: int = field(default=CHUNK_SIZE, init=False)
    _total_chunks: int = field(init=False, repr=False)
    _seen: set[int] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._total_chunks = total_chunks_for(self.total_size, self.chunk_size)
        self._seen = set()
        indices = list(self.uploaded_chunk_indices)
        self.uploaded_chunk_indices = []
        for index in indices:
            self.mark_chunk_uploaded(index)

    @property
    def total_chunks(self) -> int:
        """Number of chunks in the file."""
        return self._total_chunks

    @property
    def progress(self) -> float:
        """Percentage of chunks processed; an empty file is fully processed."""
        if self._total_chunks == 0:
            return 100.0
        return len(self.uploaded_chunk_indices) / self._total_chunks * 100

    @property
    def is_degraded(self) -> bool:
        """True once the session has fallen back to local-only bookkeeping."""
        return self.mode is UploadMode.LOCAL_FALLBACK

    def has_chunk(self, index: int) -> bool:
        """Return True if ``index`` has already been processed."""
        return index in self._seen

    def mark_chunk_uploaded(self, index: int) -> bool:
        """Record ``index`` as processed.

        Returns:
            True if the index was new, False if it was already recorded.

        Raises:
            ValueError: If the index is outside ``[0, total_chunks)``.
        """
        if not 0 <= index < self._total_chunks:
            raise ValueError(
                f"Chunk index {index} out of range for {self._total_chunks} chunks"
            )
        if index in self._seen:
            return False
        self._seen.add(index)
        self.uploaded_chunk_indices.append(index)
        return True

    def degrade(self) -> bool:
        """Switch to LOCAL_FALLBACK.

        Returns:
            True if this call changed the mode.
        """
        if self.mode is UploadMode.LOCAL_FALLBACK:
            return False
        self.mode = UploadMode.LOCAL_FALLBACK
        return True

    def complete(self) -> None:
        """Mark the session completed.

        Raises:
            ValueError: If some chunks have not been processed.
        """
        if len(self.uploaded_chunk_indices) != self._total_chunks:
            raise ValueError(
                f"Cannot complete {self.file_id}: "
                f"{len(self.uploaded_chunk_indices)}/{self._total_chunks} chunks"
            )
        self.status = UploadStatus.COMPLETED

    def fail(self) -> None:
        """Mark the session as failed."""
        self.status = UploadStatus.ERROR

    def snapshot(self) -> UploadProgress:
        """Return an immutable progress snapshot of the session."""
        return UploadProgress(
            file_id=self.file_id,
            file_name=self.file_name,
            uploaded_chunks=list(self.uploaded_chunk_indices),
            total_chunks=self._total_chunks,
            progress=self.progress,
            status=self.status,
        )

    def to_metadata(self, uploaded_at: datetime | None = None) -> UploadMetadata:
        """Build the session-level ledger record."""
        return UploadMetadata(
            file_id=self.file_id,
            file_name=self.file_name,
            size=str(self.total_size),
            uploaded_chunks=[str(index) for index in self.uploaded_chunk_indices],
            status=self.status,
            user_id=self.user_id,
            uploaded_at=uploaded_at,
            mode=self.mode,
        )
