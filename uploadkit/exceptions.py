"""Exceptions raised by uploadkit."""

from __future__ import annotations


class UploadKitError(Exception):
    """Base class for all uploadkit errors."""


class RemoteError(UploadKitError):
    """The upload service could not complete a request."""


class TransientNetworkError(RemoteError):
    """The upload service was unreachable or timed out."""


class RemoteRejectionError(RemoteError):
    """The upload service answered with a non-success status or bad payload."""

    def __init__(self, message: str, status: int | None = None) -> None:
        """Initialise the rejection.

        Args:
            message: Human-readable description of the rejection.
            status: HTTP status code, when the service answered at all.
        """
        super().__init__(message)
        self.status = status


class UploadNotFoundError(UploadKitError):
    """No durable record exists for the requested upload."""


class LocalStoreError(UploadKitError):
    """The local durable store failed to read or write."""


class UploadCancelledError(UploadKitError):
    """An upload was cancelled at a chunk boundary."""

    def __init__(self, file_id: str, uploaded_chunks: int) -> None:
        """Initialise the cancellation error.

        Args:
            file_id: Identifier of the cancelled upload.
            uploaded_chunks: Number of chunks recorded before cancellation.
        """
        super().__init__(
            f"Upload {file_id} cancelled after {uploaded_chunks} chunk(s)"
        )
        self.file_id = file_id
        self.uploaded_chunks = uploaded_chunks
