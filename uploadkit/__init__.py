"""Client-side resumable chunked uploads with local fallback."""

from .models import (
    FileListingEntry,
    UploadMetadata,
    UploadMode,
    UploadProgress,
    UploadSession,
    UploadStatus,
)

__version__ = "0.3.0"

__all__ = [
    "FileListingEntry",
    "UploadMetadata",
    "UploadMode",
    "UploadProgress",
    "UploadSession",
    "UploadStatus",
]
