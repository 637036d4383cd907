"""Pydantic model for uploadkit configuration."""

from pydantic import BaseModel, Field

from uploadkit.const import (
    API_URL,
    DEFAULT_USER_ID,
    LOCAL_CHUNK_DELAY_SECONDS,
    REMOTE_CHUNK_DELAY_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
)


class UploadConfig(BaseModel):
    """Configuration options for an upload client instance.

    Attributes:
        api_url: base URL of the upload service.
        auth_token: bearer token sent with every request to the upload service.
        user_id: identifier reported to the upload service on init.
        db_path: SQLite file backing the local durable store; None uses the
            default location.
        offline: when true, never contact the upload service and record
            every upload locally.
        request_timeout: per-request timeout in seconds.
        remote_chunk_delay: pause after each chunk while in remote mode.
        local_chunk_delay: pause after each chunk while in fallback mode.
        gc_on_start: run the ledger garbage collector when the manager starts.
    """

    api_url: str = API_URL
    auth_token: str | None = None
    user_id: str = DEFAULT_USER_ID
    db_path: str | None = None
    offline: bool = False
    request_timeout: float = Field(default=REQUEST_TIMEOUT_SECONDS, gt=0)
    remote_chunk_delay: float = Field(default=REMOTE_CHUNK_DELAY_SECONDS, ge=0)
    local_chunk_delay: float = Field(default=LOCAL_CHUNK_DELAY_SECONDS, ge=0)
    gc_on_start: bool = True
