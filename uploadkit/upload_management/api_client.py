"""HTTP client for the remote upload service.

The upload service issues file identifiers, ingests base64-encoded chunks,
serves upload metadata and deletes files. Every method raises a
:class:`~uploadkit.exceptions.RemoteError` subclass on failure so callers
can absorb remote problems without catching transport exceptions.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from uploadkit.const import (
    FILES_ENDPOINT,
    HTTP_NOT_IMPLEMENTED,
    INIT_UPLOAD_ENDPOINT,
    REQUEST_TIMEOUT_SECONDS,
    UPLOAD_CHUNK_ENDPOINT,
    UPLOADS_ENDPOINT,
)
from uploadkit.exceptions import RemoteRejectionError, TransientNetworkError
from uploadkit.models import DeleteOutcome, UploadMetadata

logger = logging.getLogger(__name__)


class UploadApi(Protocol):
    """Operations the orchestrator consumes from the upload service."""

    async def init_upload(self, file_name: str, total_chunks: int, user_id: str) -> str:
        """Return a service-issued file identifier."""
        ...

    async def upload_chunk(
        self, file_id: str, chunk_index: int, content: bytes
    ) -> None:
        """Send one chunk."""
        ...

    async def delete_file(self, file_id: str) -> DeleteOutcome:
        """Delete a file on the service."""
        ...

    async def get_upload_metadata(self, file_id: str) -> UploadMetadata:
        """Fetch the service's metadata for an upload."""
        ...


class UploadApiClient(UploadApi):
    """aiohttp implementation of the upload service contract."""

    def __init__(
        self,
        client_session: aiohttp.ClientSession,
        api_url: str,
        auth_token: str | None = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the client.

        Args:
            client_session: Shared aiohttp session for HTTP requests.
            api_url: Base URL of the upload service.
            auth_token: Bearer token, sent as the Authorization header.
            timeout: Total timeout per request, in seconds.
        """
        self.client_session = client_session
        self._api_url = api_url.rstrip("/")
        self._auth_token = auth_token
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers

    async def _raise_for_status(
        self, response: aiohttp.ClientResponse, operation: str
    ) -> None:
        if response.status < 400:
            return
        try:
            body = await response.text()
        except (aiohttp.ClientError, UnicodeDecodeError):
            body = ""
        raise RemoteRejectionError(
            f"{operation} failed with HTTP {response.status}: {body[:200]}",
            status=response.status,
        )

    @staticmethod
    async def _read_json(response: aiohttp.ClientResponse, operation: str) -> Any:
        try:
            return await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError) as exc:
            raise RemoteRejectionError(
                f"{operation} returned a malformed payload: {exc}",
                status=response.status,
            ) from exc

    async def init_upload(self, file_name: str, total_chunks: int, user_id: str) -> str:
        """Ask the service to issue an identifier for a new upload.

        Args:
            file_name: Name of the file being uploaded.
            total_chunks: Number of chunks the upload will send.
            user_id: Identifier of the uploading user.

        Returns:
            The service-issued file identifier.

        Raises:
            TransientNetworkError: If the service cannot be reached.
            RemoteRejectionError: On a non-success status or a payload
                without a usable ``file_id``.
        """
        body = {
            "file_name": file_name,
            "total_chunks": total_chunks,
            "user_id": user_id,
        }
        try:
            async with self.client_session.post(
                f"{self._api_url}{INIT_UPLOAD_ENDPOINT}",
                json=body,
                headers=self._headers(),
                timeout=self._timeout,
            ) as response:
                await self._raise_for_status(response, "init-upload")
                data = await self._read_json(response, "init-upload")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientNetworkError(f"init-upload request failed: {e}") from e

        file_id = data.get("file_id") if isinstance(data, dict) else None
        if not isinstance(file_id, str) or not file_id:
            raise RemoteRejectionError("init-upload response has no file_id")
        logger.info("Service issued file_id %s for %s", file_id, file_name)
        return file_id

    async def upload_chunk(
        self, file_id: str, chunk_index: int, content: bytes
    ) -> None:
        """Send one chunk, base64-encoded.

        Raises:
            TransientNetworkError: If the service cannot be reached.
            RemoteRejectionError: On a non-success status.
        """
        body = {
            "file_id": file_id,
            "chunk_index": chunk_index,
            "content": base64.b64encode(content).decode("ascii"),
        }
        try:
            async with self.client_session.post(
                f"{self._api_url}{UPLOAD_CHUNK_ENDPOINT}",
                json=body,
                headers=self._headers(),
                timeout=self._timeout,
            ) as response:
                await self._raise_for_status(response, f"upload-chunk {chunk_index}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientNetworkError(
                f"upload-chunk {chunk_index} request failed: {e}"
            ) from e
        logger.debug(
            "Sent chunk %d of %s (%d bytes)", chunk_index, file_id, len(content)
        )

    async def delete_file(self, file_id: str) -> DeleteOutcome:
        """Delete a file on the service.

        Returns:
            DELETED on success, NOT_IMPLEMENTED when the service answers 501.

        Raises:
            TransientNetworkError: If the service cannot be reached.
            RemoteRejectionError: On any other non-success status.
        """
        try:
            async with self.client_session.delete(
                f"{self._api_url}{FILES_ENDPOINT}/{file_id}",
                headers=self._headers(),
                timeout=self._timeout,
            ) as response:
                if response.status == HTTP_NOT_IMPLEMENTED:
                    return DeleteOutcome.NOT_IMPLEMENTED
                await self._raise_for_status(response, "delete")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientNetworkError(f"delete request failed: {e}") from e
        return DeleteOutcome.DELETED

    async def get_upload_metadata(self, file_id: str) -> UploadMetadata:
        """Fetch the service's metadata for an upload.

        Raises:
            TransientNetworkError: If the service cannot be reached.
            RemoteRejectionError: On a non-success status or malformed payload.
        """
        try:
            async with self.client_session.get(
                f"{self._api_url}{UPLOADS_ENDPOINT}/{file_id}/metadata",
                headers=self._headers(),
                timeout=self._timeout,
            ) as response:
                await self._raise_for_status(response, "metadata")
                data = await self._read_json(response, "metadata")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientNetworkError(f"metadata request failed: {e}") from e

        try:
            return UploadMetadata.model_validate(data)
        except ValidationError as exc:
            raise RemoteRejectionError(f"metadata payload invalid: {exc}") from exc
