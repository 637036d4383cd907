"""Delete files remotely (best effort) and locally (always)."""

from __future__ import annotations

import logging

from uploadkit.event_emitter import Emitter, ProgressEmitter
from uploadkit.exceptions import RemoteError
from uploadkit.models import DeleteOutcome
from uploadkit.state_management.state_store import StateStore

from .api_client import UploadApi

logger = logging.getLogger(__name__)


class DeletionCoordinator:
    """Remove a file from the service and from every local key space."""

    def __init__(
        self,
        api: UploadApi | None,
        store: StateStore,
        progress: ProgressEmitter | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            api: Upload service client, or None to work offline.
            store: Local durable store to purge.
            progress: Publisher for the FILE_DELETED event.
        """
        self._api = api
        self._store = store
        self._progress = progress or ProgressEmitter()

    async def _delete_remote(self, file_id: str) -> DeleteOutcome:
        if self._api is None:
            return DeleteOutcome.SKIPPED
        try:
            outcome = await self._api.delete_file(file_id)
        except RemoteError as e:
            logger.warning(
                "Remote delete of %s failed, cleaning up locally: %s", file_id, e
            )
            return DeleteOutcome.FAILED
        if outcome is DeleteOutcome.NOT_IMPLEMENTED:
            logger.info(
                "Remote delete not implemented, cleaning up %s locally", file_id
            )
        return outcome

    async def delete(self, file_id: str) -> DeleteOutcome:
        """Delete ``file_id``.

        The local purge runs whatever the remote outcome, and deleting an
        unknown file is a no-op.

        Returns:
            The outcome of the remote half.

        Raises:
            LocalStoreError: If the local purge fails.
        """
        outcome = await self._delete_remote(file_id)
        blob_removed = await self._store.delete_blob(file_id)
        ledger_removed = await self._store.delete_ledger(file_id)
        logger.info(
            "Deleted %s: remote=%s blob=%s ledger_entries=%d",
            file_id,
            outcome.value,
            blob_removed,
            ledger_removed,
        )
        self._progress.emit(Emitter.FILE_DELETED, file_id, outcome)
        return outcome
