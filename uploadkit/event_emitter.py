"""Event emitter for upload progress and lifecycle signaling."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pyee.asyncio import AsyncIOEventEmitter

from uploadkit.models import UploadProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[UploadProgress], "Awaitable[None] | None"]


class Emitter(AsyncIOEventEmitter):
    """Event emitter owned by an UploadManager and shared with its observers.

    Handler failures are logged and never reach the code that emitted the
    event.
    """

    # Transmitter -> observers, once per processed chunk
    UPLOAD_PROGRESS = "UPLOAD_PROGRESS"
    # (UploadProgress)

    # Initializer / Transmitter -> observers
    UPLOAD_DEGRADED = "UPLOAD_DEGRADED"
    # (file_id, reason)

    # Transmitter -> observers
    UPLOAD_COMPLETE = "UPLOAD_COMPLETE"
    # (UploadProgress)

    # Transmitter -> observers
    UPLOAD_FAILED = "UPLOAD_FAILED"
    # (file_id, error_message)

    # Deletion coordinator -> observers
    FILE_DELETED = "FILE_DELETED"
    # (file_id, DeleteOutcome)

    def __init__(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Initialize the event emitter.

        Args:
            loop: The event loop to use for async event handlers. Defaults to
                the running loop at emit time.
        """
        super().__init__(loop=loop)
        self.on("error", self._log_handler_error)

    def emit(self, event: str, *args: Any, **kwargs: Any) -> bool:
        """Emit an event with logging.

        Args:
            event: The event name to emit.
            *args: Positional arguments to pass to handlers.
            **kwargs: Keyword arguments to pass to handlers.

        Returns:
            True if the event had listeners, False otherwise.
        """
        formatted_args = []
        for arg in args:
            if isinstance(arg, str) and len(arg) > 50:
                formatted_args.append(f"{arg[:50]}...")
            elif isinstance(arg, UploadProgress):
                formatted_args.append(
                    f"<{arg.file_id} {len(arg.uploaded_chunks)}/{arg.total_chunks}>"
                )
            else:
                r = repr(arg)
                if len(r) > 100:
                    formatted_args.append(f"{r[:100]}...")
                else:
                    formatted_args.append(r)
        args_str = ", ".join(formatted_args) if formatted_args else ""
        logger.info("EVENT %s: %s", event, args_str)
        return super().emit(event, *args, **kwargs)

    @staticmethod
    def _log_handler_error(exc: Exception) -> None:
        logger.error("Event handler raised: %s", exc, exc_info=exc)


class ProgressEmitter:
    """Fire-and-forget publisher for progress snapshots.

    Publishes to an optional Emitter and an optional per-call callback.
    Neither is required, and a failing observer never fails the upload.
    Coroutine callbacks are scheduled, not awaited.
    """

    def __init__(
        self,
        emitter: Emitter | None = None,
        callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the publisher.

        Args:
            emitter: Emitter receiving UPLOAD_PROGRESS events.
            callback: Called with every snapshot; may be a coroutine function.
        """
        self._emitter = emitter
        self._callback = callback
        self._pending: set[asyncio.Future] = set()

    def publish(self, snapshot: UploadProgress) -> None:
        """Publish one snapshot to every observer."""
        if self._emitter is not None:
            self._emitter.emit(Emitter.UPLOAD_PROGRESS, snapshot)
        if self._callback is None:
            return
        try:
            result = self._callback(snapshot)
        except Exception:
            logger.exception("Progress callback raised for %s", snapshot.file_id)
            return
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._pending.add(future)
            future.add_done_callback(self._on_callback_done)

    def emit(self, event: str, *args: Any) -> None:
        """Forward a lifecycle event to the emitter, if any."""
        if self._emitter is not None:
            self._emitter.emit(event, *args)

    def _on_callback_done(self, future: asyncio.Future) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Async progress callback raised: %s", exc, exc_info=exc)
