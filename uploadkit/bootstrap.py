"""Service bootstrap and shutdown.

INITIALIZATION SEQUENCE
=======================

    bootstrap_upload_services(config)
         │
         ├─[1] aiohttp.ClientSession   (skipped when offline)
         ├─[2] UploadApiClient         (skipped when offline)
         ├─[3] SqliteStateStore + init_async_store()
         ├─[4] Emitter
         └─[5] UploadManager + start() (garbage-collects the ledger)

Shutdown runs in reverse order.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import aiohttp

from uploadkit.config_manager.upload_config import UploadConfig
from uploadkit.event_emitter import Emitter
from uploadkit.helpers import get_db_path
from uploadkit.state_management.state_store_sqlite import SqliteStateStore
from uploadkit.upload_management.api_client import UploadApiClient
from uploadkit.upload_management.upload_manager import UploadManager

logger = logging.getLogger(__name__)


@dataclass
class UploadServices:
    """Everything an upload client needs, with the resources it owns."""

    config: UploadConfig
    client_session: aiohttp.ClientSession | None
    state_store: SqliteStateStore
    emitter: Emitter
    upload_manager: UploadManager


async def bootstrap_upload_services(config: UploadConfig) -> UploadServices:
    """Create and start the upload services described by ``config``.

    Args:
        config: Effective configuration.

    Returns:
        UploadServices with all services initialized.
    """
    logger.info("Bootstrapping upload services...")

    client_session: aiohttp.ClientSession | None = None
    api: UploadApiClient | None = None
    if not config.offline:
        client_session = aiohttp.ClientSession()
        api = UploadApiClient(
            client_session,
            config.api_url,
            auth_token=config.auth_token,
            timeout=config.request_timeout,
        )
        logger.debug("Created UploadApiClient for %s", config.api_url)

    db_path = (
        Path(config.db_path).expanduser() if config.db_path else get_db_path()
    )
    state_store = SqliteStateStore(db_path)
    emitter = Emitter()
    upload_manager = UploadManager(config, state_store, api, emitter)
    try:
        await state_store.init_async_store()
        logger.info("SqliteStateStore initialized at %s", db_path)
        removed = await upload_manager.start()
    except Exception:
        await state_store.close()
        if client_session is not None:
            await client_session.close()
        raise
    logger.info("Upload services ready (%d stale ledger entries removed)", removed)

    return UploadServices(
        config=config,
        client_session=client_session,
        state_store=state_store,
        emitter=emitter,
        upload_manager=upload_manager,
    )


async def shutdown_upload_services(services: UploadServices) -> None:
    """Release the resources held by ``services``."""
    logger.info("Shutting down upload services...")
    services.emitter.remove_all_listeners()
    await services.state_store.close()
    if services.client_session is not None:
        await services.client_session.close()
    logger.info("Upload services shut down")


@asynccontextmanager
async def upload_services(config: UploadConfig) -> AsyncIterator[UploadServices]:
    """Context manager around bootstrap and shutdown."""
    services = await bootstrap_upload_services(config)
    try:
        yield services
    finally:
        await shutdown_upload_services(services)
