"""Shared fixtures for uploadkit unit tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
import pytest_asyncio

from uploadkit.config_manager.upload_config import UploadConfig
from uploadkit.event_emitter import Emitter
from uploadkit.state_management.state_store_sqlite import SqliteStateStore


@pytest_asyncio.fixture
async def store(tmp_path: Path):
    """Initialized SQLite store in a temporary directory."""
    sqlite_store = SqliteStateStore(tmp_path / "state.db")
    await sqlite_store.init_async_store()
    try:
        yield sqlite_store
    finally:
        await sqlite_store.close()


@pytest.fixture
def config() -> UploadConfig:
    """Configuration without inter-chunk delays or start-up collection."""
    return UploadConfig(
        user_id="user-1",
        remote_chunk_delay=0,
        local_chunk_delay=0,
        gc_on_start=False,
    )


@pytest.fixture
def emitter():
    event_emitter = Emitter()
    yield event_emitter
    event_emitter.remove_all_listeners()


@pytest.fixture
def make_file(tmp_path: Path) -> Callable[[str, int], Path]:
    """Factory writing a file of the requested size."""

    def _make(name: str, size: int) -> Path:
        path = tmp_path / name
        pattern = b"uploadkit-"
        path.write_bytes((pattern * (size // len(pattern) + 1))[:size])
        return path

    return _make
