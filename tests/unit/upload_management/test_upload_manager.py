"""Tests for UploadManager.

Covers the upload scenarios (healthy service, outage mid-upload, outage at
init), empty files, cancellation and resume, observers and deletion.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from uploadkit.config_manager.upload_config import UploadConfig
from uploadkit.event_emitter import Emitter
from uploadkit.exceptions import (
    LocalStoreError,
    UploadCancelledError,
    UploadNotFoundError,
)
from uploadkit.models import (
    ChunkRecord,
    DeleteOutcome,
    ListingStatus,
    UploadMetadata,
    UploadMode,
    UploadStatus,
)
from uploadkit.state_management.state_store_sqlite import SqliteStateStore
from uploadkit.upload_management.upload_manager import UploadManager

from tests.unit.fakes import EventRecorder, FakeUploadApi

MIB = 1024 * 1024


@pytest.fixture
def api() -> FakeUploadApi:
    return FakeUploadApi()


@pytest.fixture
def manager(config, store, api, emitter) -> UploadManager:
    return UploadManager(config, store, api, emitter)


@pytest.mark.asyncio
async def test_healthy_service_uploads_every_chunk(
    manager: UploadManager, api: FakeUploadApi, store: SqliteStateStore, make_file
) -> None:
    path = make_file("video.mp4", 10 * MIB)

    session = await manager.upload_file(path)

    assert session.file_id == "srv-1"
    assert session.mode is UploadMode.REMOTE
    assert session.status is UploadStatus.COMPLETED
    assert api.init_calls == [("video.mp4", 3, "user-1")]
    assert api.chunk_calls == [
        ("srv-1", 0, 4 * MIB),
        ("srv-1", 1, 4 * MIB),
        ("srv-1", 2, 2 * MIB),
    ]
    assert await manager.get_uploaded_chunks("srv-1") == [0, 1, 2]

    blob = await store.get_blob("srv-1")
    assert blob is not None
    assert blob.file_size == 10 * MIB
    assert blob.mime_type == "video/mp4"

    metadata = await store.get_session_metadata("srv-1")
    assert metadata is not None
    assert metadata.status is UploadStatus.COMPLETED
    assert metadata.uploaded_chunks == ["0", "1", "2"]
    assert metadata.uploaded_at is not None


@pytest.mark.asyncio
async def test_outage_mid_upload_degrades_and_completes(
    config: UploadConfig, store: SqliteStateStore, emitter: Emitter, make_file
) -> None:
    api = FakeUploadApi(fail_chunks_from=1)
    recorder = EventRecorder(emitter, Emitter.UPLOAD_DEGRADED)
    manager = UploadManager(config, store, api, emitter)

    session = await manager.upload_file(make_file("video.mp4", 10 * MIB))

    # chunk 1 failed remotely, chunk 2 was never sent
    assert api.sent_indices == [0, 1]
    assert session.mode is UploadMode.LOCAL_FALLBACK
    assert session.status is UploadStatus.COMPLETED
    assert session.file_id == "srv-1"
    assert await manager.get_uploaded_chunks("srv-1") == [0, 1, 2]
    assert len(recorder.args_for(Emitter.UPLOAD_DEGRADED)) == 1


@pytest.mark.asyncio
async def test_outage_at_init_uses_local_identifier(
    config: UploadConfig, store: SqliteStateStore, emitter: Emitter, make_file
) -> None:
    api = FakeUploadApi(fail_init=True)
    recorder = EventRecorder(emitter, Emitter.UPLOAD_DEGRADED)
    manager = UploadManager(config, store, api, emitter)

    session = await manager.upload_file(make_file("video.mp4", 10 * MIB))

    assert session.file_id.startswith("local-")
    assert session.mode is UploadMode.LOCAL_FALLBACK
    assert session.status is UploadStatus.COMPLETED
    assert len(api.init_calls) == 1
    assert api.chunk_calls == []
    assert await manager.get_uploaded_chunks(session.file_id) == [0, 1, 2]
    assert [args[0] for args in recorder.args_for(Emitter.UPLOAD_DEGRADED)] == [
        session.file_id
    ]


@pytest.mark.asyncio
async def test_empty_file_completes_without_chunks(
    manager: UploadManager, api: FakeUploadApi, emitter: Emitter, make_file
) -> None:
    recorder = EventRecorder(emitter, Emitter.UPLOAD_PROGRESS, Emitter.UPLOAD_COMPLETE)

    session = await manager.upload_file(make_file("empty.txt", 0))

    assert api.init_calls == [("empty.txt", 0, "user-1")]
    assert api.chunk_calls == []
    assert session.status is UploadStatus.COMPLETED
    assert session.progress == 100
    assert recorder.names() == [Emitter.UPLOAD_COMPLETE]
    [entry] = await manager.list_files()
    assert entry.status is ListingStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_offline_config_never_contacts_service(
    store: SqliteStateStore, api: FakeUploadApi, make_file
) -> None:
    config = UploadConfig(offline=True, remote_chunk_delay=0, local_chunk_delay=0)
    manager = UploadManager(config, store, api)

    session = await manager.upload_file(make_file("a.bin", 5 * MIB))

    assert session.file_id.startswith("local-")
    assert session.status is UploadStatus.COMPLETED
    assert api.init_calls == []
    assert api.chunk_calls == []


@pytest.mark.asyncio
async def test_progress_is_published_in_chunk_order(
    manager: UploadManager, emitter: Emitter, make_file
) -> None:
    recorder = EventRecorder(emitter, Emitter.UPLOAD_PROGRESS, Emitter.UPLOAD_COMPLETE)
    received = []

    await manager.upload_file(
        make_file("video.mp4", 10 * MIB), progress_callback=received.append
    )

    assert [p.uploaded_chunks for p in received] == [[0], [0, 1], [0, 1, 2]]
    assert [round(p.progress, 1) for p in received] == [33.3, 66.7, 100.0]
    assert all(p.status is UploadStatus.UPLOADING for p in received)
    assert recorder.names() == [Emitter.UPLOAD_PROGRESS] * 3 + [Emitter.UPLOAD_COMPLETE]
    [(complete,)] = recorder.args_for(Emitter.UPLOAD_COMPLETE)
    assert complete.status is UploadStatus.COMPLETED


@pytest.mark.asyncio
async def test_failing_progress_callback_does_not_fail_upload(
    manager: UploadManager, make_file
) -> None:
    def broken(_progress) -> None:
        raise RuntimeError("observer bug")

    session = await manager.upload_file(
        make_file("a.bin", 6 * MIB), progress_callback=broken
    )

    assert session.status is UploadStatus.COMPLETED


@pytest.mark.asyncio
async def test_async_progress_callback_is_scheduled(
    manager: UploadManager, make_file
) -> None:
    received = []

    async def on_progress(progress) -> None:
        received.append(progress.uploaded_chunks[-1])

    await manager.upload_file(
        make_file("a.bin", 6 * MIB), progress_callback=on_progress
    )
    await asyncio.sleep(0)

    assert sorted(received) == [0, 1]


@pytest.mark.asyncio
async def test_failing_emitter_listener_does_not_fail_upload(
    manager: UploadManager, emitter: Emitter, make_file
) -> None:
    def broken(*_args) -> None:
        raise RuntimeError("listener bug")

    emitter.on(Emitter.UPLOAD_PROGRESS, broken)

    session = await manager.upload_file(make_file("a.bin", 1024))

    assert session.status is UploadStatus.COMPLETED


@pytest.mark.asyncio
async def test_local_store_failure_fails_upload(
    manager: UploadManager,
    store: SqliteStateStore,
    emitter: Emitter,
    make_file,
    monkeypatch,
) -> None:
    recorder = EventRecorder(emitter, Emitter.UPLOAD_FAILED)
    monkeypatch.setattr(
        store, "put_chunk", AsyncMock(side_effect=LocalStoreError("disk full"))
    )

    with pytest.raises(LocalStoreError):
        await manager.upload_file(make_file("a.bin", 1024))

    [(file_id, message)] = recorder.args_for(Emitter.UPLOAD_FAILED)
    assert file_id == "srv-1"
    assert "disk full" in message


@pytest.mark.asyncio
async def test_missing_file_raises(manager: UploadManager, tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        await manager.upload_file(tmp_path / "missing.bin")


@pytest.mark.asyncio
async def test_cancel_then_resume_sends_remaining_chunks(
    manager: UploadManager, api: FakeUploadApi, store: SqliteStateStore, make_file
) -> None:
    path = make_file("video.mp4", 10 * MIB)
    cancel_event = asyncio.Event()

    with pytest.raises(UploadCancelledError) as exc_info:
        await manager.upload_file(
            path,
            progress_callback=lambda _progress: cancel_event.set(),
            cancel_event=cancel_event,
        )

    assert exc_info.value.file_id == "srv-1"
    assert exc_info.value.uploaded_chunks == 1
    metadata = await store.get_session_metadata("srv-1")
    assert metadata is not None
    assert metadata.status is UploadStatus.UPLOADING
    assert metadata.uploaded_chunks == ["0"]

    session = await manager.resume_upload(path, "srv-1")

    assert session.status is UploadStatus.COMPLETED
    assert session.mode is UploadMode.REMOTE
    assert api.sent_indices == [0, 1, 2]
    assert len(api.init_calls) == 1
    assert await manager.get_uploaded_chunks("srv-1") == [0, 1, 2]


@pytest.mark.asyncio
async def test_resume_of_degraded_session_stays_local(
    config: UploadConfig, store: SqliteStateStore, make_file
) -> None:
    path = make_file("video.mp4", 10 * MIB)
    api = FakeUploadApi(fail_chunks_from=0)
    manager = UploadManager(config, store, api)
    cancel_event = asyncio.Event()

    with pytest.raises(UploadCancelledError):
        await manager.upload_file(
            path,
            progress_callback=lambda _progress: cancel_event.set(),
            cancel_event=cancel_event,
        )
    api.fail_chunks_from = None

    session = await manager.resume_upload(path, "srv-1")

    assert session.mode is UploadMode.LOCAL_FALLBACK
    assert api.sent_indices == [0]


@pytest.mark.asyncio
async def test_resume_unknown_upload_raises(manager: UploadManager, make_file) -> None:
    with pytest.raises(UploadNotFoundError):
        await manager.resume_upload(make_file("a.bin", 10), "srv-404")


@pytest.mark.asyncio
async def test_resume_with_different_file_size_raises(
    manager: UploadManager, store: SqliteStateStore, make_file
) -> None:
    await store.put_session_metadata(
        UploadMetadata(
            file_id="srv-7", file_name="a.bin", size="99", status=UploadStatus.UPLOADING
        )
    )

    with pytest.raises(ValueError):
        await manager.resume_upload(make_file("a.bin", 10), "srv-7")


@pytest.mark.asyncio
async def test_list_files_after_uploads(manager: UploadManager, make_file) -> None:
    await manager.upload_file(make_file("empty.bin", 0))
    await manager.upload_file(make_file("full.bin", 10))

    entries = await manager.list_files()

    assert [(e.file_name, e.status) for e in entries] == [
        ("full.bin", ListingStatus.COMPLETED),
        ("empty.bin", ListingStatus.IN_PROGRESS),
    ]


@pytest.mark.asyncio
async def test_delete_file_purges_listing(manager: UploadManager, make_file) -> None:
    session = await manager.upload_file(make_file("a.bin", 10))

    assert await manager.delete_file(session.file_id) is DeleteOutcome.DELETED
    assert await manager.list_files() == []
    assert await manager.delete_file(session.file_id) is DeleteOutcome.DELETED


@pytest.mark.asyncio
async def test_get_chunk_record(manager: UploadManager, make_file) -> None:
    session = await manager.upload_file(make_file("a.bin", 10))

    record = await manager.get_chunk_record(session.file_id, 0)

    assert record.uploaded is True
    assert record.total_chunks == 1
    assert record.timestamp is not None
    with pytest.raises(UploadNotFoundError):
        await manager.get_chunk_record(session.file_id, 1)


@pytest.mark.asyncio
async def test_get_upload_metadata_prefers_service(
    config: UploadConfig, store: SqliteStateStore
) -> None:
    remote = UploadMetadata(
        file_id="srv-1", file_name="a.bin", size="10", status=UploadStatus.COMPLETED
    )
    api = FakeUploadApi(metadata=remote)

    metadata = await UploadManager(config, store, api).get_upload_metadata("srv-1")

    assert metadata == remote


@pytest.mark.asyncio
async def test_get_upload_metadata_falls_back_to_ledger(
    manager: UploadManager, api: FakeUploadApi, make_file
) -> None:
    session = await manager.upload_file(make_file("a.bin", 10))

    metadata = await manager.get_upload_metadata(session.file_id)

    assert api.metadata_calls == ["srv-1"]
    assert metadata.status is UploadStatus.COMPLETED
    assert metadata.mode is UploadMode.REMOTE
    with pytest.raises(UploadNotFoundError):
        await manager.get_upload_metadata("srv-404")


@pytest.mark.asyncio
async def test_local_metadata_never_queries_service(
    config: UploadConfig, store: SqliteStateStore, make_file
) -> None:
    api = FakeUploadApi(fail_init=True)
    manager = UploadManager(config, store, api)
    session = await manager.upload_file(make_file("a.bin", 10))

    metadata = await manager.get_upload_metadata(session.file_id)

    assert api.metadata_calls == []
    assert metadata.mode is UploadMode.LOCAL_FALLBACK


@pytest.mark.asyncio
async def test_start_collects_garbage_when_enabled(store: SqliteStateStore) -> None:
    stale = datetime.now(timezone.utc) - timedelta(days=2)
    await store.put_chunk(
        ChunkRecord(file_id="old", chunk_index=0, total_chunks=1, timestamp=stale)
    )

    idle = UploadManager(UploadConfig(gc_on_start=False), store)
    assert await idle.start() == 0

    manager = UploadManager(UploadConfig(gc_on_start=True), store)
    assert await manager.start() == 1
    assert await store.get_chunk("old", 0) is None


@pytest.mark.asyncio
async def test_managers_with_separate_stores_are_isolated(
    config: UploadConfig, tmp_path, make_file
) -> None:
    first_store = SqliteStateStore(tmp_path / "one.db")
    second_store = SqliteStateStore(tmp_path / "two.db")
    await first_store.init_async_store()
    await second_store.init_async_store()
    try:
        first = UploadManager(config, first_store, FakeUploadApi())
        second = UploadManager(config, second_store, FakeUploadApi())

        await first.upload_file(make_file("a.bin", 10))

        assert len(await first.list_files()) == 1
        assert await second.list_files() == []
    finally:
        await first_store.close()
        await second_store.close()


@pytest.mark.asyncio
async def test_resume_after_local_failure_keeps_fallback_mode(
    config: UploadConfig,
    store: SqliteStateStore,
    make_file,
    monkeypatch,
) -> None:
    path = make_file("video.mp4", 10 * MIB)
    api = FakeUploadApi(fail_chunks_from=1)
    manager = UploadManager(config, store, api)
    put_chunk = store.put_chunk

    async def put_chunk_failing_on_last(record: ChunkRecord) -> None:
        if record.chunk_index == 2:
            raise LocalStoreError("disk full")
        await put_chunk(record)

    monkeypatch.setattr(store, "put_chunk", put_chunk_failing_on_last)
    with pytest.raises(LocalStoreError):
        await manager.upload_file(path)
    monkeypatch.setattr(store, "put_chunk", put_chunk)

    metadata = await store.get_session_metadata("srv-1")
    assert metadata is not None
    assert metadata.mode is UploadMode.LOCAL_FALLBACK
    assert metadata.status is UploadStatus.ERROR
    api.fail_chunks_from = None

    session = await manager.resume_upload(path, "srv-1")

    assert session.mode is UploadMode.LOCAL_FALLBACK
    assert session.status is UploadStatus.COMPLETED
    assert api.sent_indices == [0, 1]
    assert await manager.get_uploaded_chunks("srv-1") == [0, 1, 2]
