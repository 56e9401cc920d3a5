"""Tests for ImportOrchestrator and ImportPipeline with fake services."""
import asyncio
import json

import httpx
import pytest

from importer.errors import APIError
from importer.models import ImportConfig, ImportItem, ImportOptions, ImportStage, SourceMetadata
from importer.orchestrator import INTERRUPTED_MESSAGE, ImportOrchestrator
from importer.services.destination import ExistingRecord
from importer.services.store import MemoryStore

from fakes import CREATED, make_destination, make_metadata, make_source


def _orchestrator(store, config, source=None, destination=None):
    return ImportOrchestrator(
        source=source or make_source(),
        destination=destination or make_destination(),
        store=store,
        config=config,
    )


def _recorder(orchestrator):
    events = []
    orchestrator.on_item_event(events.append)
    return events


def test_requires_tokens_or_clients():
    with pytest.raises(ValueError):
        ImportOrchestrator(store=MemoryStore())


@pytest.mark.asyncio
async def test_successful_import(store, config):
    source = make_source()
    destination = make_destination(statuses=["PROCESSING", "COMPLETE"])
    importer = _orchestrator(store, config, source, destination)
    events = _recorder(importer)

    item = importer.start_import("76979871", ImportOptions(visibility="public", tags="a, b"))
    await importer.wait()

    final = importer.queue.get(item.id)
    assert final.stage == ImportStage.COMPLETE
    assert final.progress == 100
    assert final.error_message is None
    assert final.destination_id == "ign-1"
    assert final.thumbnail_url == "https://thumbs.example/ign-1.jpg"
    assert final.source_metadata.title == "Company Retreat 2024"

    # Largest non-source rendition is downloaded, widest thumbnail after it
    links = [c.args[0] for c in source.download.await_args_list]
    assert links == ["https://cdn.example/1080.mp4", "https://i.example/1920.jpg"]

    fields = destination.create_record.await_args.args[0]
    assert fields["visibility"] == "public"
    assert fields["tags"] == ["a", "b"]
    assert fields["customMetadata"] == {"vimeoId": "76979871"}
    assert destination.get_status.await_count == 2

    stages = [e.item.stage for e in events if e.item_id == item.id]
    order = [
        ImportStage.CHECKING,
        ImportStage.FETCHING_METADATA,
        ImportStage.DOWNLOADING,
        ImportStage.CREATING_RECORD,
        ImportStage.UPLOADING,
        ImportStage.UPLOADING_THUMBNAIL,
        ImportStage.POLLING,
        ImportStage.COMPLETE,
    ]
    assert [s for i, s in enumerate(stages) if i == 0 or s != stages[i - 1]] == order

    progress = [e.progress for e in events if e.item_id == item.id]
    assert progress == sorted(progress)
    assert len(importer.poller) == 0

    persisted = json.loads(store.load(config.storage_key))
    assert persisted[0]["stage"] == "complete"


@pytest.mark.asyncio
async def test_duplicate_stops_before_metadata(store, config):
    source = make_source()
    destination = make_destination()
    destination.find_by_source_tag.return_value = ExistingRecord("ign-9", "Launch Video")
    importer = _orchestrator(store, config, source, destination)
    events = _recorder(importer)

    item = importer.start_import("123")
    await importer.wait()

    final = importer.queue.get(item.id)
    assert final.stage == ImportStage.ERROR
    assert final.error_message == 'Already imported (ID: ign-9, Title: "Launch Video")'
    assert ImportStage.FETCHING_METADATA not in [e.item.stage for e in events]
    source.get_metadata.assert_not_awaited()
    destination.create_record.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_source_video(store, config):
    source = make_source()
    source.get_metadata.side_effect = APIError(404, {"message": "Video not found"})
    importer = _orchestrator(store, config, source)

    item = importer.start_import("404")
    await importer.wait()

    final = importer.queue.get(item.id)
    assert final.stage == ImportStage.ERROR
    assert final.error_message == "404: Video not found"
    assert not importer.poller.is_active(item.id)


@pytest.mark.asyncio
async def test_no_response_from_server(store, config):
    destination = make_destination()
    request = httpx.Request("GET", "https://app.ignitevideo.cloud/api/videos")
    destination.find_by_source_tag.side_effect = httpx.ConnectError("down", request=request)
    importer = _orchestrator(store, config, destination=destination)

    item = importer.start_import("1")
    await importer.wait()

    assert importer.queue.get(item.id).error_message == "No response from server"


@pytest.mark.asyncio
async def test_only_source_rendition(store, config):
    metadata = SourceMetadata(title="Raw only", renditions=make_metadata().renditions[:1])
    destination = make_destination()
    importer = _orchestrator(store, config, make_source(metadata), destination)

    item = importer.start_import("1")
    await importer.wait()

    final = importer.queue.get(item.id)
    assert final.stage == ImportStage.ERROR
    assert final.error_message == "No suitable download rendition found."
    destination.create_record.assert_not_awaited()


@pytest.mark.asyncio
async def test_file_size_limit(store):
    config = ImportConfig(poll_interval=0.01, max_file_size_mb=0.001)
    importer = _orchestrator(store, config)

    item = importer.start_import("1")
    await importer.wait()

    final = importer.queue.get(item.id)
    assert final.stage == ImportStage.ERROR
    assert final.error_message.startswith("Video is too large")


@pytest.mark.asyncio
async def test_upload_failure_keeps_destination(store, config):
    destination = make_destination()
    destination.upload_binary.side_effect = APIError(403, {"message": "Signature expired"})
    importer = _orchestrator(store, config, destination=destination)

    item = importer.start_import("1")
    await importer.wait()

    final = importer.queue.get(item.id)
    assert final.stage == ImportStage.ERROR
    assert final.destination_id == "ign-1"
    assert final.error_message == "403: Signature expired"
    destination.get_status.assert_not_awaited()


@pytest.mark.asyncio
async def test_thumbnail_failure_is_not_fatal(store, config):
    destination = make_destination()
    destination.upload_thumbnail.side_effect = APIError(500, "boom")
    importer = _orchestrator(store, config, destination=destination)

    item = importer.start_import("1")
    await importer.wait()

    final = importer.queue.get(item.id)
    assert final.stage == ImportStage.COMPLETE
    assert final.thumbnail_url is None


@pytest.mark.asyncio
async def test_no_thumbnail_skips_stage(store, config):
    source = make_source(make_metadata(with_thumbnail=False))
    destination = make_destination()
    importer = _orchestrator(store, config, source, destination)
    events = _recorder(importer)

    item = importer.start_import("1")
    await importer.wait()

    assert importer.queue.get(item.id).stage == ImportStage.COMPLETE
    assert ImportStage.UPLOADING_THUMBNAIL not in [e.item.stage for e in events]
    destination.upload_thumbnail.assert_not_awaited()


@pytest.mark.asyncio
async def test_encoding_failure(store, config):
    destination = make_destination(statuses=["PROCESSING", "failed"])
    importer = _orchestrator(store, config, destination=destination)

    item = importer.start_import("1")
    await importer.wait()

    final = importer.queue.get(item.id)
    assert final.stage == ImportStage.ERROR
    assert final.error_message == "Encoding failed: FAILED"
    assert len(importer.poller) == 0


@pytest.mark.asyncio
async def test_options_are_snapshotted(store, config):
    destination = make_destination()
    importer = _orchestrator(store, config, destination=destination)

    first = importer.start_import("1", ImportOptions(visibility="public"))
    second = importer.start_import("2", ImportOptions(visibility="private", language="de"))
    await importer.wait()

    assert importer.queue.get(first.id).options.visibility == "public"
    assert importer.queue.get(second.id).options.language == "de"
    visibilities = sorted(c.args[0]["visibility"] for c in destination.create_record.await_args_list)
    assert visibilities == ["private", "public"]


@pytest.mark.asyncio
async def test_empty_source_id_rejected(store, config):
    importer = _orchestrator(store, config)
    with pytest.raises(ValueError):
        importer.start_import("  ")


@pytest.mark.asyncio
async def test_resume_registers_exactly_one_poll(config):
    polling = (
        ImportItem.create("1")
        .with_destination("ign-1")
        .advance(ImportStage.POLLING, "Processing...", 98)
    )
    uploading = ImportItem.create("2").with_destination("ign-2").advance(ImportStage.UPLOADING, progress=70)
    store = MemoryStore({config.storage_key: json.dumps([polling.to_dict(), uploading.to_dict()])})
    destination = make_destination()
    destination.get_status.return_value = "PROCESSING"
    importer = _orchestrator(store, config, destination=destination)

    importer.load()
    assert importer.resume() == 1
    assert importer.resume() == 0
    task = importer.poll_status(polling.id)
    assert task is not None
    assert importer.poll_status(polling.id) is task
    assert len(importer.poller) == 1

    interrupted = importer.queue.get(uploading.id)
    assert interrupted.stage == ImportStage.ERROR
    assert interrupted.error_message == INTERRUPTED_MESSAGE
    assert not importer.poller.is_active(uploading.id)

    await asyncio.sleep(0.05)
    assert importer.queue.get(polling.id).status_text == "Processing: PROCESSING"
    await importer.close()
    assert len(importer.poller) == 0


@pytest.mark.asyncio
async def test_remove_cancels_poll(config):
    polling = ImportItem.create("1").with_destination("ign-1").advance(ImportStage.POLLING)
    store = MemoryStore({config.storage_key: json.dumps([polling.to_dict()])})
    destination = make_destination()
    destination.get_status.return_value = "PROCESSING"
    importer = _orchestrator(store, config, destination=destination)
    importer.load()
    importer.resume()

    await asyncio.sleep(0.005)
    assert destination.get_status.await_count >= 1

    importer.remove(polling.id)
    calls = destination.get_status.await_count
    await asyncio.sleep(0.05)

    assert destination.get_status.await_count == calls
    assert polling.id not in importer.queue
    assert len(importer.poller) == 0


@pytest.mark.asyncio
async def test_fail_cancels_poll(config):
    polling = ImportItem.create("1").with_destination("ign-1").advance(ImportStage.POLLING)
    store = MemoryStore({config.storage_key: json.dumps([polling.to_dict()])})
    destination = make_destination()
    destination.get_status.return_value = "PROCESSING"
    importer = _orchestrator(store, config, destination=destination)
    importer.load()
    importer.resume()

    failed = importer.fail(polling.id, RuntimeError("Stopped by user"))

    assert failed.stage == ImportStage.ERROR
    assert failed.error_message == "Stopped by user"
    assert failed.destination_id == "ign-1"
    assert not importer.poller.is_active(polling.id)
    await importer.close()


@pytest.mark.asyncio
async def test_removed_during_transfer(store, config):
    destination = make_destination()
    gate = asyncio.Event()

    async def slow_create(fields):
        await gate.wait()
        return CREATED

    destination.create_record.side_effect = slow_create
    importer = _orchestrator(store, config, destination=destination)

    item = importer.start_import("1")
    await asyncio.sleep(0.01)
    assert importer.has_active_transfers
    importer.remove(item.id)
    gate.set()
    await importer.wait()

    assert item.id not in importer.queue
    assert not importer.has_active_transfers
    destination.upload_binary.assert_not_awaited()


@pytest.mark.asyncio
async def test_clear_finished(store, config):
    importer = _orchestrator(store, config)
    done = importer.start_import("1")
    await importer.wait()

    assert importer.clear_finished() == [done.id]
    assert importer.items == ()
