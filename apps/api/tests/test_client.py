import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from client import RecordingStatusPoller, TaskQueueView, VoiceFlowAPIError, VoiceFlowClient, recording_to_markdown
from conftest import FakeProvider, new_recording_id
from services.processing import process_recording_job_async


def _view(status, task_status=None, level="asset"):
    return {
        "recording": {"id": "r", "level": level, "status": status, "transcript": {"segments": []}, "analysis": None},
        "task": {"id": "r", "status": task_status} if task_status else None,
    }


@pytest.mark.asyncio
async def test_client_round_trip_through_api(api_client, fake_queue):
    client = VoiceFlowClient(http_client=api_client)
    recording_id = new_recording_id()

    created = await client.upload_recording(
        recording_id,
        b"0123456789",
        level="text",
        title="Lecture 4",
        scene="lecture",
        created_at=1760000000000,
        duration=61,
        markers=[{"time": 5, "label": "key point"}],
    )

    assert created["id"] == recording_id
    assert created["status"] == "Transcribing"
    fake_queue.enqueue.assert_called_once_with(recording_id)
    assert [r["id"] for r in await client.list_recordings()] == [recording_id]
    assert (await client.get_recording(recording_id))["status"] == "waiting"
    assert (await client.list_tasks())[0]["title"] == "Lecture 4"
    assert await client.fetch_audio(recording_id) == b"0123456789"
    assert await client.fetch_audio(recording_id, (2, 4)) == b"234"
    assert await client.fetch_audio(recording_id, (7, None)) == b"789"
    assert await client.retry_task(recording_id) == {"ok": True, "duplicated": False}

    with pytest.raises(VoiceFlowAPIError) as excinfo:
        await client.upload_recording(recording_id, b"again", level="text")
    assert excinfo.value.status_code == 409


@pytest.mark.asyncio
async def test_poller_stops_once_recording_is_done(api_client, upload):
    recording_id = new_recording_id()
    await upload(recording_id, level="asset")
    updates = []
    poller = RecordingStatusPoller(
        VoiceFlowClient(http_client=api_client),
        recording_id,
        interval=0.01,
        on_update=lambda view: updates.append(view["status"]),
    )

    task = poller.start()
    await asyncio.sleep(0.05)
    assert poller.status == "waiting"
    await process_recording_job_async(recording_id, provider_factory=FakeProvider)
    last = await asyncio.wait_for(task, timeout=5)

    assert last["status"] == "done"
    assert updates[0] == "waiting"
    assert updates[-1] == "done"
    assert task.done()


@pytest.mark.asyncio
async def test_poller_skips_failed_cycles_silently():
    request = httpx.Request("GET", "http://test/recordings/r")
    client = AsyncMock()
    client.get_recording.side_effect = [
        httpx.ConnectError("offline", request=request),
        VoiceFlowAPIError(502, "bad gateway"),
        _view("Processing", "processing"),
        _view("Failed", "failed"),
    ]
    poller = RecordingStatusPoller(client, "r", interval=0)

    last = await asyncio.wait_for(poller.run(), timeout=5)

    assert last["status"] == "failed"
    assert poller.skipped_cycles == 2
    assert client.get_recording.await_count == 4


@pytest.mark.asyncio
async def test_poller_stop_ends_background_polling():
    client = AsyncMock()
    client.get_recording.return_value = _view("Processing", "processing")

    async with RecordingStatusPoller(client, "r", interval=10) as poller:
        await asyncio.sleep(0.01)
        assert poller.status == "processing"

    assert poller._task is None
    assert client.get_recording.await_count == 1


def test_task_queue_view_uses_single_status_rule():
    recordings = [
        {"id": "a", "title": "A", "level": "asset", "status": "Ready",
         "transcript": {"segments": [{"text": "hi"}]}, "analysis": None},
        {"id": "b", "title": "B", "level": "text", "status": "Transcribing",
         "transcript": {"segments": []}, "analysis": None},
        {"id": "c", "title": "C", "level": "asset", "status": "Failed",
         "transcript": {"segments": []}, "analysis": None},
        {"id": "d", "title": "D", "level": "audio_only", "status": "Ready",
         "transcript": {"segments": []}, "analysis": None},
    ]
    tasks = [
        {"id": "b", "recording_id": "b", "type": "transcribe", "status": "processing", "title": "B"},
        {"id": "c", "recording_id": "c", "type": "transcribe+analyze", "status": "failed", "title": "C"},
    ]

    view = TaskQueueView(recordings, tasks)

    assert view.status_for("a") == "done"
    assert view.status_for("b") == "processing"
    assert view.status_for("c") == "failed"
    assert view.status_for("missing") == "unknown"
    assert [row["id"] for row in view.rows()] == ["a", "b", "c"]
    assert view.counts() == {"pending": 1, "failed": 1, "done": 1}


@pytest.mark.asyncio
async def test_task_queue_view_loads_from_api(api_client, upload):
    waiting_id = new_recording_id()
    done_id = new_recording_id()
    await upload(waiting_id, level="text")
    await upload(done_id, level="asset")
    await process_recording_job_async(done_id, provider_factory=FakeProvider)

    view = await TaskQueueView.load(VoiceFlowClient(http_client=api_client))

    assert view.status_for(waiting_id) == "waiting"
    assert view.status_for(done_id) == "done"
    assert view.counts() == {"pending": 1, "failed": 0, "done": 1}


def test_recording_to_markdown():
    recording = {
        "title": "Weekly sync",
        "created_at": 1760000000000,
        "duration": 125,
        "analysis": {"summary": "We agreed to ship.", "action_items": ["Ship beta", " Write notes "]},
        "transcript": {
            "segments": [
                {"id": 1, "start_time": 0, "speaker": "Speaker 1", "text": "Hello"},
                {"id": 2, "start_time": 65.4, "speaker": "Speaker 1", "text": "Let's ship "},
            ]
        },
    }

    markdown = recording_to_markdown(recording)

    assert markdown.startswith("# Weekly sync\n")
    assert "- Duration: 2:05" in markdown
    assert "## Summary\nWe agreed to ship." in markdown
    assert "- [ ] Ship beta" in markdown
    assert "- [ ] Write notes" in markdown
    assert "- **0:00** Hello" in markdown
    assert "- **1:05** Let's ship" in markdown


def test_recording_to_markdown_without_transcript():
    markdown = recording_to_markdown({"title": "Empty", "duration": 0, "transcript": {"segments": []}})
    assert "_No transcript yet_" in markdown
    assert "## Summary" not in markdown


@pytest.mark.asyncio
async def test_poller_stops_on_settled_recording_without_task():
    client = AsyncMock()
    client.get_recording.return_value = _view("Ready")

    last = await asyncio.wait_for(RecordingStatusPoller(client, "r", interval=10).run(), timeout=5)

    assert last["status"] == "unknown"
    assert client.get_recording.await_count == 1
