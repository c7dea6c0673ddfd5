import pytest

from services.status import (
    STATUS_UNKNOWN,
    is_terminal,
    recording_status_for,
    task_type_for_level,
    unify_status,
)


def _recording(status, level="asset", segments=None, analysis=None):
    return {
        "id": "rec",
        "level": level,
        "status": status,
        "transcript": {"segments": segments or []},
        "analysis": analysis,
    }


@pytest.mark.parametrize("task_status", ["waiting", "processing", "done", "failed"])
def test_task_status_is_authoritative(task_status):
    recording = _recording("Ready", segments=[{"text": "hi"}])
    assert unify_status(recording, {"status": task_status}) == task_status


def test_failed_recording_without_task_is_failed():
    assert unify_status(_recording("Failed")) == "failed"


def test_ready_recording_with_output_is_done():
    assert unify_status(_recording("Ready", segments=[{"text": "hello"}])) == "done"
    assert unify_status(_recording("Ready", analysis={"summary": "s", "action_items": []})) == "done"


def test_ready_recording_without_output_is_unknown():
    assert unify_status(_recording("Ready")) == STATUS_UNKNOWN


def test_audio_only_ready_is_done_without_output():
    assert unify_status(_recording("Ready", level="audio_only")) == "done"


def test_in_flight_recording_statuses_map_to_task_vocabulary():
    assert unify_status(_recording("Transcribing")) == "waiting"
    assert unify_status(_recording("Processing")) == "processing"


def test_unrecognized_task_status_falls_back_to_recording():
    assert unify_status(_recording("Failed"), {"status": "bogus"}) == "failed"
    assert unify_status(_recording("archived")) == STATUS_UNKNOWN


def test_unify_status_accepts_orm_style_objects():
    class Row:
        def __init__(self, **kw):
            self.__dict__.update(kw)

    recording = Row(level="text", status="Ready", transcript_json={"segments": [{"text": "x"}]}, analysis_json=None)
    assert unify_status(recording, None) == "done"
    assert unify_status(recording, Row(status="processing")) == "processing"


def test_level_and_status_helpers():
    assert task_type_for_level("asset") == "transcribe+analyze"
    assert task_type_for_level("text") == "transcribe"
    assert task_type_for_level("audio_only") is None
    assert recording_status_for("waiting") == "Transcribing"
    assert recording_status_for("failed") == "Failed"
    assert is_terminal("done") and is_terminal("Ready")
    assert not is_terminal("processing")
    assert not is_terminal(None)
