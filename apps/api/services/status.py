"""Status vocabulary shared by the store, the worker and every status view.

Recordings and tasks are updated independently, so anything that shows a
status must go through :func:`unify_status` rather than reading either row
on its own.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

# Recording.level
LEVEL_ASSET = "asset"
LEVEL_TEXT = "text"
LEVEL_AUDIO_ONLY = "audio_only"
LEVELS = (LEVEL_ASSET, LEVEL_TEXT, LEVEL_AUDIO_ONLY)

SCENES = ("meeting", "lecture", "interview", "idea")

# Recording.status
REC_TRANSCRIBING = "Transcribing"
REC_PROCESSING = "Processing"
REC_READY = "Ready"
REC_FAILED = "Failed"
RECORDING_TERMINAL_STATUSES = (REC_READY, REC_FAILED)

# Task.status
TASK_WAITING = "waiting"
TASK_PROCESSING = "processing"
TASK_DONE = "done"
TASK_FAILED = "failed"
TASK_TERMINAL_STATUSES = (TASK_DONE, TASK_FAILED)

# Task.type
TASK_TYPE_TRANSCRIBE = "transcribe"
TASK_TYPE_TRANSCRIBE_ANALYZE = "transcribe+analyze"

# Unified status adds one value for rows that carry no evidence either way.
STATUS_UNKNOWN = "unknown"

TASK_TO_RECORDING_STATUS = {
    TASK_WAITING: REC_TRANSCRIBING,
    TASK_PROCESSING: REC_PROCESSING,
    TASK_DONE: REC_READY,
    TASK_FAILED: REC_FAILED,
}
RECORDING_TO_TASK_STATUS = {rec: task for task, rec in TASK_TO_RECORDING_STATUS.items()}


def task_type_for_level(level: str) -> Optional[str]:
    """Task type a recording level needs, or None when it is never processed."""
    if level == LEVEL_ASSET:
        return TASK_TYPE_TRANSCRIBE_ANALYZE
    if level == LEVEL_TEXT:
        return TASK_TYPE_TRANSCRIBE
    return None


def recording_status_for(task_status: str) -> str:
    return TASK_TO_RECORDING_STATUS[task_status]


def is_terminal(status: Optional[str]) -> bool:
    """True for both task-side and recording-side terminal values."""
    return status in TASK_TERMINAL_STATUSES or status in RECORDING_TERMINAL_STATUSES


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _has_transcript(recording: Any) -> bool:
    transcript = _field(recording, "transcript")
    if transcript is None:
        transcript = _field(recording, "transcript_json")
    segments = _field(transcript, "segments") or []
    return len(segments) > 0


def _has_analysis(recording: Any) -> bool:
    analysis = _field(recording, "analysis")
    if analysis is None:
        analysis = _field(recording, "analysis_json")
    return bool(analysis)


def unify_status(recording: Any, task: Any = None) -> str:
    """Return one of waiting/processing/done/failed/unknown for a recording.

    Accepts ORM rows or API payload dicts. A task, when present, is
    authoritative. Without one the recording's own fields decide, and a
    recording that claims to be finished without any stored output does not
    count as done.
    """
    task_status = _field(task, "status")
    if task_status in TASK_TO_RECORDING_STATUS:
        return task_status

    rec_status = _field(recording, "status")
    if rec_status == REC_FAILED:
        return TASK_FAILED
    if rec_status == REC_READY:
        if _field(recording, "level") == LEVEL_AUDIO_ONLY:
            return TASK_DONE
        if _has_transcript(recording) or _has_analysis(recording):
            return TASK_DONE
        return STATUS_UNKNOWN
    if rec_status in RECORDING_TO_TASK_STATUS:
        return RECORDING_TO_TASK_STATUS[rec_status]
    return STATUS_UNKNOWN
