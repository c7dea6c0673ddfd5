"""Persistent store for recordings and their processing tasks."""

from __future__ import annotations

import logging
import math
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.recording import Recording
from models.task import Task
from services.status import (
    LEVEL_AUDIO_ONLY,
    REC_FAILED,
    REC_READY,
    REC_TRANSCRIBING,
    TASK_FAILED,
    TASK_PROCESSING,
    TASK_WAITING,
    recording_status_for,
    task_type_for_level,
    unify_status,
)

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000
UNCHANGED = object()
RECORDING_UPDATABLE_FIELDS = {"title", "scene", "is_starred", "markers_json"}


class RecordingNotFound(LookupError):
    """Raised when a write targets a recording that does not exist."""


class RecordingAlreadyExists(ValueError):
    """Raised when a recording id is already taken."""


def now_ms() -> int:
    return int(time.time() * 1000)


def _clip_error(message: Optional[str]) -> Optional[str]:
    if message is None:
        return None
    text = str(message).strip() or "unknown error"
    return text[:MAX_ERROR_LENGTH]


def normalize_markers(raw: Any) -> List[Dict[str, Any]]:
    """Keep well-formed {time, label} markers, ordered by time."""
    if not isinstance(raw, list):
        return []
    markers = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        value = item.get("time")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            continue
        markers.append({"time": max(float(value), 0.0), "label": str(item.get("label") or "").strip()})
    markers.sort(key=lambda m: m["time"])
    return markers


# --- serialization -----------------------------------------------------------------


def recording_to_dict(recording: Recording, include_body: bool = True) -> Dict[str, Any]:
    transcript = recording.transcript_json or {"segments": []}
    analysis = recording.analysis_json
    if not include_body:
        transcript = {"segments": []}
        analysis = None
    return {
        "id": recording.id,
        "title": recording.title,
        "level": recording.level,
        "scene": recording.scene,
        "created_at": recording.created_at,
        "duration": recording.duration,
        "status": recording.status,
        "is_starred": bool(recording.is_starred),
        "markers": recording.markers_json or [],
        "transcript": transcript,
        "analysis": analysis,
        "error": recording.error,
        "updated_at": recording.updated_at,
        "audio_url": f"/recordings/{recording.id}/audio",
    }


def task_to_dict(task: Task, title: Optional[str] = None) -> Dict[str, Any]:
    payload = {
        "id": task.id,
        "recording_id": task.recording_id,
        "type": task.type,
        "status": task.status,
        "error": task.error,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
    }
    if title is not None:
        payload["title"] = title
    return payload


# --- recordings --------------------------------------------------------------------


async def get_recording(db: AsyncSession, recording_id: str, *, for_update: bool = False) -> Optional[Recording]:
    query = select(Recording).where(Recording.id == recording_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def recording_exists(db: AsyncSession, recording_id: str) -> bool:
    result = await db.execute(select(Recording.id).where(Recording.id == recording_id))
    return result.scalar_one_or_none() is not None


async def create_recording(
    db: AsyncSession,
    *,
    recording_id: str,
    title: str,
    level: str,
    audio_path: str,
    scene: Optional[str] = None,
    created_at: Optional[int] = None,
    duration: Optional[int] = None,
    markers: Optional[Iterable[Dict[str, Any]]] = None,
    is_starred: bool = False,
) -> Recording:
    """Insert a new recording together with its waiting task.

    audio_only recordings start out Ready and never get a task.
    """
    now = now_ms()
    recording = Recording(
        id=recording_id,
        title=title,
        level=level,
        scene=scene or None,
        created_at=int(created_at) if created_at is not None else now,
        duration=max(int(duration or 0), 0),
        audio_path=audio_path,
        status=REC_READY if level == LEVEL_AUDIO_ONLY else REC_TRANSCRIBING,
        is_starred=bool(is_starred),
        markers_json=normalize_markers(list(markers or [])),
        transcript_json=None,
        analysis_json=None,
        error=None,
        updated_at=now,
    )
    db.add(recording)
    task_type = task_type_for_level(level)
    if task_type is not None:
        db.add(Task(id=recording_id, type=task_type, status=TASK_WAITING, created_at=now, updated_at=now))
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise RecordingAlreadyExists(recording_id) from exc
    await db.refresh(recording)
    return recording


async def update_recording(db: AsyncSession, recording_id: str, **fields: Any) -> Optional[Recording]:
    """Apply a patch to one recording row in a single commit."""
    unknown = set(fields) - RECORDING_UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown recording fields: {sorted(unknown)}")
    recording = await get_recording(db, recording_id, for_update=True)
    if not recording:
        return None
    for name, value in fields.items():
        setattr(recording, name, value)
    recording.updated_at = now_ms()
    await db.commit()
    await db.refresh(recording)
    return recording


async def list_recordings(db: AsyncSession) -> List[Recording]:
    result = await db.execute(select(Recording).order_by(Recording.created_at.desc()))
    return list(result.scalars().all())


# --- tasks -------------------------------------------------------------------------


async def get_task(db: AsyncSession, task_id: str, *, for_update: bool = False) -> Optional[Task]:
    query = select(Task).where(Task.id == task_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def upsert_task(
    db: AsyncSession,
    *,
    task_id: str,
    task_type: str,
    status: str = TASK_WAITING,
    error: Optional[str] = None,
) -> Task:
    """Create or overwrite the task keyed by its recording id."""
    if not await recording_exists(db, task_id):
        raise RecordingNotFound(task_id)
    now = now_ms()
    task = await get_task(db, task_id, for_update=True)
    if task is None:
        task = Task(id=task_id, created_at=now)
        db.add(task)
    task.type = task_type
    task.status = status
    task.error = _clip_error(error)
    task.updated_at = now
    await db.commit()
    await db.refresh(task)
    return task


async def set_task_status(
    db: AsyncSession, task_id: str, status: str, error: Optional[str] = None
) -> Optional[Task]:
    task = await get_task(db, task_id, for_update=True)
    if not task:
        return None
    task.status = status
    task.error = _clip_error(error)
    task.updated_at = now_ms()
    await db.commit()
    await db.refresh(task)
    return task


async def list_tasks(db: AsyncSession) -> List[Task]:
    result = await db.execute(select(Task).order_by(Task.updated_at.desc()))
    return list(result.scalars().all())


async def list_tasks_with_titles(db: AsyncSession) -> List[Tuple[Task, Optional[str]]]:
    result = await db.execute(
        select(Task, Recording.title)
        .outerjoin(Recording, Recording.id == Task.id)
        .order_by(Task.updated_at.desc())
    )
    return [(task, title) for task, title in result.all()]


# --- paired transitions ------------------------------------------------------------


async def transition(
    db: AsyncSession,
    recording_id: str,
    task_status: str,
    *,
    error: Optional[str] = None,
    transcript: Any = UNCHANGED,
    analysis: Any = UNCHANGED,
    unless_task_in: Tuple[str, ...] = (),
) -> Tuple[Optional[Recording], Optional[Task]]:
    """Move a task and its recording to matching statuses in one commit.

    Recording.status is always derived from the task status, so the pair
    cannot drift apart. A missing task row is recreated from the recording's
    level. transcript and analysis are only written when passed. When the
    task currently holds one of `unless_task_in`, nothing is written and the
    rows are returned as they are.
    """
    recording = await get_recording(db, recording_id, for_update=True)
    if not recording:
        return None, None
    task_type = task_type_for_level(recording.level)
    if task_type is None:
        raise ValueError(f"Recording {recording_id} is audio_only and has no task")

    now = now_ms()
    message = _clip_error(error)
    task = await get_task(db, recording_id, for_update=True)
    if task is not None and task.status in unless_task_in:
        return recording, task
    if task is None:
        task = Task(id=recording_id, type=task_type, created_at=now)
        db.add(task)
    task.status = task_status
    task.error = message
    task.updated_at = now

    recording.status = recording_status_for(task_status)
    recording.error = message
    if transcript is not UNCHANGED:
        recording.transcript_json = transcript
    if analysis is not UNCHANGED:
        recording.analysis_json = analysis
    recording.updated_at = now

    await db.commit()
    await db.refresh(recording)
    await db.refresh(task)
    return recording, task


async def reset_for_retry(db: AsyncSession, recording_id: str) -> Tuple[Optional[Recording], Optional[Task]]:
    """Put a recording back to Transcribing/waiting with errors cleared.

    A task a worker is processing is left untouched; check the returned
    task's status to tell the two outcomes apart.
    """
    return await transition(db, recording_id, TASK_WAITING, error=None, unless_task_in=(TASK_PROCESSING,))


async def mark_enqueue_failed(db: AsyncSession, recording_id: str, message: str):
    logger.warning("Recording %s could not be queued: %s", recording_id, message)
    return await transition(db, recording_id, TASK_FAILED, error=message)


async def mark_storage_failed(db: AsyncSession, recording_id: str, message: str) -> Optional[Recording]:
    """Fail a freshly created recording whose audio never reached disk."""
    logger.error("Audio for recording %s could not be stored: %s", recording_id, message)
    recording = await get_recording(db, recording_id, for_update=True)
    if not recording:
        return None
    if task_type_for_level(recording.level) is not None:
        recording, _ = await transition(db, recording_id, TASK_FAILED, error=message)
        return recording
    recording.status = REC_FAILED
    recording.error = _clip_error(message)
    recording.updated_at = now_ms()
    await db.commit()
    await db.refresh(recording)
    return recording


async def get_status_view(db: AsyncSession, recording_id: str) -> Optional[Dict[str, Any]]:
    """Recording, its task (if any) and the unified status for detail views."""
    recording = await get_recording(db, recording_id)
    if not recording:
        return None
    task = await get_task(db, recording_id)
    return {
        "recording": recording_to_dict(recording),
        "task": task_to_dict(task) if task else None,
        "status": unify_status(recording, task),
    }
