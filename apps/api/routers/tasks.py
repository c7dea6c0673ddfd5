"""
Task router: queue console listing and manual retry.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException
from rq.job import JobStatus
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.rate_limit import rate_limit
from services import store
from services.recording_queue import JobAlreadyQueued, RecordingQueue, get_recording_queue
from services.status import LEVEL_AUDIO_ONLY, TASK_PROCESSING

router = APIRouter()
logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown recording"


@router.get("")
async def list_tasks(db: AsyncSession = Depends(get_db)):
    """All tasks, most recently updated first, with their recording titles."""
    rows = await store.list_tasks_with_titles(db)
    return {"tasks": [store.task_to_dict(task, title=title or UNKNOWN_TITLE) for task, title in rows]}


@router.get("/{task_id}")
async def get_task(task_id: str, db: AsyncSession = Depends(get_db)):
    task = await store.get_task(db, task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"task": store.task_to_dict(task)}


@router.post("/{task_id}/retry")
async def retry_task(
    task_id: str,
    _rate_limit: None = Depends(rate_limit("retry", limit=settings.RETRY_RATE_LIMIT_PER_HOUR)),
    recording_queue: RecordingQueue = Depends(get_recording_queue),
    db: AsyncSession = Depends(get_db),
):
    """Reset a recording to waiting and queue it again.

    A job that is already queued or running for the same recording makes this
    a no-op success (`duplicated: true`).
    """
    recording = await store.get_recording(db, task_id)
    if not recording:
        raise HTTPException(status_code=404, detail="Recording not found")
    if recording.level == LEVEL_AUDIO_ONLY:
        raise HTTPException(status_code=400, detail="audio_only recordings are not processed")

    try:
        job_status = await asyncio.to_thread(recording_queue.job_status, task_id)
    except Exception as exc:
        raise HTTPException(
            status_code=503,
            detail="Recording queue unavailable. Check Redis/worker availability and retry.",
        ) from exc
    if job_status == JobStatus.STARTED:
        # A worker owns the recording right now; leave its rows alone.
        logger.info("Retry for %s ignored: job is running", task_id)
        return {"ok": True, "duplicated": True}

    _, task = await store.reset_for_retry(db, task_id)
    if task is not None and task.status == TASK_PROCESSING:
        logger.info("Retry for %s ignored: a worker picked the task up", task_id)
        return {"ok": True, "duplicated": True}

    try:
        await asyncio.to_thread(recording_queue.enqueue, task_id)
    except JobAlreadyQueued:
        logger.info("Retry for %s joined the pending job", task_id)
        return {"ok": True, "duplicated": True}
    except Exception as exc:
        await store.mark_enqueue_failed(db, task_id, f"Failed to enqueue processing job: {exc}")
        raise HTTPException(
            status_code=503,
            detail="Recording queue unavailable. Check Redis/worker availability and retry.",
        ) from exc

    logger.info("Recording %s re-queued", task_id)
    return {"ok": True, "duplicated": False}
