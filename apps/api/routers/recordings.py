"""
Recording router: upload, list, status and audio retrieval.
"""

import asyncio
import json
import logging
import os
import re
from pathlib import Path
from typing import Iterator, Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, UploadFile
from fastapi.responses import Response, StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.rate_limit import rate_limit
from services import store
from services.audio_files import (
    UploadTooLarge,
    audio_extension,
    discard_upload,
    guess_audio_mime,
    promote_upload,
    stage_upload,
    upload_path_for_id,
)
from services.recording_queue import JobAlreadyQueued, RecordingQueue, get_recording_queue
from services.status import LEVEL_AUDIO_ONLY, LEVELS, SCENES

router = APIRouter()
logger = logging.getLogger(__name__)

RECORDING_ID_RE = re.compile(r"^[a-f0-9-]{16,64}$")
RANGE_RE = re.compile(r"^bytes=(\d+)-(\d*)$")
DEFAULT_TITLE = "New recording"
STREAM_CHUNK_BYTES = 64 * 1024


class RecordingPatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    is_starred: Optional[bool] = None


class RangeNotSatisfiable(ValueError):
    pass


def _is_accepted_audio_type(content_type: Optional[str]) -> bool:
    value = (content_type or "").lower()
    return value.startswith("audio/") or value == "video/webm"


def _parse_markers(raw: Optional[str]) -> list:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed markers_json")
        return []
    return parsed if isinstance(parsed, list) else []


def _validate_upload_fields(recording_id: str, level: str, scene: Optional[str]) -> None:
    if not RECORDING_ID_RE.match(recording_id or ""):
        raise HTTPException(
            status_code=400,
            detail="Invalid id: expected 16-64 characters of lowercase hex digits and hyphens",
        )
    if level not in LEVELS:
        raise HTTPException(status_code=400, detail=f"Invalid level: expected one of {', '.join(LEVELS)}")
    if scene and scene not in SCENES:
        raise HTTPException(status_code=400, detail=f"Invalid scene: expected one of {', '.join(SCENES)}")


def parse_range(header: str, total: int) -> Tuple[int, int]:
    """Resolve a single `bytes=start-end` range against a file size."""
    match = RANGE_RE.match(header.strip())
    if not match:
        raise RangeNotSatisfiable(header)
    start = int(match.group(1))
    end = int(match.group(2)) if match.group(2) else total - 1
    end = min(end, total - 1)
    if start >= total or start > end:
        raise RangeNotSatisfiable(header)
    return start, end


def _iter_file_range(path: Path, start: int, end: int) -> Iterator[bytes]:
    remaining = end - start + 1
    with open(path, "rb") as handle:
        handle.seek(start)
        while remaining > 0:
            chunk = handle.read(min(STREAM_CHUNK_BYTES, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


@router.post("")
async def upload_recording(
    id: str = Form(...),
    level: str = Form(...),
    title: Optional[str] = Form(None),
    scene: Optional[str] = Form(None),
    created_at: Optional[int] = Form(None),
    duration: Optional[int] = Form(0),
    markers_json: Optional[str] = Form(None),
    audio: Optional[UploadFile] = File(None),
    _rate_limit: None = Depends(rate_limit("upload", limit=settings.UPLOAD_RATE_LIMIT_PER_HOUR)),
    recording_queue: RecordingQueue = Depends(get_recording_queue),
    db: AsyncSession = Depends(get_db),
):
    """Store an uploaded recording and queue it for processing."""
    recording_id = (id or "").strip()
    scene = (scene or "").strip() or None
    _validate_upload_fields(recording_id, level, scene)

    if await store.recording_exists(db, recording_id):
        raise HTTPException(status_code=409, detail="Recording already exists")
    if audio is None:
        raise HTTPException(status_code=400, detail="Missing audio file field 'audio'")
    if not _is_accepted_audio_type(audio.content_type):
        raise HTTPException(status_code=400, detail="Audio must be an audio/* or video/webm upload")

    try:
        staged_path, size = await asyncio.to_thread(
            stage_upload, audio.file, recording_id, settings.UPLOAD_MAX_BYTES
        )
    except UploadTooLarge as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    if size == 0:
        discard_upload(staged_path)
        raise HTTPException(status_code=400, detail="Audio file is empty")

    final_path = upload_path_for_id(recording_id, audio_extension(audio.filename))
    try:
        recording = await store.create_recording(
            db,
            recording_id=recording_id,
            title=(title or "").strip() or DEFAULT_TITLE,
            level=level,
            scene=scene,
            created_at=created_at,
            duration=duration,
            audio_path=str(final_path),
            markers=_parse_markers(markers_json),
        )
    except store.RecordingAlreadyExists as exc:
        discard_upload(staged_path)
        raise HTTPException(status_code=409, detail="Recording already exists") from exc
    try:
        await asyncio.to_thread(promote_upload, staged_path, final_path)
    except OSError as exc:
        discard_upload(staged_path)
        await store.mark_storage_failed(db, recording_id, f"Failed to store audio: {exc}")
        raise HTTPException(status_code=500, detail="Could not store the uploaded audio") from exc
    logger.info("Stored recording %s (%s bytes, level=%s)", recording_id, size, level)

    if level != LEVEL_AUDIO_ONLY:
        try:
            await asyncio.to_thread(recording_queue.enqueue, recording_id)
        except JobAlreadyQueued:
            logger.info("Recording %s already queued", recording_id)
        except Exception as exc:
            await store.mark_enqueue_failed(db, recording_id, f"Failed to enqueue processing job: {exc}")
            raise HTTPException(
                status_code=503,
                detail="Recording queue unavailable. Check Redis/worker availability and retry.",
            ) from exc
        recording = await store.get_recording(db, recording_id)

    return {"recording": store.recording_to_dict(recording)}


@router.get("")
async def list_recordings(
    include_body: bool = Query(False, description="Include transcript and analysis bodies"),
    db: AsyncSession = Depends(get_db),
):
    """List recordings, newest first."""
    recordings = await store.list_recordings(db)
    return {"recordings": [store.recording_to_dict(r, include_body=include_body) for r in recordings]}


@router.get("/{recording_id}")
async def get_recording_status(recording_id: str, db: AsyncSession = Depends(get_db)):
    """Recording with its task and the unified status."""
    view = await store.get_status_view(db, recording_id)
    if view is None:
        raise HTTPException(status_code=404, detail="Recording not found")
    return view


@router.patch("/{recording_id}")
async def patch_recording(recording_id: str, patch: RecordingPatch, db: AsyncSession = Depends(get_db)):
    """Rename or star a recording."""
    fields = patch.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="Nothing to update")
    if "title" in fields:
        fields["title"] = fields["title"].strip() or DEFAULT_TITLE
    recording = await store.update_recording(db, recording_id, **fields)
    if recording is None:
        raise HTTPException(status_code=404, detail="Recording not found")
    return {"recording": store.recording_to_dict(recording)}


@router.get("/{recording_id}/audio")
async def get_recording_audio(
    recording_id: str,
    range_header: Optional[str] = Header(None, alias="Range"),
    db: AsyncSession = Depends(get_db),
):
    """Serve the recording's audio, honouring single byte ranges."""
    recording = await store.get_recording(db, recording_id)
    if recording is None:
        raise HTTPException(status_code=404, detail="Recording not found")
    path = Path(recording.audio_path)
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Audio file not found")

    media_type = guess_audio_mime(str(path))
    total = os.path.getsize(path)
    if not range_header:
        return StreamingResponse(
            _iter_file_range(path, 0, total - 1),
            media_type=media_type,
            headers={"Accept-Ranges": "bytes", "Content-Length": str(total)},
        )

    try:
        start, end = parse_range(range_header, total)
    except RangeNotSatisfiable:
        return Response(
            status_code=416,
            headers={"Content-Range": f"bytes */{total}", "Accept-Ranges": "bytes"},
        )

    return StreamingResponse(
        _iter_file_range(path, start, end),
        status_code=206,
        media_type=media_type,
        headers={
            "Accept-Ranges": "bytes",
            "Content-Range": f"bytes {start}-{end}/{total}",
            "Content-Length": str(end - start + 1),
        },
    )
