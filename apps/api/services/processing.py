"""Recording processing pipeline executed by the RQ worker."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from config import provider_credential_name
from database import async_session_maker, engine
from providers import TranscriptionProvider, get_provider
from services import store
from services.audio_files import guess_audio_mime
from services.status import LEVEL_ASSET, LEVEL_AUDIO_ONLY, TASK_DONE, TASK_FAILED, TASK_PROCESSING
from services.transcript import normalize_analysis, normalize_segments, placeholder_result, transcript_text

logger = logging.getLogger(__name__)


class RecordingJobError(RuntimeError):
    """The job cannot run: unknown recording or unreadable audio."""


async def _run_provider(
    provider: TranscriptionProvider,
    audio_path: Path,
    level: str,
    scene: Optional[str],
) -> tuple:
    audio = await asyncio.to_thread(audio_path.read_bytes)
    raw_segments = await asyncio.to_thread(
        provider.transcribe,
        audio,
        filename=audio_path.name,
        mime_type=guess_audio_mime(str(audio_path)),
    )
    segments = normalize_segments(raw_segments)
    if not segments:
        logger.warning("Provider returned no usable segments; storing placeholder transcript")
        return placeholder_result(level)

    analysis = None
    if level == LEVEL_ASSET:
        raw_analysis = await asyncio.to_thread(provider.analyze, transcript_text(segments), scene)
        analysis = normalize_analysis(raw_analysis)
    return {"segments": segments}, analysis


async def process_recording_job_async(
    recording_id: str,
    provider_factory: Callable[[], Optional[TranscriptionProvider]] = get_provider,
) -> Dict[str, Any]:
    """Drive one recording through waiting -> processing -> done/failed.

    Both rows are flipped to processing before any I/O on the audio or the
    provider. Failures are stored on both rows and re-raised so the queue's
    retry policy decides what happens next.
    """
    if not recording_id:
        raise RecordingJobError("Missing recording id")

    async with async_session_maker() as db:
        recording = await store.get_recording(db, recording_id)
        if not recording:
            raise RecordingJobError(f"Recording {recording_id} not found")
        if recording.level == LEVEL_AUDIO_ONLY:
            logger.info("Recording %s is audio_only; nothing to process", recording_id)
            return {"ok": True, "skipped": True}
        level, scene, audio_path = recording.level, recording.scene, Path(recording.audio_path)
        await store.transition(db, recording_id, TASK_PROCESSING)
    logger.info("Processing recording %s (level=%s)", recording_id, level)

    provider: Optional[TranscriptionProvider] = None
    try:
        if not audio_path.is_file():
            raise RecordingJobError(f"Audio file for recording {recording_id} does not exist")

        provider = provider_factory()
        if provider is None:
            credential = provider_credential_name()
            logger.warning("%s is not configured; storing placeholder output for %s", credential, recording_id)
            transcript, analysis = placeholder_result(level, credential)
        else:
            transcript, analysis = await _run_provider(provider, audio_path, level, scene)

        async with async_session_maker() as db:
            await store.transition(db, recording_id, TASK_DONE, transcript=transcript, analysis=analysis)
        logger.info(
            "Recording %s done with %s segments", recording_id, len(transcript.get("segments") or [])
        )
        return {"ok": True}
    except Exception as exc:
        message = str(exc) or exc.__class__.__name__
        logger.exception("Recording %s failed: %s", recording_id, message)
        async with async_session_maker() as db:
            await store.transition(db, recording_id, TASK_FAILED, error=message)
        raise
    finally:
        if provider is not None:
            provider.close()


async def _process_and_dispose(recording_id: str) -> Dict[str, Any]:
    try:
        return await process_recording_job_async(recording_id)
    finally:
        # Pooled connections are bound to this job's event loop.
        await engine.dispose()


def process_recording_job(recording_id: str) -> Dict[str, Any]:
    """RQ worker entrypoint for recording jobs."""
    return asyncio.run(_process_and_dispose(recording_id))
