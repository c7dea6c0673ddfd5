"""Durable recording job queue (Redis/RQ)."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import Request
from redis import Redis
from rq import Queue, Retry
from rq.exceptions import NoSuchJobError
from rq.job import Job, JobStatus
from sqlalchemy.future import select

from config import settings
from database import async_session_maker
from models.task import Task
from services import store
from services.status import TASK_FAILED, TASK_PROCESSING

logger = logging.getLogger(__name__)

PROCESS_RECORDING_JOB = "services.processing.process_recording_job"
ACTIVE_JOB_STATUSES = (
    JobStatus.QUEUED,
    JobStatus.STARTED,
    JobStatus.DEFERRED,
    JobStatus.SCHEDULED,
)
RESULT_TTL_SECONDS = 86400
FAILURE_TTL_SECONDS = 86400
STALLED_MESSAGE = "Processing was interrupted. Retry the task to run it again."


class JobAlreadyQueued(RuntimeError):
    """A job for this recording is already pending or running."""

    def __init__(self, recording_id: str):
        super().__init__(f"Job {recording_id} already exists")
        self.recording_id = recording_id


def get_redis_connection() -> Redis:
    """Build Redis connection used by RQ."""
    return Redis.from_url(settings.REDIS_URL)


def backoff_intervals(attempts: int, base_seconds: int) -> List[int]:
    """Exponential delays between automatic attempts; attempts counts the first run."""
    retries = max(int(attempts), 1) - 1
    base = max(int(base_seconds), 1)
    return [base * (2 ** n) for n in range(retries)]


class RecordingQueue:
    """Handle for the processing queue, created at startup and closed on shutdown.

    Jobs are keyed by recording id, so at most one job per recording can be
    pending or running at any time.
    """

    def __init__(
        self,
        connection: Redis,
        name: str = "voiceflow",
        attempts: int = 3,
        backoff_seconds: int = 1,
        job_timeout: int = 1800,
    ):
        self.connection = connection
        self.name = name
        self.attempts = max(int(attempts), 1)
        self.backoff_seconds = backoff_seconds
        self.job_timeout = job_timeout
        self.queue = Queue(name=name, connection=connection, default_timeout=job_timeout)

    @classmethod
    def from_settings(cls, connection: Optional[Redis] = None) -> "RecordingQueue":
        return cls(
            connection or get_redis_connection(),
            name=settings.QUEUE_NAME,
            attempts=settings.QUEUE_JOB_ATTEMPTS,
            backoff_seconds=settings.QUEUE_BACKOFF_SECONDS,
            job_timeout=settings.QUEUE_JOB_TIMEOUT_SECONDS,
        )

    def _retry_policy(self) -> Optional[Retry]:
        intervals = backoff_intervals(self.attempts, self.backoff_seconds)
        if not intervals:
            return None
        return Retry(max=len(intervals), interval=intervals)

    def fetch_job(self, recording_id: str) -> Optional[Job]:
        try:
            return Job.fetch(recording_id, connection=self.connection)
        except NoSuchJobError:
            return None

    def job_status(self, recording_id: str) -> Optional[JobStatus]:
        job = self.fetch_job(recording_id)
        if job is None:
            return None
        return job.get_status(refresh=True)

    def enqueue(self, recording_id: str) -> Job:
        """Enqueue processing for a recording.

        Raises JobAlreadyQueued when a job with the same key is still queued,
        scheduled for retry or running. Finished or failed jobs are replaced.
        """
        lock = self.connection.lock(f"{self.name}:enqueue-lock:{recording_id}", timeout=10, blocking_timeout=5)
        with lock:
            existing = self.fetch_job(recording_id)
            if existing is not None:
                status = existing.get_status(refresh=True)
                if status in ACTIVE_JOB_STATUSES:
                    raise JobAlreadyQueued(recording_id)
                existing.delete()
            job = self.queue.enqueue(
                PROCESS_RECORDING_JOB,
                recording_id,
                job_id=recording_id,
                retry=self._retry_policy(),
                job_timeout=self.job_timeout,
                result_ttl=RESULT_TTL_SECONDS,
                failure_ttl=FAILURE_TTL_SECONDS,
                description=f"process-recording {recording_id}",
            )
        logger.info("Enqueued recording %s on %s", recording_id, self.name)
        return job

    def ping(self) -> bool:
        return bool(self.connection.ping())

    def close(self) -> None:
        self.connection.close()


def get_recording_queue(request: Request) -> RecordingQueue:
    """FastAPI dependency returning the queue handle created at startup."""
    return request.app.state.recording_queue


async def recover_stalled_tasks(max_age_minutes: int = 120) -> int:
    """Mark stale in-progress tasks as failed after restarts/worker interruptions."""
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=max(max_age_minutes, 1))
    cutoff_ms = int(cutoff.timestamp() * 1000)
    async with async_session_maker() as db:
        result = await db.execute(
            select(Task.id).where(
                Task.status == TASK_PROCESSING,
                Task.updated_at < cutoff_ms,
            )
        )
        stalled_ids = list(result.scalars().all())
        for task_id in stalled_ids:
            await store.transition(db, task_id, TASK_FAILED, error=STALLED_MESSAGE)
        return len(stalled_ids)
