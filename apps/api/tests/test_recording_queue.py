from unittest.mock import MagicMock, patch

import pytest
from rq.exceptions import NoSuchJobError
from rq.job import JobStatus

from services.recording_queue import (
    PROCESS_RECORDING_JOB,
    JobAlreadyQueued,
    RecordingQueue,
    backoff_intervals,
)

RECORDING_ID = "6f1c2a9e-5b7d-4e0a-9c3b-1d2e3f405162"


def _queue(**kwargs):
    connection = MagicMock()
    recording_queue = RecordingQueue(connection, name="voiceflow-test", **kwargs)
    recording_queue.queue = MagicMock()
    return recording_queue, connection


def _existing_job(status):
    job = MagicMock()
    job.get_status.return_value = status
    return job


def test_backoff_intervals_count_total_attempts():
    assert backoff_intervals(3, 1) == [1, 2]
    assert backoff_intervals(4, 5) == [5, 10, 20]
    assert backoff_intervals(1, 1) == []
    assert backoff_intervals(0, 1) == []


def test_enqueue_uses_recording_id_as_job_key():
    recording_queue, connection = _queue(attempts=3, backoff_seconds=2, job_timeout=600)
    with patch("services.recording_queue.Job.fetch", side_effect=NoSuchJobError("missing")):
        recording_queue.enqueue(RECORDING_ID)

    connection.lock.assert_called_once()
    args, kwargs = recording_queue.queue.enqueue.call_args
    assert args == (PROCESS_RECORDING_JOB, RECORDING_ID)
    assert kwargs["job_id"] == RECORDING_ID
    assert kwargs["job_timeout"] == 600
    assert kwargs["retry"].max == 2
    assert list(kwargs["retry"].intervals) == [2, 4]


def test_single_attempt_queue_has_no_retry_policy():
    recording_queue, _ = _queue(attempts=1)
    with patch("services.recording_queue.Job.fetch", side_effect=NoSuchJobError("missing")):
        recording_queue.enqueue(RECORDING_ID)
    assert recording_queue.queue.enqueue.call_args.kwargs["retry"] is None


@pytest.mark.parametrize(
    "status",
    [JobStatus.QUEUED, JobStatus.STARTED, JobStatus.DEFERRED, JobStatus.SCHEDULED],
)
def test_enqueue_refuses_duplicate_while_job_is_active(status):
    recording_queue, _ = _queue()
    existing = _existing_job(status)
    with patch("services.recording_queue.Job.fetch", return_value=existing):
        with pytest.raises(JobAlreadyQueued, match="already exists"):
            recording_queue.enqueue(RECORDING_ID)
    existing.delete.assert_not_called()
    recording_queue.queue.enqueue.assert_not_called()


@pytest.mark.parametrize("status", [JobStatus.FINISHED, JobStatus.FAILED, JobStatus.CANCELED])
def test_enqueue_replaces_settled_job(status):
    recording_queue, _ = _queue()
    existing = _existing_job(status)
    with patch("services.recording_queue.Job.fetch", return_value=existing):
        recording_queue.enqueue(RECORDING_ID)
    existing.delete.assert_called_once()
    recording_queue.queue.enqueue.assert_called_once()


def test_job_status_reports_none_for_unknown_job():
    recording_queue, _ = _queue()
    with patch("services.recording_queue.Job.fetch", side_effect=NoSuchJobError("missing")):
        assert recording_queue.job_status(RECORDING_ID) is None
    with patch("services.recording_queue.Job.fetch", return_value=_existing_job(JobStatus.STARTED)):
        assert recording_queue.job_status(RECORDING_ID) == JobStatus.STARTED


def test_enqueue_propagates_redis_failures():
    recording_queue, connection = _queue()
    connection.lock.side_effect = ConnectionError("redis down")
    with pytest.raises(ConnectionError):
        recording_queue.enqueue(RECORDING_ID)
