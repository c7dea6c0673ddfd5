"""Client-side status polling and queue console merge."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from client.api import VoiceFlowAPIError, VoiceFlowClient
from services.status import (
    LEVEL_AUDIO_ONLY,
    TASK_DONE,
    TASK_FAILED,
    TASK_PROCESSING,
    TASK_WAITING,
    is_terminal,
    unify_status,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 2.0

StatusCallback = Callable[[Dict[str, Any]], Optional[Awaitable[None]]]


class RecordingStatusPoller:
    """Poll one recording at a fixed interval until it settles.

    A failed request skips that cycle silently. Polling ends when the unified
    status is terminal or a task-less recording has settled. It also ends on
    `stop()` or when the `async with` block exits, so nothing keeps running
    after the caller is gone.
    """

    def __init__(
        self,
        client: VoiceFlowClient,
        recording_id: str,
        *,
        interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        on_update: Optional[StatusCallback] = None,
    ):
        self.client = client
        self.recording_id = recording_id
        self.interval = interval
        self.on_update = on_update
        self.last_view: Optional[Dict[str, Any]] = None
        self.skipped_cycles = 0
        self._stopped = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def status(self) -> Optional[str]:
        return self.last_view.get("status") if self.last_view else None

    async def poll_once(self) -> Optional[Dict[str, Any]]:
        """One cycle; returns the view, or None when the request failed."""
        try:
            view = await self.client.get_recording(self.recording_id)
        except (httpx.HTTPError, VoiceFlowAPIError) as exc:
            self.skipped_cycles += 1
            logger.debug("Poll of %s skipped: %s", self.recording_id, exc)
            return None
        view["status"] = unify_status(view.get("recording") or {}, view.get("task"))
        self.last_view = view
        if self.on_update is not None:
            result = self.on_update(view)
            if asyncio.iscoroutine(result):
                await result
        return view

    def _should_stop(self) -> bool:
        if self.last_view is None:
            return False
        recording = self.last_view.get("recording") or {}
        if recording.get("level") == LEVEL_AUDIO_ONLY or is_terminal(self.status):
            return True
        # Without a task nothing will move a settled recording again.
        return self.last_view.get("task") is None and is_terminal(recording.get("status"))

    async def run(self) -> Optional[Dict[str, Any]]:
        """Poll until terminal or stopped; returns the last view seen."""
        while not self._stopped.is_set():
            await self.poll_once()
            if self._should_stop():
                break
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue
        return self.last_view

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stopped.clear()
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        self._stopped.set()
        if self._task is not None:
            try:
                await self._task
            finally:
                self._task = None

    async def __aenter__(self) -> "RecordingStatusPoller":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()


class TaskQueueView:
    """Console view joining the recordings feed with the tasks feed.

    Every row's status comes from `unify_status`, the same function the
    server uses for the per-recording read, so both surfaces agree.
    """

    def __init__(self, recordings: List[Dict[str, Any]], tasks: List[Dict[str, Any]]):
        self.recordings = list(recordings)
        self.tasks_by_id = {task.get("recording_id") or task.get("id"): task for task in tasks}

    @classmethod
    async def load(cls, client: VoiceFlowClient) -> "TaskQueueView":
        recordings, tasks = await asyncio.gather(
            client.list_recordings(include_body=True),
            client.list_tasks(),
        )
        return cls(recordings, tasks)

    def status_for(self, recording_id: str) -> str:
        recording = next((r for r in self.recordings if r.get("id") == recording_id), None)
        task = self.tasks_by_id.get(recording_id)
        if recording is None:
            return task.get("status") if task else "unknown"
        return unify_status(recording, task)

    def rows(self) -> List[Dict[str, Any]]:
        """One row per processed recording: id, title, type and unified status."""
        rows = []
        for recording in self.recordings:
            if recording.get("level") == LEVEL_AUDIO_ONLY:
                continue
            task = self.tasks_by_id.get(recording.get("id"))
            rows.append(
                {
                    "id": recording.get("id"),
                    "title": recording.get("title") or (task or {}).get("title"),
                    "type": (task or {}).get("type"),
                    "status": unify_status(recording, task),
                }
            )
        return rows

    def counts(self) -> Dict[str, int]:
        counts = {"pending": 0, "failed": 0, "done": 0}
        for row in self.rows():
            if row["status"] in (TASK_WAITING, TASK_PROCESSING):
                counts["pending"] += 1
            elif row["status"] == TASK_FAILED:
                counts["failed"] += 1
            elif row["status"] == TASK_DONE:
                counts["done"] += 1
        return counts
