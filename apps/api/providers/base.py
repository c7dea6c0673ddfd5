"""Provider contract for turning audio into transcript segments and analysis."""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ACTION_ITEMS = 8

TRANSCRIBE_SYSTEM_PROMPT = (
    "You are a careful speech transcription assistant. "
    "Output JSON only, no Markdown or commentary. "
    "Keep the spoken wording; do not polish it."
)

TRANSCRIBE_PROMPT = (
    "Transcribe the attached audio and return strict JSON:\n"
    '{"segments": [{"id": number, "start_time": number, "speaker": string, "text": string}]}\n'
    "start_time is in seconds and may be approximate. "
    'Use "[inaudible]" as the text of a segment you cannot make out.'
)

ANALYZE_SYSTEM_PROMPT = (
    "You are a meeting and voice-note analysis assistant. "
    "Output JSON only, no Markdown or commentary. "
    'The JSON must be {"summary": string, "action_items": string[]}. '
    "summary is 2-5 sentences; action_items has 0-8 entries."
)


class ProviderError(RuntimeError):
    """Base class for provider failures."""


class ProviderTransientError(ProviderError):
    """Rate limits, timeouts, network and 5xx errors; safe to retry."""


class ProviderFatalError(ProviderError):
    """Auth failures and rejected requests; retrying will not help."""


class ProviderResponseError(ProviderFatalError):
    """The provider answered, but not with the structure we asked for."""


def scene_hint(scene: Optional[str]) -> str:
    return f"Scene: {scene}" if scene else "Scene: unknown"


def build_analyze_prompt(transcript_text: str, scene: Optional[str]) -> str:
    return "\n".join(
        [
            scene_hint(scene),
            "",
            "Write a summary and action items for the following transcript:",
            transcript_text or "",
        ]
    )


def extract_json_object(text: Optional[str]) -> Dict[str, Any]:
    """Parse the first JSON object in a model reply, tolerating code fences."""
    if not text:
        raise ProviderResponseError("Provider returned empty content")
    trimmed = str(text).strip()
    if trimmed.startswith("```"):
        trimmed = "\n".join(line for line in trimmed.split("\n") if not line.startswith("```")).strip()
    if not (trimmed.startswith("{") and trimmed.endswith("}")):
        match = re.search(r"\{.*\}", trimmed, re.DOTALL)
        if not match:
            raise ProviderResponseError("Provider reply is not JSON")
        trimmed = match.group(0)
    try:
        parsed = json.loads(trimmed)
    except json.JSONDecodeError as exc:
        raise ProviderResponseError(f"Provider reply is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ProviderResponseError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def segments_from_payload(payload: Dict[str, Any]) -> List[Any]:
    """Pull the raw segment list out of {segments} or {transcript: {segments}}."""
    segments = payload.get("segments")
    if segments is None and isinstance(payload.get("transcript"), dict):
        segments = payload["transcript"].get("segments")
    if segments is None:
        return []
    if not isinstance(segments, list):
        raise ProviderResponseError("Provider segments field is not a list")
    return segments


def analysis_from_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Read {summary, action_items} from a reply; also accepts todo_list/todoList."""
    source = payload.get("analysis") if isinstance(payload.get("analysis"), dict) else payload
    items = source.get("action_items")
    if items is None:
        items = source.get("todo_list", source.get("todoList"))
    return {"summary": source.get("summary"), "action_items": items}


def call_with_retries(
    fn: Callable[[], T],
    *,
    max_attempts: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 15.0,
    label: str = "provider call",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run fn, retrying ProviderTransientError with capped exponential backoff.

    Fatal errors propagate on the first occurrence; the last transient error
    propagates once the attempt budget is spent.
    """
    attempts = max(int(max_attempts), 1)
    delay = max(float(base_delay), 0.0)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except ProviderTransientError as exc:
            if attempt >= attempts:
                logger.error("%s failed after %s attempts: %s", label, attempt, exc)
                raise
            logger.warning(
                "%s attempt %s/%s failed (%s); retrying in %.1fs", label, attempt, attempts, exc, delay
            )
            sleep(delay)
            delay = min(delay * 2, max_delay)
    raise AssertionError("unreachable")


class TranscriptionProvider(ABC):
    """Capability interface: transcribe audio, analyze transcript text."""

    name = "base"

    def __init__(
        self,
        *,
        max_attempts: int = 5,
        backoff_seconds: float = 1.0,
        backoff_max_seconds: float = 15.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self._sleep = sleep

    def _with_retries(self, fn: Callable[[], T], label: str) -> T:
        return call_with_retries(
            fn,
            max_attempts=self.max_attempts,
            base_delay=self.backoff_seconds,
            max_delay=self.backoff_max_seconds,
            label=f"{self.name} {label}",
            sleep=self._sleep,
        )

    def transcribe(self, audio: bytes, *, filename: str, mime_type: str) -> List[Any]:
        """Return raw segments ({start_time, text, speaker?}) for an audio payload."""
        return self._with_retries(
            lambda: self._transcribe_once(audio, filename=filename, mime_type=mime_type),
            "transcribe",
        )

    def analyze(self, transcript_text: str, scene: Optional[str] = None) -> Dict[str, Any]:
        """Return raw {summary, action_items} for a transcript."""
        return self._with_retries(lambda: self._analyze_once(transcript_text, scene), "analyze")

    @abstractmethod
    def _transcribe_once(self, audio: bytes, *, filename: str, mime_type: str) -> List[Any]:
        raise NotImplementedError

    @abstractmethod
    def _analyze_once(self, transcript_text: str, scene: Optional[str]) -> Dict[str, Any]:
        raise NotImplementedError

    def close(self) -> None:
        """Release network clients; the default holds none."""
