"""Normalization of provider output and the placeholder result."""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from providers.base import MAX_ACTION_ITEMS, ProviderResponseError
from services.status import LEVEL_ASSET

DEFAULT_SPEAKER = "Speaker 1"
PLACEHOLDER_LABEL = "[placeholder]"


def _get(obj: Any, *names: str) -> Any:
    for name in names:
        if isinstance(obj, dict):
            if name in obj:
                return obj[name]
        elif hasattr(obj, name):
            return getattr(obj, name)
    return None


def _start_time(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def normalize_segments(raw_segments: Optional[Iterable[Any]]) -> List[Dict[str, Any]]:
    """Turn whatever the provider sent into dense, 1-based, non-empty segments.

    Blank segments are dropped, start times that are not numbers become 0,
    a missing speaker becomes DEFAULT_SPEAKER, and incoming ids are ignored.
    """
    segments: List[Dict[str, Any]] = []
    for item in raw_segments or []:
        if item is None:
            continue
        text = str(_get(item, "text") or "").strip()
        if not text:
            continue
        speaker = str(_get(item, "speaker") or "").strip() or DEFAULT_SPEAKER
        segments.append(
            {
                "id": len(segments) + 1,
                "start_time": _start_time(_get(item, "start_time", "startTime", "start")),
                "speaker": speaker,
                "text": text,
            }
        )
    return segments


def normalize_analysis(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ProviderResponseError("Analysis result is not an object")
    summary = str(raw.get("summary") or "").strip()
    items = raw.get("action_items")
    if items is None:
        items = []
    if not isinstance(items, list):
        raise ProviderResponseError("Analysis action_items is not a list")
    action_items = [str(item).strip() for item in items if item is not None and str(item).strip()]
    return {"summary": summary, "action_items": action_items[:MAX_ACTION_ITEMS]}


def transcript_text(segments: Iterable[Dict[str, Any]]) -> str:
    return "\n".join(str(seg.get("text") or "") for seg in segments if seg.get("text"))


def placeholder_result(
    level: str, credential_name: Optional[str] = None
) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """Labeled stand-in output used when no provider can produce a transcript.

    With credential_name the text points at the missing credential; without it
    the provider ran but nothing usable came back.
    """
    if credential_name:
        reason = f"{credential_name} is not configured on the server"
        next_steps = [f"Configure {credential_name} on the server", "Retry this task"]
    else:
        reason = "the provider returned no recognizable speech"
        next_steps = ["Check the recording's audio", "Retry this task"]

    transcript = {
        "segments": [
            {
                "id": 1,
                "start_time": 0.0,
                "speaker": DEFAULT_SPEAKER,
                "text": f"{PLACEHOLDER_LABEL} No transcript is available: {reason}.",
            }
        ]
    }
    analysis = None
    if level == LEVEL_ASSET:
        analysis = {
            "summary": f"{PLACEHOLDER_LABEL} This is placeholder output because {reason}.",
            "action_items": next_steps,
        }
    return transcript, analysis
