"""Markdown export of a recording payload."""

from datetime import datetime
from typing import Any, Dict, List


def format_clock(seconds: Any) -> str:
    try:
        total = max(int(float(seconds or 0)), 0)
    except (TypeError, ValueError):
        total = 0
    return f"{total // 60}:{total % 60:02d}"


def full_text(recording: Dict[str, Any]) -> str:
    segments = (recording.get("transcript") or {}).get("segments") or []
    return "\n".join(str(s.get("text") or "") for s in segments if s.get("text"))


def recording_to_markdown(recording: Dict[str, Any]) -> str:
    """Render a recording (API payload with body) as a Markdown document."""
    created_at = recording.get("created_at")
    when = datetime.fromtimestamp(created_at / 1000).strftime("%Y-%m-%d %H:%M") if created_at else "unknown"
    lines: List[str] = [
        f"# {recording.get('title') or 'Untitled recording'}",
        f"- Recorded: {when}",
        f"- Duration: {format_clock(recording.get('duration'))}",
        "",
    ]

    analysis = recording.get("analysis") or {}
    if analysis.get("summary"):
        lines += ["## Summary", str(analysis["summary"]), ""]
    action_items = analysis.get("action_items") or []
    if action_items:
        lines.append("## Action items")
        lines += [f"- [ ] {str(item).strip()}" for item in action_items]
        lines.append("")

    lines.append("## Transcript")
    segments = (recording.get("transcript") or {}).get("segments") or []
    if not segments:
        lines.append("_No transcript yet_")
    for segment in segments:
        lines.append(f"- **{format_clock(segment.get('start_time'))}** {str(segment.get('text') or '').strip()}")
    return "\n".join(lines)
