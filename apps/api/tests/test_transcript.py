import math

import pytest

from providers.base import ProviderResponseError
from services.transcript import (
    DEFAULT_SPEAKER,
    PLACEHOLDER_LABEL,
    normalize_analysis,
    normalize_segments,
    placeholder_result,
    transcript_text,
)


def test_normalize_segments_drops_blank_and_reindexes():
    raw = [
        {"id": 7, "start_time": 1.5, "speaker": "Ana", "text": " First "},
        {"id": 8, "start_time": 2.0, "text": "   "},
        None,
        {"id": 9, "startTime": 3.0, "text": "Second"},
        {"start": 4.25, "speaker": "", "text": "Third"},
    ]
    segments = normalize_segments(raw)
    assert [s["id"] for s in segments] == [1, 2, 3]
    assert [s["text"] for s in segments] == ["First", "Second", "Third"]
    assert [s["start_time"] for s in segments] == [1.5, 3.0, 4.25]
    assert segments[0]["speaker"] == "Ana"
    assert segments[1]["speaker"] == DEFAULT_SPEAKER
    assert segments[2]["speaker"] == DEFAULT_SPEAKER


@pytest.mark.parametrize("value", ["soon", None, -3, math.nan, math.inf, True, [1]])
def test_unusable_start_times_become_zero(value):
    segments = normalize_segments([{"start_time": value, "text": "hi"}])
    assert segments[0]["start_time"] == 0


def test_numeric_string_start_time_is_accepted():
    assert normalize_segments([{"start_time": "12.5", "text": "hi"}])[0]["start_time"] == 12.5


def test_normalize_segments_handles_empty_input():
    assert normalize_segments(None) == []
    assert normalize_segments([]) == []
    assert normalize_segments([{"text": ""}]) == []


def test_normalize_analysis_trims_and_caps_items():
    result = normalize_analysis(
        {"summary": "  Summary  ", "action_items": [" a ", "", None] + [f"item {i}" for i in range(12)]}
    )
    assert result["summary"] == "Summary"
    assert result["action_items"][0] == "a"
    assert len(result["action_items"]) == 8


def test_normalize_analysis_rejects_malformed_payloads():
    with pytest.raises(ProviderResponseError):
        normalize_analysis("not a dict")
    with pytest.raises(ProviderResponseError):
        normalize_analysis({"summary": "x", "action_items": "do it"})


def test_normalize_analysis_defaults_missing_fields():
    assert normalize_analysis({}) == {"summary": "", "action_items": []}


def test_transcript_text_joins_non_empty_segments():
    assert transcript_text([{"text": "a"}, {"text": ""}, {"text": "b"}]) == "a\nb"


def test_placeholder_for_missing_credential_names_it():
    transcript, analysis = placeholder_result("asset", "OPENAI_API_KEY")
    segments = transcript["segments"]
    assert len(segments) == 1
    assert segments[0]["text"].startswith(PLACEHOLDER_LABEL)
    assert "OPENAI_API_KEY" in segments[0]["text"]
    assert analysis["summary"].startswith(PLACEHOLDER_LABEL)
    assert any("OPENAI_API_KEY" in item for item in analysis["action_items"])


def test_placeholder_for_text_level_has_no_analysis():
    transcript, analysis = placeholder_result("text")
    assert analysis is None
    assert "no recognizable speech" in transcript["segments"][0]["text"]
