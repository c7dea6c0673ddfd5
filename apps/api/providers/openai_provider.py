"""OpenAI provider: Whisper transcription plus chat-completion analysis."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from providers.base import (
    ANALYZE_SYSTEM_PROMPT,
    ProviderError,
    ProviderFatalError,
    ProviderResponseError,
    ProviderTransientError,
    TranscriptionProvider,
    analysis_from_payload,
    build_analyze_prompt,
    extract_json_object,
)

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 409, 429}


def _translate_error(exc: Exception) -> ProviderError:
    """Map SDK exceptions onto the provider error taxonomy."""
    if isinstance(exc, (openai.RateLimitError, openai.APIConnectionError, openai.InternalServerError)):
        return ProviderTransientError(f"OpenAI transient error: {exc}")
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code in TRANSIENT_STATUS_CODES or exc.status_code >= 500:
            return ProviderTransientError(f"OpenAI HTTP {exc.status_code}: {exc.message}")
        return ProviderFatalError(f"OpenAI HTTP {exc.status_code}: {exc.message}")
    return ProviderFatalError(f"OpenAI error: {exc}")


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class OpenAIProvider(TranscriptionProvider):
    """Uses the OpenAI SDK with its own retries disabled; ours apply instead."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "",
        transcribe_model: str = "whisper-1",
        chat_model: str = "gpt-4o-mini",
        language: str = "",
        timeout: float = 120.0,
        client: Optional[OpenAI] = None,
        **retry_options: Any,
    ) -> None:
        super().__init__(**retry_options)
        self.transcribe_model = transcribe_model
        self.chat_model = chat_model
        self.language = language or None
        self._client = client or OpenAI(
            api_key=api_key,
            base_url=(base_url or "").rstrip("/") or None,
            timeout=timeout,
            max_retries=0,
        )

    def _transcribe_once(self, audio: bytes, *, filename: str, mime_type: str) -> List[Any]:
        options: Dict[str, Any] = {
            "model": self.transcribe_model,
            "file": (filename, audio, mime_type),
            "response_format": "verbose_json",
            "timestamp_granularities": ["segment"],
        }
        if self.language:
            options["language"] = self.language
        try:
            transcript = self._client.audio.transcriptions.create(**options)
        except openai.OpenAIError as exc:
            raise _translate_error(exc) from exc

        raw_segments = _get(transcript, "segments") or []
        logger.debug("OpenAI transcription returned %s segments", len(raw_segments))
        segments = [
            {"start_time": _get(seg, "start"), "text": _get(seg, "text")}
            for seg in raw_segments
        ]
        if any(str(seg["text"] or "").strip() for seg in segments):
            return segments

        text = str(_get(transcript, "text") or "").strip()
        if text:
            return [{"start_time": 0, "text": text}]
        return []

    def _analyze_once(self, transcript_text: str, scene: Optional[str]) -> Dict[str, Any]:
        try:
            response = self._client.chat.completions.create(
                model=self.chat_model,
                temperature=0.2,
                messages=[
                    {"role": "system", "content": ANALYZE_SYSTEM_PROMPT},
                    {"role": "user", "content": build_analyze_prompt(transcript_text, scene)},
                ],
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as exc:
            raise _translate_error(exc) from exc

        if not response.choices:
            raise ProviderResponseError("OpenAI analysis returned no choices")
        content = response.choices[0].message.content
        return analysis_from_payload(extract_json_object(content))

    def close(self) -> None:
        self._client.close()
