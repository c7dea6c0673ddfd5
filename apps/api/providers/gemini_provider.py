"""Gemini provider using the Generative Language REST API."""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx

from providers.base import (
    ANALYZE_SYSTEM_PROMPT,
    TRANSCRIBE_PROMPT,
    TRANSCRIBE_SYSTEM_PROMPT,
    ProviderFatalError,
    ProviderResponseError,
    ProviderTransientError,
    TranscriptionProvider,
    analysis_from_payload,
    build_analyze_prompt,
    extract_json_object,
    segments_from_payload,
)

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {408, 429}


class GeminiProvider(TranscriptionProvider):
    """Sends audio inline to generateContent and asks for JSON back."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com",
        timeout: float = 120.0,
        client: Optional[httpx.Client] = None,
        **retry_options: Any,
    ) -> None:
        super().__init__(**retry_options)
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def _endpoint(self) -> str:
        model_name = self._model
        if not model_name.startswith("models/"):
            model_name = f"models/{model_name}"
        return f"{self._base_url}/v1beta/{model_name}:generateContent"

    def _generate(self, parts: List[Dict[str, Any]], system_prompt: str) -> Dict[str, Any]:
        payload = {
            "contents": [{"parts": parts}],
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "generationConfig": {"responseMimeType": "application/json"},
        }
        try:
            response = self._client.post(
                self._endpoint(),
                params={"key": self._api_key},
                headers={"Content-Type": "application/json"},
                json=payload,
            )
        except httpx.TransportError as exc:
            raise ProviderTransientError(f"Failed to reach Gemini API: {exc}") from exc

        if response.status_code in TRANSIENT_STATUS_CODES or response.status_code >= 500:
            raise ProviderTransientError(f"Gemini HTTP {response.status_code}: {response.text[:200]}")
        if response.status_code != 200:
            logger.error("Gemini error: %s - %s", response.status_code, response.text[:500])
            raise ProviderFatalError(f"Gemini HTTP {response.status_code}: {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderResponseError("Gemini response body is not JSON") from exc
        candidates = data.get("candidates") or []
        if not candidates:
            raise ProviderResponseError("Gemini response missing candidates")
        content_parts = (candidates[0].get("content") or {}).get("parts") or []
        if not content_parts:
            raise ProviderResponseError("Gemini response missing parts")
        return extract_json_object(content_parts[0].get("text"))

    def _transcribe_once(self, audio: bytes, *, filename: str, mime_type: str) -> List[Any]:
        parts = [
            {"text": TRANSCRIBE_PROMPT},
            {"inlineData": {"mimeType": mime_type, "data": base64.b64encode(audio).decode("ascii")}},
        ]
        return segments_from_payload(self._generate(parts, TRANSCRIBE_SYSTEM_PROMPT))

    def _analyze_once(self, transcript_text: str, scene: Optional[str]) -> Dict[str, Any]:
        parts = [{"text": build_analyze_prompt(transcript_text, scene)}]
        return analysis_from_payload(self._generate(parts, ANALYZE_SYSTEM_PROMPT))

    def close(self) -> None:
        self._client.close()
