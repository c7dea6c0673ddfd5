"""Async HTTP client for the VoiceFlow API."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

import httpx


class VoiceFlowAPIError(RuntimeError):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class VoiceFlowClient:
    """Thin wrapper over the recording and task endpoints.

    Pass `http_client` to reuse a configured `httpx.AsyncClient` (tests pass
    one bound to an ASGI transport); otherwise one is created and owned here.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "VoiceFlowClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _request_json(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        response = await self._http.request(method, url, **kwargs)
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise VoiceFlowAPIError(response.status_code, str(detail))
        return response.json()

    async def upload_recording(
        self,
        recording_id: str,
        audio: bytes,
        *,
        level: str,
        title: str = "",
        scene: Optional[str] = None,
        created_at: Optional[int] = None,
        duration: int = 0,
        markers: Optional[List[dict]] = None,
        filename: Optional[str] = None,
        content_type: str = "audio/webm",
    ) -> Dict[str, Any]:
        data = {
            "id": recording_id,
            "level": level,
            "title": title,
            "duration": str(int(duration or 0)),
            "markers_json": json.dumps(markers or []),
        }
        if scene:
            data["scene"] = scene
        if created_at is not None:
            data["created_at"] = str(int(created_at))
        files = {"audio": (filename or f"{recording_id}.webm", audio, content_type)}
        payload = await self._request_json("POST", "/recordings", data=data, files=files)
        return payload["recording"]

    async def list_recordings(self, include_body: bool = False) -> List[Dict[str, Any]]:
        params = {"include_body": "1"} if include_body else None
        payload = await self._request_json("GET", "/recordings", params=params)
        return payload.get("recordings", [])

    async def get_recording(self, recording_id: str) -> Dict[str, Any]:
        """Return `{recording, task, status}` for one recording."""
        return await self._request_json("GET", f"/recordings/{recording_id}")

    async def list_tasks(self) -> List[Dict[str, Any]]:
        payload = await self._request_json("GET", "/tasks")
        return payload.get("tasks", [])

    async def retry_task(self, recording_id: str) -> Dict[str, Any]:
        return await self._request_json("POST", f"/tasks/{recording_id}/retry")

    async def fetch_audio(
        self,
        recording_id: str,
        byte_range: Optional[Tuple[int, Optional[int]]] = None,
    ) -> bytes:
        """Download the audio, or a `(start, end)` slice of it (end inclusive)."""
        headers = {}
        if byte_range is not None:
            start, end = byte_range
            headers["Range"] = f"bytes={start}-{'' if end is None else end}"
        response = await self._http.get(f"/recordings/{recording_id}/audio", headers=headers)
        if response.status_code >= 400:
            raise VoiceFlowAPIError(response.status_code, response.text)
        return response.content
