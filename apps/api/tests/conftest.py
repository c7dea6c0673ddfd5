import uuid
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from providers.base import TranscriptionProvider
from routers import rate_limit
from services.recording_queue import RecordingQueue, get_recording_queue


DEFAULT_SEGMENTS = [
    {"start": 0.0, "text": "Welcome to the weekly sync."},
    {"start": 4.5, "text": "Ship the beta on Friday.", "speaker": "Alex"},
]
DEFAULT_ANALYSIS = {"summary": "Weekly sync about the beta.", "action_items": ["Ship the beta"]}


class FakeProvider(TranscriptionProvider):
    """Scripted provider: raises queued errors first, then returns fixed output."""

    name = "fake"

    def __init__(
        self,
        segments: Optional[List[Any]] = None,
        analysis: Optional[Dict[str, Any]] = None,
        transcribe_errors=(),
        analyze_errors=(),
        **retry_options: Any,
    ):
        retry_options.setdefault("sleep", lambda _seconds: None)
        super().__init__(**retry_options)
        self.segments = DEFAULT_SEGMENTS if segments is None else segments
        self.analysis_result = DEFAULT_ANALYSIS if analysis is None else analysis
        self.transcribe_errors = list(transcribe_errors)
        self.analyze_errors = list(analyze_errors)
        self.transcribe_calls = 0
        self.analyze_calls = 0
        self.closed = False

    def _transcribe_once(self, audio, *, filename, mime_type):
        self.transcribe_calls += 1
        if self.transcribe_errors:
            raise self.transcribe_errors.pop(0)
        return self.segments

    def _analyze_once(self, transcript_text, scene):
        self.analyze_calls += 1
        if self.analyze_errors:
            raise self.analyze_errors.pop(0)
        return self.analysis_result

    def close(self):
        self.closed = True


def new_recording_id() -> str:
    return str(uuid.uuid4())


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest.fixture
def data_dir(tmp_path):
    root = tmp_path / "data"
    with patch("services.audio_files.settings.DATA_DIR", str(root)):
        yield root


@pytest_asyncio.fixture
async def session_maker(tmp_path, data_dir):
    db_path = tmp_path / "voiceflow.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    with (
        patch("services.processing.async_session_maker", maker),
        patch("services.recording_queue.async_session_maker", maker),
    ):
        yield maker

    await engine.dispose()


@pytest.fixture
def fake_queue():
    queue = MagicMock(spec=RecordingQueue)
    queue.job_status.return_value = None
    return queue


@pytest_asyncio.fixture
async def api_client(session_maker, fake_queue):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_recording_queue] = lambda: fake_queue
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_recording_queue, None)


@pytest.fixture
def upload(api_client):
    """POST /recordings with sensible defaults; returns the raw response."""

    async def _upload(
        recording_id: Optional[str] = None,
        *,
        level: str = "asset",
        audio: Optional[bytes] = b"RIFF-fake-audio-bytes",
        content_type: str = "audio/webm",
        **fields: Any,
    ):
        data = {
            "id": recording_id or new_recording_id(),
            "level": level,
            "title": fields.pop("title", "Weekly sync"),
            "scene": fields.pop("scene", "meeting"),
            "created_at": str(fields.pop("created_at", 1760000000000)),
            "duration": str(fields.pop("duration", 95)),
            "markers_json": fields.pop("markers_json", '[{"time": 12, "label": "decision"}]'),
        }
        data.update({key: str(value) for key, value in fields.items()})
        files = None
        if audio is not None:
            files = {"audio": (f"{data['id']}.webm", audio, content_type)}
        return await api_client.post("/recordings", data=data, files=files)

    return _upload
