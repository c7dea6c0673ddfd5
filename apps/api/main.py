"""
VoiceFlow - FastAPI Backend
Main application entry point: recording upload, task console and health checks.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import is_configured_key, provider_credential_name, settings, validate_provider_settings
from database import engine, Base
import models  # noqa: F401
from routers import health, recordings, tasks
from services.audio_files import ensure_data_dirs
from services.recording_queue import RecordingQueue, recover_stalled_tasks

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting VoiceFlow API...")
    validate_provider_settings()
    credential = provider_credential_name()
    if not is_configured_key(getattr(settings, credential, "")):
        print(f"⚠️ {credential} is not set; recordings will get placeholder transcripts.")
    ensure_data_dirs()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    try:
        recovered = await recover_stalled_tasks(max_age_minutes=settings.STALLED_TASK_MINUTES)
        if recovered:
            print(f"♻️ Marked {recovered} stalled tasks as failed after startup.")
    except Exception as exc:
        print(f"⚠️ Stalled task recovery skipped: {exc}")
    app.state.recording_queue = RecordingQueue.from_settings()
    yield
    # Shutdown
    app.state.recording_queue.close()
    print("👋 Shutting down API...")


app = FastAPI(
    title="VoiceFlow API",
    description="Upload voice recordings and track their transcription and analysis",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(recordings.router, prefix="/recordings", tags=["Recordings"])
app.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "VoiceFlow API",
        "version": "0.1.0",
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.API_HOST, port=settings.API_PORT)
