"""
Application configuration using Pydantic Settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


PLACEHOLDER_KEY_MARKERS = ("your_",)
PLACEHOLDER_KEY_VALUES = {"test-key"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/voiceflow.sqlite3"
    AUTO_CREATE_DB_SCHEMA: bool = True

    # Redis / queue
    REDIS_URL: str = "redis://localhost:6379"
    QUEUE_NAME: str = "voiceflow"
    QUEUE_JOB_ATTEMPTS: int = 3
    QUEUE_BACKOFF_SECONDS: int = 1
    QUEUE_JOB_TIMEOUT_SECONDS: int = 1800
    WORKER_CONCURRENCY: int = 1
    STALLED_TASK_MINUTES: int = 120

    # Storage
    DATA_DIR: str = "./data"
    UPLOAD_MAX_BYTES: int = 50 * 1024 * 1024

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    UPLOAD_RATE_LIMIT_PER_HOUR: int = 120
    RETRY_RATE_LIMIT_PER_HOUR: int = 120

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # AI provider
    AI_PROVIDER: str = "openai"
    PROVIDER_MAX_ATTEMPTS: int = 5
    PROVIDER_BACKOFF_SECONDS: float = 1.0
    PROVIDER_BACKOFF_MAX_SECONDS: float = 15.0
    PROVIDER_TIMEOUT_SECONDS: float = 120.0

    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = ""
    OPENAI_TRANSCRIBE_MODEL: str = "whisper-1"
    OPENAI_CHAT_MODEL: str = "gpt-4o-mini"
    OPENAI_LANGUAGE: str = ""

    # Gemini
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()


def is_configured_key(value: str) -> bool:
    """True when an API key is present and is not an obvious placeholder."""
    key = (value or "").strip()
    if not key or key in PLACEHOLDER_KEY_VALUES:
        return False
    return not any(marker in key for marker in PLACEHOLDER_KEY_MARKERS)


def provider_credential_name() -> str:
    """Name of the env var holding the credential for the selected provider."""
    if (settings.AI_PROVIDER or "").strip().lower() == "gemini":
        return "GEMINI_API_KEY"
    return "OPENAI_API_KEY"


def validate_provider_settings() -> None:
    """Fail fast on an unknown provider name; a missing key is not an error."""
    provider = (settings.AI_PROVIDER or "").strip().lower()
    if provider not in {"openai", "gemini"}:
        raise ValueError(f"AI_PROVIDER must be 'openai' or 'gemini', got {settings.AI_PROVIDER!r}")
