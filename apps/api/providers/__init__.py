"""AI provider implementations and selection."""

from typing import Optional

from config import is_configured_key, settings
from providers.base import (
    ProviderError,
    ProviderFatalError,
    ProviderResponseError,
    ProviderTransientError,
    TranscriptionProvider,
)
from providers.gemini_provider import GeminiProvider
from providers.openai_provider import OpenAIProvider

__all__ = [
    "ProviderError",
    "ProviderFatalError",
    "ProviderResponseError",
    "ProviderTransientError",
    "TranscriptionProvider",
    "OpenAIProvider",
    "GeminiProvider",
    "get_provider",
]


def _retry_options() -> dict:
    return {
        "max_attempts": settings.PROVIDER_MAX_ATTEMPTS,
        "backoff_seconds": settings.PROVIDER_BACKOFF_SECONDS,
        "backoff_max_seconds": settings.PROVIDER_BACKOFF_MAX_SECONDS,
    }


def get_provider() -> Optional[TranscriptionProvider]:
    """Return the configured provider, or None when its credential is missing."""
    name = (settings.AI_PROVIDER or "openai").strip().lower()
    if name == "gemini":
        if not is_configured_key(settings.GEMINI_API_KEY):
            return None
        return GeminiProvider(
            settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
            base_url=settings.GEMINI_BASE_URL,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            **_retry_options(),
        )
    if name == "openai":
        if not is_configured_key(settings.OPENAI_API_KEY):
            return None
        return OpenAIProvider(
            settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            transcribe_model=settings.OPENAI_TRANSCRIBE_MODEL,
            chat_model=settings.OPENAI_CHAT_MODEL,
            language=settings.OPENAI_LANGUAGE,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            **_retry_options(),
        )
    raise ValueError(f"Unknown AI_PROVIDER: {settings.AI_PROVIDER!r}")
