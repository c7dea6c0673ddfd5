"""On-disk layout for uploaded audio."""

from __future__ import annotations

import os
import re
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

from config import settings

DEFAULT_AUDIO_EXTENSION = ".webm"
AUDIO_MIME_BY_EXT = {
    ".webm": "audio/webm",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".mp4": "audio/mp4",
    ".ogg": "audio/ogg",
}
_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,8}$")
COPY_CHUNK_BYTES = 1024 * 1024


class UploadTooLarge(ValueError):
    """The audio payload exceeds UPLOAD_MAX_BYTES."""


def data_dir() -> Path:
    return Path(settings.DATA_DIR).expanduser().resolve()


def uploads_dir() -> Path:
    return data_dir() / "uploads"


def tmp_dir() -> Path:
    return data_dir() / "tmp"


def ensure_data_dirs() -> None:
    for path in (data_dir(), uploads_dir(), tmp_dir()):
        path.mkdir(parents=True, exist_ok=True)


def audio_extension(filename: Optional[str]) -> str:
    suffix = Path(os.path.basename(filename or "")).suffix.lower()
    if not _EXTENSION_RE.match(suffix):
        return DEFAULT_AUDIO_EXTENSION
    return suffix


def upload_path_for_id(recording_id: str, extension: str = DEFAULT_AUDIO_EXTENSION) -> Path:
    return uploads_dir() / f"{recording_id}{extension}"


def guess_audio_mime(path: str) -> str:
    return AUDIO_MIME_BY_EXT.get(Path(path).suffix.lower(), "application/octet-stream")


def stage_upload(source: BinaryIO, recording_id: str, max_bytes: int) -> Tuple[Path, int]:
    """Stream an upload into tmp/ and return the staged path and its size."""
    ensure_data_dirs()
    temp_path = tmp_dir() / f"{recording_id}-{uuid.uuid4().hex}.part"
    written = 0
    try:
        with open(temp_path, "wb") as target:
            while True:
                chunk = source.read(COPY_CHUNK_BYTES)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    raise UploadTooLarge(
                        f"Audio upload is too large (max {max_bytes // (1024 * 1024)} MB)"
                    )
                target.write(chunk)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise
    return temp_path, written


def promote_upload(temp_path: Path, final_path: Path) -> Path:
    """Move a staged upload to its permanent, write-once location."""
    final_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(temp_path), str(final_path))
    return final_path


def discard_upload(temp_path: Optional[Path]) -> None:
    if temp_path is not None:
        temp_path.unlink(missing_ok=True)
