"""Working directories and upload storage."""
import logging
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from fastapi import UploadFile

from splicer.config import Settings, settings as default_settings
from splicer.pipeline.segments import ValidationError
from splicer.workers.retention import delete_paths

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")
MAX_NAME_LENGTH = 100


class PayloadTooLarge(Exception):
    """Upload exceeds the configured size ceiling (HTTP 413)."""

    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        self.message = "file too large"
        self.details = f"maximum size: {format_size(limit_bytes)}"
        super().__init__(self.message)


@dataclass
class StoredUpload:
    """An upload fully written to local storage."""
    path: Path
    original_name: str
    size: int
    content_type: Optional[str]

    @property
    def size_mb(self) -> float:
        return self.size / (1024 * 1024)


def format_size(num_bytes: int) -> str:
    gib = num_bytes / (1024 ** 3)
    if gib >= 1:
        return f"{gib:g}GB"
    return f"{num_bytes / (1024 ** 2):.0f}MB"


def ensure_working_directories(paths: Iterable[Path]) -> List[Path]:
    """
    Create working directories if missing. Safe to call repeatedly.

    Returns:
        Directories that were created by this call
    """
    created = []
    for path in paths:
        path = Path(path)
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            created.append(path)
            logger.info(f"Created directory: {path}/")
    return created


def unique_prefix() -> str:
    """Time-based prefix plus random suffix; unique across concurrent requests."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}"


def safe_filename(name: Optional[str]) -> str:
    """Strip directories and unsafe characters from a client-supplied name."""
    base = Path(name or "").name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned[-MAX_NAME_LENGTH:] or "upload"


def unique_upload_path(original_name: Optional[str], config: Settings = None) -> Path:
    config = config or default_settings
    return config.upload_dir / f"{unique_prefix()}-{safe_filename(original_name)}"


def unique_output_name() -> str:
    return f"processed-{unique_prefix()}.mp4"


def check_content_type(content_type: Optional[str], config: Settings = None) -> None:
    config = config or default_settings
    if content_type not in config.allowed_video_types:
        raise ValidationError(
            "unsupported file type",
            "use MP4, AVI or MOV"
        )


async def store_upload(upload: UploadFile, config: Settings = None) -> StoredUpload:
    """
    Copy an uploaded file into the uploads directory in chunks.

    Starlette has already spooled the multipart body to its own temporary
    file by the time this runs, so this is a second copy. The size ceiling
    checked here catches what the `Content-Length` guard in
    `UploadLimitMiddleware` lets through, including requests that declared
    no length; those are only rejected after their whole body was received.

    Args:
        upload: File from the multipart form
        config: Settings with the upload directory and size ceiling

    Returns:
        StoredUpload describing the file on disk

    Raises:
        ValidationError: If the declared content type is not a supported video
        PayloadTooLarge: If the file is bigger than `max_upload_bytes`
    """
    config = config or default_settings
    check_content_type(upload.content_type, config)

    if upload.size is not None and upload.size > config.max_upload_bytes:
        raise PayloadTooLarge(config.max_upload_bytes)

    target = unique_upload_path(upload.filename, config)
    target.parent.mkdir(parents=True, exist_ok=True)

    size = 0
    try:
        with open(target, "wb") as f:
            while True:
                chunk = await upload.read(config.upload_chunk_size)
                if not chunk:
                    break
                size += len(chunk)
                if size > config.max_upload_bytes:
                    raise PayloadTooLarge(config.max_upload_bytes)
                f.write(chunk)
    except BaseException:
        delete_paths([target])
        raise
    finally:
        await upload.close()

    return StoredUpload(
        path=target,
        original_name=upload.filename or target.name,
        size=size,
        content_type=upload.content_type,
    )
