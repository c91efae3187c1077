"""Application configuration."""
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

GIB = 1024 * 1024 * 1024


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )

    # App settings
    app_name: str = "Segment Splicer"
    version: str = "1.0.0"
    environment: Literal["development", "production"] = "development"

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3001

    # Working directories
    upload_dir: Path = Path("./uploads")
    processed_dir: Path = Path("./processed")
    tmp_dir: Path = Path("./tmp")

    # Upload limits
    max_upload_bytes: int = Field(2 * GIB, ge=2 * GIB, le=5 * GIB)
    upload_chunk_size: int = 1024 * 1024
    allowed_video_types: List[str] = [
        "video/mp4",
        "video/avi",
        "video/mov",
        "video/quicktime",
        "video/x-msvideo",
    ]

    # FFmpeg settings
    ffmpeg_path: str = "ffmpeg"
    engine_timeout_seconds: Optional[float] = 3600.0  # None waits forever

    # Output encoding policy (fixed, never per-request)
    output_video_codec: str = "libx264"
    output_video_preset: str = "ultrafast"
    output_video_crf: int = 23
    output_audio_codec: str = "aac"
    output_movflags: str = "+faststart"

    # Retention of temp files
    success_retention_seconds: float = 300.0
    failure_retention_seconds: float = 5.0

    # Rate limiting on /api/
    rate_limit_window_seconds: float = 15 * 60
    rate_limit_max_requests: int = 10
    rate_limit_sweep_seconds: float = 5 * 60

    # Frontend
    frontend_url: str = "http://localhost:5173"

    @property
    def debug(self) -> bool:
        return self.environment == "development"

    @property
    def working_dirs(self) -> List[Path]:
        return [self.upload_dir, self.processed_dir, self.tmp_dir]


settings = Settings()
