from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the trickplay service."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Trickplay generation (read once per run as a GenerationConfig snapshot)
    image_width_resolution: int = Field(default=320, alias="TRICKPLAY_WIDTH", ge=16, le=4096)
    image_interval_ms: int = Field(default=10_000, alias="TRICKPLAY_INTERVAL_MS", ge=100)
    # ffmpeg -q:v for the MJPEG encoder: 2 (best) .. 31 (worst)
    image_quality: int = Field(default=4, alias="TRICKPLAY_QUALITY", ge=2, le=31)
    on_demand_generation: bool = Field(default=False, alias="TRICKPLAY_ON_DEMAND")

    # Extraction tuning
    hwaccel: str | None = Field(default=None, alias="TRICKPLAY_HWACCEL")
    extraction_threads: int = Field(default=1, alias="TRICKPLAY_THREADS", ge=0, le=64)
    extraction_timeout_seconds: int = Field(default=3600, alias="TRICKPLAY_TIMEOUT_SECONDS", ge=10)
    ffmpeg_path: str = Field(default="ffmpeg", alias="FFMPEG_PATH")
    ffprobe_path: str = Field(default="ffprobe", alias="FFPROBE_PATH")

    # Number of artifact writes allowed at once across the whole process.
    # 1 serializes every generation run; raise only if the encoder tolerates it.
    writer_concurrency: int = Field(default=1, alias="WRITER_CONCURRENCY", ge=1, le=8)

    # Storage
    metadata_dir: Path = Field(default=Path("./data/metadata"), alias="METADATA_DIR")
    # Comma-separated list of library roots scanned for videos
    library_paths: str = Field(default="", alias="LIBRARY_PATHS")

    # Background tasks
    task_backend: Literal["redis", "memory"] = Field(default="memory", alias="TASK_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    worker_concurrency: int = Field(default=2, alias="WORKER_CONCURRENCY", ge=1, le=32)

    # FastAPI
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8096, alias="APP_PORT")
    debug: bool = Field(default=False, alias="DEBUG")

    @property
    def library_paths_list(self) -> list[Path]:
        return [Path(p.strip()) for p in self.library_paths.split(",") if p.strip()]


@dataclass(frozen=True)
class GenerationConfig:
    """Immutable snapshot of the generation parameters for one run."""

    width: int
    interval_ms: int
    quality: int = 4
    on_demand: bool = False
    hwaccel: str | None = None
    threads: int = 1
    timeout_seconds: int = 3600

    @classmethod
    def from_settings(cls, settings: Settings) -> GenerationConfig:
        return cls(
            width=settings.image_width_resolution,
            interval_ms=settings.image_interval_ms,
            quality=settings.image_quality,
            on_demand=settings.on_demand_generation,
            hwaccel=settings.hwaccel or None,
            threads=settings.extraction_threads,
            timeout_seconds=settings.extraction_timeout_seconds,
        )

    @property
    def fingerprint(self) -> tuple[int, int, int]:
        """Parameters that are baked into an artifact and recorded in its manifest."""
        return (self.width, self.interval_ms, self.quality)


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
