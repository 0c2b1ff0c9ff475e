"""Configuration for the image derivative pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class TranscodeConfig:
    """Fixed encoder parameters, optionally overridden from the environment."""

    webp_quality: int = 80
    webp_method: int = 4
    avif_quality: int = 60
    avif_speed: int = 6
    recompress_original: bool = False
    original_max_bytes: int = 1_000_000
    original_quality: int = 80
    original_min_quality: int = 40
    max_workers: int = 3
    preview_dir: Path | None = None

    def __post_init__(self) -> None:
        for name in ("webp_quality", "avif_quality", "original_quality", "original_min_quality"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be 0..100, got {value}")
        if not 0 <= self.webp_method <= 6:
            raise ValueError(f"webp_method must be 0..6, got {self.webp_method}")
        if not 0 <= self.avif_speed <= 10:
            raise ValueError(f"avif_speed must be 0..10, got {self.avif_speed}")
        if self.original_min_quality > self.original_quality:
            raise ValueError("original_min_quality cannot exceed original_quality")
        if self.original_max_bytes <= 0:
            raise ValueError(f"original_max_bytes must be positive, got {self.original_max_bytes}")
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")

    @classmethod
    def load(cls) -> TranscodeConfig:
        """Load configuration from environment variables."""
        preview_dir = os.getenv("IMGSET_PREVIEW_DIR")
        return cls(
            webp_quality=int(os.getenv("IMGSET_WEBP_QUALITY", "80")),
            webp_method=int(os.getenv("IMGSET_WEBP_METHOD", "4")),
            avif_quality=int(os.getenv("IMGSET_AVIF_QUALITY", "60")),
            avif_speed=int(os.getenv("IMGSET_AVIF_SPEED", "6")),
            recompress_original=_env_flag("IMGSET_RECOMPRESS_ORIGINAL"),
            original_max_bytes=int(os.getenv("IMGSET_ORIGINAL_MAX_BYTES", "1000000")),
            original_quality=int(os.getenv("IMGSET_ORIGINAL_QUALITY", "80")),
            original_min_quality=int(os.getenv("IMGSET_ORIGINAL_MIN_QUALITY", "40")),
            max_workers=int(os.getenv("IMGSET_MAX_WORKERS", "3")),
            preview_dir=Path(preview_dir) if preview_dir else None,
        )

    def ensure_directories(self) -> None:
        if self.preview_dir is not None:
            self.preview_dir.mkdir(parents=True, exist_ok=True)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")
