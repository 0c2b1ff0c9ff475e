"""
Encoders for the derivative formats.

Each encoder reads the shared PixelBuffer and produces one
EncodedCandidate. Encoders run side by side in a thread pool and their
failures are collected as EncodeOutcome values instead of propagating.
"""

from __future__ import annotations

import io
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Sequence

from PIL import Image, features

from imgset_shared.records import (
    FORMAT_MEDIA_TYPES,
    EncodedCandidate,
    FormatTag,
    PixelBuffer,
)

from .config import TranscodeConfig

logger = logging.getLogger(__name__)

# media type -> (Pillow plugin, lossy)
RECOMPRESSIBLE: dict[str, tuple[str, bool]] = {
    "image/jpeg": ("JPEG", True),
    "image/jpg": ("JPEG", True),
    "image/webp": ("WEBP", True),
    "image/png": ("PNG", False),
}


class EncodeError(RuntimeError):
    """Raised when an encoder fails to produce output."""

    def __init__(self, format: FormatTag, reason: str):
        self.format = format
        self.reason = reason
        super().__init__(f"{format} encode failed: {reason}")


@dataclass(frozen=True)
class EncodeOutcome:
    """Either a candidate or the error that prevented it."""
    format: FormatTag
    candidate: EncodedCandidate | None = None
    error: EncodeError | None = None

    @property
    def ok(self) -> bool:
        return self.candidate is not None


class Encoder:
    """Base class: turns the shared buffer into one format's bytes."""

    format: FormatTag
    media_type: str

    def __init__(self, quality: int | None = None, speed: int | None = None):
        self.quality = quality
        self.speed = speed

    def encode(self, buffer: PixelBuffer) -> EncodedCandidate:
        if buffer.released:
            raise EncodeError(self.format, "pixel buffer already released")

        image = Image.fromarray(buffer.pixels)
        out = io.BytesIO()
        try:
            used_quality = self._save(image, buffer, out)
        except EncodeError:
            raise
        except (OSError, ValueError, KeyError) as e:
            raise EncodeError(self.format, f"{type(e).__name__}: {e}") from e

        data = out.getvalue()
        if not data:
            raise EncodeError(self.format, "encoder produced no data")

        quality = self.quality if used_quality is None else used_quality
        logger.debug(
            "%s encoded %dx%d -> %d bytes (quality=%s, speed=%s)",
            self.format, buffer.width, buffer.height, len(data), quality, self.speed,
        )
        return EncodedCandidate(
            format=self.format,
            media_type=self.media_type,
            data=data,
            quality=quality,
            speed=self.speed,
        )

    def _save(self, image: Image.Image, buffer: PixelBuffer, out: io.BytesIO) -> int | None:
        raise NotImplementedError


class WebPEncoder(Encoder):
    format: FormatTag = "webp"
    media_type = FORMAT_MEDIA_TYPES["webp"]

    def _save(self, image: Image.Image, buffer: PixelBuffer, out: io.BytesIO) -> int | None:
        if not buffer.has_alpha():
            image = image.convert("RGB")
        image.save(out, format="WEBP", quality=self.quality, method=self.speed)


class AvifEncoder(Encoder):
    """AVIF at a harsher quality than WebP; it holds up better per byte."""

    format: FormatTag = "avif"
    media_type = FORMAT_MEDIA_TYPES["avif"]

    def _save(self, image: Image.Image, buffer: PixelBuffer, out: io.BytesIO) -> int | None:
        if not avif_supported():
            raise EncodeError(self.format, "AVIF support not available in this Pillow build")
        if not buffer.has_alpha():
            image = image.convert("RGB")
        image.save(out, format="AVIF", quality=self.quality, speed=self.speed)


class OriginalRecompressor(Encoder):
    """
    Re-encode the original in its own format, shrinking quality until the
    result fits ``max_bytes`` or ``min_quality`` is reached.

    Only used when original recompression is switched on; the default
    policy passes the source bytes through untouched.
    """

    format: FormatTag = "original"

    def __init__(self, media_type: str, quality: int, min_quality: int, max_bytes: int):
        super().__init__(quality=quality)
        self.media_type = media_type
        self.min_quality = min_quality
        self.max_bytes = max_bytes

    def _save(self, image: Image.Image, buffer: PixelBuffer, out: io.BytesIO) -> int | None:
        route = RECOMPRESSIBLE.get(self.media_type)
        if route is None:
            raise EncodeError(self.format, f"cannot recompress {self.media_type}")
        plugin, lossy = route

        if plugin == "JPEG" or not buffer.has_alpha():
            image = image.convert("RGB")

        if not lossy:
            image.save(out, format=plugin, optimize=True)
            return None

        quality = self.quality
        best: bytes | None = None
        best_quality = quality
        while True:
            attempt = io.BytesIO()
            image.save(attempt, format=plugin, quality=quality)
            data = attempt.getvalue()
            if best is None or len(data) < len(best):
                best = data
                best_quality = quality

            if len(data) <= self.max_bytes or quality <= self.min_quality:
                break

            quality = max(self.min_quality, quality - 10)
            logger.info("Original is %d bytes, retrying at quality %d", len(data), quality)

        out.write(best)
        return best_quality


def avif_supported() -> bool:
    return bool(features.check("avif"))


def build_encoders(config: TranscodeConfig) -> tuple[Encoder, ...]:
    """Fixed derivative encoders in attempt order."""
    return (
        WebPEncoder(quality=config.webp_quality, speed=config.webp_method),
        AvifEncoder(quality=config.avif_quality, speed=config.avif_speed),
    )


def build_recompressor(config: TranscodeConfig, media_type: str) -> OriginalRecompressor | None:
    if not config.recompress_original:
        return None
    return OriginalRecompressor(
        media_type=media_type,
        quality=config.original_quality,
        min_quality=config.original_min_quality,
        max_bytes=config.original_max_bytes,
    )


def _run_one(encoder: Encoder, buffer: PixelBuffer) -> EncodeOutcome:
    try:
        return EncodeOutcome(format=encoder.format, candidate=encoder.encode(buffer))
    except EncodeError as e:
        logger.warning("Encoder %s failed: %s", encoder.format, e)
        return EncodeOutcome(format=encoder.format, error=e)
    except Exception as e:
        logger.warning("Encoder %s crashed: %s: %s", encoder.format, type(e).__name__, e)
        err = EncodeError(encoder.format, f"{type(e).__name__}: {e}")
        err.__cause__ = e
        return EncodeOutcome(format=encoder.format, error=err)


def run_encoders(
    buffer: PixelBuffer,
    encoders: Sequence[Encoder],
    max_workers: int = 3,
) -> list[EncodeOutcome]:
    """
    Run every encoder against ``buffer`` concurrently.

    Returns one outcome per encoder, in the order the encoders were given,
    whatever order they finish in.
    """
    if not encoders:
        return []

    workers = max(1, min(max_workers, len(encoders)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="imgset-encode") as pool:
        futures = [pool.submit(_run_one, encoder, buffer) for encoder in encoders]
        return [f.result() for f in futures]
