"""
Decoding of source bytes into the canonical RGBA pixel buffer.

Known media types go through a dedicated Pillow route restricted to the
matching plugin. Anything else, or bytes a dedicated route cannot identify,
goes through the generic OpenCV route.
"""

from __future__ import annotations

import io
import logging

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from imgset_shared.records import PixelBuffer, SourceImage

logger = logging.getLogger(__name__)

MAX_PIXELS = 50_000_000

# Integer grayscale modes Pillow cannot convert to RGBA without clipping
WIDE_GRAY_MODES = frozenset({"I;16", "I;16B", "I;16L", "I;16N", "I"})

# media type -> Pillow plugin name
PILLOW_ROUTES: dict[str, str] = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/pjpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
    "image/avif": "AVIF",
    "image/gif": "GIF",
}


class DecodeError(RuntimeError):
    """Raised when source bytes cannot be turned into pixels."""

    def __init__(self, media_type: str, reason: str):
        self.media_type = media_type
        self.reason = reason
        super().__init__(f"Cannot decode {media_type or 'unknown type'}: {reason}")


def decode_source(source: SourceImage) -> PixelBuffer:
    return decode_image(source.data, source.media_type)


def decode_image(data: bytes, media_type: str) -> PixelBuffer:
    """
    Decode ``data`` into an RGBA PixelBuffer.

    Raises DecodeError: If the bytes are empty, oversized or not an image
    """
    if not data:
        raise DecodeError(media_type, "empty input")

    media_type = (media_type or "").split(";", 1)[0].strip().lower()
    plugin = PILLOW_ROUTES.get(media_type)

    if plugin is not None:
        try:
            buffer = _decode_with_pillow(data, plugin, media_type)
            logger.debug("Decoded %s via %s: %dx%d", media_type, plugin, buffer.width, buffer.height)
            return buffer
        except (UnidentifiedImageError, KeyError) as e:
            logger.warning(
                "Content does not look like declared %s (%s); trying generic decode",
                media_type, e,
            )
        except Image.DecompressionBombError as e:
            raise DecodeError(media_type, str(e)) from e
        except (OSError, ValueError, SyntaxError) as e:
            raise DecodeError(media_type, f"{type(e).__name__}: {e}") from e

    buffer = _decode_generic(data, media_type)
    logger.debug("Decoded %s via generic route: %dx%d", media_type, buffer.width, buffer.height)
    return buffer


def _check_dimensions(width: int, height: int, media_type: str) -> None:
    if width <= 0 or height <= 0:
        raise DecodeError(media_type, f"invalid dimensions {width}x{height}")
    if width * height > MAX_PIXELS:
        raise DecodeError(media_type, f"{width}x{height} exceeds {MAX_PIXELS} pixels")


def _decode_with_pillow(data: bytes, plugin: str, media_type: str) -> PixelBuffer:
    with Image.open(io.BytesIO(data), formats=[plugin]) as img:
        _check_dimensions(img.width, img.height, media_type)

        n_frames = getattr(img, "n_frames", 1)
        if n_frames != 1:
            logger.debug("Multi-frame %s (%d frames), using first frame", plugin, n_frames)
            img.seek(0)

        img.load()
        oriented = ImageOps.exif_transpose(img)
        rgba = _pillow_to_rgba(oriented)

    return PixelBuffer.from_array(rgba)


def _pillow_to_rgba(img: Image.Image) -> np.ndarray:
    if img.mode in WIDE_GRAY_MODES:
        wide = np.clip(np.array(img).astype(np.int64), 0, 65535)
        gray = (wide >> 8).astype(np.uint8)
        return cv2.cvtColor(gray, cv2.COLOR_GRAY2RGBA)
    return np.array(img.convert("RGBA"), dtype=np.uint8)


def _decode_generic(data: bytes, media_type: str) -> PixelBuffer:
    """Let OpenCV sniff the container and draw it into an RGBA surface."""
    raw = np.frombuffer(data, dtype=np.uint8)
    try:
        decoded = cv2.imdecode(raw, cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise DecodeError(media_type, f"decoder surface failed: {e}") from e

    if decoded is None or decoded.size == 0:
        raise DecodeError(media_type, "bytes are not a recognised image")

    h, w = decoded.shape[:2]
    _check_dimensions(w, h, media_type)

    if decoded.dtype == np.uint16:
        decoded = (decoded >> 8).astype(np.uint8)
    elif decoded.dtype != np.uint8:
        decoded = np.clip(decoded * 255.0, 0, 255).astype(np.uint8)

    channels = 1 if decoded.ndim == 2 else decoded.shape[2]
    if channels == 1:
        rgba = cv2.cvtColor(decoded, cv2.COLOR_GRAY2RGBA)
    elif channels == 3:
        rgba = cv2.cvtColor(decoded, cv2.COLOR_BGR2RGBA)
    elif channels == 4:
        rgba = cv2.cvtColor(decoded, cv2.COLOR_BGRA2RGBA)
    else:
        raise DecodeError(media_type, f"unsupported channel count {channels}")

    return PixelBuffer.from_array(np.ascontiguousarray(rgba))
