from __future__ import annotations

import io

import numpy as np
import pytest
from PIL import Image

from imgset_shared.records import EncodedCandidate, PixelBuffer, SourceImage
from imgset_converter.encode import EncodeError, Encoder


def noisy_rgb(width: int, height: int, seed: int = 0, amplitude: int = 255) -> np.ndarray:
    """Gradient plus noise, hard enough to compress that sizes are realistic."""
    rng = np.random.default_rng(seed)
    x = np.linspace(0, 255, width, dtype=np.float32)
    y = np.linspace(0, 255, height, dtype=np.float32)[:, None]
    base = np.stack([np.broadcast_to(x, (height, width)),
                     np.broadcast_to(y, (height, width)),
                     np.full((height, width), 128, dtype=np.float32)], axis=-1)
    noise = rng.integers(-amplitude // 2, amplitude // 2 + 1, size=(height, width, 3))
    return np.clip(base + noise, 0, 255).astype(np.uint8)


def encode_image(img: Image.Image, fmt: str, **kwargs) -> bytes:
    out = io.BytesIO()
    img.save(out, format=fmt, **kwargs)
    return out.getvalue()


def jpeg_bytes(width: int, height: int, quality: int = 90, seed: int = 0, amplitude: int = 255) -> bytes:
    img = Image.fromarray(noisy_rgb(width, height, seed, amplitude))
    return encode_image(img, "JPEG", quality=quality)


class StubEncoder(Encoder):
    """Returns canned bytes; records what it saw."""

    def __init__(self, format: str, data: bytes = b"stub", on_encode=None):
        super().__init__(quality=50)
        self.format = format
        self.media_type = f"image/{format}"
        self.data = data
        self.on_encode = on_encode
        self.seen: list[PixelBuffer] = []

    def encode(self, buffer: PixelBuffer) -> EncodedCandidate:
        self.seen.append(buffer)
        if self.on_encode is not None:
            self.on_encode(buffer)
        return EncodedCandidate(format=self.format, media_type=self.media_type, data=self.data, quality=50)


class FailingEncoder(Encoder):
    def __init__(self, format: str, exc: Exception | None = None):
        super().__init__()
        self.format = format
        self.media_type = f"image/{format}"
        self.exc = exc

    def encode(self, buffer: PixelBuffer) -> EncodedCandidate:
        raise self.exc or EncodeError(self.format, "forced failure")


@pytest.fixture
def small_jpeg() -> bytes:
    return jpeg_bytes(64, 48)


@pytest.fixture
def photo_source() -> SourceImage:
    return SourceImage(name="My Photo #1.JPG", media_type="image/jpeg", data=jpeg_bytes(320, 240, quality=95))


@pytest.fixture
def rgba_buffer() -> PixelBuffer:
    rgba = np.dstack([noisy_rgb(96, 64, seed=3), np.full((64, 96), 255, dtype=np.uint8)])
    return PixelBuffer.from_array(rgba)
