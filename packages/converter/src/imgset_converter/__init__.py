"""
Image Derivative Engine.

This package is the core decode / encode / select logic. It turns one
uploaded image into WebP and AVIF derivatives plus the original, named
for upload.

Deployment:
    pip install imgset

This package has no networking dependencies. It's pure image processing.

"""

from .config import TranscodeConfig
from .decode import DecodeError, decode_image, decode_source
from .encode import (
    AvifEncoder,
    EncodeError,
    EncodeOutcome,
    Encoder,
    OriginalRecompressor,
    WebPEncoder,
    avif_supported,
    build_encoders,
    run_encoders,
)
from .pipeline import ImageProcessor, ProcessingError, ProcessingState
from .selection import Selection, select_outputs

__all__ = [
    "TranscodeConfig",
    "DecodeError",
    "decode_image",
    "decode_source",
    "EncodeError",
    "EncodeOutcome",
    "Encoder",
    "WebPEncoder",
    "AvifEncoder",
    "OriginalRecompressor",
    "avif_supported",
    "build_encoders",
    "run_encoders",
    "Selection",
    "select_outputs",
    "ImageProcessor",
    "ProcessingError",
    "ProcessingState",
]
