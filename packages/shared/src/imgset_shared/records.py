"""
Record types for the image derivative pipeline.

Data Flow:
    SourceImage -> PixelBuffer (decode once)
    PixelBuffer -> EncodedCandidate (one per encoder, webp / avif / original)
    EncodedCandidate -> OutputRecord (accepted by the selector, named)
    OutputRecord* -> ProcessingResult (one bundle per invocation)
"""
from __future__ import annotations

import mimetypes
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Literal

import numpy as np

# Type literal
FormatTag = Literal["webp", "avif", "original"]

ATTEMPT_ORDER: tuple[FormatTag, ...] = ("webp", "avif", "original")

FORMAT_MEDIA_TYPES: dict[str, str] = {
    "webp": "image/webp",
    "avif": "image/avif",
}

FORMAT_EXTENSIONS: dict[str, str] = {
    "webp": "webp",
    "avif": "avif",
}

PREVIEW_SCHEME = "preview://"


@dataclass(frozen=True)
class SourceImage:
    """The user supplied file. Read-only for the whole invocation."""
    name: str
    media_type: str
    data: bytes = field(repr=False)
    byte_size: int | None = None

    def __post_init__(self) -> None:
        if self.byte_size is None:
            object.__setattr__(self, "byte_size", len(self.data))
        elif self.byte_size != len(self.data):
            raise ValueError(
                f"Declared byte size {self.byte_size} does not match "
                f"payload length {len(self.data)} for {self.name!r}"
            )

    @classmethod
    def from_path(cls, path: Path | str, media_type: str | None = None) -> "SourceImage":
        """Read a source image from disk, guessing the media type if needed."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Input file not found: {path}")
        if media_type is None:
            media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(name=path.name, media_type=media_type, data=path.read_bytes())


@dataclass(eq=False)
class PixelBuffer:
    """
    Canonical decoded image: height x width x 4 RGBA samples, uint8.

    The sample array is marked read-only so that encoders sharing one buffer
    cannot modify it. ``release()`` drops the samples once the invocation
    that owns the buffer has finished.
    """
    width: int
    height: int
    _pixels: np.ndarray | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self._pixels is None:
            raise ValueError("PixelBuffer requires a sample array")
        if self._pixels.shape != (self.height, self.width, 4):
            raise ValueError(
                f"Sample array shape {self._pixels.shape} does not match "
                f"{self.width}x{self.height} RGBA"
            )
        if self._pixels.dtype != np.uint8:
            raise ValueError(f"Expected uint8 samples, got {self._pixels.dtype}")
        self._pixels = np.ascontiguousarray(self._pixels)
        self._pixels.flags.writeable = False

    @classmethod
    def from_array(cls, rgba: np.ndarray) -> "PixelBuffer":
        height, width = rgba.shape[:2]
        return cls(width=width, height=height, _pixels=rgba)

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise ValueError("PixelBuffer has been released")
        return self._pixels

    @property
    def released(self) -> bool:
        return self._pixels is None

    def has_alpha(self) -> bool:
        """True if any sample is not fully opaque."""
        return bool((self.pixels[:, :, 3] != 255).any())

    def release(self) -> None:
        self._pixels = None

    def __enter__(self) -> "PixelBuffer":
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()


@dataclass(frozen=True)
class EncodedCandidate:
    """One encoder's output, not yet accepted by the selector."""
    format: FormatTag
    media_type: str
    data: bytes = field(repr=False)
    quality: int | None = None
    speed: int | None = None

    @property
    def byte_size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class OutputRecord:
    """A named deliverable handed to the upload collaborator."""
    name: str
    format: FormatTag
    media_type: str
    data: bytes = field(repr=False)
    url: str = ""

    @property
    def byte_size(self) -> int:
        return len(self.data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "format": self.format,
            "media_type": self.media_type,
            "byte_size": self.byte_size,
            "url": self.url,
        }


@dataclass(frozen=True)
class EncodeFailure:
    """An encoder that did not produce a candidate."""
    kind: Literal["encode_error"] = "encode_error"
    format: FormatTag | None = None
    reason: str = ""


@dataclass(frozen=True)
class SelectionDrop:
    """
    A candidate rejected by the inclusion policy.

    Not an error: the encoder succeeded but its output was not worth
    keeping (for example an AVIF file larger than the source).
    """
    kind: Literal["selection_drop"] = "selection_drop"
    format: FormatTag | None = None
    reason: str = ""
    candidate_size: int | None = None
    source_size: int | None = None


Diagnostic = EncodeFailure | SelectionDrop


@dataclass(frozen=True)
class ProcessingResult:
    """Everything one invocation produced, in attempt order."""
    original_name: str
    timestamp: int
    records: tuple[OutputRecord, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()

    def __post_init__(self) -> None:
        tags = [r.format for r in self.records]
        if len(tags) != len(set(tags)):
            raise ValueError(f"Duplicate format in result records: {tags}")
        ranks = [ATTEMPT_ORDER.index(t) for t in tags]
        if ranks != sorted(ranks):
            raise ValueError(f"Records out of attempt order: {tags}")

    def get(self, format: FormatTag) -> OutputRecord | None:
        for record in self.records:
            if record.format == format:
                return record
        return None

    def names(self) -> list[str]:
        return [r.name for r in self.records]

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_name": self.original_name,
            "timestamp": self.timestamp,
            "files": [r.to_dict() for r in self.records],
            "diagnostics": [
                {k: v for k, v in asdict(d).items() if v is not None}
                for d in self.diagnostics
            ],
        }
