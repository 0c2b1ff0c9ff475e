"""
Deterministic names for output files.

Every record of one invocation is named ``<slug>_<timestamp>.<ext>`` so
that siblings share a common prefix and differ only by extension.
"""

from __future__ import annotations

import mimetypes
import re

from .records import FORMAT_EXTENSIONS, FormatTag

_EXTENSION_RE = re.compile(r"\.[^/.]+$")
_SEPARATOR_RE = re.compile(r"[^a-z0-9]+")

DEFAULT_SLUG = "image"
FALLBACK_EXTENSION = "bin"


def base_name(filename: str) -> str:
    """Drop any directory components, either separator style."""
    return filename.replace("\\", "/").rsplit("/", 1)[-1]


def slugify(filename: str) -> str:
    """
    Turn a display file name into a URL-safe slug.

    "My Photo #1.JPG" -> "my-photo-1"
    """
    stem = _EXTENSION_RE.sub("", base_name(filename))
    if not stem:
        return DEFAULT_SLUG
    return _SEPARATOR_RE.sub("-", stem.lower())


def source_extension(filename: str, media_type: str | None = None) -> str:
    """Lower-cased extension of the source, without the dot."""
    match = _EXTENSION_RE.search(base_name(filename))
    if match:
        return match.group(0)[1:].lower()
    if media_type:
        guessed = mimetypes.guess_extension(media_type)
        if guessed:
            return guessed[1:].lower()
    return FALLBACK_EXTENSION


def format_extension(format: FormatTag, filename: str, media_type: str | None = None) -> str:
    if format == "original":
        return source_extension(filename, media_type)
    return FORMAT_EXTENSIONS[format]


def build_name(slug: str, timestamp: int, extension: str) -> str:
    return f"{slug}_{timestamp}.{extension}"


def output_name(
    filename: str,
    timestamp: int,
    format: FormatTag,
    media_type: str | None = None,
) -> str:
    """Name of the record for ``format`` derived from the source file name."""
    return build_name(
        slugify(filename),
        timestamp,
        format_extension(format, filename, media_type),
    )
