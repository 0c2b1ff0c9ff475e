"""
Inclusion policy for encoder output.

- webp: kept whenever the encoder succeeded
- avif: kept only if strictly smaller than the source file
- original: the source bytes, unchanged, under the new name. With
  recompression switched on, a recompressed candidate replaces them only
  when it is strictly smaller.

Records come out in attempt order (webp, avif, original) no matter which
encoder finished first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from imgset_shared.naming import output_name
from imgset_shared.records import (
    ATTEMPT_ORDER,
    PREVIEW_SCHEME,
    Diagnostic,
    EncodedCandidate,
    EncodeFailure,
    OutputRecord,
    SelectionDrop,
    SourceImage,
)

from .encode import EncodeOutcome

logger = logging.getLogger(__name__)

SIZE_GATED: frozenset[str] = frozenset({"avif"})


@dataclass
class Selection:
    """Accepted records plus everything that was left out and why."""
    records: list[OutputRecord] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)


def placeholder_url(name: str) -> str:
    return f"{PREVIEW_SCHEME}{name}"


def select_outputs(
    source: SourceImage,
    outcomes: Iterable[EncodeOutcome],
    timestamp: int,
) -> Selection:
    selection = Selection()
    by_format: dict[str, EncodeOutcome] = {}
    for outcome in outcomes:
        by_format[outcome.format] = outcome

    for fmt in ATTEMPT_ORDER:
        outcome = by_format.get(fmt)

        if outcome is not None and not outcome.ok:
            reason = str(outcome.error) if outcome.error else "no candidate"
            selection.diagnostics.append(EncodeFailure(format=fmt, reason=reason))

        if fmt == "original":
            candidate = outcome.candidate if outcome is not None else None
            record = _original_record(source, candidate, timestamp, selection)
            if record is not None:
                selection.records.append(record)
            continue

        if outcome is None or outcome.candidate is None:
            continue

        candidate = outcome.candidate
        if fmt in SIZE_GATED and candidate.byte_size >= source.byte_size:
            logger.warning(
                "Dropping %s: %d bytes is not smaller than source (%d bytes)",
                fmt, candidate.byte_size, source.byte_size,
            )
            selection.diagnostics.append(SelectionDrop(
                format=fmt,
                reason="not smaller than source",
                candidate_size=candidate.byte_size,
                source_size=source.byte_size,
            ))
            continue

        selection.records.append(_make_record(source, candidate.data, candidate.media_type, fmt, timestamp))

    return selection


def _original_record(
    source: SourceImage,
    recompressed: EncodedCandidate | None,
    timestamp: int,
    selection: Selection,
) -> OutputRecord | None:
    if recompressed is not None:
        if recompressed.byte_size < source.byte_size:
            logger.debug(
                "Using recompressed original: %d -> %d bytes",
                source.byte_size, recompressed.byte_size,
            )
            return _make_record(source, recompressed.data, source.media_type, "original", timestamp)
        logger.info(
            "Recompressed original (%d bytes) is not smaller than source (%d bytes), passing through",
            recompressed.byte_size, source.byte_size,
        )
        selection.diagnostics.append(SelectionDrop(
            format="original",
            reason="recompressed original not smaller than source",
            candidate_size=recompressed.byte_size,
            source_size=source.byte_size,
        ))

    if not source.data:
        logger.warning("Source bytes for %s are unavailable, no original record", source.name)
        selection.diagnostics.append(
            EncodeFailure(format="original", reason="source bytes unavailable")
        )
        return None

    return _make_record(source, source.data, source.media_type, "original", timestamp)


def _make_record(
    source: SourceImage,
    data: bytes,
    media_type: str,
    fmt: str,
    timestamp: int,
) -> OutputRecord:
    name = output_name(source.name, timestamp, fmt, source.media_type)
    return OutputRecord(
        name=name,
        format=fmt,
        media_type=media_type,
        data=data,
        url=placeholder_url(name),
    )
