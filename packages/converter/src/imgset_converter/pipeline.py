"""
Orchestration of one image through the derivative pipeline.

This module handles the high-level workflow:
1. Decode the source once into a shared PixelBuffer
2. Run every encoder against that buffer concurrently
3. Apply the inclusion policy and name the outputs
4. Bundle the accepted records into a ProcessingResult

Only decoding is required. Encoder failures are recorded and the
invocation carries on with whatever succeeded.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from imgset_shared.records import OutputRecord, ProcessingResult, SourceImage

from .config import TranscodeConfig
from .decode import DecodeError, decode_source
from .encode import Encoder, build_encoders, build_recompressor, run_encoders
from .selection import select_outputs

logger = logging.getLogger(__name__)


class ProcessingState(str, Enum):
    IDLE = "idle"
    DECODING = "decoding"
    ENCODING = "encoding"
    SELECTING = "selecting"
    DONE = "done"
    ERROR = "error"


BUSY_STATES = frozenset({
    ProcessingState.DECODING,
    ProcessingState.ENCODING,
    ProcessingState.SELECTING,
})


class ProcessingError(RuntimeError):
    """Raised when an invocation cannot produce any output record."""
    pass


class ImageProcessor:
    """
    Turns one SourceImage into a ProcessingResult.

    One invocation at a time: ``state``, ``is_processing`` and
    ``last_error`` describe the current or most recent run for progress
    indicators. The returned result (or raised exception) is the real
    outcome.
    """

    def __init__(
        self,
        config: TranscodeConfig | None = None,
        encoders: Sequence[Encoder] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config or TranscodeConfig.load()
        self._encoders = tuple(encoders) if encoders is not None else build_encoders(self._config)
        self._clock = clock

        self._lock = threading.Lock()
        self._state = ProcessingState.IDLE
        self._last_error: str | None = None

    @property
    def state(self) -> ProcessingState:
        with self._lock:
            return self._state

    @property
    def is_processing(self) -> bool:
        return self.state in BUSY_STATES

    @property
    def last_error(self) -> str | None:
        with self._lock:
            return self._last_error

    def process_path(self, path: Path | str, media_type: str | None = None) -> ProcessingResult:
        return self.process(SourceImage.from_path(path, media_type))

    def process(self, source: SourceImage) -> ProcessingResult:
        """
        Run the pipeline for ``source``.

        Raises:
            DecodeError: If the source cannot be decoded
            ProcessingError: If no output record could be produced
        """
        with self._lock:
            if self._state in BUSY_STATES:
                raise ProcessingError("Processor is already handling an image")
            self._state = ProcessingState.DECODING
            self._last_error = None

        timestamp = int(self._clock())
        logger.info("Processing %s (%s, %d bytes)", source.name, source.media_type, source.byte_size)

        buffer = None
        try:
            buffer = decode_source(source)

            self._set_state(ProcessingState.ENCODING)
            encoders = list(self._encoders)
            recompressor = build_recompressor(self._config, source.media_type)
            if recompressor is not None:
                encoders.append(recompressor)
            outcomes = run_encoders(buffer, encoders, self._config.max_workers)

            self._set_state(ProcessingState.SELECTING)
            selection = select_outputs(source, outcomes, timestamp)
            if not selection.records:
                raise ProcessingError(f"No output could be produced for {source.name}")

            result = ProcessingResult(
                original_name=source.name,
                timestamp=timestamp,
                records=tuple(self._store_previews(selection.records)),
                diagnostics=tuple(selection.diagnostics),
            )
        except DecodeError as e:
            logger.error("Decode failed for %s: %s", source.name, e)
            self._fail(e)
            raise
        except ProcessingError as e:
            logger.error("%s", e)
            self._fail(e)
            raise
        except Exception as e:
            logger.error("Processing %s failed: %s: %s", source.name, type(e).__name__, e)
            err = ProcessingError(f"Processing {source.name} failed: {type(e).__name__}: {e}")
            self._fail(err)
            raise err from e
        finally:
            if buffer is not None:
                buffer.release()

        self._set_state(ProcessingState.DONE)
        logger.info("Processing complete for %s: %d files", source.name, len(result.records))
        return result

    def _set_state(self, state: ProcessingState) -> None:
        with self._lock:
            self._state = state

    def _fail(self, error: Exception) -> None:
        with self._lock:
            self._state = ProcessingState.ERROR
            self._last_error = str(error)

    def _store_previews(self, records: list[OutputRecord]) -> list[OutputRecord]:
        """Write payloads to the preview directory, if one is configured."""
        preview_dir = self._config.preview_dir
        if preview_dir is None:
            return records

        try:
            self._config.ensure_directories()
        except OSError as e:
            logger.warning("Failed to create preview directory %s: %s", preview_dir, e)
            return records

        stored: list[OutputRecord] = []
        for record in records:
            path = preview_dir / record.name
            try:
                path.write_bytes(record.data)
            except OSError as e:
                logger.warning("Failed to write preview %s: %s", path, e)
                stored.append(record)
                continue
            stored.append(replace(record, url=path.resolve().as_uri()))
        return stored
