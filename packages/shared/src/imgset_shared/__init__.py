"""
Shared record types and naming for image derivatives.

The package is a dependency of the converter and of whatever consumes its
results (an uploader, a preview UI):
- Converter uses it to build and bundle output records
- Consumers use it to read the result manifest

Deployment:
    pip install imgset
"""

from .records import (
    ATTEMPT_ORDER,
    FORMAT_EXTENSIONS,
    FORMAT_MEDIA_TYPES,
    PREVIEW_SCHEME,
    Diagnostic,
    EncodedCandidate,
    EncodeFailure,
    FormatTag,
    OutputRecord,
    PixelBuffer,
    ProcessingResult,
    SelectionDrop,
    SourceImage,
)
from .naming import (
    build_name,
    format_extension,
    output_name,
    slugify,
    source_extension,
)

__all__ = [
    # Records
    "ATTEMPT_ORDER",
    "FORMAT_EXTENSIONS",
    "FORMAT_MEDIA_TYPES",
    "PREVIEW_SCHEME",
    "FormatTag",
    "SourceImage",
    "PixelBuffer",
    "EncodedCandidate",
    "OutputRecord",
    "EncodeFailure",
    "SelectionDrop",
    "Diagnostic",
    "ProcessingResult",
    # Naming
    "slugify",
    "source_extension",
    "format_extension",
    "build_name",
    "output_name",
]
