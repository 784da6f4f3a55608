"""Source maps: VLQ codec, records, loading and position tracing."""

from nextcov.sourcemap.codec import decode, encode
from nextcov.sourcemap.loader import SourceMapLoader, normalize_source_path
from nextcov.sourcemap.models import SourceFile, SourceMapRecord
from nextcov.sourcemap.tracing import OriginalPosition, TraceMap

__all__ = [
    "OriginalPosition",
    "SourceFile",
    "SourceMapLoader",
    "SourceMapRecord",
    "TraceMap",
    "decode",
    "encode",
    "normalize_source_path",
]
