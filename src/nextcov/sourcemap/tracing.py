"""Generated-to-original position lookup."""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass

from nextcov.sourcemap.codec import Segment, decode
from nextcov.sourcemap.models import SourceMapRecord


@dataclass(frozen=True, slots=True)
class OriginalPosition:
    source_index: int
    line: int  # 1-based
    column: int  # 0-based


class TraceMap:
    """Decoded mappings of one source map, indexed by generated line.

    Raises:
        SourceMapError: If the mappings cannot be decoded.
    """

    def __init__(self, record: SourceMapRecord) -> None:
        self.record = record
        self._lines: list[list[Segment]] = [
            sorted(segments, key=lambda s: s[0]) for segments in decode(record.mappings)
        ]
        self._columns: list[list[int]] = [[s[0] for s in line] for line in self._lines]

    def original_position_for(self, line: int, column: int) -> OriginalPosition | None:
        """Map a generated position (1-based line, 0-based column).

        Uses the closest segment at or before ``column`` on the line, else the
        first one after it. Returns None when the line has no segments or the
        chosen segment carries no source.
        """
        index = line - 1
        if index < 0 or index >= len(self._lines) or not self._lines[index]:
            return None
        segments = self._lines[index]
        pos = bisect_right(self._columns[index], column)
        segment = segments[pos - 1] if pos > 0 else segments[0]
        if len(segment) < 4:
            return None
        source_index = segment[1]
        if source_index < 0 or source_index >= len(self.record.sources):
            return None
        return OriginalPosition(source_index=source_index, line=segment[2] + 1, column=segment[3])
