"""Raw V8 coverage records.

Shape of a ``coverage-*.json`` file written by ``NODE_V8_COVERAGE``::

    {
        "result": [
            {
                "scriptId": "42",
                "url": "file:///app/.next/server/app/page.js",
                "functions": [
                    {
                        "functionName": "",
                        "ranges": [{"startOffset": 0, "endOffset": 120, "count": 1}],
                        "isBlockCoverage": true
                    }
                ]
            }
        ],
        "source-map-cache": {"file:///...": {"lineLengths": [...], "data": {...}}}
    }

Offsets are UTF-16 code-unit offsets into the script text. Records are
validated here, at the I/O boundary; everything downstream works on these
typed objects.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from nextcov.core.errors import CoverageInputError


def _require_int(data: Mapping[str, Any], key: str, kind: str) -> int:
    value = data.get(key)
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise CoverageInputError.invalid_record(kind, f"{key} must be a non-negative int, got {value!r}")
    return value


@dataclass(frozen=True, slots=True)
class RawRange:
    start_offset: int
    end_offset: int
    count: int

    @property
    def length(self) -> int:
        return self.end_offset - self.start_offset

    def contains(self, start: int, end: int) -> bool:
        return self.start_offset <= start and end <= self.end_offset

    @classmethod
    def from_dict(cls, data: Any) -> RawRange:
        if not isinstance(data, Mapping):
            raise CoverageInputError.invalid_record("range", f"expected object, got {data!r}")
        start = _require_int(data, "startOffset", "range")
        end = _require_int(data, "endOffset", "range")
        if end < start:
            raise CoverageInputError.invalid_record("range", f"endOffset {end} < startOffset {start}")
        return cls(start_offset=start, end_offset=end, count=_require_int(data, "count", "range"))

    def to_dict(self) -> dict[str, Any]:
        return {"startOffset": self.start_offset, "endOffset": self.end_offset, "count": self.count}


@dataclass(frozen=True, slots=True)
class RawFunctionCoverage:
    function_name: str
    ranges: tuple[RawRange, ...]
    is_block_coverage: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> RawFunctionCoverage:
        if not isinstance(data, Mapping):
            raise CoverageInputError.invalid_record("function", f"expected object, got {data!r}")
        ranges = data.get("ranges")
        if not isinstance(ranges, list) or not ranges:
            raise CoverageInputError.invalid_record("function", "ranges must be a non-empty list")
        return cls(
            function_name=str(data.get("functionName") or ""),
            ranges=tuple(RawRange.from_dict(r) for r in ranges),
            is_block_coverage=bool(data.get("isBlockCoverage", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "functionName": self.function_name,
            "ranges": [r.to_dict() for r in self.ranges],
            "isBlockCoverage": self.is_block_coverage,
        }


@dataclass(frozen=True, slots=True)
class SourceMapCacheEntry:
    """One entry of the ``source-map-cache`` side channel."""

    data: dict[str, Any]
    line_lengths: tuple[int, ...] = ()
    url: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> SourceMapCacheEntry:
        if not isinstance(data, Mapping) or not isinstance(data.get("data"), Mapping):
            raise CoverageInputError.invalid_record("source-map-cache", "entry has no data object")
        line_lengths = data.get("lineLengths")
        if line_lengths is None:
            line_lengths = []
        if not isinstance(line_lengths, list) or not all(
            isinstance(n, int) and not isinstance(n, bool) and n >= 0 for n in line_lengths
        ):
            raise CoverageInputError.invalid_record(
                "source-map-cache",
                f"lineLengths must be a list of non-negative ints, got {line_lengths!r}",
            )
        url = data.get("url")
        if url is not None and not isinstance(url, str):
            raise CoverageInputError.invalid_record(
                "source-map-cache", f"url must be a string, got {url!r}"
            )
        return cls(data=dict(data["data"]), line_lengths=tuple(line_lengths), url=url)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"lineLengths": list(self.line_lengths), "data": self.data}
        if self.url is not None:
            result["url"] = self.url
        return result


@dataclass(frozen=True, slots=True)
class RawScriptCoverage:
    script_id: str
    url: str
    functions: tuple[RawFunctionCoverage, ...]
    source: str | None = None
    source_map: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> RawScriptCoverage:
        if not isinstance(data, Mapping):
            raise CoverageInputError.invalid_record("script", f"expected object, got {data!r}")
        url = data.get("url")
        if not isinstance(url, str):
            raise CoverageInputError.invalid_record("script", f"url must be a string, got {url!r}")
        functions = data.get("functions")
        if not isinstance(functions, list):
            raise CoverageInputError.invalid_record("script", f"{url}: functions must be a list")
        source = data.get("source")
        source_map = data.get("sourceMap")
        return cls(
            script_id=str(data.get("scriptId", "")),
            url=url,
            functions=tuple(RawFunctionCoverage.from_dict(f) for f in functions),
            source=source if isinstance(source, str) else None,
            source_map=dict(source_map) if isinstance(source_map, Mapping) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "scriptId": self.script_id,
            "url": self.url,
            "functions": [f.to_dict() for f in self.functions],
        }
        if self.source is not None:
            result["source"] = self.source
        if self.source_map is not None:
            result["sourceMap"] = self.source_map
        return result


@dataclass(slots=True)
class RawProcessCoverage:
    """Coverage of one process (or several, once merged)."""

    result: list[RawScriptCoverage] = field(default_factory=list)
    source_map_cache: dict[str, SourceMapCacheEntry] | None = None
    timestamp: float | None = None

    @classmethod
    def from_dict(cls, data: Any) -> RawProcessCoverage:
        if not isinstance(data, Mapping) or not isinstance(data.get("result"), list):
            raise CoverageInputError.invalid_record("process coverage", "missing result list")
        cache_raw = data.get("source-map-cache")
        cache = None
        if isinstance(cache_raw, Mapping):
            cache = {str(url): SourceMapCacheEntry.from_dict(e) for url, e in cache_raw.items()}
        timestamp = data.get("timestamp")
        return cls(
            result=[RawScriptCoverage.from_dict(s) for s in data["result"]],
            source_map_cache=cache,
            timestamp=float(timestamp) if isinstance(timestamp, int | float) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"result": [s.to_dict() for s in self.result]}
        if self.source_map_cache is not None:
            result["source-map-cache"] = {
                url: entry.to_dict() for url, entry in self.source_map_cache.items()
            }
        if self.timestamp is not None:
            result["timestamp"] = self.timestamp
        return result
