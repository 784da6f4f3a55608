"""Source map records."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from nextcov.core.errors import CoverageInputError


def _optional_strings(value: Any, kind: str) -> tuple[str | None, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise CoverageInputError.invalid_record("source map", f"{kind} must be a list")
    return tuple(v if isinstance(v, str) else None for v in value)


@dataclass(frozen=True, slots=True)
class SourceMapRecord:
    """A version-3 source map.

    ``sources_content`` is index-aligned with ``sources`` when present.
    """

    sources: tuple[str | None, ...]
    mappings: str
    sources_content: tuple[str | None, ...] | None = None
    names: tuple[str, ...] = ()
    source_root: str | None = None
    file: str | None = None
    version: int = 3

    def content_for(self, index: int) -> str | None:
        if self.sources_content is None or index >= len(self.sources_content):
            return None
        return self.sources_content[index]

    def with_sources(
        self,
        sources: tuple[str | None, ...],
        sources_content: tuple[str | None, ...] | None = None,
        mappings: str | None = None,
    ) -> SourceMapRecord:
        return replace(
            self,
            sources=sources,
            sources_content=self.sources_content if sources_content is None else sources_content,
            mappings=self.mappings if mappings is None else mappings,
        )

    @classmethod
    def from_dict(cls, data: Any) -> SourceMapRecord:
        if not isinstance(data, Mapping):
            raise CoverageInputError.invalid_record("source map", "expected object")
        mappings = data.get("mappings", "")
        if not isinstance(mappings, str):
            raise CoverageInputError.invalid_record("source map", "mappings must be a string")
        content = data.get("sourcesContent")
        source_root = data.get("sourceRoot")
        file = data.get("file")
        return cls(
            sources=_optional_strings(data.get("sources"), "sources"),
            mappings=mappings,
            sources_content=_optional_strings(content, "sourcesContent") if content is not None else None,
            names=tuple(str(n) for n in data.get("names") or ()),
            source_root=source_root if isinstance(source_root, str) and source_root else None,
            file=file if isinstance(file, str) else None,
            version=int(data.get("version") or 3),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "version": self.version,
            "sources": list(self.sources),
            "names": list(self.names),
            "mappings": self.mappings,
        }
        if self.sources_content is not None:
            result["sourcesContent"] = list(self.sources_content)
        if self.source_root is not None:
            result["sourceRoot"] = self.source_root
        if self.file is not None:
            result["file"] = self.file
        return result


@dataclass(slots=True)
class SourceFile:
    """A generated script as loaded from disk, plus its source map if found."""

    path: str
    code: str = ""
    source_map: SourceMapRecord | None = field(default=None)
