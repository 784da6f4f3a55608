"""Source and source-map loading for generated scripts.

Resolution order for a script's map:

1. ``<script>.map`` next to the script on disk
2. an inline ``//# sourceMappingURL=data:application/json;base64,...`` trailer
3. a relative ``//# sourceMappingURL=<file>`` comment, resolved next to the script

Loaded files are cached per URL for the lifetime of one loader; a loader
belongs to one processing batch and is discarded (or ``clear()``-ed) with it.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from nextcov.core.errors import CoverageInputError
from nextcov.core.io import read_json, read_text
from nextcov.core.logging import get_logger
from nextcov.sourcemap.models import SourceFile, SourceMapRecord
from nextcov.v8.models import RawProcessCoverage

log = get_logger("sourcemap.loader")

_INLINE_MAP_RE = re.compile(
    r"//[#@]\s*sourceMappingURL=data:application/json;(?:charset=utf-8;)?base64,(\S+)\s*$",
    re.MULTILINE,
)
_MAP_URL_RE = re.compile(r"//[#@]\s*sourceMappingURL=(\S+)\s*$", re.MULTILINE)
_DATA_URL_RE = re.compile(r"^data:application/json;(?:charset=utf-8;)?base64,(.+)$")
_WEBPACK_PREFIX_RE = re.compile(r"^webpack://[^/]*/")


def normalize_source_path(source: str, source_dir: str = "src") -> str:
    """Canonical project-relative spelling of a source-map ``sources`` entry.

    Strips ``webpack://<namespace>/``, ``_N_E/`` and ``./`` prefixes and any
    query string, unifies separators, and cuts everything before the last
    ``/<source_dir>/`` so that ``.next/static/chunks/app/src/src/lib/x.ts``
    becomes ``src/lib/x.ts``.
    """
    path = source.replace("\\", "/")
    path = _WEBPACK_PREFIX_RE.sub("", path)
    path = path.split("?", 1)[0].split("#", 1)[0]
    if path.startswith("_N_E/"):
        path = path[len("_N_E/") :]
    while path.startswith("./"):
        path = path[2:]

    marker = f"/{source_dir}/"
    anchored = path if path.startswith("/") else "/" + path
    index = anchored.rfind(marker)
    if index != -1:
        return f"{source_dir}/{anchored[index + len(marker) :]}"
    return path


class SourceMapLoader:
    """Loads generated scripts and their source maps, with a per-URL cache."""

    def __init__(self, project_root: Path, build_dir: Path | None = None, source_dir: str = "src") -> None:
        self.project_root = project_root
        self.build_dir = build_dir or project_root / ".next"
        self.source_dir = source_dir
        self._cache: dict[str, SourceFile] = {}

    def normalize_source_path(self, source: str) -> str:
        return normalize_source_path(source, self.source_dir)

    def url_to_file_path(self, url: str) -> Path | None:
        """Map a script URL to a path on disk, or None if it has no local file."""
        if url.startswith("file://"):
            return Path(url2pathname(urlparse(url).path))

        if "/_next/" in url:
            next_path = url.split("/_next/", 1)[1].split("?", 1)[0]
            return self.build_dir / unquote(next_path)

        if url.startswith("/"):
            return self.project_root / unquote(url.split("?", 1)[0]).lstrip("/")

        parsed = urlparse(url)
        if parsed.scheme in ("http", "https"):
            path = unquote(parsed.path)
            if "/_next/" in path:
                return self.build_dir / path.split("/_next/", 1)[1]
            return self.project_root / path.lstrip("/")

        return None

    async def load_source(self, url: str) -> SourceFile | None:
        """Load a script and its map. None if the URL maps to no readable file."""
        cached = self._cache.get(url)
        if cached is not None and cached.code:
            return cached

        file_path = self.url_to_file_path(url)
        if file_path is None:
            return cached

        try:
            code = await read_text(file_path)
        except (OSError, UnicodeDecodeError) as e:
            log.debug("source_unreadable", url=url, path=str(file_path), error=str(e))
            return cached

        if cached is not None:
            # Seeded from the V8 source-map cache; only the code was missing
            cached.code = code
            cached.path = str(file_path)
            return cached

        source_file = SourceFile(
            path=str(file_path),
            code=code,
            source_map=await self.load_source_map(file_path, code),
        )
        self._cache[url] = source_file
        return source_file

    async def load_source_map(self, script_path: Path, code: str | None = None) -> SourceMapRecord | None:
        adjacent = script_path.with_name(script_path.name + ".map")
        if adjacent.is_file():
            record = await self._read_map_file(adjacent)
            if record is not None:
                return record

        if not code:
            return None

        inline = self.extract_inline_source_map(code)
        if inline is not None:
            return inline

        match = _MAP_URL_RE.search(code)
        if match is None:
            return None
        map_url = match.group(1)
        if map_url.startswith("data:"):
            return self.parse_data_url(map_url)
        map_path = (script_path.parent / unquote(map_url)).resolve()
        if not map_path.is_file():
            return None
        return await self._read_map_file(map_path)

    async def _read_map_file(self, path: Path) -> SourceMapRecord | None:
        try:
            return SourceMapRecord.from_dict(await read_json(path))
        except CoverageInputError as e:
            log.debug("source_map_rejected", path=str(path), error=e.message)
            return None

    def extract_inline_source_map(self, code: str) -> SourceMapRecord | None:
        match = _INLINE_MAP_RE.search(code)
        if match is None:
            return None
        return self._decode_base64_map(match.group(1))

    def parse_data_url(self, data_url: str) -> SourceMapRecord | None:
        match = _DATA_URL_RE.match(data_url.strip())
        if match is None:
            return None
        return self._decode_base64_map(match.group(1))

    def _decode_base64_map(self, payload: str) -> SourceMapRecord | None:
        try:
            data = json.loads(base64.b64decode(payload).decode("utf-8"))
            return SourceMapRecord.from_dict(data)
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, CoverageInputError) as e:
            log.debug("inline_source_map_rejected", error=str(e))
            return None

    def load_from_v8_cache(self, coverage: RawProcessCoverage) -> None:
        """Seed the cache from the ``source-map-cache`` side channel."""
        if not coverage.source_map_cache:
            return
        for url, entry in coverage.source_map_cache.items():
            try:
                record = SourceMapRecord.from_dict(entry.data)
            except CoverageInputError as e:
                log.debug("cached_source_map_rejected", url=url, error=e.message)
                continue
            existing = self._cache.get(url)
            if existing is not None:
                existing.source_map = record
            else:
                path = self.url_to_file_path(url)
                self._cache[url] = SourceFile(path=str(path) if path else url, source_map=record)

    def resolve_original_path(self, source_map: SourceMapRecord, index: int) -> str | None:
        """Normalized path of ``sources[index]``, joined with ``sourceRoot`` if set."""
        if index < 0 or index >= len(source_map.sources):
            return None
        source = source_map.sources[index]
        if not source:
            return None
        if source_map.source_root:
            source = str(PurePosixPath(source_map.source_root) / source)
        return self.normalize_source_path(source)

    def original_source(self, source_map: SourceMapRecord, index: int) -> str | None:
        return source_map.content_for(index)

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
