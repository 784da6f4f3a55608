"""Source map sanitization.

Bundler maps list sources that cannot be attributed to a project file:
null entries, webpack externals, ``webpack://`` query modules, dependencies
and sources without content. Mapping segments that point at such sources
are removed, and the remaining sources are renumbered densely from 0.
"""

from __future__ import annotations

import re
from pathlib import Path

from nextcov.core.logging import get_logger
from nextcov.sourcemap.codec import DecodedMappings, decode, encode
from nextcov.sourcemap.loader import normalize_source_path
from nextcov.sourcemap.models import SourceMapRecord

log = get_logger("convert.sanitize")

_EXCLUDED_DIRS = ("node_modules/", ".next/")
_WINDOWS_ABS_RE = re.compile(r"^[A-Za-z]:[/\\]")


def is_valid_source(
    source: str | None,
    content: str | None,
    *,
    project_root: Path,
    source_dir: str = "src",
) -> bool:
    """Whether a ``sources`` entry can be attributed to a project source file."""
    if not source or not source.strip():
        return False
    if source.startswith("external ") or "external%20" in source:
        return False
    if source.startswith("webpack://") and "?" in source:
        return False

    unified = source.replace("\\", "/")
    absolute = unified.startswith("/") or _WINDOWS_ABS_RE.match(unified) is not None
    if absolute and not unified.startswith(project_root.as_posix()):
        return False

    normalized = normalize_source_path(source, source_dir)
    if "node_modules/" in unified or any(excluded in normalized for excluded in _EXCLUDED_DIRS):
        return False
    if not normalized.startswith(f"{source_dir}/") and f"/{source_dir}/" not in unified:
        return False

    return isinstance(content, str) and content != ""


def filter_mappings(decoded: DecodedMappings, remap: dict[int, int]) -> DecodedMappings:
    """Drop segments whose source is not in ``remap``; renumber the rest.

    Generated-column-only segments carry no source and are kept.
    """
    filtered: DecodedMappings = []
    for line in decoded:
        kept = []
        for segment in line:
            if len(segment) == 1:
                kept.append(segment)
            elif segment[1] in remap:
                kept.append((segment[0], remap[segment[1]], *segment[2:]))
        filtered.append(kept)
    return filtered


def sanitize_source_map(
    source_map: SourceMapRecord,
    *,
    project_root: Path,
    source_dir: str = "src",
) -> SourceMapRecord | None:
    """Return a map that references only valid sources, or None if none are.

    Every kept ``sources`` entry is path-normalized. Raises ``SourceMapError``
    if the mappings must be rewritten and cannot be decoded.
    """
    if not source_map.sources:
        return None

    valid = [
        index
        for index, source in enumerate(source_map.sources)
        if is_valid_source(
            source,
            source_map.content_for(index),
            project_root=project_root,
            source_dir=source_dir,
        )
    ]
    if not valid:
        return None

    if len(valid) == len(source_map.sources):
        return source_map.with_sources(
            tuple(normalize_source_path(s or "", source_dir) for s in source_map.sources)
        )

    remap = {old: new for new, old in enumerate(valid)}
    mappings = encode(filter_mappings(decode(source_map.mappings), remap))
    log.debug(
        "source_map_sanitized",
        kept=len(valid),
        dropped=len(source_map.sources) - len(valid),
    )
    return source_map.with_sources(
        tuple(normalize_source_path(source_map.sources[i] or "", source_dir) for i in valid),
        tuple(source_map.content_for(i) for i in valid),
        mappings,
    )
