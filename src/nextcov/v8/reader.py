"""Reading raw V8 coverage.

Two sources feed the converter:

1. A ``NODE_V8_COVERAGE`` directory of ``coverage-*.json`` files, one per
   server process.
2. Browser coverage entries ``{url, source?, functions}`` handed over in
   memory by a test-runner integration.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from nextcov.core.errors import CoverageInputError
from nextcov.core.io import read_json
from nextcov.core.logging import get_logger
from nextcov.v8.merge import merge_process_covs
from nextcov.v8.models import RawProcessCoverage, RawScriptCoverage

log = get_logger("v8.reader")

DEFAULT_URL_EXCLUDES: tuple[str, ...] = (
    "/node_modules/",
    "node:",
    "__vitest__",
    "__playwright__",
)

EntryFilter = Callable[[RawScriptCoverage], bool]


def normalize_url(url: str) -> str:
    return url.replace("\\", "/")


@dataclass(frozen=True, slots=True)
class CoverageStats:
    total: int
    urls: list[str]


class RawCoverageReader:
    """Loads, filters and merges raw V8 coverage."""

    def __init__(self, exclude_patterns: Iterable[str | re.Pattern[str]] = DEFAULT_URL_EXCLUDES) -> None:
        self.exclude_patterns = tuple(exclude_patterns)

    async def read_from_directory(self, directory: Path) -> RawProcessCoverage:
        """Read and merge every ``coverage-*.json`` file in ``directory``.

        A missing directory, an empty directory and unreadable files are
        logged and skipped; the result is then empty (or partial).
        """
        if not directory.is_dir():
            log.warning("v8_directory_missing", directory=str(directory))
            return RawProcessCoverage()

        files = sorted(directory.glob("coverage-*.json"))
        if not files:
            log.warning("v8_coverage_files_missing", directory=str(directory))
            return RawProcessCoverage()

        merged: RawProcessCoverage | None = None
        for path in files:
            try:
                coverage = RawProcessCoverage.from_dict(await read_json(path))
            except CoverageInputError as e:
                log.warning("v8_coverage_file_skipped", path=str(path), error=e.message)
                continue
            merged = coverage if merged is None else merge_process_covs([merged, coverage])

        if merged is None:
            return RawProcessCoverage()
        log.debug("v8_coverage_read", directory=str(directory), files=len(files), scripts=len(merged.result))
        return merged

    def read_from_playwright(self, entries: Sequence[Mapping[str, Any]]) -> RawProcessCoverage:
        """Adapt browser coverage entries, assigning sequential script ids.

        Entries that fail validation are logged and dropped.
        """
        result: list[RawScriptCoverage] = []
        for index, entry in enumerate(entries):
            try:
                script = RawScriptCoverage.from_dict({**entry, "scriptId": str(index)})
            except CoverageInputError as e:
                log.warning("entry_skipped", url=entry.get("url"), error=e.message)
                continue
            result.append(script)
        return RawProcessCoverage(result=result)

    def _is_excluded(self, url: str) -> bool:
        for pattern in self.exclude_patterns:
            if isinstance(pattern, str):
                if pattern in url:
                    return True
            elif pattern.search(url):
                return True
        return False

    def filter_entries(
        self,
        coverage: RawProcessCoverage,
        predicate: EntryFilter | None = None,
    ) -> RawProcessCoverage:
        """Drop excluded URLs, and entries the predicate rejects."""
        kept = [
            entry
            for entry in coverage.result
            if not self._is_excluded(entry.url) and (predicate is None or predicate(entry))
        ]
        return replace(coverage, result=kept)

    def filter_app_code(self, coverage: RawProcessCoverage) -> RawProcessCoverage:
        """Keep Next.js server chunks, static client chunks and direct ``/src/`` URLs."""

        def is_app_code(entry: RawScriptCoverage) -> bool:
            url = normalize_url(entry.url)
            return ".next/server/" in url or "_next/static/chunks/" in url or "/src/" in url

        return self.filter_entries(coverage, is_app_code)

    def merge(self, *coverages: RawProcessCoverage) -> RawProcessCoverage:
        if not coverages:
            return RawProcessCoverage()
        merged = coverages[0]
        for coverage in coverages[1:]:
            merged = merge_process_covs([merged, coverage])
        return merged

    def source_urls(self, coverage: RawProcessCoverage) -> list[str]:
        """Unique URLs in first-seen order."""
        return list(dict.fromkeys(entry.url for entry in coverage.result))

    def stats(self, coverage: RawProcessCoverage) -> CoverageStats:
        return CoverageStats(total=len(coverage.result), urls=self.source_urls(coverage))
