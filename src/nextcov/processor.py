"""Coverage processing runs.

A run ties the pipeline together for one project:

1. Read raw coverage (browser entries from the test runner, a
   ``NODE_V8_COVERAGE`` directory from the server).
2. Convert each side to an Istanbul map.
3. Merge the maps, add zero-count records for source files that never
   loaded, and write the configured reports.

One ``SourceMapLoader`` is created per processor and cleared at the end of
each ``process_all_coverage`` run.
"""

from __future__ import annotations

import asyncio
import fnmatch
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from nextcov.config.models import NextcovConfig
from nextcov.convert.converter import CoverageConverter
from nextcov.core.logging import get_logger, set_batch_id
from nextcov.coverage.merge import CoverageMerger
from nextcov.coverage.models import CoverageMap, CoverageSummary
from nextcov.coverage.report import CoverageReporter
from nextcov.sourcemap.loader import SourceMapLoader
from nextcov.v8.reader import RawCoverageReader

log = get_logger("processor")

_BRACE_RE = re.compile(r"\{([^{}]*)\}")


# =============================================================================
# Source discovery
# =============================================================================


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives: ``src/*.{ts,js}`` -> ``src/*.ts``, ``src/*.js``."""
    match = _BRACE_RE.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    return [
        expanded
        for option in match.group(1).split(",")
        for expanded in expand_braces(head + option + tail)
    ]


def matches_pattern(rel_path: str, pattern: str) -> bool:
    """Glob match of a project-relative POSIX path; ``**/`` may match no directory."""
    for expanded in expand_braces(pattern):
        if fnmatch.fnmatch(rel_path, expanded):
            return True
        if "/**/" in expanded and fnmatch.fnmatch(rel_path, expanded.replace("/**/", "/")):
            return True
    return False


def discover_source_files(
    project_root: Path,
    include: Iterable[str],
    exclude: Iterable[str] = (),
) -> list[Path]:
    """Resolved paths of files under ``project_root`` matching include and no exclude."""
    excludes = list(exclude)
    found: set[Path] = set()
    for pattern in include:
        for expanded in expand_braces(pattern):
            for path in project_root.glob(expanded):
                if not path.is_file():
                    continue
                rel = path.relative_to(project_root).as_posix()
                if any(matches_pattern(rel, ex) for ex in excludes):
                    continue
                found.add(path.resolve())
    return sorted(found)


# =============================================================================
# Processor
# =============================================================================


@dataclass(slots=True)
class CoverageResult:
    coverage_map: CoverageMap
    summary: CoverageSummary


class CoverageProcessor:
    """Runs the read, convert, merge and report pipeline for one project."""

    def __init__(self, project_root: Path, config: NextcovConfig | None = None) -> None:
        self.project_root = project_root.resolve()
        self.config = config or NextcovConfig()
        self.output_dir = self.project_root / self.config.output_dir

        self.reader = RawCoverageReader()
        self.loader = SourceMapLoader(
            self.project_root,
            build_dir=self.project_root / self.config.build_dir,
            source_dir=self.config.source_dir_name,
        )
        self.converter = CoverageConverter(
            self.project_root,
            self.loader,
            source_dir=self.config.source_dir_name,
        )
        self.merger = CoverageMerger(self.config.merger)
        self.reporter = CoverageReporter(
            self.output_dir,
            reporters=self.config.reporters,
            watermarks=self.config.watermarks,
        )

    async def process_playwright_coverage(self, entries: Sequence[Mapping[str, Any]]) -> CoverageMap:
        """Convert browser coverage entries collected by the test runner."""
        raw = self.reader.read_from_playwright(entries)
        filtered = self.reader.filter_entries(raw)
        log.debug("client_coverage_read", entries=len(entries), kept=len(filtered.result))
        return await self.converter.convert(filtered)

    async def process_v8_directory(self, directory: Path) -> CoverageMap:
        """Convert the server coverage written to a ``NODE_V8_COVERAGE`` directory."""
        raw = await self.reader.read_from_directory(directory)
        filtered = self.reader.filter_app_code(raw)
        log.debug("server_coverage_read", directory=str(directory), kept=len(filtered.result))
        return await self.converter.convert(filtered)

    async def process_all_coverage(
        self,
        entries: Sequence[Mapping[str, Any]] | None = None,
        v8_dir: Path | None = None,
    ) -> CoverageResult:
        """Convert every configured side, merge, add uncovered files and write reports.

        Raises:
            ReportError: If a report cannot be written.
        """
        batch_id = set_batch_id()
        log.info("coverage_run_started", batch_id=batch_id, project_root=str(self.project_root))

        maps: list[CoverageMap] = []
        try:
            if entries is not None and self.config.collect_client:
                maps.append(await self.process_playwright_coverage(entries))
            if v8_dir is not None and self.config.collect_server:
                maps.append(await self.process_v8_directory(v8_dir))

            merged = self.merger.merge(*maps)
            coverage_map = await self.add_uncovered_files(merged)
        finally:
            self.loader.clear()

        await self.reporter.write(coverage_map)
        summary = coverage_map.summary()
        log.info(
            "coverage_run_finished",
            files=len(coverage_map),
            statements_pct=summary.statements.pct,
            branches_pct=summary.branches.pct,
        )
        return CoverageResult(coverage_map=coverage_map, summary=summary)

    async def add_uncovered_files(self, coverage_map: CoverageMap) -> CoverageMap:
        """Add zero-count records for included source files missing from ``coverage_map``."""
        loop = asyncio.get_running_loop()
        source_files = await loop.run_in_executor(
            None,
            discover_source_files,
            self.project_root,
            self.config.include,
            self.config.exclude,
        )
        return await self.converter.add_uncovered_files(coverage_map, source_files)

    async def summary(self) -> CoverageSummary | None:
        """Summary of the last written ``coverage-final.json``; None if absent."""
        coverage_map = await self.reporter.read_coverage_json()
        if coverage_map is None:
            return None
        return coverage_map.summary()
