"""V8 to Istanbul conversion.

For one raw script entry:

1. Load the generated code and its source map (``SourceMapLoader``).
2. Parse the code with tree-sitter; badly broken trees drop the entry.
3. Sanitize the source map; a map with no attributable source drops the entry.
4. Instrument the tree (statements, functions, branches), count each site
   from the V8 ranges and project it through the map onto original files.

``convert`` runs that for every entry of a raw coverage object with a
bounded worker pool, folds the partial maps sequentially, canonicalizes
file paths and runs the repair passes.
"""

from __future__ import annotations

import asyncio
import threading
from bisect import bisect_right
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from nextcov.config.constants import MAX_CONVERT_WORKERS
from nextcov.convert.instrument import ByteSpan, Instrumentation, empty_file_coverage, instrument
from nextcov.convert.parsing import ParsedSource, SourceParser
from nextcov.convert.repair import FileRepairer
from nextcov.convert.sanitize import sanitize_source_map
from nextcov.core.errors import CoverageInputError
from nextcov.core.io import read_text
from nextcov.core.logging import get_logger
from nextcov.coverage.fixes import fix_file
from nextcov.coverage.merge import merge_file_add
from nextcov.coverage.models import BranchMeta, CoverageMap, FileCoverage, FunctionMeta, Span
from nextcov.sourcemap.loader import SourceMapLoader
from nextcov.sourcemap.models import SourceMapRecord
from nextcov.sourcemap.tracing import TraceMap
from nextcov.v8.models import RawFunctionCoverage, RawProcessCoverage, RawRange, RawScriptCoverage

log = get_logger("convert.converter")

_SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")

_thread_parsers = threading.local()


def _parser() -> SourceParser:
    """One parser per thread; tree-sitter parsers are not shared across threads."""
    parser = getattr(_thread_parsers, "parser", None)
    if parser is None:
        parser = _thread_parsers.parser = SourceParser()
    return parser


# =============================================================================
# Range lookup
# =============================================================================


class RangeIndex:
    """Count lookup over all V8 ranges of one script (UTF-16 offsets).

    V8 ranges nest: functions inside the script, blocks inside functions.
    Each range gets its innermost enclosing range as parent, so the smallest
    range containing a span is found by locating the innermost range at the
    span's start and walking up until the span fits.
    """

    def __init__(self, functions: Sequence[RawFunctionCoverage]) -> None:
        ranges = sorted(
            {r for fn in functions for r in fn.ranges},
            key=lambda r: (r.start_offset, -r.end_offset, r.count),
        )
        self._ranges: list[RawRange] = ranges
        self._starts = [r.start_offset for r in ranges]
        self._parents: list[int | None] = []
        stack: list[int] = []
        for i, r in enumerate(ranges):
            while stack and not ranges[stack[-1]].contains(r.start_offset, r.end_offset):
                stack.pop()
            self._parents.append(stack[-1] if stack else None)
            stack.append(i)

        self._function_starts: dict[int, int] = {}
        for fn in functions:
            root = fn.ranges[0]
            current = self._function_starts.get(root.start_offset, 0)
            self._function_starts[root.start_offset] = max(current, root.count)

    def _innermost_at(self, offset: int) -> int | None:
        i: int | None = bisect_right(self._starts, offset) - 1
        while i is not None and i >= 0:
            r = self._ranges[i]
            if r.start_offset <= offset < r.end_offset:
                return i
            i = self._parents[i]
        return None

    def count_for(self, start: int, end: int) -> int:
        """Count of the smallest range holding ``[start, end)``, else the one holding ``start``."""
        innermost = self._innermost_at(start)
        if innermost is None:
            return 0
        i: int | None = innermost
        while i is not None:
            if self._ranges[i].end_offset >= end:
                return self._ranges[i].count
            i = self._parents[i]
        return self._ranges[innermost].count

    def function_count(self, start: int, end: int) -> int:
        if start in self._function_starts:
            return self._function_starts[start]
        return self.count_for(start, end)


# =============================================================================
# Projection
# =============================================================================


@dataclass
class _FileBuilder:
    """Accumulates one original file's sites; identical locations keep the max count."""

    path: str
    statements: dict[Span, int] = field(default_factory=dict)
    functions: dict[Span, tuple[FunctionMeta, int]] = field(default_factory=dict)
    branches: dict[tuple[str, Span], tuple[BranchMeta, list[int]]] = field(default_factory=dict)

    def add_statement(self, span: Span, count: int) -> None:
        self.statements[span] = max(self.statements.get(span, 0), count)

    def add_function(self, meta: FunctionMeta, count: int) -> None:
        existing = self.functions.get(meta.loc)
        if existing is None or existing[1] < count:
            self.functions[meta.loc] = (meta, count)

    def add_branch(self, meta: BranchMeta, counts: list[int]) -> None:
        key = (meta.type, meta.loc)
        existing = self.branches.get(key)
        if existing is None:
            self.branches[key] = (meta, counts)
        elif len(existing[1]) == len(counts):
            self.branches[key] = (existing[0], [max(a, b) for a, b in zip(existing[1], counts, strict=True)])

    def build(self) -> FileCoverage:
        fc = FileCoverage(path=self.path)
        for i, (span, count) in enumerate(self.statements.items()):
            fc.statement_map[str(i)] = span
            fc.s[str(i)] = count
        for i, (meta, count) in enumerate(self.functions.values()):
            fc.fn_map[str(i)] = meta
            fc.f[str(i)] = count
        for i, (branch, counts) in enumerate(self.branches.values()):
            fc.branch_map[str(i)] = branch
            fc.b[str(i)] = counts
        return fc


class _Projector:
    """Counts and maps the sites of one generated script."""

    def __init__(
        self,
        parsed: ParsedSource,
        ranges: RangeIndex,
        trace: TraceMap | None,
        paths: Sequence[str],
    ) -> None:
        self.parsed = parsed
        self.ranges = ranges
        self.trace = trace
        self.paths = paths
        self.builders: dict[int, _FileBuilder] = {}

    def _count(self, span: ByteSpan) -> int:
        index = self.parsed.index
        return self.ranges.count_for(index.byte_to_utf16(span.start), index.byte_to_utf16(span.end))

    def _map(self, span: ByteSpan) -> tuple[int, Span] | None:
        start = self.parsed.index.position(span.start)
        end = self.parsed.index.position(span.end)
        if self.trace is None:
            return 0, Span.at(start[0], start[1], end[0], end[1])
        original_start = self.trace.original_position_for(*start)
        original_end = self.trace.original_position_for(*end)
        if original_start is None or original_end is None:
            return None
        if original_start.source_index != original_end.source_index:
            return None
        if (original_end.line, original_end.column) < (original_start.line, original_start.column):
            return None
        return original_start.source_index, Span.at(
            original_start.line, original_start.column, original_end.line, original_end.column
        )

    def _builder(self, source_index: int) -> _FileBuilder | None:
        if source_index >= len(self.paths):
            return None
        builder = self.builders.get(source_index)
        if builder is None:
            builder = self.builders[source_index] = _FileBuilder(self.paths[source_index])
        return builder

    def project(self, sites: Instrumentation) -> CoverageMap:
        index = self.parsed.index

        for stmt in sites.statements:
            mapped = self._map(stmt)
            if mapped is not None and (builder := self._builder(mapped[0])) is not None:
                builder.add_statement(mapped[1], self._count(stmt))

        for fn in sites.functions:
            decl = self._map(fn.decl)
            loc = self._map(fn.loc)
            if decl is None or loc is None or decl[0] != loc[0]:
                continue
            builder = self._builder(loc[0])
            if builder is None:
                continue
            count = self.ranges.function_count(
                index.byte_to_utf16(fn.node_start), index.byte_to_utf16(fn.loc.end)
            )
            builder.add_function(
                FunctionMeta(name=fn.name, decl=decl[1], loc=loc[1], line=decl[1].start.line), count
            )

        for branch in sites.branches:
            loc = self._map(branch.loc)
            locations = [self._map(location) for location in branch.locations]
            if loc is None or any(m is None or m[0] != loc[0] for m in locations):
                continue
            builder = self._builder(loc[0])
            if builder is None:
                continue
            counts = [self._count(location) for location in branch.locations]
            if branch.implicit_else:
                counts[1] = max(0, self._count(branch.loc) - counts[0])
            builder.add_branch(
                BranchMeta(
                    type=branch.type,
                    loc=loc[1],
                    locations=tuple(m[1] for m in locations if m is not None),
                    line=loc[1].start.line,
                ),
                counts,
            )

        result = CoverageMap()
        for builder in self.builders.values():
            _fold(result, CoverageMap({builder.path: builder.build()}))
        return result


# =============================================================================
# Converter
# =============================================================================


@dataclass(slots=True)
class _ResolvedScript:
    code: str
    path: str
    source_map: SourceMapRecord | None


class CoverageConverter:
    """Converts raw V8 coverage into an Istanbul coverage map."""

    def __init__(
        self,
        project_root: Path,
        loader: SourceMapLoader,
        *,
        source_dir: str = "src",
        max_workers: int = MAX_CONVERT_WORKERS,
    ) -> None:
        self.project_root = project_root
        self.loader = loader
        self.source_dir = source_dir
        self.max_workers = max(1, max_workers)
        self.repairer = FileRepairer()

    async def _resolve(self, entry: RawScriptCoverage) -> _ResolvedScript | None:
        source_file = await self.loader.load_source(entry.url)
        file_path = self.loader.url_to_file_path(entry.url)
        path = str(file_path) if file_path is not None else entry.url

        if entry.source is None:
            if source_file is None or not source_file.code:
                return None
            return _ResolvedScript(source_file.code, source_file.path, source_file.source_map)

        if source_file is not None and source_file.source_map is not None:
            return _ResolvedScript(entry.source, source_file.path, source_file.source_map)

        source_map = self.loader.extract_inline_source_map(entry.source)
        if source_map is None and entry.source_map is not None:
            try:
                source_map = SourceMapRecord.from_dict(entry.source_map)
            except CoverageInputError as e:
                log.debug("attached_source_map_rejected", url=entry.url, error=e.message)
        return _ResolvedScript(entry.source, path, source_map)

    def _original_path(self, source_map: SourceMapRecord, index: int) -> str:
        resolved = self.loader.resolve_original_path(source_map, index) or ""
        path = Path(resolved)
        return str(path if path.is_absolute() else self.project_root / path)

    def _project(self, script: _ResolvedScript, entry: RawScriptCoverage) -> CoverageMap | None:
        parsed = _parser().parse(script.code, "javascript")
        if not parsed.is_valid:
            log.debug("entry_skipped", url=entry.url, reason="parse", error_ratio=round(parsed.error_ratio, 3))
            return None

        trace: TraceMap | None = None
        paths: list[str] = [script.path]
        if script.source_map is not None:
            sanitized = sanitize_source_map(
                script.source_map, project_root=self.project_root, source_dir=self.source_dir
            )
            if sanitized is None:
                log.debug("entry_skipped", url=entry.url, reason="no attributable source")
                return None
            trace = TraceMap(sanitized)
            paths = [self._original_path(sanitized, i) for i in range(len(sanitized.sources))]

        projector = _Projector(parsed, RangeIndex(entry.functions), trace, paths)
        return projector.project(instrument(parsed))

    async def convert_entry(self, entry: RawScriptCoverage) -> CoverageMap | None:
        """Convert one script. None when it cannot be attributed to a readable source.

        One bundle maps onto many original files, so the result is a map.
        Raises ``SourceMapError`` when a map that needs rewriting cannot be decoded.
        """
        script = await self._resolve(entry)
        if script is None:
            log.debug("entry_skipped", url=entry.url, reason="source unavailable")
            return None
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._project, script, entry)

    async def convert(self, coverage: RawProcessCoverage) -> CoverageMap:
        """Convert every entry, fold the results, canonicalize paths and repair."""
        self.loader.load_from_v8_cache(coverage)
        sem = asyncio.Semaphore(self.max_workers)

        async def run(entry: RawScriptCoverage) -> CoverageMap | None:
            async with sem:
                try:
                    return await self.convert_entry(entry)
                except Exception as e:
                    # One bad entry never aborts the batch
                    log.warning("entry_skipped", url=entry.url, error=str(e))
                    return None

        partials = await asyncio.gather(*(run(entry) for entry in coverage.result))

        merged = CoverageMap()
        for partial in partials:
            if partial is not None:
                _fold(merged, partial)

        normalized = self.normalize_file_paths(merged)
        repaired = await self.repair(normalized)
        log.info("coverage_converted", entries=len(coverage.result), files=len(repaired))
        return repaired

    async def repair(self, coverage_map: CoverageMap) -> CoverageMap:
        result = CoverageMap()
        for fc in coverage_map:
            try:
                source: str | None = await read_text(Path(fc.path))
            except (OSError, UnicodeDecodeError):
                source = None
            result.add_file_coverage(self.repairer.repair(fc, source))
        return result

    def extract_source_path(self, file_path: str) -> str | None:
        """Canonical absolute path for a converted file, or None to drop it.

        Only JS/TS files under the source directory survive; everything
        before the last ``/<source_dir>/`` segment is discarded and the
        rest resolved against the project root.
        """
        normalized = file_path.replace("\\", "/")
        if not normalized.endswith(_SOURCE_EXTENSIONS):
            return None
        marker = f"/{self.source_dir}/"
        anchored = normalized if normalized.startswith("/") else "/" + normalized
        index = anchored.rfind(marker)
        if index == -1:
            return None
        return str((self.project_root / anchored[index + 1 :]).resolve())

    def normalize_file_paths(self, coverage_map: CoverageMap) -> CoverageMap:
        result = CoverageMap()
        for fc in coverage_map:
            path = self.extract_source_path(fc.path)
            if path is None:
                log.debug("file_dropped", path=fc.path)
                continue
            _fold(result, CoverageMap({path: fc.copy(path=path)}))
        return result

    def create_empty_coverage(self, path: str, code: str) -> FileCoverage | None:
        """Zero-count coverage for ``path`` built from its original source."""
        try:
            parsed = _parser().parse_path(path, code)
        except ValueError as e:
            log.warning("empty_coverage_failed", path=path, error=str(e))
            return None
        return empty_file_coverage(path, parsed)

    async def add_uncovered_files(self, coverage_map: CoverageMap, source_files: Iterable[Path | str]) -> CoverageMap:
        """Add zero-count records for source files the map does not mention."""
        result = coverage_map.copy()
        covered = {path.replace("\\", "/") for path in coverage_map.files()}
        added = 0
        for source_file in source_files:
            path = str(source_file)
            if path.replace("\\", "/") in covered:
                continue
            try:
                code = await read_text(Path(path))
            except (OSError, UnicodeDecodeError) as e:
                log.warning("uncovered_file_unreadable", path=path, error=str(e))
                continue
            fc = self.create_empty_coverage(path, code)
            if fc is not None:
                result.add_file_coverage(fix_file(fc))
                added += 1
        log.debug("uncovered_files_added", count=added)
        return result


def _fold(target: CoverageMap, partial: CoverageMap) -> None:
    """Add ``partial`` into ``target``, summing counts for files present in both."""
    for fc in partial:
        if fc.path in target:
            target.add_file_coverage(merge_file_add([target.file_coverage_for(fc.path), fc]))
        else:
            target.add_file_coverage(fc)
