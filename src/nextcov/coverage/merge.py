"""Coverage map merging across test tiers.

Unit tests, component tests and end-to-end tests instrument the same files
through different toolchains, so the same file can arrive with different
statement/branch/function structures. Strategies:

- max (default): the input with the most entries is the structural
  template; every template location takes the max count over all inputs
  that register an equivalent location.
- add: additive accumulation keyed by exact location; counts are summed.
- prefer-first / prefer-last: one input's structure is kept outright and the
  others' counts are folded in with the per-location max rule.

Location matching: two records are "the same" when their start
(line, column) is equal. Otherwise any record on the same line matches and
the max count seen on that line is used. This absorbs column drift between
source-map toolchains; it is a heuristic, not a proof of equivalence, and it
never invents coverage for a line neither input reports.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from nextcov.config.constants import DEFAULT_REPORTERS
from nextcov.config.models import MergerConfig
from nextcov.core.console import pluralize, status
from nextcov.core.errors import CoverageInputError
from nextcov.core.io import read_json
from nextcov.core.logging import get_logger
from nextcov.coverage.fixes import apply_fixes
from nextcov.coverage.models import CoverageMap, CoverageSummary, FileCoverage, Span
from nextcov.coverage.report import CoverageReporter, files_only_in, print_coverage_comparison

log = get_logger("coverage.merge")

_Key = tuple[int, int | None]


# =============================================================================
# Location lookups
# =============================================================================


@dataclass(slots=True)
class _CountLookup:
    """Counts of one input indexed by exact start and by line."""

    exact: dict[_Key, int] = field(default_factory=dict)
    by_line: dict[int, int] = field(default_factory=dict)

    def add(self, span: Span, count: int) -> None:
        self.exact[span.key] = max(self.exact.get(span.key, 0), count)
        line = span.start.line
        self.by_line[line] = max(self.by_line.get(line, 0), count)

    def count_for(self, span: Span) -> int | None:
        if span.key in self.exact:
            return self.exact[span.key]
        return self.by_line.get(span.start.line)


@dataclass(slots=True)
class _BranchLookup:
    exact: dict[_Key, list[int]] = field(default_factory=dict)
    by_line: dict[int, list[int]] = field(default_factory=dict)

    def add(self, span: Span, counts: list[int]) -> None:
        self.exact[span.key] = _elementwise_max(self.exact.get(span.key, []), counts)
        line = span.start.line
        self.by_line[line] = _elementwise_max(self.by_line.get(line, []), counts)

    def counts_for(self, span: Span) -> list[int] | None:
        if span.key in self.exact:
            return self.exact[span.key]
        return self.by_line.get(span.start.line)


def _elementwise_max(a: list[int], b: list[int]) -> list[int]:
    size = max(len(a), len(b))
    return [
        max(a[i] if i < len(a) else 0, b[i] if i < len(b) else 0) for i in range(size)
    ]


@dataclass(slots=True)
class _FileLookups:
    statements: _CountLookup
    functions: _CountLookup
    branches: _BranchLookup

    @classmethod
    def build(cls, fc: FileCoverage) -> _FileLookups:
        statements = _CountLookup()
        for sid, span in fc.statement_map.items():
            statements.add(span, fc.s.get(sid, 0))
        functions = _CountLookup()
        for fid, meta in fc.fn_map.items():
            functions.add(meta.loc, fc.f.get(fid, 0))
        branches = _BranchLookup()
        for bid, branch in fc.branch_map.items():
            branches.add(branch.loc, fc.b.get(bid, []))
        return cls(statements, functions, branches)


# =============================================================================
# Per-file merge rules
# =============================================================================


def _structure_key(fc: FileCoverage) -> str:
    """Order-independent tie-break between templates of equal size."""
    data = fc.to_dict()
    shape = {k: data[k] for k in ("statementMap", "fnMap", "branchMap")}
    return json.dumps(shape, sort_keys=True)


def _pick_template(files: Sequence[FileCoverage], preference: str) -> FileCoverage:
    if preference == "first":
        return files[0]
    if preference == "last":
        return files[-1]
    return max(files, key=lambda fc: (fc.item_count, _structure_key(fc)))


def fold_counts(template: FileCoverage, others: Iterable[FileCoverage]) -> FileCoverage:
    """Keep ``template``'s structure; take the per-location max over all inputs."""
    merged = template.copy()
    for other in others:
        lookups = _FileLookups.build(other)
        for sid, span in merged.statement_map.items():
            count = lookups.statements.count_for(span)
            if count is not None:
                merged.s[sid] = max(merged.s.get(sid, 0), count)
        for fid, meta in merged.fn_map.items():
            count = lookups.functions.count_for(meta.loc)
            if count is not None:
                merged.f[fid] = max(merged.f.get(fid, 0), count)
        for bid, branch in merged.branch_map.items():
            counts = lookups.branches.counts_for(branch.loc)
            if counts is not None:
                current = merged.b.get(bid) or [0] * len(branch.locations)
                merged.b[bid] = [
                    max(c, counts[i] if i < len(counts) else 0) for i, c in enumerate(current)
                ]
    return merged


def merge_file_max(files: Sequence[FileCoverage], preference: str = "more-items") -> FileCoverage:
    """Merge several records of one file with the max rule."""
    if not files:
        raise ValueError("Cannot merge empty file coverage list")
    if len(files) == 1:
        return files[0].copy()
    template = _pick_template(files, preference)
    return fold_counts(template, (fc for fc in files if fc is not template))


def merge_file_add(files: Sequence[FileCoverage]) -> FileCoverage:
    """Sum counts of several records of one file, keyed by exact location."""
    if not files:
        raise ValueError("Cannot merge empty file coverage list")
    merged = files[0].copy()
    stmt_ids = {span: sid for sid, span in merged.statement_map.items()}
    fn_ids = {meta.loc: fid for fid, meta in merged.fn_map.items()}
    branch_ids = {(br.loc, br.locations): bid for bid, br in merged.branch_map.items()}

    for other in files[1:]:
        for sid, span in other.statement_map.items():
            count = other.s.get(sid, 0)
            if span in stmt_ids:
                target = stmt_ids[span]
                merged.s[target] = merged.s.get(target, 0) + count
            else:
                target = str(len(merged.statement_map))
                merged.statement_map[target] = span
                merged.s[target] = count
                stmt_ids[span] = target
        for fid, meta in other.fn_map.items():
            count = other.f.get(fid, 0)
            if meta.loc in fn_ids:
                target = fn_ids[meta.loc]
                merged.f[target] = merged.f.get(target, 0) + count
            else:
                target = str(len(merged.fn_map))
                merged.fn_map[target] = meta
                merged.f[target] = count
                fn_ids[meta.loc] = target
        for bid, branch in other.branch_map.items():
            counts = other.b.get(bid, [])
            key = (branch.loc, branch.locations)
            if key in branch_ids:
                target = branch_ids[key]
                merged.b[target] = _elementwise_add(merged.b.get(target, []), counts)
            else:
                target = str(len(merged.branch_map))
                merged.branch_map[target] = branch
                merged.b[target] = list(counts)
                branch_ids[key] = target
    return merged


def _elementwise_add(a: list[int], b: list[int]) -> list[int]:
    size = max(len(a), len(b))
    return [(a[i] if i < len(a) else 0) + (b[i] if i < len(b) else 0) for i in range(size)]


def _group_by_path(maps: Sequence[CoverageMap]) -> dict[str, list[FileCoverage]]:
    files_by_path: dict[str, list[FileCoverage]] = {}
    for cmap in maps:
        for path, fc in cmap.data.items():
            files_by_path.setdefault(path, []).append(fc)
    return files_by_path


# =============================================================================
# Merger
# =============================================================================


@dataclass(frozen=True, slots=True)
class MergeStats:
    base_files: int
    additional_files: int
    merged_files: int
    new_files: int


@dataclass(slots=True)
class MergeResult:
    coverage_map: CoverageMap
    summary: CoverageSummary
    stats: MergeStats


class CoverageMerger:
    """Combines coverage maps captured by different test tiers."""

    def __init__(self, config: MergerConfig | None = None) -> None:
        self.config = config or MergerConfig()

    def merge(self, *maps: CoverageMap) -> CoverageMap:
        """Merge maps with the configured strategy. Inputs are never mutated.

        With ``apply_fixes`` on, files lacking branches or functions gain the
        implicit entries, so ``merge(m, m) == m`` only holds for maps that are
        already fixed or when ``apply_fixes`` is off.
        """
        if not maps:
            return CoverageMap()

        if len(maps) == 1:
            merged = maps[0].copy()
        elif self.config.strategy == "add":
            merged = self._merge_add(maps)
        elif self.config.strategy == "prefer-first":
            merged = self._merge_prefer_first(maps)
        elif self.config.strategy == "prefer-last":
            merged = self._merge_prefer_first(list(reversed(maps)))
        else:
            merged = self._merge_max(maps)

        if self.config.apply_fixes:
            merged = self.apply_fixes(merged)
        return merged

    def _merge_max(self, maps: Sequence[CoverageMap]) -> CoverageMap:
        preference = self.config.structure_preference
        return CoverageMap(
            {
                path: merge_file_max(files, preference)
                for path, files in _group_by_path(maps).items()
            }
        )

    def _merge_add(self, maps: Sequence[CoverageMap]) -> CoverageMap:
        return CoverageMap(
            {path: merge_file_add(files) for path, files in _group_by_path(maps).items()}
        )

    def _merge_prefer_first(self, maps: Sequence[CoverageMap]) -> CoverageMap:
        first, *rest = maps
        merged = first.copy()
        for cmap in rest:
            for path, fc in cmap.data.items():
                if path in merged:
                    merged.add_file_coverage(fold_counts(merged.file_coverage_for(path), [fc]))
                else:
                    merged.add_file_coverage(fc.copy())
        return merged

    async def merge_with_base(
        self,
        additional_map: CoverageMap,
        base: CoverageMap | Path | str | None,
    ) -> MergeResult:
        """Reconcile a new map against a persisted baseline.

        ``base`` may be a map or the path of a ``coverage-final.json``. A
        missing or unreadable baseline falls back to ``additional_map`` alone.
        """
        base_map = await self.load_coverage_json(base) if isinstance(base, str | Path) else base

        if base_map is None:
            log.info("no_base_coverage", detail="using additional coverage only")
            coverage_map = additional_map.copy()
            if self.config.apply_fixes:
                coverage_map = self.apply_fixes(coverage_map)
            count = len(additional_map)
            return MergeResult(
                coverage_map=coverage_map,
                summary=coverage_map.summary(),
                stats=MergeStats(
                    base_files=0, additional_files=count, merged_files=count, new_files=count
                ),
            )

        merged = base_map.copy()
        new_files = 0
        for path, fc in additional_map.data.items():
            if path in base_map:
                merged.add_file_coverage(
                    merge_file_max(
                        [base_map.file_coverage_for(path), fc], self.config.structure_preference
                    )
                )
            else:
                merged.add_file_coverage(fc.copy())
                new_files += 1

        if self.config.apply_fixes:
            merged = self.apply_fixes(merged)

        return MergeResult(
            coverage_map=merged,
            summary=merged.summary(),
            stats=MergeStats(
                base_files=len(base_map),
                additional_files=len(additional_map),
                merged_files=len(merged),
                new_files=new_files,
            ),
        )

    def apply_fixes(self, coverage_map: CoverageMap) -> CoverageMap:
        """Re-synthesize implicit branch/function entries across a merged map."""
        return apply_fixes(coverage_map)

    async def load_coverage_json(self, path: Path | str) -> CoverageMap | None:
        """Load an Istanbul ``coverage-final.json``; None if missing or unreadable."""
        path = Path(path)
        if not path.exists():
            return None
        try:
            return CoverageMap.from_dict(await read_json(path))
        except CoverageInputError as e:
            log.warning("coverage_json_unreadable", path=str(path), error=str(e))
            return None

    def summary(self, coverage_map: CoverageMap) -> CoverageSummary:
        return coverage_map.summary()


def create_merger(config: MergerConfig | None = None) -> CoverageMerger:
    return CoverageMerger(config)


def merge_coverage_maps(*maps: CoverageMap) -> CoverageMap:
    """Merge maps with the default (max) strategy."""
    return create_merger().merge(*maps)


async def merge_with_base_coverage(
    additional_map: CoverageMap,
    base_coverage_path: Path | str,
    config: MergerConfig | None = None,
) -> MergeResult:
    return await create_merger(config).merge_with_base(additional_map, base_coverage_path)


@dataclass(slots=True)
class MergeCoverageResult:
    coverage_map: CoverageMap
    summary: CoverageSummary
    stats: MergeStats
    e2e_summary: CoverageSummary
    e2e_only_files: list[str]
    unit_summary: CoverageSummary | None = None


def _relative(project_root: Path, path: str) -> str:
    try:
        return str(Path(path).relative_to(project_root))
    except ValueError:
        return path


async def merge_coverage(
    unit_coverage_path: Path | str,
    e2e_coverage_path: Path | str,
    output_dir: Path | str,
    *,
    reporters: Sequence[str] = DEFAULT_REPORTERS,
    project_root: Path | None = None,
    verbose: bool = False,
) -> MergeCoverageResult | None:
    """Merge unit-test and end-to-end ``coverage-final.json`` files and write reports.

    The unit map is the baseline; e2e coverage is folded into it with the
    max rule. Returns None when the e2e coverage file is missing.
    """
    project_root = project_root or Path.cwd()
    merger = create_merger(MergerConfig(apply_fixes=True))

    e2e_map = await merger.load_coverage_json(e2e_coverage_path)
    if e2e_map is None:
        log.error("e2e_coverage_missing", path=str(e2e_coverage_path))
        return None
    e2e_summary = merger.summary(e2e_map)
    reporter = CoverageReporter(Path(output_dir), reporters=reporters)

    unit_map = await merger.load_coverage_json(unit_coverage_path)
    if unit_map is None:
        if verbose:
            status("No unit test coverage found, using e2e only")
        await reporter.write(e2e_map)
        count = len(e2e_map)
        return MergeCoverageResult(
            coverage_map=e2e_map,
            summary=e2e_summary,
            stats=MergeStats(
                base_files=0, additional_files=count, merged_files=count, new_files=count
            ),
            e2e_summary=e2e_summary,
            e2e_only_files=[_relative(project_root, path) for path in e2e_map.files()],
        )

    result = await merger.merge_with_base(e2e_map, unit_map)
    if verbose:
        status(f"Merged coverage: {pluralize(result.stats.merged_files, 'file')}", style="success")
        status(f"Base (unit) files: {result.stats.base_files}", indent=2)
        status(f"Additional (e2e) files: {result.stats.additional_files}", indent=2)
        status(f"New files from e2e: {result.stats.new_files}", indent=2)
    await reporter.write(result.coverage_map)

    unit_summary = merger.summary(unit_map)
    if verbose:
        print_coverage_comparison(unit_summary, e2e_summary, result.summary)

    return MergeCoverageResult(
        coverage_map=result.coverage_map,
        summary=result.summary,
        stats=result.stats,
        e2e_summary=e2e_summary,
        e2e_only_files=[_relative(project_root, p) for p in files_only_in(e2e_map, unit_map.files())],
        unit_summary=unit_summary,
    )
