"""Istanbul coverage data model.

File-centric model matching the ``coverage-final.json`` layout produced by
Istanbul-based tooling (Jest, Vitest, NYC):

{
  "/abs/path/file.ts": {
    "path": "/abs/path/file.ts",
    "statementMap": { "0": {"start": {"line": 1, "column": 0}, "end": ...}, ... },
    "fnMap": { "0": {"name": "foo", "decl": ..., "loc": ..., "line": 1}, ... },
    "branchMap": { "0": {"type": "if", "loc": ..., "locations": [...], "line": 5}, ... },
    "s": { "0": 1, ... }, "f": { "0": 1, ... }, "b": { "0": [1, 0], ... }
  }
}

Location records are frozen; count tables are plain dicts owned by one
``FileCoverage``. Merge and repair passes build new ``FileCoverage`` objects
(see ``FileCoverage.copy``) instead of mutating their inputs.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from nextcov.core.errors import CoverageInputError


@dataclass(frozen=True, slots=True)
class Position:
    """A 1-based line and 0-based column. Istanbul allows a null end column."""

    line: int
    column: int | None

    @classmethod
    def from_dict(cls, data: Any) -> Position:
        if not isinstance(data, Mapping):
            raise CoverageInputError.invalid_record("position", f"expected object, got {data!r}")
        line = data.get("line")
        column = data.get("column")
        if not isinstance(line, int):
            raise CoverageInputError.invalid_record("position", f"bad line {line!r}")
        if column is not None and not isinstance(column, int):
            raise CoverageInputError.invalid_record("position", f"bad column {column!r}")
        return cls(line=line, column=column)

    def to_dict(self) -> dict[str, Any]:
        return {"line": self.line, "column": self.column}


@dataclass(frozen=True, slots=True)
class Span:
    """Start/end location of a statement, function or branch arm."""

    start: Position
    end: Position

    @classmethod
    def at(cls, line: int, column: int, end_line: int, end_column: int) -> Span:
        return cls(Position(line, column), Position(end_line, end_column))

    @property
    def key(self) -> tuple[int, int | None]:
        """Start (line, column): the identity used to match records across maps."""
        return (self.start.line, self.start.column)

    @classmethod
    def from_dict(cls, data: Any) -> Span:
        if not isinstance(data, Mapping):
            raise CoverageInputError.invalid_record("location", f"expected object, got {data!r}")
        return cls(Position.from_dict(data.get("start")), Position.from_dict(data.get("end")))

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start.to_dict(), "end": self.end.to_dict()}


MODULE_SPAN = Span.at(1, 0, 1, 0)
"""Location given to synthesized whole-file entries."""


@dataclass(frozen=True, slots=True)
class FunctionMeta:
    name: str
    decl: Span
    loc: Span
    line: int

    @classmethod
    def from_dict(cls, data: Any) -> FunctionMeta:
        if not isinstance(data, Mapping):
            raise CoverageInputError.invalid_record("function", f"expected object, got {data!r}")
        loc = Span.from_dict(data.get("loc"))
        decl = Span.from_dict(data["decl"]) if data.get("decl") else loc
        return cls(
            name=str(data.get("name") or "(anonymous)"),
            decl=decl,
            loc=loc,
            line=int(data.get("line") or decl.start.line),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "decl": self.decl.to_dict(),
            "loc": self.loc.to_dict(),
            "line": self.line,
        }


@dataclass(frozen=True, slots=True)
class BranchMeta:
    type: str
    loc: Span
    locations: tuple[Span, ...]
    line: int

    @classmethod
    def from_dict(cls, data: Any) -> BranchMeta:
        if not isinstance(data, Mapping):
            raise CoverageInputError.invalid_record("branch", f"expected object, got {data!r}")
        locations = tuple(Span.from_dict(loc) for loc in data.get("locations") or ())
        if data.get("loc"):
            loc = Span.from_dict(data["loc"])
        elif locations:
            loc = locations[0]
        else:
            raise CoverageInputError.invalid_record("branch", "no loc and no locations")
        return cls(
            type=str(data.get("type") or "if"),
            loc=loc,
            locations=locations or (loc,),
            line=int(data.get("line") or loc.start.line),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "loc": self.loc.to_dict(),
            "locations": [loc.to_dict() for loc in self.locations],
            "line": self.line,
        }


@dataclass(frozen=True, slots=True)
class CoverageMetric:
    """Totals for one metric (statements, branches, functions or lines)."""

    total: int
    covered: int
    skipped: int = 0

    @property
    def pct(self) -> float:
        """Percentage covered, floored to two decimals; 100.0 when nothing is measured."""
        if self.total <= 0:
            return 100.0
        return int(1000 * 100 * self.covered / self.total / 10) / 100

    def __add__(self, other: CoverageMetric) -> CoverageMetric:
        return CoverageMetric(
            total=self.total + other.total,
            covered=self.covered + other.covered,
            skipped=self.skipped + other.skipped,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "covered": self.covered, "skipped": self.skipped, "pct": self.pct}


_EMPTY_METRIC = CoverageMetric(total=0, covered=0)


@dataclass(frozen=True, slots=True)
class CoverageSummary:
    """Aggregate coverage statistics (immutable snapshot)."""

    statements: CoverageMetric = _EMPTY_METRIC
    branches: CoverageMetric = _EMPTY_METRIC
    functions: CoverageMetric = _EMPTY_METRIC
    lines: CoverageMetric = _EMPTY_METRIC

    def __add__(self, other: CoverageSummary) -> CoverageSummary:
        return CoverageSummary(
            statements=self.statements + other.statements,
            branches=self.branches + other.branches,
            functions=self.functions + other.functions,
            lines=self.lines + other.lines,
        )

    def metrics(self) -> dict[str, CoverageMetric]:
        return {
            "statements": self.statements,
            "branches": self.branches,
            "functions": self.functions,
            "lines": self.lines,
        }

    def to_dict(self) -> dict[str, Any]:
        return {name: metric.to_dict() for name, metric in self.metrics().items()}


@dataclass(slots=True)
class FileCoverage:
    """Coverage data for a single file.

    ``statement_map``/``fn_map``/``branch_map`` map string ids to locations;
    ``s``/``f``/``b`` map the same ids to execution counts (one count per
    branch arm in ``b``).
    """

    path: str
    statement_map: dict[str, Span] = field(default_factory=dict)
    fn_map: dict[str, FunctionMeta] = field(default_factory=dict)
    branch_map: dict[str, BranchMeta] = field(default_factory=dict)
    s: dict[str, int] = field(default_factory=dict)
    f: dict[str, int] = field(default_factory=dict)
    b: dict[str, list[int]] = field(default_factory=dict)

    @property
    def item_count(self) -> int:
        """Total statement + function + branch entries (structure size)."""
        return len(self.statement_map) + len(self.fn_map) + len(self.branch_map)

    @property
    def any_statement_covered(self) -> bool:
        return any(count > 0 for count in self.s.values())

    @property
    def any_function_covered(self) -> bool:
        return any(count > 0 for count in self.f.values())

    @property
    def any_branch_covered(self) -> bool:
        return any(count > 0 for counts in self.b.values() for count in counts)

    @property
    def was_loaded(self) -> bool:
        """True if anything in the file executed."""
        return self.any_statement_covered or self.any_function_covered or self.any_branch_covered

    def line_coverage(self) -> dict[int, int]:
        """Line → hit count, taking the max over statements starting on that line."""
        lines: dict[int, int] = {}
        for sid, span in self.statement_map.items():
            count = self.s.get(sid, 0)
            line = span.start.line
            if line not in lines or lines[line] < count:
                lines[line] = count
        return lines

    def summary(self) -> CoverageSummary:
        lines = self.line_coverage()
        branch_counts = [count for counts in self.b.values() for count in counts]
        return CoverageSummary(
            statements=CoverageMetric(
                total=len(self.s), covered=sum(1 for c in self.s.values() if c > 0)
            ),
            branches=CoverageMetric(
                total=len(branch_counts), covered=sum(1 for c in branch_counts if c > 0)
            ),
            functions=CoverageMetric(
                total=len(self.f), covered=sum(1 for c in self.f.values() if c > 0)
            ),
            lines=CoverageMetric(total=len(lines), covered=sum(1 for c in lines.values() if c > 0)),
        )

    def copy(self, *, path: str | None = None) -> FileCoverage:
        """Independent copy (location records are immutable and shared)."""
        return FileCoverage(
            path=self.path if path is None else path,
            statement_map=dict(self.statement_map),
            fn_map=dict(self.fn_map),
            branch_map=dict(self.branch_map),
            s=dict(self.s),
            f=dict(self.f),
            b={bid: list(counts) for bid, counts in self.b.items()},
        )

    @classmethod
    def from_dict(cls, data: Any, *, path: str | None = None) -> FileCoverage:
        """Build from Istanbul JSON, validating every location record."""
        if not isinstance(data, Mapping):
            raise CoverageInputError.invalid_record("file coverage", "expected object")
        file_path = data.get("path") or path
        if not isinstance(file_path, str) or not file_path:
            raise CoverageInputError.invalid_record("file coverage", "missing path")

        statement_map = {
            str(k): Span.from_dict(v) for k, v in _table(data, "statementMap").items()
        }
        fn_map = {str(k): FunctionMeta.from_dict(v) for k, v in _table(data, "fnMap").items()}
        branch_map = {
            str(k): BranchMeta.from_dict(v) for k, v in _table(data, "branchMap").items()
        }
        s_raw = _table(data, "s")
        f_raw = _table(data, "f")
        b_raw = _table(data, "b")
        return cls(
            path=file_path,
            statement_map=statement_map,
            fn_map=fn_map,
            branch_map=branch_map,
            s={sid: _count(s_raw.get(sid)) for sid in statement_map},
            f={fid: _count(f_raw.get(fid)) for fid in fn_map},
            b={
                bid: _branch_counts(b_raw.get(bid), len(meta.locations))
                for bid, meta in branch_map.items()
            },
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "statementMap": {k: v.to_dict() for k, v in self.statement_map.items()},
            "fnMap": {k: v.to_dict() for k, v in self.fn_map.items()},
            "branchMap": {k: v.to_dict() for k, v in self.branch_map.items()},
            "s": dict(self.s),
            "f": dict(self.f),
            "b": {k: list(v) for k, v in self.b.items()},
        }


def _table(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    table = data.get(key)
    if table is None:
        return {}
    if not isinstance(table, Mapping):
        raise CoverageInputError.invalid_record("file coverage", f"{key} must be an object")
    return table


def _count(raw: Any) -> int:
    if raw is None:
        return 0
    if not isinstance(raw, int) or isinstance(raw, bool) or raw < 0:
        raise CoverageInputError.invalid_record(
            "file coverage", f"count must be a non-negative int, got {raw!r}"
        )
    return raw


def _branch_counts(raw: Any, arms: int) -> list[int]:
    if raw is None:
        raw = []
    if not isinstance(raw, list):
        raise CoverageInputError.invalid_record(
            "file coverage", f"branch counts must be a list, got {raw!r}"
        )
    counts = [_count(c) for c in raw]
    if len(counts) < arms:
        counts.extend([0] * (arms - len(counts)))
    return counts


@dataclass(slots=True)
class CoverageMap:
    """Canonical file path → FileCoverage. One entry per logical source file."""

    data: dict[str, FileCoverage] = field(default_factory=dict)

    def files(self) -> list[str]:
        return list(self.data)

    def file_coverage_for(self, path: str) -> FileCoverage:
        return self.data[path]

    def add_file_coverage(self, coverage: FileCoverage) -> None:
        """Insert or replace the record stored under ``coverage.path``."""
        self.data[coverage.path] = coverage

    def copy(self) -> CoverageMap:
        return CoverageMap({path: fc.copy() for path, fc in self.data.items()})

    def summary(self) -> CoverageSummary:
        total = CoverageSummary()
        for fc in self.data.values():
            total = total + fc.summary()
        return total

    def __contains__(self, path: object) -> bool:
        return path in self.data

    def __iter__(self) -> Iterator[FileCoverage]:
        return iter(self.data.values())

    def __len__(self) -> int:
        return len(self.data)

    @classmethod
    def from_dict(cls, data: Any) -> CoverageMap:
        if not isinstance(data, Mapping):
            raise CoverageInputError.invalid_record("coverage map", "expected object")
        result = cls()
        for key, file_data in data.items():
            fc = FileCoverage.from_dict(file_data, path=key)
            result.data[key] = fc if fc.path == key else fc.copy(path=key)
        return result

    def to_dict(self) -> dict[str, Any]:
        return {path: fc.to_dict() for path, fc in self.data.items()}
