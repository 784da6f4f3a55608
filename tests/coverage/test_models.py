"""Tests for the Istanbul coverage model.

Covers:
- Position / Span parsing and validation
- FileCoverage from_dict / to_dict / summary / copy
- CoverageMetric percentage rules
- CoverageMap
"""

from __future__ import annotations

from typing import Any

import pytest

from nextcov.core.errors import CoverageInputError
from nextcov.coverage.models import (
    BranchMeta,
    CoverageMap,
    CoverageMetric,
    CoverageSummary,
    FileCoverage,
    FunctionMeta,
    Position,
    Span,
)


def _loc(line: int, col: int, end_line: int, end_col: int) -> dict[str, Any]:
    return {"start": {"line": line, "column": col}, "end": {"line": end_line, "column": end_col}}


ISTANBUL_FILE: dict[str, Any] = {
    "path": "/app/src/lib/math.ts",
    "statementMap": {"0": _loc(1, 0, 1, 20), "1": _loc(2, 2, 2, 14), "2": _loc(4, 2, 4, 12)},
    "fnMap": {
        "0": {"name": "add", "decl": _loc(1, 9, 1, 12), "loc": _loc(1, 20, 5, 1), "line": 1},
    },
    "branchMap": {
        "0": {
            "type": "if",
            "loc": _loc(2, 2, 4, 3),
            "locations": [_loc(2, 2, 4, 3), _loc(2, 2, 4, 3)],
            "line": 2,
        }
    },
    "s": {"0": 3, "1": 3, "2": 0},
    "f": {"0": 3},
    "b": {"0": [3, 0]},
}


class TestPosition:
    def test_null_column_allowed(self) -> None:
        assert Position.from_dict({"line": 3, "column": None}) == Position(3, None)

    @pytest.mark.parametrize("data", [None, {"line": "1", "column": 0}, {"line": 1, "column": "x"}])
    def test_invalid_rejected(self, data: Any) -> None:
        with pytest.raises(CoverageInputError):
            Position.from_dict(data)


class TestSpan:
    def test_key_is_start(self) -> None:
        assert Span.at(4, 2, 9, 1).key == (4, 2)

    def test_hashable_and_equal_by_value(self) -> None:
        assert {Span.at(1, 0, 1, 5): 1}[Span.at(1, 0, 1, 5)] == 1


class TestFunctionAndBranchMeta:
    def test_function_without_decl_uses_loc(self) -> None:
        meta = FunctionMeta.from_dict({"name": "", "loc": _loc(1, 0, 3, 1)})
        assert meta.decl == meta.loc
        assert meta.name == "(anonymous)"
        assert meta.line == 1

    def test_branch_without_loc_uses_first_location(self) -> None:
        meta = BranchMeta.from_dict({"type": "cond-expr", "locations": [_loc(5, 1, 5, 4)]})
        assert meta.loc == Span.at(5, 1, 5, 4)
        assert meta.line == 5

    def test_branch_without_any_location_rejected(self) -> None:
        with pytest.raises(CoverageInputError):
            BranchMeta.from_dict({"type": "if"})


class TestFileCoverage:
    def test_to_dict_matches_istanbul_layout(self) -> None:
        fc = FileCoverage.from_dict(ISTANBUL_FILE)
        assert fc.to_dict() == ISTANBUL_FILE

    def test_missing_counts_default_to_zero(self) -> None:
        data = {**ISTANBUL_FILE, "s": {}, "b": {"0": [1]}}
        fc = FileCoverage.from_dict(data)
        assert fc.s == {"0": 0, "1": 0, "2": 0}
        assert fc.b == {"0": [1, 0]}

    @pytest.mark.parametrize(
        "override",
        [
            {"s": {"0": "x"}},
            {"s": [1]},
            {"f": {"0": {"n": 1}}},
            {"s": {"0": -1}},
            {"b": {"0": 3}},
            {"b": {"0": [1, "y"]}},
            {"b": []},
            {"statementMap": [_loc(1, 0, 1, 1)]},
        ],
    )
    def test_malformed_counts_rejected(self, override: dict[str, Any]) -> None:
        with pytest.raises(CoverageInputError):
            FileCoverage.from_dict({**ISTANBUL_FILE, **override})

    def test_path_falls_back_to_key(self) -> None:
        data = {k: v for k, v in ISTANBUL_FILE.items() if k != "path"}
        assert FileCoverage.from_dict(data, path="/x.ts").path == "/x.ts"

    def test_summary(self) -> None:
        summary = FileCoverage.from_dict(ISTANBUL_FILE).summary()

        assert summary.statements == CoverageMetric(total=3, covered=2)
        assert summary.functions == CoverageMetric(total=1, covered=1)
        assert summary.branches == CoverageMetric(total=2, covered=1)
        assert summary.lines == CoverageMetric(total=3, covered=2)

    def test_line_coverage_takes_max_per_line(self) -> None:
        fc = FileCoverage(
            path="/a.ts",
            statement_map={"0": Span.at(1, 0, 1, 5), "1": Span.at(1, 6, 1, 9)},
            s={"0": 0, "1": 2},
        )
        assert fc.line_coverage() == {1: 2}

    def test_copy_is_independent(self) -> None:
        fc = FileCoverage.from_dict(ISTANBUL_FILE)
        clone = fc.copy()
        clone.s["0"] = 99
        clone.b["0"][1] = 7

        assert fc.s["0"] == 3
        assert fc.b["0"] == [3, 0]

    def test_was_loaded(self) -> None:
        assert FileCoverage.from_dict(ISTANBUL_FILE).was_loaded
        assert not FileCoverage(path="/a.ts", s={"0": 0}).was_loaded


class TestCoverageMetric:
    def test_pct_floors_to_two_decimals(self) -> None:
        assert CoverageMetric(total=3, covered=1).pct == 33.33
        assert CoverageMetric(total=3, covered=2).pct == 66.66

    def test_empty_metric_is_full(self) -> None:
        assert CoverageMetric(total=0, covered=0).pct == 100.0

    def test_summary_addition(self) -> None:
        a = CoverageSummary(statements=CoverageMetric(total=2, covered=1))
        b = CoverageSummary(statements=CoverageMetric(total=3, covered=3))
        assert (a + b).statements == CoverageMetric(total=5, covered=4)


class TestCoverageMap:
    def test_from_dict_keys_by_map_key(self) -> None:
        cmap = CoverageMap.from_dict({"/other/path.ts": ISTANBUL_FILE})

        assert cmap.files() == ["/other/path.ts"]
        assert cmap.file_coverage_for("/other/path.ts").path == "/other/path.ts"

    def test_rejects_non_mapping(self) -> None:
        with pytest.raises(CoverageInputError):
            CoverageMap.from_dict([ISTANBUL_FILE])

    def test_summary_aggregates_files(self) -> None:
        cmap = CoverageMap.from_dict({"/a.ts": ISTANBUL_FILE, "/b.ts": ISTANBUL_FILE})
        assert cmap.summary().statements == CoverageMetric(total=6, covered=4)
        assert len(cmap) == 2
        assert "/a.ts" in cmap
