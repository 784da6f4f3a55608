"""Tests for per-file coverage repair passes."""

from __future__ import annotations

from nextcov.convert.parsing import SourceParser
from nextcov.convert.repair import (
    FileRepairer,
    force_statements_covered,
    logical_expression_lines,
    needs_rebuild,
    remove_spurious_branches,
    restore_missing_maps,
)
from nextcov.coverage.fixes import IMPLICIT_BRANCH, IMPLICIT_FUNCTION
from nextcov.coverage.models import BranchMeta, FileCoverage, FunctionMeta, Span


def _fn(line: int = 1) -> FunctionMeta:
    span = Span.at(line, 0, line, 10)
    return FunctionMeta(name="f", decl=span, loc=span, line=line)


def _branch(kind: str, line: int, arms: int = 2) -> BranchMeta:
    span = Span.at(line, 0, line, 10)
    return BranchMeta(type=kind, loc=span, locations=(span,) * arms, line=line)


def _stmt(line: int) -> Span:
    return Span.at(line, 0, line, 5)


class TestLogicalExpressionLines:
    def test_only_logical_operators(self) -> None:
        parsed = SourceParser().parse("const a = b * c + d;\nconst e = f && g;\nh ?? i;\n")
        assert logical_expression_lines(parsed) == {2, 3}


class TestNeedsRebuild:
    def test_functions_without_statements(self) -> None:
        fc = FileCoverage(path="a.ts", fn_map={"0": _fn()}, f={"0": 1})
        assert needs_rebuild(fc)

    def test_functions_without_branches(self) -> None:
        fc = FileCoverage(path="a.ts", fn_map={"0": _fn()}, statement_map={"0": _stmt(1)})
        assert needs_rebuild(fc)

    def test_no_functions_but_statements(self) -> None:
        fc = FileCoverage(path="a.ts", statement_map={"0": _stmt(1)}, s={"0": 1})
        assert not needs_rebuild(fc)

    def test_completely_empty(self) -> None:
        assert needs_rebuild(FileCoverage(path="a.ts"))


class TestRestoreMissingMaps:
    def test_restored_statements_follow_function_execution(self) -> None:
        rebuilt = FileCoverage(
            path="a.ts",
            statement_map={"0": _stmt(1), "1": _stmt(2)},
            s={"0": 0, "1": 0},
            branch_map={"0": _branch("if", 2)},
            b={"0": [0, 0]},
        )
        executed = FileCoverage(path="a.ts", fn_map={"0": _fn()}, f={"0": 3})
        idle = FileCoverage(path="a.ts", fn_map={"0": _fn()}, f={"0": 0})

        fixed = restore_missing_maps(executed, rebuilt)
        untouched = restore_missing_maps(idle, rebuilt)

        assert fixed.s == {"0": 1, "1": 1}
        assert fixed.b == {"0": [1, 0]}
        assert untouched.s == {"0": 0, "1": 0}
        assert untouched.b == {"0": [0, 0]}
        assert executed.statement_map == {}

    def test_existing_maps_kept(self) -> None:
        fc = FileCoverage(
            path="a.ts",
            fn_map={"0": _fn()},
            f={"0": 1},
            statement_map={"0": _stmt(5)},
            s={"0": 4},
        )
        rebuilt = FileCoverage(path="a.ts", statement_map={"0": _stmt(1)}, s={"0": 0})

        fixed = restore_missing_maps(fc, rebuilt)

        assert fixed.statement_map == {"0": _stmt(5)}
        assert fixed.s == {"0": 4}


class TestForceStatementsCovered:
    def test_function_ran_but_no_statement(self) -> None:
        fc = FileCoverage(
            path="a.ts",
            fn_map={"0": _fn()},
            f={"0": 1},
            statement_map={"0": _stmt(1), "1": _stmt(2)},
            s={"0": 0, "1": 0},
        )
        assert force_statements_covered(fc).s == {"0": 1, "1": 1}

    def test_no_change_when_a_statement_ran(self) -> None:
        fc = FileCoverage(
            path="a.ts",
            fn_map={"0": _fn()},
            f={"0": 1},
            statement_map={"0": _stmt(1), "1": _stmt(2)},
            s={"0": 1, "1": 0},
        )
        assert force_statements_covered(fc) is fc

    def test_no_change_when_no_function_ran(self) -> None:
        fc = FileCoverage(
            path="a.ts",
            fn_map={"0": _fn()},
            f={"0": 0},
            statement_map={"0": _stmt(1)},
            s={"0": 0},
        )
        assert force_statements_covered(fc).s == {"0": 0}


class TestRemoveSpuriousBranches:
    def test_binary_branch_on_arithmetic_line_removed(self) -> None:
        fc = FileCoverage(
            path="a.ts",
            branch_map={
                "0": _branch("if", 1),
                "1": _branch("binary-expr", 2),
                "2": _branch("binary-expr", 3, arms=3),
            },
            b={"0": [1, 0], "1": [2, 2], "2": [1, 1, 0]},
        )

        fixed = remove_spurious_branches(fc, {3})

        assert list(fixed.branch_map) == ["0", "1"]
        assert fixed.branch_map["1"].line == 3
        assert fixed.b == {"0": [1, 0], "1": [1, 1, 0]}
        assert len(fc.branch_map) == 3

    def test_nothing_removed(self) -> None:
        fc = FileCoverage(path="a.ts", branch_map={"0": _branch("binary-expr", 1)}, b={"0": [1, 1]})
        assert remove_spurious_branches(fc, {1}) is fc


class TestFileRepairer:
    def test_spurious_branch_then_implicit_branch(self) -> None:
        # Given a binary-expr branch on a line with only arithmetic
        fc = FileCoverage(
            path="/app/src/a.ts",
            statement_map={"0": _stmt(1)},
            s={"0": 1},
            branch_map={"0": _branch("binary-expr", 1)},
            b={"0": [1, 0]},
        )

        # When repaired against the original source
        fixed = FileRepairer().repair(fc, "const x = a * b + c;\n")

        # Then the branch is gone and an implicit branch takes its place
        assert fixed.branch_map == {"0": IMPLICIT_BRANCH}
        assert fixed.b == {"0": [1]}
        assert fixed.fn_map["0"] == IMPLICIT_FUNCTION
        assert fixed.f == {"0": 1}

    def test_statement_map_rebuilt_from_source(self) -> None:
        fc = FileCoverage(path="/app/src/b.js", fn_map={"0": _fn()}, f={"0": 2})

        fixed = FileRepairer().repair(fc, "function f() {\n  return 1;\n}\n")

        assert fixed.statement_map == {"0": Span.at(2, 2, 2, 11)}
        assert fixed.s == {"0": 1}

    def test_unreadable_source_still_fixed(self) -> None:
        fc = FileCoverage(path="/app/src/c.ts", statement_map={"0": _stmt(1)}, s={"0": 0})

        fixed = FileRepairer().repair(fc, None)

        assert fixed.b == {"0": [0]}
        assert fixed.f == {"0": 0}

    def test_unsupported_extension_skips_parsing(self) -> None:
        fc = FileCoverage(path="/app/src/d.vue", fn_map={"0": _fn()}, f={"0": 1})

        fixed = FileRepairer().repair(fc, "<template></template>")

        assert fixed.statement_map == {}
        assert fixed.branch_map == {"0": IMPLICIT_BRANCH}
