"""Implicit branch/function synthesis.

Reporters render a file with no branches (or no functions) as "100% (0/0)",
which reads as fully covered even when the file never loaded. These fixes
add a single whole-file entry whose count says whether the file ran.
"""

from __future__ import annotations

from nextcov.coverage.models import (
    MODULE_SPAN,
    BranchMeta,
    CoverageMap,
    FileCoverage,
    FunctionMeta,
)

MODULE_FUNCTION_NAME = "(module)"

IMPLICIT_BRANCH = BranchMeta(type="if", loc=MODULE_SPAN, locations=(MODULE_SPAN,), line=1)
IMPLICIT_FUNCTION = FunctionMeta(
    name=MODULE_FUNCTION_NAME, decl=MODULE_SPAN, loc=MODULE_SPAN, line=1
)


def with_implicit_branch(fc: FileCoverage, *, loaded: bool | None = None) -> FileCoverage:
    """Return ``fc`` if it has branches, else a copy with one implicit branch.

    The branch counts ``[1]`` when the file executed (``loaded``, defaulting to
    ``fc.was_loaded``) and ``[0]`` otherwise.
    """
    if fc.branch_map:
        return fc
    if loaded is None:
        loaded = fc.was_loaded
    fixed = fc.copy()
    fixed.branch_map = {"0": IMPLICIT_BRANCH}
    fixed.b = {"0": [1 if loaded else 0]}
    return fixed


def with_implicit_function(fc: FileCoverage, *, loaded: bool | None = None) -> FileCoverage:
    """Return ``fc`` if it has functions, else a copy with a ``(module)`` function."""
    if fc.fn_map:
        return fc
    if loaded is None:
        loaded = fc.was_loaded
    fixed = fc.copy()
    fixed.fn_map = {"0": IMPLICIT_FUNCTION}
    fixed.f = {"0": 1 if loaded else 0}
    return fixed


def fix_file(fc: FileCoverage) -> FileCoverage:
    # Both synthesized entries reflect the file as it was before either was added
    loaded = fc.was_loaded
    fixed = with_implicit_branch(fc, loaded=loaded)
    return with_implicit_function(fixed, loaded=loaded)


def apply_fixes(coverage_map: CoverageMap) -> CoverageMap:
    """Return a new map with implicit branch/function entries where missing."""
    return CoverageMap({path: fix_file(fc) for path, fc in coverage_map.data.items()})
