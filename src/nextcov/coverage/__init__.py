"""Istanbul coverage model, merging and reports."""

from nextcov.coverage.fixes import apply_fixes
from nextcov.coverage.merge import (
    CoverageMerger,
    MergeCoverageResult,
    MergeResult,
    MergeStats,
    create_merger,
    merge_coverage,
    merge_coverage_maps,
    merge_with_base_coverage,
)
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
from nextcov.coverage.report import (
    CoverageReporter,
    check_thresholds,
    print_coverage_comparison,
    print_coverage_summary,
)

__all__ = [
    # Models
    "BranchMeta",
    "CoverageMap",
    "CoverageMetric",
    "CoverageSummary",
    "FileCoverage",
    "FunctionMeta",
    "Position",
    "Span",
    # Merge
    "CoverageMerger",
    "MergeCoverageResult",
    "MergeResult",
    "MergeStats",
    "apply_fixes",
    "create_merger",
    "merge_coverage",
    "merge_coverage_maps",
    "merge_with_base_coverage",
    # Reports
    "CoverageReporter",
    "check_thresholds",
    "print_coverage_comparison",
    "print_coverage_summary",
]
