"""Raw V8 coverage: records, reading and process-level merging."""

from nextcov.v8.merge import merge_process_covs
from nextcov.v8.models import (
    RawFunctionCoverage,
    RawProcessCoverage,
    RawRange,
    RawScriptCoverage,
    SourceMapCacheEntry,
)
from nextcov.v8.reader import DEFAULT_URL_EXCLUDES, CoverageStats, RawCoverageReader

__all__ = [
    "DEFAULT_URL_EXCLUDES",
    "CoverageStats",
    "RawCoverageReader",
    "RawFunctionCoverage",
    "RawProcessCoverage",
    "RawRange",
    "RawScriptCoverage",
    "SourceMapCacheEntry",
    "merge_process_covs",
]
