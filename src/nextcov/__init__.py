"""nextcov - V8 to Istanbul coverage conversion for Next.js projects."""

from nextcov.config import NextcovConfig, load_config
from nextcov.convert import CoverageConverter
from nextcov.coverage import (
    CoverageMap,
    CoverageMerger,
    CoverageReporter,
    CoverageSummary,
    FileCoverage,
    merge_coverage,
)
from nextcov.processor import CoverageProcessor, CoverageResult
from nextcov.sourcemap import SourceMapLoader
from nextcov.v8 import RawCoverageReader

__version__ = "0.1.0"

__all__ = [
    "CoverageConverter",
    "CoverageMap",
    "CoverageMerger",
    "CoverageProcessor",
    "CoverageReporter",
    "CoverageResult",
    "CoverageSummary",
    "FileCoverage",
    "NextcovConfig",
    "RawCoverageReader",
    "SourceMapLoader",
    "load_config",
    "merge_coverage",
    "__version__",
]
