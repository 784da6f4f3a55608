"""V8 to Istanbul conversion: parsing, instrumentation, sanitization and repair."""

from nextcov.convert.converter import CoverageConverter, RangeIndex
from nextcov.convert.instrument import empty_file_coverage, instrument, is_ignored_statement
from nextcov.convert.parsing import SourceParser, TextIndex, language_for_path
from nextcov.convert.repair import FileRepairer, logical_expression_lines, remove_spurious_branches
from nextcov.convert.sanitize import is_valid_source, sanitize_source_map

__all__ = [
    "CoverageConverter",
    "FileRepairer",
    "RangeIndex",
    "SourceParser",
    "TextIndex",
    "empty_file_coverage",
    "instrument",
    "is_ignored_statement",
    "is_valid_source",
    "language_for_path",
    "logical_expression_lines",
    "remove_spurious_branches",
    "sanitize_source_map",
]
