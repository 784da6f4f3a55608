"""Core module exports."""

from nextcov.core.errors import (
    ConfigError,
    CoverageInputError,
    ErrorCode,
    NextcovError,
    ReportError,
    SourceMapError,
)
from nextcov.core.logging import (
    clear_batch_id,
    configure_logging,
    get_batch_id,
    get_logger,
    set_batch_id,
)

__all__ = [
    # Errors
    "ConfigError",
    "CoverageInputError",
    "ErrorCode",
    "NextcovError",
    "ReportError",
    "SourceMapError",
    # Logging
    "clear_batch_id",
    "configure_logging",
    "get_batch_id",
    "get_logger",
    "set_batch_id",
]
