"""nextcov error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Coverage input (raw V8 / Istanbul JSON)
- 4xxx: Source map
- 5xxx: Report output

Only ``ReportError`` is fatal in normal operation. Everything else is raised
at the lowest level and recovered at the batch boundary.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Coverage input (3xxx)
    INPUT_MALFORMED = 3001
    INPUT_INVALID_RECORD = 3002

    # Source map (4xxx)
    SOURCEMAP_UNDECODABLE = 4001

    # Report (5xxx)
    REPORT_OUTPUT_UNWRITABLE = 5001


@dataclass(frozen=True, slots=True)
class NextcovError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'INPUT_MALFORMED')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(NextcovError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class CoverageInputError(NextcovError):
    """Malformed or invalid coverage input."""

    @classmethod
    def malformed(cls, path: str, reason: str) -> "CoverageInputError":
        return cls(
            code=ErrorCode.INPUT_MALFORMED,
            message=f"Malformed coverage file {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_record(cls, kind: str, reason: str) -> "CoverageInputError":
        return cls(
            code=ErrorCode.INPUT_INVALID_RECORD,
            message=f"Invalid {kind} record: {reason}",
            details={"kind": kind, "reason": reason},
        )


class SourceMapError(NextcovError):
    """Source map decoding errors."""

    @classmethod
    def undecodable(cls, reason: str) -> "SourceMapError":
        return cls(
            code=ErrorCode.SOURCEMAP_UNDECODABLE,
            message=f"Cannot decode source map mappings: {reason}",
            details={"reason": reason},
        )


class ReportError(NextcovError):
    """Report output errors (fatal)."""

    @classmethod
    def output_unwritable(cls, path: str, reason: str) -> "ReportError":
        return cls(
            code=ErrorCode.REPORT_OUTPUT_UNWRITABLE,
            message=f"Cannot write coverage output to {path}: {reason}",
            details={"path": path, "reason": reason},
        )
