"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (NEXTCOV__KEY, NEXTCOV__SECTION__KEY)
3. Project YAML (nextcov.yaml in the project root)
4. Built-in defaults (this file and constants.py)

Examples:
    NEXTCOV__CDP_PORT=9231
    NEXTCOV__OUTPUT_DIR=coverage/merged
    NEXTCOV__MERGER__STRATEGY=add
    NEXTCOV__LOGGING__LEVEL=DEBUG
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from nextcov.config.constants import (
    DEFAULT_BUILD_DIR,
    DEFAULT_CDP_PORT,
    DEFAULT_EXCLUDE_PATTERNS,
    DEFAULT_INCLUDE_PATTERNS,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_REPORTERS,
    DEFAULT_SOURCE_ROOT,
    DEFAULT_WATERMARK,
    PORT_MAX,
    PORT_MIN,
)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
MergeStrategy = Literal["max", "add", "prefer-first", "prefer-last"]
StructurePreference = Literal["first", "last", "more-items"]
ReporterType = Literal["html", "lcov", "json", "json-summary", "text", "text-summary", "cobertura"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        NEXTCOV__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every skipped coverage entry.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


Watermark = tuple[int, int]


class Watermarks(BaseModel):
    """Per-metric low/high percentage thresholds used to grade coverage."""

    statements: Watermark = DEFAULT_WATERMARK
    functions: Watermark = DEFAULT_WATERMARK
    branches: Watermark = DEFAULT_WATERMARK
    lines: Watermark = DEFAULT_WATERMARK

    @field_validator("statements", "functions", "branches", "lines")
    @classmethod
    def validate_range(cls, v: Watermark) -> Watermark:
        low, high = v
        if not (0 <= low <= high <= 100):
            raise ValueError(f"Watermark must satisfy 0 <= low <= high <= 100, got {v}")
        return v

    def for_metric(self, metric: str) -> Watermark:
        return getattr(self, metric, DEFAULT_WATERMARK)  # type: ignore[no-any-return]


class MergerConfig(BaseModel):
    """Coverage merge configuration.

    Env vars:
        NEXTCOV__MERGER__STRATEGY: max | add | prefer-first | prefer-last
        NEXTCOV__MERGER__APPLY_FIXES: Re-synthesize implicit branches/functions after merging
    """

    strategy: MergeStrategy = Field(
        default="max",
        description="'max' keeps the richest structure and max counts, 'add' sums counts.",
    )
    structure_preference: StructurePreference = Field(
        default="more-items",
        description="Which input's statement/branch/function shape wins when structures differ.",
    )
    apply_fixes: bool = Field(
        default=True,
        description="Synthesize implicit branch/function entries to avoid 0/0 metrics.",
    )


class NextcovConfig(BaseModel):
    """Root configuration for a coverage processing run."""

    cdp_port: int = Field(
        default=DEFAULT_CDP_PORT,
        description="Debug port for live server-side capture.",
    )
    build_dir: str = Field(
        default=DEFAULT_BUILD_DIR,
        description="Bundler build output directory, relative to the project root.",
    )
    output_dir: str = Field(
        default=DEFAULT_OUTPUT_DIR,
        description="Directory reports are written to.",
    )
    cache_dir: str | None = Field(
        default=None,
        description="Intermediate artifact directory. Defaults to <output_dir>/.cache.",
    )
    collect_server: bool = True
    collect_client: bool = True
    source_root: str = Field(
        default=DEFAULT_SOURCE_ROOT,
        description="Source files root relative to the project root.",
    )
    include: list[str] = Field(default_factory=lambda: list(DEFAULT_INCLUDE_PATTERNS))
    exclude: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    reporters: list[ReporterType] = Field(default_factory=lambda: list(DEFAULT_REPORTERS))
    watermarks: Watermarks = Field(default_factory=Watermarks)
    merger: MergerConfig = Field(default_factory=MergerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("cdp_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (PORT_MIN <= v <= PORT_MAX):
            raise ValueError(f"Port must be {PORT_MIN}-{PORT_MAX}, got {v}")
        return v

    @model_validator(mode="after")
    def derive_cache_dir(self) -> "NextcovConfig":
        if self.cache_dir is None:
            self.cache_dir = str(Path(self.output_dir) / ".cache")
        return self

    @property
    def source_dir_name(self) -> str:
        """Directory name that marks project source paths (``src`` for ``./src``)."""
        return Path(self.source_root).name or "src"
