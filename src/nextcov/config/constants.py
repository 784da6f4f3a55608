"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable,
plus the built-in defaults the config models fall back to.

For configurable values, see models.py (NextcovConfig, MergerConfig, etc.).
"""

# =============================================================================
# Source discovery defaults
# =============================================================================

DEFAULT_INCLUDE_PATTERNS: tuple[str, ...] = ("src/**/*.{ts,tsx,js,jsx}",)
"""Glob patterns for source files that should appear in reports."""

DEFAULT_EXCLUDE_PATTERNS: tuple[str, ...] = (
    "src/**/__tests__/**",
    "src/**/*.test.{ts,tsx}",
    "src/**/*.spec.{ts,tsx}",
    "src/**/*.browser.test.{ts,tsx}",
    "src/**/types/**",
    "src/**/*.css",
)
"""Glob patterns removed from source discovery."""

# =============================================================================
# Reporting defaults
# =============================================================================

DEFAULT_REPORTERS: tuple[str, ...] = ("html", "lcov", "json", "text-summary")
"""Reporters emitted when none are configured."""

DEFAULT_WATERMARK: tuple[int, int] = (50, 80)
"""Low/high percentage thresholds shared by every metric."""

COVERAGE_FINAL_JSON = "coverage-final.json"
"""Istanbul coverage map filename (the merge baseline format)."""

COVERAGE_SUMMARY_JSON = "coverage-summary.json"
"""Istanbul json-summary filename."""

# =============================================================================
# Capture/build defaults
# =============================================================================

DEFAULT_CDP_PORT = 9230
"""Debug port used for live server-side capture."""

DEFAULT_BUILD_DIR = ".next"
DEFAULT_OUTPUT_DIR = "coverage/e2e"
DEFAULT_SOURCE_ROOT = "./src"

CONFIG_FILENAME = "nextcov.yaml"
"""Project-level config file, read from the project root."""

# =============================================================================
# Protocol/Validation Constants
# =============================================================================

PORT_MIN = 0
PORT_MAX = 65535
"""Valid port range."""

MAX_CONVERT_WORKERS = 8
"""Upper bound for the per-entry conversion worker pool."""
