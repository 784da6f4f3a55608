"""Coverage report output.

nextcov writes the machine-readable formats itself and leaves the rendered
ones (html, lcov, cobertura, text) to an external Istanbul reporter that
consumes ``coverage-final.json``:

- json: ``coverage-final.json``, the Istanbul coverage map
- json-summary: ``coverage-summary.json``, per-file and total metrics::

    {
        "total": {"lines": {"total": 10, "covered": 8, "skipped": 0, "pct": 80.0}, ...},
        "/abs/path/file.ts": {...}
    }

- text-summary: a rich table graded by watermark
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any, Literal

from rich.console import Console
from rich.table import Table

from nextcov.config.constants import COVERAGE_FINAL_JSON, COVERAGE_SUMMARY_JSON
from nextcov.config.models import Watermarks
from nextcov.core.console import get_console
from nextcov.core.errors import CoverageInputError, ReportError
from nextcov.core.io import read_json, write_json
from nextcov.core.logging import get_logger
from nextcov.coverage.models import CoverageMap, CoverageMetric, CoverageSummary

log = get_logger("coverage.report")

WatermarkLevel = Literal["low", "medium", "high"]

_LEVEL_STYLES: dict[str, str] = {"low": "red", "medium": "yellow", "high": "green"}

_METRIC_LABELS = (
    ("statements", "Statements"),
    ("branches", "Branches"),
    ("functions", "Functions"),
    ("lines", "Lines"),
)


def watermark_level(pct: float, watermark: tuple[int, int]) -> WatermarkLevel:
    low, high = watermark
    if pct < low:
        return "low"
    if pct < high:
        return "medium"
    return "high"


def build_json_summary(coverage_map: CoverageMap) -> dict[str, Any]:
    """Istanbul json-summary: ``total`` first, then one entry per file, sorted by path."""
    result: dict[str, Any] = {"total": coverage_map.summary().to_dict()}
    for path in sorted(coverage_map.files()):
        result[path] = coverage_map.file_coverage_for(path).summary().to_dict()
    return result


def _format_metric(metric: CoverageMetric) -> str:
    return f"{metric.pct:.2f}% ({metric.covered}/{metric.total})"


def _styled(metric: CoverageMetric, watermark: tuple[int, int]) -> str:
    style = _LEVEL_STYLES[watermark_level(metric.pct, watermark)]
    return f"[{style}]{_format_metric(metric)}[/{style}]"


def print_coverage_summary(
    summary: CoverageSummary,
    title: str = "Coverage summary",
    *,
    watermarks: Watermarks | None = None,
    console: Console | None = None,
) -> None:
    """Print a one-column metric table graded by watermark."""
    watermarks = watermarks or Watermarks()
    console = console or get_console()

    table = Table(title=title, title_justify="left", box=None, padding=(0, 1), pad_edge=False)
    table.add_column("metric", style="cyan", width=12)
    table.add_column("coverage", justify="right")
    for name, label in _METRIC_LABELS:
        metric = getattr(summary, name)
        table.add_row(label, _styled(metric, watermarks.for_metric(name)))

    console.print()
    console.print(table)


def print_coverage_comparison(
    unit: CoverageSummary,
    e2e: CoverageSummary,
    merged: CoverageSummary,
    *,
    console: Console | None = None,
) -> None:
    """Print unit / e2e / merged percentages side by side."""
    console = console or get_console()

    table = Table(title="Coverage comparison", title_justify="left")
    table.add_column("Metric", style="cyan")
    table.add_column("Unit", justify="right")
    table.add_column("E2E", justify="right")
    table.add_column("Merged", justify="right", style="bold")
    for name, label in _METRIC_LABELS:
        table.add_row(
            label,
            f"{getattr(unit, name).pct:.2f}%",
            f"{getattr(e2e, name).pct:.2f}%",
            f"{getattr(merged, name).pct:.2f}%",
        )

    console.print()
    console.print(table)


def check_thresholds(
    summary: CoverageSummary,
    thresholds: Mapping[str, float],
) -> dict[str, tuple[float, float]]:
    """Compare metric percentages with minimum thresholds.

    Args:
        summary: Aggregate coverage to check.
        thresholds: Metric name (statements, branches, functions, lines) to
            the minimum acceptable percentage. Unknown metric names are ignored.

    Returns:
        Failing metrics mapped to ``(actual_pct, required_pct)``. Empty when
        every threshold is met.
    """
    metrics = summary.metrics()
    failures: dict[str, tuple[float, float]] = {}
    for name, required in thresholds.items():
        metric = metrics.get(name)
        if metric is not None and metric.pct < required:
            failures[name] = (metric.pct, float(required))
    if failures:
        log.warning(
            "coverage_below_threshold",
            failures={k: f"{a:.2f} < {r:.2f}" for k, (a, r) in failures.items()},
        )
    return failures


class CoverageReporter:
    """Writes the reports a run is configured to produce."""

    def __init__(
        self,
        output_dir: Path,
        *,
        reporters: Sequence[str] = ("json", "text-summary"),
        watermarks: Watermarks | None = None,
        console: Console | None = None,
    ) -> None:
        self.output_dir = output_dir
        self.reporters = tuple(reporters)
        self.watermarks = watermarks or Watermarks()
        self.console = console

    def _ensure_output_dir(self) -> None:
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ReportError.output_unwritable(str(self.output_dir), str(e)) from e

    async def _write_report(self, path: Path, data: Any) -> None:
        try:
            await write_json(path, data)
        except OSError as e:
            raise ReportError.output_unwritable(str(path), str(e)) from e

    async def write(self, coverage_map: CoverageMap) -> list[Path]:
        """Write every configured report. Returns the files written.

        Raises:
            ReportError: If the output directory cannot be created or a report
                file cannot be written.
        """
        self._ensure_output_dir()
        written: list[Path] = []
        # The merge baseline is always persisted, even when json is not requested
        final_path = self.output_dir / COVERAGE_FINAL_JSON
        await self._write_report(final_path, coverage_map.to_dict())
        written.append(final_path)

        for reporter in self.reporters:
            if reporter == "json":
                continue
            if reporter == "json-summary":
                summary_path = self.output_dir / COVERAGE_SUMMARY_JSON
                await self._write_report(summary_path, build_json_summary(coverage_map))
                written.append(summary_path)
            elif reporter == "text-summary":
                print_coverage_summary(
                    coverage_map.summary(), watermarks=self.watermarks, console=self.console
                )
            else:
                log.info("reporter_delegated", reporter=reporter, input=str(final_path))

        log.info("reports_written", output_dir=str(self.output_dir), files=len(coverage_map))
        return written

    async def read_coverage_json(self, path: Path | None = None) -> CoverageMap | None:
        """Read ``coverage-final.json`` (from the output directory by default)."""
        path = path or self.output_dir / COVERAGE_FINAL_JSON
        if not path.exists():
            return None
        try:
            return CoverageMap.from_dict(await read_json(path))
        except CoverageInputError as e:
            log.warning("coverage_json_unreadable", path=str(path), error=str(e))
            return None


def files_only_in(first: CoverageMap, second: Iterable[str]) -> list[str]:
    """Paths present in ``first`` but not in ``second``, sorted."""
    others = set(second)
    return sorted(path for path in first.files() if path not in others)
