"""Tests for source discovery and end-to-end processing runs."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from nextcov.config.models import NextcovConfig
from nextcov.processor import (
    CoverageProcessor,
    discover_source_files,
    expand_braces,
    matches_pattern,
)


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def _entry(url: str, source: str, count: int = 1) -> dict[str, Any]:
    return {
        "url": url,
        "source": source,
        "functions": [
            {
                "functionName": "",
                "isBlockCoverage": False,
                "ranges": [{"startOffset": 0, "endOffset": len(source), "count": count}],
            }
        ],
    }


class TestExpandBraces:
    def test_no_braces(self) -> None:
        assert expand_braces("src/**/*.ts") == ["src/**/*.ts"]

    def test_single_group(self) -> None:
        assert expand_braces("src/*.{ts,tsx}") == ["src/*.ts", "src/*.tsx"]

    def test_multiple_groups(self) -> None:
        assert expand_braces("{a,b}/x.{c,d}") == ["a/x.c", "a/x.d", "b/x.c", "b/x.d"]


class TestMatchesPattern:
    @pytest.mark.parametrize(
        ("path", "pattern", "expected"),
        [
            ("src/lib/a.ts", "src/**/*.{ts,tsx}", True),
            ("src/a.ts", "src/**/*.ts", True),
            ("src/a.css", "src/**/*.{ts,tsx}", False),
            ("src/__tests__/a.ts", "src/**/__tests__/**", True),
            ("src/x/__tests__/a.ts", "src/**/__tests__/**", True),
            ("src/lib/a.test.tsx", "src/**/*.test.{ts,tsx}", True),
            ("lib/a.ts", "src/**/*.ts", False),
        ],
    )
    def test_matching(self, path: str, pattern: str, expected: bool) -> None:
        assert matches_pattern(path, pattern) is expected


class TestDiscoverSourceFiles:
    def test_include_and_exclude(self, tmp_path: Path) -> None:
        for rel in (
            "src/app/page.tsx",
            "src/lib/util.ts",
            "src/lib/util.test.ts",
            "src/__tests__/setup.ts",
            "src/styles.css",
            "scripts/build.js",
        ):
            _write(tmp_path / rel, "")

        found = discover_source_files(
            tmp_path,
            include=["src/**/*.{ts,tsx,js,jsx}"],
            exclude=["src/**/__tests__/**", "src/**/*.test.{ts,tsx}"],
        )

        root = tmp_path.resolve()
        assert found == [root / "src/app/page.tsx", root / "src/lib/util.ts"]

    def test_nothing_matches(self, tmp_path: Path) -> None:
        assert discover_source_files(tmp_path, include=["src/**/*.ts"]) == []


class TestCoverageProcessor:
    @pytest.fixture
    def root(self, tmp_path: Path) -> Path:
        return tmp_path.resolve()

    @pytest.fixture
    def processor(self, root: Path) -> CoverageProcessor:
        return CoverageProcessor(root, NextcovConfig(reporters=["json"], output_dir="coverage/e2e"))

    @pytest.mark.asyncio
    async def test_client_run_with_uncovered_files(self, processor: CoverageProcessor, root: Path) -> None:
        # Given one loaded page and one source file that never ran
        page = _write(root / "src" / "app" / "page.js", "run();\n")
        util = _write(root / "src" / "lib" / "util.ts", "export const x = 1;\n")
        _write(root / "src" / "lib" / "util.test.ts", "test();\n")

        # When the run processes the browser coverage
        result = await processor.process_all_coverage(entries=[_entry(page.as_uri(), "run();\n")])

        # Then both files are reported and the baseline is written
        assert sorted(result.coverage_map.files()) == sorted([str(page), str(util)])
        assert result.coverage_map.file_coverage_for(str(page)).s == {"0": 1}
        assert result.coverage_map.file_coverage_for(str(util)).s == {"0": 0}
        assert result.summary.statements.total == 2
        assert result.summary.statements.covered == 1
        final = root / "coverage" / "e2e" / "coverage-final.json"
        assert set(json.loads(final.read_text())) == {str(page), str(util)}
        assert len(processor.loader) == 0

    @pytest.mark.asyncio
    async def test_server_directory_run(self, processor: CoverageProcessor, root: Path) -> None:
        server = _write(root / "src" / "lib" / "server.js", "const a = 1;\n")
        v8_dir = root / "v8"
        entry = _entry(server.as_uri(), "const a = 1;\n", count=3)
        _write(v8_dir / "coverage-1.json", json.dumps({"result": [{**entry, "scriptId": "1"}]}))

        result = await processor.process_all_coverage(v8_dir=v8_dir)

        assert result.coverage_map.file_coverage_for(str(server)).s == {"0": 3}

    @pytest.mark.asyncio
    async def test_disabled_side_is_ignored(self, root: Path) -> None:
        page = _write(root / "src" / "page.js", "run();\n")
        config = NextcovConfig(reporters=["json"], collect_client=False)
        processor = CoverageProcessor(root, config)

        result = await processor.process_all_coverage(entries=[_entry(page.as_uri(), "run();\n")])

        assert result.coverage_map.file_coverage_for(str(page)).s == {"0": 0}

    @pytest.mark.asyncio
    async def test_summary_reads_last_report(self, processor: CoverageProcessor, root: Path) -> None:
        assert await processor.summary() is None

        _write(root / "src" / "a.js", "a();\n")
        await processor.process_all_coverage()
        summary = await processor.summary()

        assert summary is not None
        assert summary.statements.total == 1
        assert summary.statements.covered == 0
