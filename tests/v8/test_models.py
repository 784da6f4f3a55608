"""Tests for raw V8 coverage records."""

from __future__ import annotations

from typing import Any

import pytest

from nextcov.core.errors import CoverageInputError
from nextcov.v8.models import (
    RawFunctionCoverage,
    RawProcessCoverage,
    RawRange,
    RawScriptCoverage,
)

PROCESS: dict[str, Any] = {
    "result": [
        {
            "scriptId": "42",
            "url": "file:///app/.next/server/app/page.js",
            "functions": [
                {
                    "functionName": "",
                    "ranges": [{"startOffset": 0, "endOffset": 120, "count": 1}],
                    "isBlockCoverage": True,
                },
                {
                    "functionName": "render",
                    "ranges": [
                        {"startOffset": 10, "endOffset": 80, "count": 2},
                        {"startOffset": 40, "endOffset": 60, "count": 0},
                    ],
                    "isBlockCoverage": True,
                },
            ],
        }
    ],
    "source-map-cache": {
        "file:///app/.next/server/app/page.js": {
            "lineLengths": [120],
            "data": {"version": 3, "sources": ["src/app/page.tsx"], "mappings": "AAAA"},
        }
    },
    "timestamp": 1712.5,
}


class TestRawRange:
    def test_from_dict(self) -> None:
        r = RawRange.from_dict({"startOffset": 3, "endOffset": 9, "count": 4})
        assert r == RawRange(3, 9, 4)
        assert r.length == 6

    def test_contains(self) -> None:
        r = RawRange(10, 20, 1)
        assert r.contains(10, 20)
        assert r.contains(12, 15)
        assert not r.contains(9, 15)
        assert not r.contains(15, 21)

    @pytest.mark.parametrize(
        "data",
        [
            {"startOffset": -1, "endOffset": 9, "count": 1},
            {"startOffset": 9, "endOffset": 3, "count": 1},
            {"startOffset": 0, "endOffset": 3, "count": "1"},
            {"startOffset": 0, "endOffset": 3, "count": True},
            {"startOffset": 0, "endOffset": 3},
        ],
    )
    def test_invalid_rejected(self, data: dict[str, Any]) -> None:
        with pytest.raises(CoverageInputError):
            RawRange.from_dict(data)


class TestRawFunctionCoverage:
    def test_empty_ranges_rejected(self) -> None:
        with pytest.raises(CoverageInputError, match="non-empty"):
            RawFunctionCoverage.from_dict({"functionName": "f", "ranges": []})

    def test_missing_name_defaults_to_empty(self) -> None:
        fn = RawFunctionCoverage.from_dict(
            {"ranges": [{"startOffset": 0, "endOffset": 1, "count": 0}]}
        )
        assert fn.function_name == ""
        assert fn.is_block_coverage is False


class TestRawScriptCoverage:
    def test_url_required(self) -> None:
        with pytest.raises(CoverageInputError):
            RawScriptCoverage.from_dict({"scriptId": "1", "functions": []})

    def test_source_and_map_optional(self) -> None:
        script = RawScriptCoverage.from_dict(
            {"url": "http://localhost:3000/a.js", "functions": [], "source": "x()", "sourceMap": {}}
        )
        assert script.source == "x()"
        assert script.source_map == {}
        assert script.script_id == ""


class TestRawProcessCoverage:
    def test_from_dict(self) -> None:
        process = RawProcessCoverage.from_dict(PROCESS)

        assert len(process.result) == 1
        script = process.result[0]
        assert script.script_id == "42"
        assert [fn.function_name for fn in script.functions] == ["", "render"]
        assert script.functions[1].ranges[1] == RawRange(40, 60, 0)
        assert process.source_map_cache is not None
        entry = process.source_map_cache["file:///app/.next/server/app/page.js"]
        assert entry.line_lengths == (120,)
        assert entry.data["sources"] == ["src/app/page.tsx"]
        assert process.timestamp == 1712.5

    def test_to_dict_preserves_layout(self) -> None:
        assert RawProcessCoverage.from_dict(PROCESS).to_dict() == PROCESS

    def test_missing_result_rejected(self) -> None:
        with pytest.raises(CoverageInputError):
            RawProcessCoverage.from_dict({"results": []})

    @pytest.mark.parametrize("line_lengths", [["n"], [-1], [True], "120", {"0": 1}])
    def test_invalid_line_lengths_rejected(self, line_lengths: Any) -> None:
        url = "file:///app/.next/server/app/page.js"
        data = {**PROCESS, "source-map-cache": {url: {"lineLengths": line_lengths, "data": {}}}}

        with pytest.raises(CoverageInputError, match="lineLengths"):
            RawProcessCoverage.from_dict(data)
