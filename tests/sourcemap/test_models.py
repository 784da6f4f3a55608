"""Tests for source map records."""

from __future__ import annotations

import pytest

from nextcov.core.errors import CoverageInputError
from nextcov.sourcemap.models import SourceMapRecord


class TestSourceMapRecord:
    def test_from_dict(self) -> None:
        record = SourceMapRecord.from_dict(
            {
                "version": 3,
                "file": "page.js",
                "sourceRoot": "",
                "sources": ["webpack://_N_E/./src/a.ts", None],
                "sourcesContent": ["export const a = 1;", None],
                "names": ["a"],
                "mappings": "AAAA",
            }
        )

        assert record.sources == ("webpack://_N_E/./src/a.ts", None)
        assert record.content_for(0) == "export const a = 1;"
        assert record.content_for(1) is None
        assert record.content_for(5) is None
        assert record.source_root is None
        assert record.file == "page.js"
        assert record.names == ("a",)

    def test_missing_fields_default(self) -> None:
        record = SourceMapRecord.from_dict({"sources": ["a.ts"]})
        assert record.mappings == ""
        assert record.sources_content is None
        assert record.version == 3

    @pytest.mark.parametrize(
        "data",
        [[], {"sources": "a.ts", "mappings": ""}, {"sources": [], "mappings": 3}],
    )
    def test_invalid_rejected(self, data: object) -> None:
        with pytest.raises(CoverageInputError):
            SourceMapRecord.from_dict(data)

    def test_with_sources_replaces_selectively(self) -> None:
        record = SourceMapRecord(sources=("a", "b"), mappings="AAAA", sources_content=("1", "2"))

        updated = record.with_sources(("x",), ("9",), "ACAA")
        renamed = record.with_sources(("p", "q"))

        assert updated.sources == ("x",)
        assert updated.sources_content == ("9",)
        assert updated.mappings == "ACAA"
        assert renamed.sources_content == ("1", "2")
        assert renamed.mappings == "AAAA"

    def test_to_dict(self) -> None:
        record = SourceMapRecord(sources=("src/a.ts",), mappings="AAAA", sources_content=("x",))
        assert record.to_dict() == {
            "version": 3,
            "sources": ["src/a.ts"],
            "names": [],
            "mappings": "AAAA",
            "sourcesContent": ["x"],
        }
