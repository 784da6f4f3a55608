"""Tests for SourceMapLoader and source path normalization."""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any

import pytest

from nextcov.sourcemap.loader import SourceMapLoader, normalize_source_path
from nextcov.sourcemap.models import SourceMapRecord
from nextcov.v8.models import RawProcessCoverage, SourceMapCacheEntry

MAP: dict[str, Any] = {
    "version": 3,
    "sources": ["webpack://_N_E/./src/app/page.tsx"],
    "sourcesContent": ["export default function Page() {}"],
    "names": [],
    "mappings": "AAAA",
}


def _inline(data: dict[str, Any]) -> str:
    payload = base64.b64encode(json.dumps(data).encode()).decode()
    return f"//# sourceMappingURL=data:application/json;charset=utf-8;base64,{payload}"


class TestNormalizeSourcePath:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("webpack://_N_E/./src/app/page.tsx?abc", "src/app/page.tsx"),
            ("webpack:///_N_E/src/lib/x.ts", "src/lib/x.ts"),
            (".next/static/chunks/app/src/src/lib/x.ts", "src/lib/x.ts"),
            ("C:\\proj\\src\\a.ts", "src/a.ts"),
            ("./src/a.ts", "src/a.ts"),
            ("lib/util.js", "lib/util.js"),
        ],
    )
    def test_normalization(self, source: str, expected: str) -> None:
        assert normalize_source_path(source) == expected

    def test_custom_source_dir(self) -> None:
        assert normalize_source_path("webpack://app/./app/lib/a.ts", "app") == "app/lib/a.ts"


class TestUrlToFilePath:
    @pytest.fixture
    def loader(self, tmp_path: Path) -> SourceMapLoader:
        return SourceMapLoader(tmp_path)

    def test_file_url(self, loader: SourceMapLoader) -> None:
        assert loader.url_to_file_path("file:///app/.next/server/a.js") == Path(
            "/app/.next/server/a.js"
        )

    def test_next_url_maps_into_build_dir(self, loader: SourceMapLoader, tmp_path: Path) -> None:
        path = loader.url_to_file_path("http://localhost:3000/_next/static/chunks/app%5Bid%5D.js?v=1")
        assert path == tmp_path / ".next" / "static/chunks/app[id].js"

    def test_root_relative(self, loader: SourceMapLoader, tmp_path: Path) -> None:
        assert loader.url_to_file_path("/src/a.ts") == tmp_path / "src/a.ts"

    def test_http_url(self, loader: SourceMapLoader, tmp_path: Path) -> None:
        assert loader.url_to_file_path("http://localhost:3000/src/a.ts") == tmp_path / "src/a.ts"

    def test_unknown_scheme(self, loader: SourceMapLoader) -> None:
        assert loader.url_to_file_path("chrome-extension://abc/a.js") is None


class TestLoadSource:
    @pytest.mark.asyncio
    async def test_adjacent_map_file(self, tmp_path: Path) -> None:
        script = tmp_path / "a.js"
        script.write_text("function a() {}\n")
        (tmp_path / "a.js.map").write_text(json.dumps(MAP))
        loader = SourceMapLoader(tmp_path)

        source = await loader.load_source(script.as_uri())

        assert source is not None
        assert source.code == "function a() {}\n"
        assert source.source_map is not None
        assert source.source_map.sources == ("webpack://_N_E/./src/app/page.tsx",)

    @pytest.mark.asyncio
    async def test_inline_map(self, tmp_path: Path) -> None:
        script = tmp_path / "b.js"
        script.write_text("b();\n" + _inline(MAP) + "\n")
        loader = SourceMapLoader(tmp_path)

        source = await loader.load_source(script.as_uri())

        assert source is not None
        assert source.source_map is not None
        assert source.source_map.content_for(0) == "export default function Page() {}"

    @pytest.mark.asyncio
    async def test_relative_map_comment(self, tmp_path: Path) -> None:
        (tmp_path / "maps").mkdir()
        (tmp_path / "maps" / "c.map").write_text(json.dumps(MAP))
        script = tmp_path / "c.js"
        script.write_text("c();\n//# sourceMappingURL=maps/c.map\n")
        loader = SourceMapLoader(tmp_path)

        source = await loader.load_source(script.as_uri())

        assert source is not None
        assert source.source_map is not None

    @pytest.mark.asyncio
    async def test_no_map(self, tmp_path: Path) -> None:
        script = tmp_path / "d.js"
        script.write_text("d();\n")

        source = await SourceMapLoader(tmp_path).load_source(script.as_uri())

        assert source is not None
        assert source.source_map is None

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path: Path) -> None:
        loader = SourceMapLoader(tmp_path)
        assert await loader.load_source((tmp_path / "missing.js").as_uri()) is None

    @pytest.mark.asyncio
    async def test_results_cached_until_clear(self, tmp_path: Path) -> None:
        script = tmp_path / "e.js"
        script.write_text("e();\n")
        loader = SourceMapLoader(tmp_path)

        first = await loader.load_source(script.as_uri())
        second = await loader.load_source(script.as_uri())

        assert first is second
        assert len(loader) == 1
        loader.clear()
        assert len(loader) == 0

    @pytest.mark.asyncio
    async def test_v8_cache_seeds_map(self, tmp_path: Path) -> None:
        script = tmp_path / "server.js"
        script.write_text("module.exports = 1;\n")
        url = script.as_uri()
        coverage = RawProcessCoverage(
            result=[], source_map_cache={url: SourceMapCacheEntry(data=dict(MAP))}
        )
        loader = SourceMapLoader(tmp_path)

        loader.load_from_v8_cache(coverage)
        source = await loader.load_source(url)

        assert source is not None
        assert source.code == "module.exports = 1;\n"
        assert source.source_map is not None
        assert source.source_map.mappings == "AAAA"


class TestDataUrls:
    def test_parse_data_url(self, tmp_path: Path) -> None:
        payload = base64.b64encode(json.dumps(MAP).encode()).decode()
        record = SourceMapLoader(tmp_path).parse_data_url(f"data:application/json;base64,{payload}")
        assert record is not None
        assert record.mappings == "AAAA"

    def test_invalid_payload(self, tmp_path: Path) -> None:
        loader = SourceMapLoader(tmp_path)
        assert loader.parse_data_url("data:application/json;base64,@@@") is None
        assert loader.parse_data_url("data:text/plain,hello") is None
        assert loader.extract_inline_source_map("x();") is None


class TestResolveOriginalPath:
    def test_source_root_joined(self, tmp_path: Path) -> None:
        record = SourceMapRecord(sources=("lib/a.ts", None), mappings="", source_root="/app/src")
        loader = SourceMapLoader(tmp_path)

        assert loader.resolve_original_path(record, 0) == "src/lib/a.ts"
        assert loader.resolve_original_path(record, 1) is None
        assert loader.resolve_original_path(record, 7) is None

    def test_original_source(self, tmp_path: Path) -> None:
        record = SourceMapRecord.from_dict(MAP)
        assert SourceMapLoader(tmp_path).original_source(record, 0) == MAP["sourcesContent"][0]
