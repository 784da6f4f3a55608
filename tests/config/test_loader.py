"""Tests for config/loader.py module.

Covers:
- _load_yaml() function
- load_config() precedence: kwargs > env > nextcov.yaml > defaults
"""

from __future__ import annotations

from pathlib import Path

import pytest

from nextcov.config.loader import _load_yaml, load_config
from nextcov.core.errors import ConfigError, ErrorCode


class TestLoadYaml:
    """Tests for _load_yaml function."""

    def test_returns_empty_dict_for_missing_file(self, tmp_path: Path) -> None:
        """Returns empty dict when file doesn't exist."""
        assert _load_yaml(tmp_path / "nonexistent.yaml") == {}

    def test_loads_valid_yaml(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "nextcov.yaml"
        yaml_file.write_text("merger:\n  strategy: add\n")

        assert _load_yaml(yaml_file) == {"merger": {"strategy": "add"}}

    def test_returns_empty_for_empty_file(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "empty.yaml"
        yaml_file.write_text("")

        assert _load_yaml(yaml_file) == {}

    def test_raises_config_error_for_invalid_yaml(self, tmp_path: Path) -> None:
        """Raises ConfigError for invalid YAML syntax."""
        yaml_file = tmp_path / "invalid.yaml"
        yaml_file.write_text("merger:\n  strategy:\n    - invalid: [unclosed")

        with pytest.raises(ConfigError):
            _load_yaml(yaml_file)

    def test_raises_config_error_for_non_mapping(self, tmp_path: Path) -> None:
        yaml_file = tmp_path / "list.yaml"
        yaml_file.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="mapping"):
            _load_yaml(yaml_file)


class TestLoadConfig:
    """Tests for load_config precedence."""

    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NEXTCOV__CDP_PORT", raising=False)
        monkeypatch.delenv("NEXTCOV__OUTPUT_DIR", raising=False)
        monkeypatch.delenv("NEXTCOV__MERGER__STRATEGY", raising=False)

    def test_defaults_without_config_file(self, tmp_path: Path) -> None:
        config = load_config(tmp_path)

        assert config.cdp_port == 9230
        assert config.build_dir == ".next"
        assert config.output_dir == "coverage/e2e"
        assert config.merger.strategy == "max"
        assert config.reporters == ["html", "lcov", "json", "text-summary"]

    def test_yaml_overrides_defaults(self, tmp_path: Path) -> None:
        (tmp_path / "nextcov.yaml").write_text(
            "output_dir: coverage/merged\nmerger:\n  strategy: add\n"
        )

        config = load_config(tmp_path)

        assert config.output_dir == "coverage/merged"
        assert config.merger.strategy == "add"

    def test_env_overrides_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        (tmp_path / "nextcov.yaml").write_text("cdp_port: 9000\n")
        monkeypatch.setenv("NEXTCOV__CDP_PORT", "9231")

        config = load_config(tmp_path)

        assert config.cdp_port == 9231

    def test_nested_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NEXTCOV__MERGER__STRATEGY", "prefer-first")

        config = load_config(tmp_path)

        assert config.merger.strategy == "prefer-first"

    def test_kwargs_override_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NEXTCOV__CDP_PORT", "9231")

        config = load_config(tmp_path, cdp_port=9999)

        assert config.cdp_port == 9999

    def test_invalid_value_raises_config_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path, cdp_port=70000)

        assert exc_info.value.code == ErrorCode.CONFIG_INVALID_VALUE
        assert exc_info.value.details["field"] == "cdp_port"

    def test_cache_dir_follows_output_dir(self, tmp_path: Path) -> None:
        config = load_config(tmp_path, output_dir="out")

        assert config.cache_dir == str(Path("out") / ".cache")
