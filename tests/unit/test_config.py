"""Unit tests for continuation_chains.config."""
from __future__ import annotations

from pathlib import Path

import pytest

from continuation_chains.config import DEFAULT_MAX_DEPTH, EngineConfig, load_config
from continuation_chains.errors import ConfigError


class TestEngineConfig:
    def test_defaults(self) -> None:
        config = EngineConfig()
        assert config.max_depth == DEFAULT_MAX_DEPTH == 100
        assert config.max_workers == 8
        assert config.log_level == "WARNING"
        assert config.db_path.name == "chains.db"

    def test_log_level_is_normalised(self) -> None:
        assert EngineConfig(log_level=" debug ").log_level == "DEBUG"

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValueError):
            EngineConfig(log_level="chatty")

    def test_paths_expand_user(self) -> None:
        config = EngineConfig(db_path="~/chains.db")
        assert not str(config.db_path).startswith("~")

    def test_config_is_frozen(self) -> None:
        with pytest.raises(ValueError):
            EngineConfig().max_depth = 5  # type: ignore[misc]


class TestLoadConfig:
    def test_no_file_no_env(self) -> None:
        assert load_config(env={}) == EngineConfig()

    def test_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("max_depth: 5\nlog_level: info\n", encoding="utf-8")
        config = load_config(path, env={})
        assert config.max_depth == 5
        assert config.log_level == "INFO"

    def test_empty_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path, env={}) == EngineConfig()

    def test_env_overrides_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("max_depth: 5\n", encoding="utf-8")
        config = load_config(
            path,
            env={"CONTINUATION_CHAINS_MAX_DEPTH": "7", "CONTINUATION_CHAINS_MAX_WORKERS": "2"},
        )
        assert config.max_depth == 7
        assert config.max_workers == 2

    def test_unknown_key(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("colour: blue\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path, env={})

    def test_non_mapping_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path, env={})

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("max_depth: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path, env={})

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError):
            load_config(tmp_path / "absent.yaml", env={})

    def test_invalid_value(self) -> None:
        with pytest.raises(ConfigError) as excinfo:
            load_config(env={"CONTINUATION_CHAINS_MAX_DEPTH": "0"})
        assert isinstance(excinfo.value, ValueError)
