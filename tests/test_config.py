"""Tests for corkboard.config."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from corkboard.config import (
    DEFAULTS,
    _deep_merge,
    _validate,
    default_config,
    load_config,
    resolve_db_path,
)
from corkboard.errors import ConfigError


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create a minimal .corkboard/config.yaml in tmp_path."""
    corkboard_dir = tmp_path / ".corkboard"
    corkboard_dir.mkdir()
    config = {
        "board": "novel",
        "ranks": {"max_length": 8},
    }
    (corkboard_dir / "config.yaml").write_text(yaml.dump(config))
    return tmp_path


class TestDeepMerge:
    def test_flat_merge(self) -> None:
        base = {"a": 1, "b": 2}
        override = {"b": 3, "c": 4}
        assert _deep_merge(base, override) == {"a": 1, "b": 3, "c": 4}

    def test_nested_merge(self) -> None:
        base = {"x": {"a": 1, "b": 2}}
        override = {"x": {"b": 3}}
        assert _deep_merge(base, override) == {"x": {"a": 1, "b": 3}}

    def test_override_replaces_non_dict(self) -> None:
        base = {"x": {"a": 1}}
        override = {"x": "flat"}
        assert _deep_merge(base, override) == {"x": "flat"}

    def test_does_not_mutate_base(self) -> None:
        base = {"a": {"b": 1}}
        _deep_merge(base, {"a": {"b": 2}})
        assert base["a"]["b"] == 1


class TestValidate:
    def test_valid_config(self) -> None:
        config = _deep_merge(DEFAULTS, {})
        _validate(config)  # Should not raise

    def test_empty_database(self) -> None:
        config = _deep_merge(DEFAULTS, {"database": ""})
        with pytest.raises(ConfigError, match="database"):
            _validate(config)

    def test_board_not_string(self) -> None:
        config = _deep_merge(DEFAULTS, {"board": 7})
        with pytest.raises(ConfigError, match="board"):
            _validate(config)

    def test_ranks_not_dict(self) -> None:
        config = _deep_merge(DEFAULTS, {"ranks": "long"})
        with pytest.raises(ConfigError, match="ranks.*mapping"):
            _validate(config)

    def test_max_length_not_int(self) -> None:
        config = _deep_merge(DEFAULTS, {"ranks": {"max_length": "12"}})
        with pytest.raises(ConfigError, match="must be an integer, got str"):
            _validate(config)

    def test_max_length_bool_rejected(self) -> None:
        config = _deep_merge(DEFAULTS, {"ranks": {"max_length": True}})
        with pytest.raises(ConfigError, match="got bool"):
            _validate(config)

    def test_max_length_too_small(self) -> None:
        config = _deep_merge(DEFAULTS, {"ranks": {"max_length": 1}})
        with pytest.raises(ConfigError, match=">= 2, got 1"):
            _validate(config)

    def test_max_length_minimum_accepted(self) -> None:
        config = _deep_merge(DEFAULTS, {"ranks": {"max_length": 2}})
        _validate(config)  # Should not raise


class TestLoadConfig:
    def test_loads_and_merges_defaults(self, project_dir: Path) -> None:
        config = load_config(project_dir)
        # User-specified values present
        assert config["board"] == "novel"
        assert config["ranks"]["max_length"] == 8
        # Defaults filled in
        assert config["database"] == ".corkboard/corkboard.db"

    def test_missing_config_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Config not found"):
            load_config(tmp_path)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        corkboard_dir = tmp_path / ".corkboard"
        corkboard_dir.mkdir()
        (corkboard_dir / "config.yaml").write_text("just a string")
        with pytest.raises(ConfigError, match="YAML mapping"):
            load_config(tmp_path)

    def test_empty_file(self, tmp_path: Path) -> None:
        corkboard_dir = tmp_path / ".corkboard"
        corkboard_dir.mkdir()
        (corkboard_dir / "config.yaml").write_text("")
        with pytest.raises(ConfigError, match="got NoneType"):
            load_config(tmp_path)

    def test_invalid_value_in_file(self, tmp_path: Path) -> None:
        corkboard_dir = tmp_path / ".corkboard"
        corkboard_dir.mkdir()
        (corkboard_dir / "config.yaml").write_text("ranks:\n  max_length: 0\n")
        with pytest.raises(ConfigError, match="max_length"):
            load_config(tmp_path)

    def test_default_config(self) -> None:
        config = default_config()
        assert config == DEFAULTS
        config["ranks"]["max_length"] = 99
        assert DEFAULTS["ranks"]["max_length"] == 12


class TestResolveDbPath:
    def test_relative_to_project_root(self, project_dir: Path) -> None:
        config = load_config(project_dir)
        assert resolve_db_path(config, project_dir) == (
            project_dir / ".corkboard" / "corkboard.db"
        )

    def test_absolute_path_kept(self, tmp_path: Path) -> None:
        db = tmp_path / "elsewhere" / "cards.db"
        config = _deep_merge(DEFAULTS, {"database": str(db)})
        assert resolve_db_path(config, Path("/unused")) == db
