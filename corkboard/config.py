"""Load and validate .corkboard/config.yaml."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import yaml

from corkboard.errors import ConfigError


# Default config values
DEFAULTS: dict[str, Any] = {
    "database": ".corkboard/corkboard.db",
    "board": "main-board",
    "ranks": {
        "max_length": 12,
    },
}

MIN_RANK_LENGTH = 2


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base recursively. Override wins on conflicts."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate(config: dict) -> None:
    """Validate required fields in config."""
    if not isinstance(config.get("database"), str) or not config["database"]:
        raise ConfigError("'database' must be a non-empty path string")

    if not isinstance(config.get("board"), str) or not config["board"]:
        raise ConfigError("'board' must be a non-empty string")

    ranks = config.get("ranks")
    if not isinstance(ranks, dict):
        raise ConfigError("'ranks' must be a mapping")
    max_length = ranks.get("max_length")
    # bool is an int subclass; reject it explicitly
    if isinstance(max_length, bool) or not isinstance(max_length, int):
        raise ConfigError(
            f"'ranks.max_length' must be an integer, got {type(max_length).__name__}"
        )
    if max_length < MIN_RANK_LENGTH:
        raise ConfigError(
            f"'ranks.max_length' must be >= {MIN_RANK_LENGTH}, got {max_length}"
        )


def default_config() -> dict:
    """Return a validated copy of DEFAULTS for callers without a config file."""
    config = copy.deepcopy(DEFAULTS)
    _validate(config)
    return config


def load_config(project_root: Path | None = None) -> dict:
    """Load config from .corkboard/config.yaml under project_root.

    Falls back to cwd if project_root is None. Merges with DEFAULTS
    so callers always get a full config dict.
    """
    root = Path(project_root) if project_root else Path.cwd()
    config_path = root / ".corkboard" / "config.yaml"

    if not config_path.exists():
        raise ConfigError(f"Config not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ConfigError(f"Config must be a YAML mapping, got {type(raw).__name__}")

    config = _deep_merge(copy.deepcopy(DEFAULTS), raw)
    _validate(config)
    return config


def resolve_db_path(config: dict, project_root: Path) -> Path:
    """Resolve the card database path relative to project_root."""
    db_path = Path(config["database"]).expanduser()
    if db_path.is_absolute():
        return db_path
    return project_root / db_path
