"""Engine configuration.

Settings are plain pydantic fields with defaults suitable for a local
install.  ``load_config`` layers an optional YAML file and then
``CONTINUATION_CHAINS_*`` environment variables on top of those defaults.

Classes
-------
- EngineConfig  — validated engine settings

Functions
---------
- load_config   — build an ``EngineConfig`` from YAML and the environment
"""
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from continuation_chains.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH: int = 100
ENV_PREFIX = "CONTINUATION_CHAINS_"

_DEFAULT_DB_PATH: Path = Path.home() / ".continuation-chains" / "chains.db"
_DEFAULT_PROJECTS_DIR: Path = Path.home() / ".claude" / "projects"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class EngineConfig(BaseModel):
    """Configuration for the continuation graph engine.

    Parameters
    ----------
    max_depth:
        Hard cap on parent-link walks.  Shared by chain validation, cache
        computation and tree construction.  Default: 100.
    max_workers:
        Number of worker threads used for batch transcript detection.
        Default: 8.
    db_path:
        SQLite database file used by the CLI.
    projects_dir:
        Directory holding ``<project>/<session-uuid>.jsonl`` transcripts.
    log_level:
        Root log level applied by the CLI.  Default: ``"WARNING"``.
    """

    model_config = {"extra": "forbid", "frozen": True}

    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1)
    max_workers: int = Field(default=8, ge=1)
    db_path: Path = _DEFAULT_DB_PATH
    projects_dir: Path = _DEFAULT_PROJECTS_DIR
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {_LOG_LEVELS}, got {value!r}.")
        return level

    @field_validator("db_path", "projects_dir")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return Path(value).expanduser()


def _read_yaml(path: Path) -> dict[str, object]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {str(path)!r}: {exc}") from exc
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {str(path)!r}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file {str(path)!r} must contain a mapping, got {type(data).__name__}."
        )
    return data


def load_config(
    path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> EngineConfig:
    """Build an ``EngineConfig`` from an optional YAML file and the environment.

    Parameters
    ----------
    path:
        Optional YAML file.  Keys must match ``EngineConfig`` field names.
    env:
        Environment mapping to read overrides from.  Defaults to
        ``os.environ``.

    Returns
    -------
    EngineConfig

    Raises
    ------
    ConfigError
        If the file cannot be read or parsed, or a value fails validation.
    """
    values: dict[str, object] = {}
    if path is not None:
        values.update(_read_yaml(Path(path)))
        logger.debug("load_config: read %d keys from %r", len(values), str(path))

    environment = os.environ if env is None else env
    for field_name in EngineConfig.model_fields:
        env_key = ENV_PREFIX + field_name.upper()
        if env_key in environment:
            values[field_name] = environment[env_key]

    try:
        return EngineConfig(**values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
