"""Configuration loading and merging for mobsession.

Handles TOML loading, config discovery, deep merging, and environment overlay.
This module only reads settings; nothing here writes a config file except
``ensure_config_dir`` creating the directory for ``mob config init``.
"""

from __future__ import annotations

import os
import sys
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

# TOML loading: tomllib (3.11+) with tomli fallback
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pydantic import ValidationError

from .config_schema import MobSessionConfig
from .errors import ConfigError


CONFIG_FILENAME = "config.toml"

# Directory names
USER_CONFIG_DIR = ".mobsession"
PROJECT_CONFIG_DIR = ".mobsession"

# Environment variable -> (section path, key)
ENV_MAPPING: Dict[str, tuple[list[str], str]] = {
    "MOB_WIP_BRANCH": (["mob"], "wip_branch"),
    "MOB_BASE_BRANCH": (["mob"], "base_branch"),
    "MOB_REMOTE_NAME": (["mob"], "remote_name"),
    "MOB_TIMER_MINUTES": (["mob"], "timer_minutes"),
    "MOB_TIMER_SOUND": (["mob"], "timer_sound"),
    "MOB_START_WITH_SHARE": (["mob"], "start_with_share"),
    "MOB_SHARE_COMMAND": (["mob"], "share_command"),
    "MOB_PROTECT_UNMERGED_WIP": (["mob"], "protect_unmerged_wip"),
    "MOB_TIMER_FILE": (["timer"], "state_file"),
    "MOB_LOG_LEVEL": (["logging"], "level"),
    "MOB_LOG_DIR": (["logging"], "dir"),
    "MOB_LOG_MAX_BYTES": (["logging"], "max_bytes"),
    "MOB_LOG_BACKUP_COUNT": (["logging"], "backup_count"),
    "MOB_LOG_DISABLE_FILE": (["logging"], "disable_file"),
}


def _get_user_config_dir() -> Path:
    """Get user-level config directory (~/.mobsession/)."""
    return Path.home() / USER_CONFIG_DIR


def _get_project_config_dir(project_path: Optional[Path] = None) -> Optional[Path]:
    """Get project-level config directory (.mobsession/).

    Searches upward from project_path. The user config directory is never
    treated as a project directory.
    """
    if project_path is None:
        project_path = Path.cwd()

    if not project_path.is_absolute():
        project_path = project_path.resolve()

    user_dir = _get_user_config_dir()
    current = project_path
    while current != current.parent:
        config_dir = current / PROJECT_CONFIG_DIR
        if config_dir.is_dir() and config_dir != user_dir:
            return config_dir
        current = current.parent

    return None


def _load_toml(path: Path) -> Dict[str, Any]:
    """Load a TOML file.

    Raises:
        ConfigError: If file cannot be loaded or parsed
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries.

    Override values take precedence. Nested dicts are merged recursively.
    Lists are replaced, not merged.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _env_to_config_key(env_var: str) -> tuple[list[str], str]:
    """Map environment variable to config path.

    Examples:
        MOB_WIP_BRANCH -> (["mob"], "wip_branch")
        MOB_LOG_LEVEL -> (["logging"], "level")
    """
    return ENV_MAPPING.get(env_var, ([], env_var))


def _apply_env_overlay(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides to config dict."""
    result = _deep_merge({}, config_dict)

    for env_var in ENV_MAPPING:
        value = os.getenv(env_var)
        if value is None:
            continue

        section_path, key_name = _env_to_config_key(env_var)
        current = result
        for section in section_path:
            current = current.setdefault(section, {})

        # Type conversion happens during Pydantic validation
        current[key_name] = value

    return result


def load_config(
    project_path: Optional[Path] = None,
    skip_env: bool = False,
    overrides: Optional[Dict[str, Any]] = None,
) -> MobSessionConfig:
    """Load and merge mobsession configuration.

    Discovery order (later sources override earlier):
    1. Built-in defaults
    2. User config (~/.mobsession/config.toml)
    3. Project config (.mobsession/config.toml)
    4. Environment variables (unless skip_env=True)
    5. Explicit overrides (CLI flags)

    Raises:
        ConfigError: If config files are invalid
    """
    config_dict: Dict[str, Any] = {}

    user_config_path = _get_user_config_dir() / CONFIG_FILENAME
    if user_config_path.exists():
        try:
            config_dict = _deep_merge(config_dict, _load_toml(user_config_path))
        except ConfigError as e:
            # User config is optional, warn but continue
            warnings.warn(f"Skipping invalid user config at {user_config_path}: {e}", UserWarning)

    project_config_dir = _get_project_config_dir(project_path)
    if project_config_dir:
        project_config_path = project_config_dir / CONFIG_FILENAME
        if project_config_path.exists():
            try:
                config_dict = _deep_merge(config_dict, _load_toml(project_config_path))
            except ConfigError as e:
                raise ConfigError(f"Invalid project config: {e}")

    if not skip_env:
        config_dict = _apply_env_overlay(config_dict)

    if overrides:
        config_dict = _deep_merge(config_dict, overrides)

    try:
        return MobSessionConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigError(f"Config validation failed:\n{e}")


def get_config_paths(project_path: Optional[Path] = None) -> Dict[str, Optional[Path]]:
    """Get paths to all config files (existing or not)."""
    user_dir = _get_user_config_dir()
    project_dir = _get_project_config_dir(project_path)

    return {
        "user_config": user_dir / CONFIG_FILENAME,
        "project_config": project_dir / CONFIG_FILENAME if project_dir else None,
    }


def ensure_config_dir(user: bool = True, project_path: Optional[Path] = None) -> Path:
    """Ensure config directory exists and return it."""
    if user:
        config_dir = _get_user_config_dir()
    else:
        if project_path is None:
            project_path = Path.cwd()
        config_dir = project_path / PROJECT_CONFIG_DIR

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir

