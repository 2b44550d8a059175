import collections.abc
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from config.loader import load_config
from config.models import Config
from utils.errors import ConfigError
from utils.logger import logger

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"
USER_CONFIG_DIR = Path.home() / ".quicknotes"
USER_CONFIG_PATH = USER_CONFIG_DIR / "config.yaml"
PROJECT_CONFIG_FILENAME = ".quicknotes.yaml"

# Environment variables that override repository settings when present.
ENV_OVERRIDES = {
    "GITHUB_REPO_OWNER": ("github", "owner"),
    "GITHUB_REPO_NAME": ("github", "repo"),
}


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merges two dictionaries.
    Arrays are replaced, not merged.
    """
    for key, value in source.items():
        if isinstance(value, collections.abc.Mapping) and key in target and isinstance(target[key], collections.abc.Mapping):
            target[key] = deep_merge(target[key], value)
        else:
            target[key] = value
    return target


def find_project_root(start_dir: Path = Path(".")) -> Optional[Path]:
    """
    Finds the project root by searching upwards for a .git directory or pyproject.toml.
    """
    d = start_dir.resolve()
    while d != d.parent:
        if (d / ".git").is_dir() or (d / "pyproject.toml").is_file():
            return d
        d = d.parent
    return None


def find_project_config() -> Optional[Path]:
    """
    Finds the project-specific configuration file (.quicknotes.yaml) in the project root.
    """
    project_root = find_project_root()
    if project_root:
        project_config_path = project_root / PROJECT_CONFIG_FILENAME
        if project_config_path.is_file():
            return project_config_path
    return None


def apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            data.setdefault(section, {})[key] = value
    return data


def load_and_merge_configs(custom_config_path: Optional[str] = None) -> Config:
    """
    Loads all configurations (default, user, project) and merges them.
    A custom config path can be provided to override all others.
    """
    config_paths: List[Path] = []

    if DEFAULT_CONFIG_PATH.is_file():
        config_paths.append(DEFAULT_CONFIG_PATH)
    else:
        raise ConfigError("Default configuration file not found.")

    if USER_CONFIG_PATH.is_file():
        config_paths.append(USER_CONFIG_PATH)

    project_config_path = find_project_config()
    if project_config_path:
        config_paths.append(project_config_path)

    # A custom config file replaces the user and project layers.
    if custom_config_path:
        path = Path(custom_config_path)
        if not path.is_file():
            raise ConfigError(f"Custom config file not found at: {custom_config_path}")
        config_paths = [DEFAULT_CONFIG_PATH, path]
        logger.info(f"Using custom configuration from: {custom_config_path}")

    merged_config: Dict[str, Any] = {}
    for path in config_paths:
        logger.debug(f"Loading configuration from: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                merged_config = deep_merge(merged_config, load_config(f))
        except OSError as e:
            logger.warning(f"Could not read config at {path}: {e}")

    merged_config = apply_env_overrides(merged_config)

    try:
        final_config = Config(**merged_config)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e
    logger.debug(f"Final merged config: {final_config.model_dump_json(indent=2, exclude={'github': {'token'}, 'model': {'api_key'}})}")
    return final_config


def resolve_token(config: Config) -> Optional[str]:
    """Returns the GitHub token from the config or its environment variable."""
    return config.github.token or os.getenv(config.github.token_env_var)
