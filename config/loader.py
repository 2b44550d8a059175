import os
import re
import yaml
from typing import Any, Dict, IO

from utils.errors import ConfigError

# Matches ${VAR_NAME} anywhere in a scalar
ENV_VAR_MATCHER = re.compile(r"\$\{(\w+)\}")


class EnvLoader(yaml.SafeLoader):
    """SafeLoader that expands ${VAR} references in plain scalars."""
    pass


def _substitute(match: "re.Match[str]") -> str:
    env_var = match.group(1)
    replacement = os.getenv(env_var)
    if replacement is None:
        raise ConfigError(f"Environment variable '{env_var}' not found for substitution in config.")
    return replacement


def _env_var_constructor(loader: yaml.SafeLoader, node: yaml.ScalarNode) -> str:
    """
    Custom YAML constructor to substitute environment variables.
    e.g., token: ${GITHUB_TOKEN} is replaced by the value of GITHUB_TOKEN.
    """
    value = loader.construct_scalar(node)
    return ENV_VAR_MATCHER.sub(_substitute, value)


EnvLoader.add_constructor("!env", _env_var_constructor)
EnvLoader.add_implicit_resolver("!env", re.compile(r".*\$\{\w+\}.*"), None)


def load_config(config_file: IO[str]) -> Dict[str, Any]:
    """
    Loads a YAML configuration file.

    Args:
        config_file: A file-like object representing the YAML configuration.

    Returns:
        A dictionary containing the configuration.

    Raises:
        ConfigError: If the file cannot be parsed.
    """
    try:
        config = yaml.load(config_file, Loader=EnvLoader)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML configuration: {e}") from e
    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigError("Configuration root must be a mapping.")
    return config
