"""User configuration I/O.

Configuration is stored in ~/.config/pkgbridge/config.toml. A missing
file means defaults; an unreadable or invalid one is reported with a
warning and also falls back to defaults, so a broken config never blocks
a package transaction.
"""

import logging
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
from pydantic import ValidationError

from pkgbridge.core.errors import ConfigError
from pkgbridge.core.paths import get_config_path
from pkgbridge.core.state import write_atomic
from pkgbridge.models.config import UserConfig

logger = logging.getLogger(__name__)


def load_config(path: Path | None = None) -> UserConfig:
    """Load user configuration from a TOML file.

    Args:
        path: Path to the config file. If None, uses the default config path.

    Returns:
        Validated UserConfig (defaults if the file is missing or invalid).
    """
    config_path = path or get_config_path()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        return UserConfig()
    except tomllib.TOMLDecodeError as e:
        logger.warning("Invalid TOML in %s, using defaults: %s", config_path, e)
        return UserConfig()
    except OSError as e:
        logger.warning("Cannot read %s, using defaults: %s", config_path, e)
        return UserConfig()

    try:
        return UserConfig.model_validate(data)
    except ValidationError as e:
        logger.warning("Invalid configuration in %s, using defaults: %s", config_path, e)
        return UserConfig()


def _config_to_dict(config: UserConfig) -> dict[str, Any]:
    """Convert UserConfig to a dictionary for TOML serialization.

    Empty tables are omitted to keep the file clean.
    """
    data: dict[str, Any] = {}
    if config.pm_defaults:
        data["pm_defaults"] = dict(sorted(config.pm_defaults.items()))
    if config.images:
        data["images"] = dict(sorted(config.images.items()))

    policy = config.policy.model_dump(mode="json")
    policy["binary_dirs"] = list(policy["binary_dirs"])
    policy["desktop_dirs"] = list(policy["desktop_dirs"])
    data["policy"] = policy
    return data


def save_config(config: UserConfig, path: Path | None = None) -> Path:
    """Save user configuration to a TOML file atomically.

    Args:
        config: The UserConfig to save.
        path: Destination. If None, uses the default config path.

    Returns:
        Path where the config was saved.

    Raises:
        ConfigError: If the file cannot be written.
    """
    config_path = path or get_config_path()
    try:
        write_atomic(config_path, tomli_w.dumps(_config_to_dict(config)).encode("utf-8"))
    except OSError as e:
        msg = f"Failed to write config {config_path}: {e}"
        raise ConfigError(msg) from e
    return config_path
