"""XDG-compliant path management for pkgbridge.

This module provides standardized XDG base directory paths for
configuration, state, and the host directories that receive exported
shims and desktop launchers.

XDG defaults:
- Config: ~/.config/pkgbridge/
- State: ~/.local/state/pkgbridge/
- Host binaries: ~/.local/bin/
- Host launchers: ~/.local/share/applications/
"""

import os
from pathlib import Path

# Application identifier for directory naming
APP_NAME = "pkgbridge"


def _get_xdg_dir(env_var: str, default_subdir: str) -> Path:
    """Get XDG directory respecting environment variable override.

    Args:
        env_var: XDG environment variable name (e.g., "XDG_CONFIG_HOME").
        default_subdir: Default subdirectory under home (e.g., ".config").

    Returns:
        Path to the application-specific directory.
    """
    base = os.environ.get(env_var)
    if base:
        return Path(base) / APP_NAME
    return Path.home() / default_subdir / APP_NAME


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Returns:
        Path to ~/.config/pkgbridge/ (or XDG_CONFIG_HOME/pkgbridge/).
    """
    return _get_xdg_dir("XDG_CONFIG_HOME", ".config")


def get_state_dir() -> Path:
    """Get the state directory path.

    State data includes snapshots, export records and locks that must
    persist between runs but are not configuration.

    Returns:
        Path to ~/.local/state/pkgbridge/ (or XDG_STATE_HOME/pkgbridge/).
    """
    return _get_xdg_dir("XDG_STATE_HOME", ".local/state")


def get_config_path() -> Path:
    """Get the user configuration file path.

    Returns:
        Path to ~/.config/pkgbridge/config.toml.
    """
    return get_config_dir() / "config.toml"


def get_theme_path() -> Path:
    """Get the user theme override path.

    Returns:
        Path to ~/.config/pkgbridge/theme.toml.
    """
    return get_config_dir() / "theme.toml"


def get_host_bin_dir() -> Path:
    """Get the host directory that receives exported command shims.

    Honors XDG_BIN_HOME when set.

    Returns:
        Path to ~/.local/bin (or XDG_BIN_HOME).
    """
    base = os.environ.get("XDG_BIN_HOME")
    if base:
        return Path(base)
    return Path.home() / ".local" / "bin"


def get_host_apps_dir() -> Path:
    """Get the host directory that receives exported desktop launchers.

    Returns:
        Path to ~/.local/share/applications (or XDG_DATA_HOME/applications).
    """
    base = os.environ.get("XDG_DATA_HOME")
    data_home = Path(base) if base else Path.home() / ".local" / "share"
    return data_home / "applications"
