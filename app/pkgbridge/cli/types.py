"""Shared types and utilities for CLI commands.

This module provides common enums and helper functions used across
multiple CLI command modules to avoid code duplication.
"""

import os
from enum import Enum
from typing import NoReturn

import typer

from pkgbridge.boxes.registry import BoxRegistry
from pkgbridge.core.config import load_config
from pkgbridge.core.errors import PkgbridgeError
from pkgbridge.core.paths import get_host_bin_dir
from pkgbridge.models.box import Box, Family
from pkgbridge.models.config import UserConfig
from pkgbridge.utils.formatting import print_error, print_warning


class FamilyChoice(str, Enum):
    """Distribution families selectable on the command line."""

    DEBIAN = "debian"
    FEDORA = "fedora"
    OPENSUSE = "opensuse"
    ARCH = "arch"

    @property
    def family(self) -> Family:
        """Matching model Family."""
        return Family(self.value)


def fail(error: PkgbridgeError | str) -> NoReturn:
    """Print an error and exit with status 1."""
    print_error(str(error))
    raise typer.Exit(code=1)


def get_registry(config: UserConfig | None = None) -> BoxRegistry:
    """Create a box registry bound to the user configuration."""
    return BoxRegistry(config if config is not None else load_config())


def require_box(registry: BoxRegistry, name: str) -> Box:
    """Look up a reachable box with a known family, or exit.

    Args:
        registry: Registry to query.
        name: Box name.

    Returns:
        The Box.

    Raises:
        typer.Exit: If the box is absent, unreachable or unclassified.
    """
    try:
        box = registry.get(name)
    except PkgbridgeError as e:
        fail(e)
    if not box.reachable:
        fail(f"Box '{name}' is not reachable")
    if box.family == Family.UNKNOWN:
        fail(f"Box '{name}' runs an unsupported distribution")
    return box


def select_box(
    registry: BoxRegistry,
    container: str | None,
    family: FamilyChoice | None,
    create: bool = False,
) -> Box:
    """Resolve --container/--family options to a box, or exit."""
    if container is not None:
        return require_box(registry, container)
    if family is None:
        fail("Pass --container or --family")

    try:
        return registry.select_box(family.family, create=create)
    except PkgbridgeError as e:
        fail(e)


def is_on_path(directory: str) -> bool:
    """Check whether a directory is listed in PATH."""
    target = os.path.realpath(directory)
    return any(
        os.path.realpath(entry) == target
        for entry in os.environ.get("PATH", "").split(os.pathsep)
        if entry
    )


def warn_if_bin_dir_hidden() -> None:
    """Warn when the shim directory is not on PATH."""
    bin_dir = get_host_bin_dir()
    if not is_on_path(str(bin_dir)):
        print_warning(f"{bin_dir} is not on your PATH; exported commands will not be found")
