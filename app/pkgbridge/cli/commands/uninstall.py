"""Uninstall command for removing a package from a box.

This module provides the `pkgbridge uninstall` command: the package's
host exports are removed first, then the package itself is removed with
the box's own package manager.
"""

import os
from typing import Annotated

import typer

from pkgbridge.boxes.families import FAMILY_COMMANDS
from pkgbridge.cli.commands.unexport import remove_exports
from pkgbridge.cli.types import get_registry, require_box
from pkgbridge.core.config import load_config
from pkgbridge.core.errors import PkgbridgeError
from pkgbridge.core.lock import BoxScope
from pkgbridge.core.snapshot import capture_snapshot
from pkgbridge.core.state import StateStore
from pkgbridge.core.transaction import elevation_prefix
from pkgbridge.utils.formatting import print_error, print_info, print_success, print_warning
from pkgbridge.utils.shell import box_command, run_interactive


def uninstall(
    package: Annotated[str, typer.Argument(help="Package to remove.")],
    container: Annotated[
        str,
        typer.Option(
            "--container",
            "-c",
            help="Box the package is installed in.",
        ),
    ],
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Show what would be removed without removing anything.",
        ),
    ] = False,
) -> None:
    """Remove a package from a box together with its host exports.

    After removal the box's current snapshot is refreshed, so installing
    the package again later exports it again.

    Examples:
        pkgbridge uninstall htop --container fedora-latest
        pkgbridge uninstall gimp -c arch --dry-run
    """
    config = load_config()
    box = require_box(get_registry(config), container)
    remove_command = FAMILY_COMMANDS[box.family].remove_command(package)

    if dry_run:
        remove_exports(box.name, package, dry_run=True)
        print_info(f"Would run in {box.name}: {remove_command}")
        return

    store = StateStore()
    scope = BoxScope(
        store.locks_dir,
        box.name,
        mode=config.policy.lock_mode,
        timeout=config.policy.lock_timeout,
    )
    owner = os.getpid()
    try:
        scope.acquire(owner)
    except PkgbridgeError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from None

    try:
        remove_exports(box.name, package)

        root, prefix = elevation_prefix(box.name)
        code = run_interactive(
            box_command(box.name, [*prefix, "sh", "-c", remove_command], root=root)
        )
        if code != 0:
            print_error(f"Removing {package} failed with status {code}.")
            raise typer.Exit(code=code)

        try:
            store.save_snapshot(capture_snapshot(box))
        except PkgbridgeError as e:
            print_warning(f"Could not refresh the snapshot of {box.name}: {e}")
    finally:
        scope.release(owner)

    print_success(f"Removed {package} from {box.name}.")
