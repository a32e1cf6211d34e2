"""Unexport command for removing a package's host exports.

This module provides the `pkgbridge unexport` command. Only files
pkgbridge itself created (and that are unchanged since) are removed.
"""

from typing import Annotated

import typer

from pkgbridge.cli.display import create_records_table
from pkgbridge.core.errors import PkgbridgeError
from pkgbridge.core.state import StateStore
from pkgbridge.export.writer import Exporter
from pkgbridge.models.export import ExportRecord
from pkgbridge.utils.formatting import console, print_error, print_info, print_success


def remove_exports(box: str, package: str, dry_run: bool = False) -> list[ExportRecord]:
    """Remove a package's exports and report what was removed.

    Raises:
        typer.Exit: If the export lock cannot be taken.
    """
    try:
        removed = Exporter(StateStore(), dry_run=dry_run).unexport(box, package)
    except PkgbridgeError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from None

    if not removed:
        print_info(f"No exports recorded for {package} in {box}.")
        return removed

    table = create_records_table(removed)
    table.title = "Would remove (Dry Run)" if dry_run else "Removed"
    console.print(table)
    if not dry_run:
        print_success(f"Removed {len(removed)} export(s) of {package}.")
    return removed


def unexport(
    package: Annotated[str, typer.Argument(help="Package whose exports to remove.")],
    container: Annotated[
        str,
        typer.Option(
            "--container",
            "-c",
            help="Box the package was exported from.",
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
    """Remove the host exports of a package.

    The box does not need to exist anymore; removal only uses the export
    records.

    Examples:
        pkgbridge unexport htop --container fedora-latest
        pkgbridge unexport gimp -c arch --dry-run
    """
    remove_exports(container, package, dry_run=dry_run)
