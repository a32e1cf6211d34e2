"""List command for discovered boxes.

This module provides the `pkgbridge list` command, which shows every box
known to distrobox with its distribution family and liveness.
"""

import json
from typing import Annotated

import typer

from pkgbridge.cli.display import create_boxes_table
from pkgbridge.cli.types import get_registry
from pkgbridge.utils.formatting import console, print_error, print_info

app = typer.Typer(
    name="list",
    help="List boxes and their distribution families.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def list_boxes(
    ctx: typer.Context,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
) -> None:
    """List boxes and their distribution families.

    Every box is entered once to read its os-release file. Boxes that
    cannot be entered are shown as unreachable and are never selected
    automatically.

    Examples:
        pkgbridge list
        pkgbridge list --json
    """
    if ctx.invoked_subcommand is not None:
        return

    registry = get_registry()
    if not registry.is_available():
        print_error("distrobox is not installed or not on PATH.")
        raise typer.Exit(code=1)

    boxes = registry.discover()
    if json_output:
        data = [
            {
                "name": box.name,
                "family": box.family.value,
                "reachable": box.reachable,
                "status": box.status,
                "image": box.image,
            }
            for box in boxes
        ]
        typer.echo(json.dumps(data, indent=2))
        return

    if not boxes:
        print_info("No boxes found. Create one with 'distrobox create'.")
        return

    console.print(create_boxes_table(boxes))
