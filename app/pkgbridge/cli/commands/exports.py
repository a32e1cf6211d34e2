"""Exports command for listing recorded host exports.

This module provides the `pkgbridge exports` command, which shows every
shim and launcher pkgbridge created on the host.
"""

import json
from typing import Annotated

import typer

from pkgbridge.cli.display import create_records_table
from pkgbridge.core.state import StateStore
from pkgbridge.utils.formatting import console, print_info

app = typer.Typer(
    name="exports",
    help="List exported commands and launchers.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def exports(
    ctx: typer.Context,
    container: Annotated[
        str | None,
        typer.Option(
            "--container",
            "-c",
            help="Only show exports from this box.",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
) -> None:
    """List exported commands and launchers.

    Examples:
        pkgbridge exports
        pkgbridge exports --container fedora-latest
        pkgbridge exports --json
    """
    if ctx.invoked_subcommand is not None:
        return

    records = sorted(StateStore().load_exports().values(), key=lambda r: r.host_path)
    if container is not None:
        records = [r for r in records if r.box == container]

    if json_output:
        typer.echo(json.dumps([r.to_dict() for r in records], indent=2))
        return

    if not records:
        print_info("No exports recorded.")
        return

    console.print(create_records_table(records))
