"""Main CLI application entry point.

Defines the Typer application and global options.
"""

from typing import Annotated

import typer

from pkgbridge import __version__
from pkgbridge.cli.commands import boxes, doctor, export, exports, pm, uninstall, unexport
from pkgbridge.utils.formatting import configure_logging

# Create main Typer app
app = typer.Typer(
    name="pkgbridge",
    help="Install packages into distrobox boxes and export them to the host.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"pkgbridge version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-essential output.",
        ),
    ] = False,
) -> None:
    """pkgbridge - Bridge distrobox package managers to the host.

    Wrap the package managers of your boxes so that every command and
    desktop launcher they install shows up on the host automatically.
    """
    configure_logging(verbose=verbose, quiet=quiet)

    # Store options in context for subcommands
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


# Register commands
app.add_typer(boxes.app, name="list")
app.add_typer(doctor.app, name="doctor")
app.command("export")(export.export)
app.command("unexport")(unexport.unexport)
app.command("uninstall")(uninstall.uninstall)
app.add_typer(exports.app, name="exports")
app.add_typer(pm.app, name="pm")


if __name__ == "__main__":
    app()
