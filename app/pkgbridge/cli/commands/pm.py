"""Package-manager commands.

This module provides the `pkgbridge pm` command group:

- ``set-default`` / ``show-defaults`` bind a distribution family to a box
- ``generate-shims`` exports host shims wrapping a box's package managers
- ``snapshot`` / ``post-transaction`` are the two phases the shims call
- ``run`` runs a whole transaction in one process
"""

import os
from typing import Annotated

import typer

from pkgbridge.boxes.families import FAMILY_COMMANDS
from pkgbridge.cli.display import (
    create_outcomes_table,
    print_export_summary,
    print_transaction_report,
)
from pkgbridge.cli.types import FamilyChoice, fail, get_registry, select_box, warn_if_bin_dir_hidden
from pkgbridge.core.config import load_config, save_config
from pkgbridge.core.errors import PkgbridgeError
from pkgbridge.core.shims import generate_shims, shim_renderer
from pkgbridge.core.state import StateStore
from pkgbridge.core.transaction import TransactionOrchestrator, notify_exports
from pkgbridge.export.writer import Exporter
from pkgbridge.models.box import Box, Family
from pkgbridge.models.export import OutcomeStatus
from pkgbridge.utils.formatting import console, create_table, print_success

app = typer.Typer(
    name="pm",
    help="Wrap box package managers and export what they install.",
    no_args_is_help=True,
)

ContainerOption = Annotated[
    str | None,
    typer.Option(
        "--container",
        "-c",
        help="Box to use.",
    ),
]
FamilyOption = Annotated[
    FamilyChoice | None,
    typer.Option(
        "--family",
        "-f",
        help="Distribution family (picks the default box of the family).",
    ),
]


@app.command("set-default")
def set_default(
    family: Annotated[FamilyChoice, typer.Argument(help="Distribution family.")],
    box: Annotated[str, typer.Argument(help="Box to use for this family.")],
) -> None:
    """Bind a distribution family to a box.

    Examples:
        pkgbridge pm set-default fedora fedora-latest
    """
    config = load_config()
    try:
        path = save_config(config.with_default(family.value, box))
    except PkgbridgeError as e:
        fail(e)
    print_success(f"Default {family.value} box set to {box} ({path}).")


@app.command("show-defaults")
def show_defaults() -> None:
    """Show the box bound to each distribution family."""
    config = load_config()

    table = create_table("Family Defaults")
    table.add_column("Family")
    table.add_column("Default box", style="box.name")
    table.add_column("Created as", style="muted")
    table.add_column("Image", style="muted")

    for choice in FamilyChoice:
        commands = FAMILY_COMMANDS[choice.family]
        table.add_row(
            choice.value,
            config.default_box(choice.value) or "[muted](first found)[/]",
            commands.default_box,
            config.image_for(choice.value) or commands.default_image,
        )
    console.print(table)


@app.command("generate-shims")
def generate_shims_command(
    container: ContainerOption = None,
    family: FamilyOption = None,
    create: Annotated[
        bool,
        typer.Option(
            "--create",
            help="Create a box of the family if none exists.",
        ),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Show which shims would be written.",
        ),
    ] = False,
) -> None:
    """Export host shims for a box's package managers.

    Running e.g. `dnf install htop` on the host afterwards installs into
    the box and exports htop automatically. A package manager that already
    exists on the host is never shadowed: its shim gets a box-qualified
    name (dnf-BOX) instead.

    Examples:
        pkgbridge pm generate-shims --container fedora-latest
        pkgbridge pm generate-shims --family arch --create
    """
    config = load_config()
    box = select_box(get_registry(config), container, family, create=create)

    exporter = Exporter(StateStore(), render_manager=shim_renderer(box), dry_run=dry_run)
    try:
        outcomes = generate_shims(box, exporter)
    except PkgbridgeError as e:
        fail(e)

    console.print(create_outcomes_table(outcomes, dry_run=dry_run))
    print_export_summary(outcomes)
    if not dry_run:
        warn_if_bin_dir_hidden()
    if any(o.status == OutcomeStatus.FAILED for o in outcomes):
        raise typer.Exit(code=1)


@app.command("snapshot")
def snapshot(
    container: Annotated[str, typer.Option("--container", "-c", help="Box to snapshot.")],
    family: Annotated[FamilyChoice, typer.Option("--family", "-f", help="Family of the box.")],
) -> None:
    """Begin a transaction: lock the box and record its inventory.

    Called by the package-manager shims before the package manager runs.
    The transaction is owned by the calling shell, so it stays locked
    until `pm post-transaction` runs from the same shell.
    """
    config = load_config()
    box = Box(name=container, family=family.family)
    orchestrator = TransactionOrchestrator(
        box,
        store=StateStore(),
        config=config,
        owner=os.getppid(),
    )
    try:
        orchestrator.begin()
    except PkgbridgeError as e:
        fail(e)


@app.command("post-transaction")
def post_transaction(
    container: Annotated[str, typer.Option("--container", "-c", help="Box of the transaction.")],
    exit_code: Annotated[
        int,
        typer.Option("--exit-code", help="Exit status of the package manager."),
    ] = 0,
    interrupted: Annotated[
        bool,
        typer.Option("--interrupted", help="The package manager was interrupted."),
    ] = False,
) -> None:
    """Finish a transaction: diff, scan and export, then unlock the box.

    Called by the package-manager shims after the package manager exits.
    """
    config = load_config()
    store = StateStore()
    pending = store.load_pending(container)
    if pending is None:
        fail(f"No pending transaction for box '{container}'")

    try:
        family = Family(pending.family)
    except ValueError:
        family = Family.UNKNOWN
    box = Box(name=container, family=family)

    try:
        orchestrator = TransactionOrchestrator.resume(
            box, store=store, config=config, owner=os.getppid()
        )
    except PkgbridgeError as e:
        fail(e)

    report = orchestrator.finish(exit_code, interrupted=interrupted)
    print_transaction_report(report)
    notify_exports(report)
    if report.error and not report.interrupted:
        raise typer.Exit(code=1)


@app.command(
    "run",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def run(
    args: Annotated[
        list[str],
        typer.Argument(help="Arguments for the box's package manager, e.g. install htop."),
    ],
    container: ContainerOption = None,
    family: FamilyOption = None,
    manager: Annotated[
        str | None,
        typer.Option(
            "--manager",
            "-m",
            help="Package manager to run (default: the family's first).",
        ),
    ] = None,
    create: Annotated[
        bool,
        typer.Option(
            "--create",
            help="Create a box of the family if none exists.",
        ),
    ] = False,
) -> None:
    """Run a package-manager transaction and export what it installs.

    Exits with the package manager's status (130 when interrupted).

    Examples:
        pkgbridge pm run --family fedora -- install -y htop
        pkgbridge pm run -c debian-stable -- install ripgrep
    """
    config = load_config()
    box = select_box(get_registry(config), container, family, create=create)
    command = manager or FAMILY_COMMANDS[box.family].managers[0]

    orchestrator = TransactionOrchestrator(box, store=StateStore(), config=config)
    try:
        report = orchestrator.run([command, *args])
    except PkgbridgeError as e:
        fail(e)

    print_transaction_report(report)
    notify_exports(report)
    raise typer.Exit(code=report.process_exit_code)
