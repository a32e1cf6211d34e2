"""Export command for manually exporting a package.

This module provides the `pkgbridge export` command, which exports the
commands and launchers of an already installed package. It uses the same
scanner and resolver as automatic exports after a transaction.
"""

from typing import Annotated

import typer

from pkgbridge.cli.display import create_outcomes_table, print_export_summary
from pkgbridge.cli.types import get_registry, require_box, warn_if_bin_dir_hidden
from pkgbridge.core.config import load_config
from pkgbridge.core.errors import PkgbridgeError
from pkgbridge.core.state import StateStore
from pkgbridge.export.scanner import ArtifactScanner
from pkgbridge.export.writer import Exporter
from pkgbridge.models.artifact import Artifact, ArtifactKind
from pkgbridge.models.export import OutcomeStatus
from pkgbridge.utils.formatting import console, print_error, print_info, print_warning


def filter_artifacts(
    artifacts: list[Artifact],
    bins: list[str],
    apps: list[str],
) -> tuple[list[Artifact], list[str]]:
    """Keep only the requested binaries and launchers.

    With neither filter given, every artifact is kept. Launchers match by
    file name with or without the ``.desktop`` suffix.

    Returns:
        Tuple of (selected artifacts, requested names that matched nothing).
    """
    if not bins and not apps:
        return artifacts, []

    wanted_apps = {name.removesuffix(".desktop") for name in apps}
    selected: list[Artifact] = []
    matched: set[str] = set()
    for artifact in artifacts:
        if artifact.kind == ArtifactKind.BINARY and artifact.name in bins:
            selected.append(artifact)
            matched.add(artifact.name)
        elif artifact.kind == ArtifactKind.DESKTOP:
            stem = artifact.name.removesuffix(".desktop")
            if stem in wanted_apps:
                selected.append(artifact)
                matched.add(stem)

    missing = [name for name in bins if name not in matched]
    missing.extend(name for name in apps if name.removesuffix(".desktop") not in matched)
    return selected, missing


def export(
    package: Annotated[str, typer.Argument(help="Installed package to export.")],
    container: Annotated[
        str,
        typer.Option(
            "--container",
            "-c",
            help="Box the package is installed in.",
        ),
    ],
    bins: Annotated[
        list[str] | None,
        typer.Option(
            "--bin",
            help="Only export this command (repeatable).",
        ),
    ] = None,
    apps: Annotated[
        list[str] | None,
        typer.Option(
            "--app",
            help="Only export this launcher (repeatable).",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            "-n",
            help="Show what would be exported without writing anything.",
        ),
    ] = False,
) -> None:
    """Export commands and launchers of an installed package.

    Existing host files are never overwritten: if a name is taken, the
    export falls back to a box-qualified name (foo-BOX, foo.BOX.desktop).

    Examples:
        pkgbridge export htop --container fedora-latest
        pkgbridge export vim --container debian-stable --bin vim
        pkgbridge export gimp -c arch --app gimp --dry-run
    """
    config = load_config()
    box = require_box(get_registry(config), container)

    scan = ArtifactScanner(config.policy).scan_packages(box, [package])
    for note in scan.partials:
        print_warning(note)

    artifacts, missing = filter_artifacts(list(scan.artifacts), bins or [], apps or [])
    for name in missing:
        print_warning(f"'{name}' is not provided by {package}")

    if not artifacts:
        if scan.is_partial:
            print_error(f"Cannot inspect {package} in {box.name}.")
            raise typer.Exit(code=1)
        print_info(f"{package} provides no exportable commands or launchers.")
        return

    try:
        outcomes = Exporter(StateStore(), dry_run=dry_run).export(artifacts)
    except PkgbridgeError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from None

    console.print(create_outcomes_table(outcomes, dry_run=dry_run))
    print_export_summary(outcomes)
    if not dry_run:
        warn_if_bin_dir_hidden()

    if any(o.status == OutcomeStatus.FAILED for o in outcomes):
        raise typer.Exit(code=1)
