"""Doctor command for checking the host setup.

This module provides the `pkgbridge doctor` command, which verifies that
everything pkgbridge needs on the host is in place.
"""

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from pkgbridge.cli.types import is_on_path
from pkgbridge.core.paths import get_config_path, get_host_apps_dir, get_host_bin_dir, get_state_dir
from pkgbridge.utils.formatting import console, create_table, print_error, print_success
from pkgbridge.utils.shell import command_exists

app = typer.Typer(
    name="doctor",
    help="Check that the host is ready for pkgbridge.",
    invoke_without_command=True,
)


@dataclass(frozen=True, slots=True)
class Check:
    """Result of one doctor check."""

    name: str
    ok: bool
    detail: str
    required: bool = True


def _writable_dir(path: Path) -> tuple[bool, str]:
    """Check that a directory exists (or can be created) and is writable."""
    existing = path
    while not existing.exists() and existing != existing.parent:
        existing = existing.parent
    if not os.access(existing, os.W_OK):
        return False, f"{path} is not writable"
    if not path.exists():
        return True, f"{path} (will be created)"
    return True, str(path)


def run_checks() -> list[Check]:
    """Run all host checks."""
    checks: list[Check] = []

    checks.append(
        Check(
            "distrobox",
            command_exists("distrobox"),
            "found" if command_exists("distrobox") else "install distrobox",
        )
    )

    runtimes = [name for name in ("podman", "docker", "lilipod") if command_exists(name)]
    checks.append(
        Check(
            "container runtime",
            bool(runtimes),
            ", ".join(runtimes) if runtimes else "install podman or docker",
        )
    )

    bin_dir = get_host_bin_dir()
    ok, detail = _writable_dir(bin_dir)
    checks.append(Check("bin directory", ok, detail))
    checks.append(
        Check(
            "bin directory on PATH",
            is_on_path(str(bin_dir)),
            "yes" if is_on_path(str(bin_dir)) else f"add {bin_dir} to PATH",
            required=False,
        )
    )

    ok, detail = _writable_dir(get_host_apps_dir())
    checks.append(Check("applications directory", ok, detail))

    ok, detail = _writable_dir(get_state_dir())
    checks.append(Check("state directory", ok, detail))

    config_path = get_config_path()
    checks.append(
        Check(
            "config file",
            True,
            str(config_path) if config_path.exists() else "not present (defaults)",
            required=False,
        )
    )

    notify = command_exists("notify-send")
    checks.append(
        Check(
            "notify-send",
            notify,
            "found" if notify else "no desktop notifications",
            required=False,
        )
    )
    return checks


@app.callback(invoke_without_command=True)
def doctor(ctx: typer.Context) -> None:
    """Check that the host is ready for pkgbridge.

    Exits with status 1 if a required check fails.

    Examples:
        pkgbridge doctor
    """
    if ctx.invoked_subcommand is not None:
        return

    checks = run_checks()

    table = create_table("pkgbridge doctor")
    table.add_column("", width=2, justify="center")
    table.add_column("Check", no_wrap=True)
    table.add_column("Detail", style="muted")
    for check in checks:
        if check.ok:
            icon = "[success]✓[/]"
        elif check.required:
            icon = "[error]✗[/]"
        else:
            icon = "[warning]![/]"
        table.add_row(icon, check.name, check.detail)
    console.print(table)

    failed = [check for check in checks if check.required and not check.ok]
    if failed:
        print_error(f"{len(failed)} check(s) failed.")
        raise typer.Exit(code=1)
    print_success("All required checks passed.")
