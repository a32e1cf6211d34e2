"""Package-manager shims.

A shim is a host-side shell script named after a box's package manager
(``apt``, ``dnf``, ...). It brackets the real package manager with the
two transaction phases, so every install from the host is exported
automatically:

1. ``pkgbridge pm snapshot`` acquires the box and records the baseline
2. the package manager runs inside the box, privileged where possible
3. ``pkgbridge pm post-transaction`` diffs, scans and exports
4. the shim exits with the package manager's status

Shims are exported through the same resolver as any other artifact, so
they never shadow a package manager already installed on the host.
"""

from __future__ import annotations

import shlex
import shutil
from collections.abc import Callable

from pkgbridge.boxes.families import FAMILY_COMMANDS
from pkgbridge.export.writer import Exporter
from pkgbridge.models.artifact import Artifact, ArtifactKind
from pkgbridge.models.box import Box, Family
from pkgbridge.models.export import ExportOutcome

_SHIM_TEMPLATE = """\
#!/bin/sh
# pkgbridge: {manager} from box '{box}' ({family})
# Generated by 'pkgbridge pm generate-shims'; rerun it to refresh.
box={q_box}
fam={q_family}
pkgbridge={q_pkgbridge}

"$pkgbridge" pm snapshot --container "$box" --family "$fam" || exit 1

interrupted=0
trap 'interrupted=1' INT

if distrobox enter --root -n "$box" -- true >/dev/null 2>&1; then
    distrobox enter --root -n "$box" -- {q_manager} "$@"
elif distrobox enter -n "$box" -- sh -c 'command -v sudo' >/dev/null 2>&1; then
    distrobox enter -n "$box" -- sudo {q_manager} "$@"
elif distrobox enter -n "$box" -- sh -c 'command -v doas' >/dev/null 2>&1; then
    distrobox enter -n "$box" -- doas {q_manager} "$@"
else
    distrobox enter -n "$box" -- {q_manager} "$@"
fi
status=$?
trap - INT

if [ "$interrupted" = 1 ]; then
    "$pkgbridge" pm post-transaction --container "$box" --exit-code "$status" --interrupted || true
else
    "$pkgbridge" pm post-transaction --container "$box" --exit-code "$status" || true
fi
exit "$status"
"""


def pkgbridge_command() -> str:
    """Command the shims use to call back into pkgbridge."""
    return shutil.which("pkgbridge") or "pkgbridge"


def render_manager_shim(artifact: Artifact, family: Family, pkgbridge: str = "pkgbridge") -> str:
    """Render the shell script wrapping a package manager.

    Args:
        artifact: MANAGER artifact (its path is the manager command).
        family: Family of the box, passed to ``pm snapshot``.
        pkgbridge: Command invoking pkgbridge itself.

    Returns:
        The shim script.
    """
    return _SHIM_TEMPLATE.format(
        manager=artifact.path,
        box=artifact.box,
        family=family.value,
        q_box=shlex.quote(artifact.box),
        q_family=shlex.quote(family.value),
        q_pkgbridge=shlex.quote(pkgbridge),
        q_manager=shlex.quote(artifact.path),
    )


def manager_artifacts(box: Box) -> list[Artifact]:
    """One MANAGER artifact per package manager of the box's family.

    Raises:
        KeyError: If the box family is UNKNOWN.
    """
    return [
        Artifact(box=box.name, package=manager, kind=ArtifactKind.MANAGER, path=manager)
        for manager in FAMILY_COMMANDS[box.family].managers
    ]


def shim_renderer(box: Box, pkgbridge: str | None = None) -> Callable[[Artifact], str]:
    """Build the renderer an Exporter uses for a box's manager shims."""
    command = pkgbridge or pkgbridge_command()

    def render(artifact: Artifact) -> str:
        return render_manager_shim(artifact, box.family, command)

    return render


def generate_shims(box: Box, exporter: Exporter) -> list[ExportOutcome]:
    """Export package-manager shims for a box.

    The exporter must have been built with ``render_manager`` set, e.g.
    from shim_renderer().

    Raises:
        KeyError: If the box family is UNKNOWN.
    """
    return exporter.export(manager_artifacts(box))
