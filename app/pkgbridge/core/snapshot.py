"""Inventory snapshot engine.

Captures the full installed-package inventory of a box through the
family's query command and normalizes it into a Snapshot.
"""

import logging
import subprocess

from pkgbridge.boxes.families import FAMILY_COMMANDS
from pkgbridge.core.errors import SnapshotUnavailableError
from pkgbridge.models.box import Box, Family
from pkgbridge.models.snapshot import Snapshot
from pkgbridge.utils.shell import enter_box

logger = logging.getLogger(__name__)


def parse_inventory(output: str) -> list[tuple[str, str]]:
    """Parse inventory query output into (name, version) pairs.

    Accepts tab-separated (dpkg-query, rpm) and space-separated (pacman)
    lines. Malformed lines are skipped.

    Args:
        output: Raw stdout of the inventory command.

    Returns:
        Raw pairs in output order.
    """
    entries: list[tuple[str, str]] = []
    for line in output.splitlines():
        parts = line.split("\t", 1) if "\t" in line else line.split(None, 1)
        if len(parts) != 2:
            if line.strip():
                logger.debug("Skipping malformed inventory line: %r", line[:100])
            continue
        entries.append((parts[0], parts[1]))
    return entries


def capture_snapshot(box: Box) -> Snapshot:
    """Capture the current package inventory of a box.

    Args:
        box: Box to inspect.

    Returns:
        Normalized Snapshot.

    Raises:
        SnapshotUnavailableError: If the family is unknown, the box cannot be
            entered, or the query fails or prints undecodable output. No
            partial snapshot is ever returned.
    """
    if box.family == Family.UNKNOWN:
        msg = f"Cannot snapshot box '{box.name}': unknown distribution family"
        raise SnapshotUnavailableError(msg)

    command = FAMILY_COMMANDS[box.family].inventory
    try:
        result = enter_box(box.name, command)
    except (FileNotFoundError, OSError, subprocess.TimeoutExpired, UnicodeDecodeError) as e:
        msg = f"Cannot snapshot box '{box.name}': {e}"
        raise SnapshotUnavailableError(msg) from e

    if not result.success:
        msg = (
            f"Inventory query failed in box '{box.name}': "
            f"{result.stderr.strip() or f'exit status {result.returncode}'}"
        )
        raise SnapshotUnavailableError(msg)

    snapshot = Snapshot.from_entries(box.name, parse_inventory(result.stdout))
    if not snapshot.packages:
        msg = f"Inventory query in box '{box.name}' returned no packages"
        raise SnapshotUnavailableError(msg)

    logger.debug("Captured %d packages from box %s", len(snapshot), box.name)
    return snapshot
