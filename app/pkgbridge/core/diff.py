"""Diff engine for comparing two inventory snapshots.

This module computes which packages were newly installed or changed
version between a prior and a current snapshot of the same box. Removals
are not reported: exporting is additive and refresh-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pkgbridge.models.snapshot import Snapshot


class ChangeKind(str, Enum):
    """Type of change between two snapshots.

    Attributes:
        NEW: Package is present now but was absent before.
        UPGRADED: Package is present in both with a different version string.
    """

    NEW = "new"
    UPGRADED = "upgraded"


@dataclass(frozen=True, slots=True)
class PackageChange:
    """A single changed package.

    Attributes:
        name: Package name.
        kind: Type of change.
        version: Version in the current snapshot.
        previous_version: Version in the prior snapshot (UPGRADED only).
    """

    name: str
    kind: ChangeKind
    version: str
    previous_version: str | None = None


@dataclass(frozen=True, slots=True)
class InventoryDiff:
    """Result of comparing two snapshots.

    Attributes:
        changes: Changed packages sorted by name.
    """

    changes: tuple[PackageChange, ...] = ()

    @property
    def is_empty(self) -> bool:
        """Check if nothing changed."""
        return not self.changes

    @property
    def new(self) -> tuple[PackageChange, ...]:
        """Newly installed packages."""
        return tuple(c for c in self.changes if c.kind == ChangeKind.NEW)

    @property
    def upgraded(self) -> tuple[PackageChange, ...]:
        """Packages whose version changed."""
        return tuple(c for c in self.changes if c.kind == ChangeKind.UPGRADED)

    @property
    def names(self) -> tuple[str, ...]:
        """Names of all changed packages."""
        return tuple(c.name for c in self.changes)

    def pairs(self) -> frozenset[tuple[str, ChangeKind]]:
        """Return the diff as a set of (package, change kind) pairs."""
        return frozenset((c.name, c.kind) for c in self.changes)

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization.

        Returns:
            Dictionary representation of the diff.
        """
        return {
            "summary": {
                "new": len(self.new),
                "upgraded": len(self.upgraded),
                "total": len(self.changes),
            },
            "changes": [_change_to_dict(c) for c in self.changes],
        }


def _change_to_dict(change: PackageChange) -> dict[str, str]:
    result: dict[str, str] = {
        "name": change.name,
        "kind": change.kind.value,
        "version": change.version,
    }
    if change.previous_version is not None:
        result["previous_version"] = change.previous_version
    return result


def diff_snapshots(prior: Snapshot, current: Snapshot) -> InventoryDiff:
    """Compute the packages that are new or changed in ``current``.

    A pure function of its inputs: entry order inside the snapshots,
    timestamps and call order never affect the result.

    Args:
        prior: Baseline snapshot.
        current: Snapshot taken after the transaction.

    Returns:
        InventoryDiff with one entry per new or upgraded package.
    """
    before = prior.as_mapping()
    changes: list[PackageChange] = []

    for name, version in current.as_mapping().items():
        previous = before.get(name)
        if previous is None:
            changes.append(PackageChange(name=name, kind=ChangeKind.NEW, version=version))
        elif previous != version:
            changes.append(
                PackageChange(
                    name=name,
                    kind=ChangeKind.UPGRADED,
                    version=version,
                    previous_version=previous,
                )
            )

    changes.sort(key=lambda c: c.name)
    return InventoryDiff(changes=tuple(changes))
