"""Inventory snapshot model.

A snapshot is the normalized, ordered package inventory of one box at a
point in time. Normalization makes two snapshots of an unchanged system
render byte-identical inventory text.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Installed-package inventory of a box.

    Attributes:
        box: Name of the box the inventory belongs to.
        taken_at: ISO 8601 UTC timestamp of the capture.
        packages: (name, version) pairs sorted by package name.
    """

    box: str
    taken_at: str
    packages: tuple[tuple[str, str], ...]

    @classmethod
    def from_entries(
        cls,
        box: str,
        entries: Iterable[tuple[str, str]],
        taken_at: str | None = None,
    ) -> Snapshot:
        """Build a normalized snapshot from raw (name, version) pairs.

        Entries with an empty name or version are dropped. When a name
        occurs more than once, the greatest version string wins so the
        result does not depend on input order.

        Args:
            box: Box name.
            entries: Raw inventory pairs in any order.
            taken_at: Capture timestamp; defaults to now.

        Returns:
            Normalized Snapshot.
        """
        inventory: dict[str, str] = {}
        for name, version in entries:
            name = name.strip()
            version = version.strip()
            if not name or not version:
                continue
            previous = inventory.get(name)
            if previous is None or version > previous:
                inventory[name] = version
        return cls(
            box=box,
            taken_at=taken_at or datetime.now(UTC).isoformat(),
            packages=tuple(sorted(inventory.items())),
        )

    def as_mapping(self) -> dict[str, str]:
        """Return the inventory as a name -> version dictionary."""
        return dict(self.packages)

    def inventory_text(self) -> str:
        """Render the canonical inventory text (one ``name\\tversion`` per line)."""
        return "".join(f"{name}\t{version}\n" for name, version in self.packages)

    def __len__(self) -> int:
        return len(self.packages)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for TOML storage."""
        return {
            "meta": {"box": self.box, "taken_at": self.taken_at, "format": 1},
            "packages": dict(self.packages),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Snapshot:
        """Deserialize from a dictionary.

        Raises:
            KeyError: If required sections are missing.
            ValueError: If the packages table is not a string mapping.
        """
        meta = data["meta"]
        packages = data.get("packages", {})
        if not isinstance(packages, Mapping):
            msg = "packages section must be a table"
            raise ValueError(msg)
        for name, version in packages.items():
            if not isinstance(version, str):
                msg = f"Version of {name!r} must be a string"
                raise ValueError(msg)
        return cls.from_entries(
            box=str(meta["box"]),
            entries=packages.items(),
            taken_at=str(meta["taken_at"]),
        )
