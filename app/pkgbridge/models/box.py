"""Box models for container discovery and classification.

This module defines the distribution family enumeration and the
immutable Box record produced by the registry on every command.
"""

from dataclasses import dataclass, field
from enum import Enum


class Family(str, Enum):
    """Distribution family of a box.

    Families group distributions that share a package-manager ecosystem.
    UNKNOWN boxes are listed but never selected automatically.
    """

    DEBIAN = "debian"
    FEDORA = "fedora"
    OPENSUSE = "opensuse"
    ARCH = "arch"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Box:
    """A container discovered through the container runtime.

    Attributes:
        name: Box name as known to distrobox.
        family: Distribution family read from the box's os-release.
        reachable: Whether the box could be entered during discovery.
        image: Image the box was created from (if reported).
        status: Runtime status string (e.g. "Up 2 hours", "Exited").
    """

    name: str
    family: Family = Family.UNKNOWN
    reachable: bool = True
    image: str | None = field(default=None)
    status: str | None = field(default=None)

    def __post_init__(self) -> None:
        """Validate box data after initialization."""
        if not self.name:
            msg = "Box name cannot be empty"
            raise ValueError(msg)

    @property
    def is_selectable(self) -> bool:
        """Check if the box may be picked by automatic selection."""
        return self.reachable and self.family != Family.UNKNOWN
