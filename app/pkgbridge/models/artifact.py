"""Artifact models for host-exportable files found inside a box."""

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath


class ArtifactKind(str, Enum):
    """Kind of host-exportable artifact.

    Attributes:
        BINARY: Executable under one of the box's command directories.
        DESKTOP: Desktop launcher file.
        MANAGER: The box's own package manager, exported as a
            transaction-wrapping shim by ``pm generate-shims``.
    """

    BINARY = "binary"
    DESKTOP = "desktop"
    MANAGER = "manager"


@dataclass(frozen=True, slots=True)
class Artifact:
    """A candidate export unit owned by a package inside a box.

    Attributes:
        box: Name of the box that owns the artifact.
        package: Owning package (the manager name for MANAGER artifacts).
        kind: Artifact kind.
        path: Absolute path inside the box (the bare command name for
            MANAGER artifacts).
    """

    box: str
    package: str
    kind: ArtifactKind
    path: str

    def __post_init__(self) -> None:
        """Validate artifact data after initialization."""
        if not self.path:
            msg = "Artifact path cannot be empty"
            raise ValueError(msg)

    @property
    def name(self) -> str:
        """Base name of the artifact (command or launcher filename)."""
        return PurePosixPath(self.path).name

    @property
    def origin(self) -> tuple[str, ArtifactKind, str]:
        """Identity of the artifact across transactions."""
        return (self.box, self.kind, self.path)

    @property
    def sort_key(self) -> tuple[str, str, str]:
        """Deterministic processing order within a transaction."""
        return (self.kind.value, self.package, self.path)
