"""Export models: provenance records, resolver decisions and outcomes.

This module defines the durable ExportRecord linking a host path to its
origin inside a box, and the transient decision/outcome types produced
while exporting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pkgbridge.models.artifact import Artifact, ArtifactKind


@dataclass(frozen=True, slots=True)
class ExportRecord:
    """Durable link between a host-visible path and its origin.

    A host path claimed by pkgbridge has exactly one record. Host paths
    pkgbridge did not create are never recorded.

    Attributes:
        host_path: Absolute host path of the shim or launcher.
        box: Box the artifact comes from.
        package: Owning package inside the box.
        kind: Artifact kind.
        source_path: Original path inside the box.
        exported_at: ISO 8601 timestamp of the last write.
        digest: SHA-256 hex digest of the written content.
    """

    host_path: str
    box: str
    package: str
    kind: ArtifactKind
    source_path: str
    exported_at: str
    digest: str

    @property
    def origin(self) -> tuple[str, ArtifactKind, str]:
        """Identity of the exported artifact."""
        return (self.box, self.kind, self.source_path)

    def matches(self, artifact: Artifact) -> bool:
        """Check whether this record was created for the given artifact."""
        return self.origin == artifact.origin

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for TOML storage."""
        return {
            "host_path": self.host_path,
            "box": self.box,
            "package": self.package,
            "kind": self.kind.value,
            "source_path": self.source_path,
            "exported_at": self.exported_at,
            "digest": self.digest,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExportRecord:
        """Deserialize from dictionary.

        Raises:
            KeyError: If required fields are missing.
            ValueError: If kind is invalid.
        """
        return cls(
            host_path=str(data["host_path"]),
            box=str(data["box"]),
            package=str(data["package"]),
            kind=ArtifactKind(data["kind"]),
            source_path=str(data["source_path"]),
            exported_at=str(data["exported_at"]),
            digest=str(data["digest"]),
        )


class DecisionKind(str, Enum):
    """What the resolver decided for one artifact.

    Attributes:
        DIRECT: Export under the natural name.
        FALLBACK: Natural name is taken; export under a box-qualified name.
        NOOP: An identical, up-to-date export already exists.
        SKIP: Both the natural and the fallback name are taken.
    """

    DIRECT = "direct"
    FALLBACK = "fallback"
    NOOP = "noop"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class ExportDecision:
    """Resolver output for a single artifact.

    Attributes:
        kind: Decision kind.
        artifact: The artifact the decision is about.
        host_path: Target host path (None for SKIP).
        content: Rendered content to materialize.
        reason: Human-readable explanation.
    """

    kind: DecisionKind
    artifact: Artifact
    host_path: str | None
    content: str
    reason: str = ""


class OutcomeStatus(str, Enum):
    """Final per-artifact result of an export pass."""

    EXPORTED = "exported"
    COLLIDED = "collided"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ExportOutcome:
    """Result of exporting one artifact.

    Attributes:
        artifact: The artifact that was processed.
        status: What happened.
        host_path: Where it landed (if anywhere).
        message: Details for skipped or failed artifacts.
    """

    artifact: Artifact
    status: OutcomeStatus
    host_path: str | None = None
    message: str | None = field(default=None)


def summarize_outcomes(outcomes: list[ExportOutcome]) -> dict[str, int]:
    """Count outcomes per status.

    Args:
        outcomes: Outcomes of an export pass.

    Returns:
        Mapping of status value to count, including zero counts.
    """
    summary = {status.value: 0 for status in OutcomeStatus}
    for outcome in outcomes:
        summary[outcome.status.value] += 1
    return summary
