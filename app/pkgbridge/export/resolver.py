"""Export name resolution.

Decides, per artifact, which host path an export goes to. The rules
never overwrite a file pkgbridge did not create, or one changed since
pkgbridge wrote it, and re-exporting an unchanged artifact is a no-op.
"""

from __future__ import annotations

import hashlib
import logging
import re
from pathlib import Path

from pkgbridge.models.artifact import Artifact, ArtifactKind
from pkgbridge.models.export import DecisionKind, ExportDecision, ExportRecord
from pkgbridge.utils.shell import which_outside

logger = logging.getLogger(__name__)

DESKTOP_SUFFIX = ".desktop"


def sanitize_box_name(box: str) -> str:
    """Reduce a box name to characters safe in file names."""
    return re.sub(r"[^A-Za-z0-9_-]", "_", box) or "_"


def fallback_name(artifact: Artifact) -> str:
    """Box-qualified host name used when the natural name is taken.

    ``foo`` becomes ``foo-<box>``; ``foo.desktop`` becomes
    ``foo.<box>.desktop``.
    """
    tag = sanitize_box_name(artifact.box)
    name = artifact.name
    if artifact.kind == ArtifactKind.DESKTOP and name.endswith(DESKTOP_SUFFIX):
        return f"{name[: -len(DESKTOP_SUFFIX)]}.{tag}{DESKTOP_SUFFIX}"
    return f"{name}-{tag}"


def _read_bytes(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except OSError:
        return None


class ExportResolver:
    """Chooses direct, fallback, no-op or skip for each artifact.

    Attributes:
        bin_dir: Host directory for command and manager shims.
        apps_dir: Host directory for desktop launchers.
    """

    def __init__(self, bin_dir: Path, apps_dir: Path) -> None:
        self.bin_dir = bin_dir
        self.apps_dir = apps_dir

    def target_dir(self, kind: ArtifactKind) -> Path:
        """Host directory receiving artifacts of a kind."""
        return self.apps_dir if kind == ArtifactKind.DESKTOP else self.bin_dir

    def _shadows_host_tool(self, artifact: Artifact, name: str) -> bool:
        if artifact.kind != ArtifactKind.MANAGER or name != artifact.name:
            return False
        found = which_outside(name, str(self.bin_dir))
        if found is not None:
            logger.debug("Not shadowing host %s at %s", name, found)
            return True
        return False

    def _claim(
        self,
        artifact: Artifact,
        path: Path,
        content: str,
        records: dict[str, ExportRecord],
    ) -> DecisionKind | None:
        """Check one candidate path.

        Returns:
            DIRECT if the path is free, NOOP if it already holds exactly
            this content unrecorded, None if it is occupied.
        """
        if str(path) in records:
            return None
        if self._shadows_host_tool(artifact, path.name):
            return None
        if not path.exists() and not path.is_symlink():
            return DecisionKind.DIRECT
        if _read_bytes(path) == content.encode("utf-8"):
            return DecisionKind.NOOP
        return None

    def resolve(
        self,
        artifact: Artifact,
        content: str,
        records: dict[str, ExportRecord],
        fallback_content: str | None = None,
    ) -> ExportDecision:
        """Decide where an artifact goes.

        Args:
            artifact: Artifact to export.
            content: Rendered content for the natural name.
            records: Current export records keyed by host path.
            fallback_content: Rendered content for the fallback name, if it
                differs (desktop launchers get a box suffix in their Name).

        Returns:
            The ExportDecision.
        """
        alt_content = fallback_content if fallback_content is not None else content

        for record in records.values():
            if not record.matches(artifact):
                continue
            path = Path(record.host_path)
            current = content if path.name == artifact.name else alt_content
            on_disk = _read_bytes(path)
            if on_disk == current.encode("utf-8"):
                return ExportDecision(
                    kind=DecisionKind.NOOP,
                    artifact=artifact,
                    host_path=record.host_path,
                    content=current,
                    reason="already exported",
                )
            if on_disk is not None and hashlib.sha256(on_disk).hexdigest() != record.digest:
                logger.warning("%s was modified since it was exported; leaving it", path)
                break
            return ExportDecision(
                kind=DecisionKind.DIRECT,
                artifact=artifact,
                host_path=record.host_path,
                content=current,
                reason="refreshing existing export",
            )

        directory = self.target_dir(artifact.kind)
        desired = directory / artifact.name
        claim = self._claim(artifact, desired, content, records)
        if claim is not None:
            return ExportDecision(
                kind=claim,
                artifact=artifact,
                host_path=str(desired),
                content=content,
                reason="" if claim == DecisionKind.DIRECT else "identical file already present",
            )

        alternate = directory / fallback_name(artifact)
        claim = self._claim(artifact, alternate, alt_content, records)
        if claim is not None:
            kind = DecisionKind.FALLBACK if claim == DecisionKind.DIRECT else DecisionKind.NOOP
            return ExportDecision(
                kind=kind,
                artifact=artifact,
                host_path=str(alternate),
                content=alt_content,
                reason=f"{desired.name} is taken",
            )

        return ExportDecision(
            kind=DecisionKind.SKIP,
            artifact=artifact,
            host_path=None,
            content=content,
            reason=f"both {desired.name} and {alternate.name} are taken",
        )
