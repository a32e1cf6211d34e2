"""Artifact scanner.

For every changed package, lists the files the package owns inside the
box and keeps the ones that can be exported to the host: executables
directly under the command directories and ``.desktop`` launchers
directly under the application directories.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from pkgbridge.boxes.families import FAMILY_COMMANDS, FamilyCommands
from pkgbridge.core.errors import ArtifactScanPartialError
from pkgbridge.models.artifact import Artifact, ArtifactKind
from pkgbridge.models.config import PolicyConfig
from pkgbridge.utils.shell import enter_box

if TYPE_CHECKING:
    from pkgbridge.core.diff import InventoryDiff
    from pkgbridge.models.box import Box

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Artifacts found for a set of changed packages.

    Attributes:
        artifacts: Exportable artifacts sorted by (kind, package, path).
        partials: One note per package or probe that could not be inspected.
    """

    artifacts: tuple[Artifact, ...] = ()
    partials: tuple[str, ...] = ()

    @property
    def is_partial(self) -> bool:
        """True if some packages could not be fully inspected."""
        return bool(self.partials)


class ArtifactScanner:
    """Finds host-exportable artifacts owned by changed packages."""

    def __init__(self, policy: PolicyConfig | None = None) -> None:
        self._policy = policy if policy is not None else PolicyConfig()

    def owned_files(self, box: Box, commands: FamilyCommands, package: str) -> list[str]:
        """List the absolute paths a package owns inside the box.

        Raises:
            ArtifactScanPartialError: If the query cannot run or fails.
        """
        try:
            result = enter_box(box.name, commands.owned_files_command(package))
        except (FileNotFoundError, OSError, subprocess.TimeoutExpired, UnicodeDecodeError) as e:
            msg = f"Cannot list files of {package} in {box.name}: {e}"
            raise ArtifactScanPartialError(msg) from e

        if not result.success:
            msg = (
                f"Cannot list files of {package} in {box.name}: "
                f"{result.stderr.strip() or f'exit status {result.returncode}'}"
            )
            raise ArtifactScanPartialError(msg)

        return [line.strip() for line in result.stdout.splitlines() if line.strip().startswith("/")]

    def classify_path(self, path: str) -> ArtifactKind | None:
        """Decide whether an owned path is an export candidate."""
        pure = PurePosixPath(path)
        parent = str(pure.parent)
        if self._policy.export_binaries and parent in self._policy.binary_dirs:
            return ArtifactKind.BINARY
        if (
            self._policy.export_desktop
            and parent in self._policy.desktop_dirs
            and pure.name.endswith(".desktop")
            and pure.name != ".desktop"
        ):
            return ArtifactKind.DESKTOP
        return None

    def verify_executables(self, box: Box, paths: list[str]) -> set[str]:
        """Return the subset of paths that are regular executable files.

        All paths are checked in a single in-box invocation.

        Raises:
            ArtifactScanPartialError: If the probe cannot run.
        """
        if not paths:
            return set()

        quoted = " ".join(shlex.quote(p) for p in paths)
        script = (
            f'for f in {quoted}; do [ -f "$f" ] && [ -x "$f" ] && printf "%s\\n" "$f"; done; true'
        )
        try:
            result = enter_box(box.name, script)
        except (FileNotFoundError, OSError, subprocess.TimeoutExpired, UnicodeDecodeError) as e:
            msg = f"Cannot verify executables in {box.name}: {e}"
            raise ArtifactScanPartialError(msg) from e

        if not result.success:
            error = result.stderr.strip() or "probe failed"
            msg = f"Cannot verify executables in {box.name}: {error}"
            raise ArtifactScanPartialError(msg)

        return {line.strip() for line in result.stdout.splitlines() if line.strip()}

    def _dir_rank(self, artifact: Artifact) -> int:
        dirs = (
            self._policy.binary_dirs
            if artifact.kind == ArtifactKind.BINARY
            else self._policy.desktop_dirs
        )
        parent = str(PurePosixPath(artifact.path).parent)
        return dirs.index(parent) if parent in dirs else len(dirs)

    def _dedupe(self, artifacts: Iterable[Artifact]) -> list[Artifact]:
        """Keep one artifact per (kind, basename), preferring earlier directories."""
        ranked = sorted(artifacts, key=lambda a: (self._dir_rank(a), a.package, a.path))
        seen: set[tuple[ArtifactKind, str]] = set()
        kept: list[Artifact] = []
        for artifact in ranked:
            key = (artifact.kind, artifact.name)
            if key in seen:
                logger.debug("Skipping duplicate %s %s", artifact.kind.value, artifact.path)
                continue
            seen.add(key)
            kept.append(artifact)
        return kept

    def scan(self, box: Box, diff: InventoryDiff) -> ScanResult:
        """Find exportable artifacts of every package in a diff."""
        return self.scan_packages(box, diff.names)

    def scan_packages(self, box: Box, packages: Iterable[str]) -> ScanResult:
        """Find exportable artifacts of the given packages.

        Args:
            box: Box the packages live in.
            packages: Package names.

        Returns:
            ScanResult. Packages that cannot be inspected contribute a
            partial note instead of artifacts; the scan never raises.
        """
        commands = FAMILY_COMMANDS.get(box.family)
        if commands is None:
            return ScanResult(partials=(f"Cannot scan box '{box.name}': unknown family",))

        partials: list[str] = []
        binaries: list[Artifact] = []
        desktops: list[Artifact] = []

        names = list(packages)
        for package in names:
            try:
                files = self.owned_files(box, commands, package)
            except ArtifactScanPartialError as e:
                logger.warning("%s", e)
                partials.append(str(e))
                continue

            for path in files:
                kind = self.classify_path(path)
                if kind is None:
                    continue
                artifact = Artifact(box=box.name, package=package, kind=kind, path=path)
                if kind == ArtifactKind.BINARY:
                    binaries.append(artifact)
                else:
                    desktops.append(artifact)

        if binaries:
            try:
                verified = self.verify_executables(box, sorted({a.path for a in binaries}))
            except ArtifactScanPartialError as e:
                logger.warning("%s", e)
                partials.append(str(e))
                verified = set()
            binaries = [a for a in binaries if a.path in verified]

        artifacts = self._dedupe(binaries) + self._dedupe(desktops)
        artifacts.sort(key=lambda a: a.sort_key)
        logger.debug("Found %d artifacts in %d packages", len(artifacts), len(names))
        return ScanResult(artifacts=tuple(artifacts), partials=tuple(partials))
