"""Export materialization.

Renders shims and launchers, writes them atomically into the host
directories and keeps the ExportRecord file in step. All work on the
host directories happens inside an ExportSession, which holds the global
export lock for its whole lifetime.
"""

from __future__ import annotations

import hashlib
import logging
import shlex
import subprocess
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from pkgbridge.core.errors import DesktopEntryError, PkgbridgeError
from pkgbridge.core.lock import exports_lock
from pkgbridge.core.paths import get_host_apps_dir, get_host_bin_dir
from pkgbridge.core.state import StateStore, write_atomic
from pkgbridge.export.desktop import rewrite_desktop_entry
from pkgbridge.export.resolver import ExportResolver
from pkgbridge.models.artifact import Artifact, ArtifactKind
from pkgbridge.models.export import (
    DecisionKind,
    ExportDecision,
    ExportOutcome,
    ExportRecord,
    OutcomeStatus,
)
from pkgbridge.utils.shell import enter_box

logger = logging.getLogger(__name__)

BINARY_MODE = 0o755
DESKTOP_MODE = 0o644

# Reads a file from inside a box: (box, path) -> content
FileReader = Callable[[str, str], str]

# Renders a package-manager shim for an artifact
ManagerRenderer = Callable[[Artifact], str]

_STATUS_BY_DECISION = {
    DecisionKind.DIRECT: OutcomeStatus.EXPORTED,
    DecisionKind.FALLBACK: OutcomeStatus.COLLIDED,
    DecisionKind.NOOP: OutcomeStatus.UNCHANGED,
    DecisionKind.SKIP: OutcomeStatus.SKIPPED,
}


def content_digest(content: str) -> str:
    """SHA-256 hex digest of rendered content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def render_binary_shim(artifact: Artifact) -> str:
    """Render the host shim that runs a box executable."""
    return (
        "#!/bin/sh\n"
        f"# pkgbridge: {artifact.name} from box '{artifact.box}' "
        f"(package {artifact.package}, {artifact.path})\n"
        f"exec distrobox enter -n {shlex.quote(artifact.box)} -- "
        f'{shlex.quote(artifact.path)} "$@"\n'
    )


def read_box_file(box: str, path: str) -> str:
    """Read a text file from inside a box.

    Raises:
        DesktopEntryError: If the file cannot be read.
    """
    try:
        result = enter_box(box, f"cat {shlex.quote(path)}")
    except (FileNotFoundError, OSError, subprocess.TimeoutExpired) as e:
        msg = f"Cannot read {path} in {box}: {e}"
        raise DesktopEntryError(msg) from e
    except UnicodeDecodeError as e:
        msg = f"{path} in {box} is not valid UTF-8: {e}"
        raise DesktopEntryError(msg) from e
    if not result.success:
        msg = f"Cannot read {path} in {box}: {result.stderr.strip() or 'unknown error'}"
        raise DesktopEntryError(msg)
    return result.stdout


def _now() -> str:
    return datetime.now(UTC).isoformat()


class ExportSession:
    """Resolve and write exports while holding the export lock.

    Created by Exporter.session(); the records are loaded on entry and
    saved when the session closes.
    """

    def __init__(self, exporter: Exporter, records: dict[str, ExportRecord]) -> None:
        self._exporter = exporter
        self.records = records
        self.dirty = False

    def render(self, artifact: Artifact) -> tuple[str, str | None]:
        """Render content for the natural and (if different) fallback name.

        Raises:
            PkgbridgeError: If the artifact cannot be rendered.
        """
        if artifact.kind == ArtifactKind.BINARY:
            return render_binary_shim(artifact), None
        if artifact.kind == ArtifactKind.MANAGER:
            if self._exporter.render_manager is None:
                msg = f"No renderer for package-manager shim {artifact.name}"
                raise PkgbridgeError(msg)
            return self._exporter.render_manager(artifact), None

        original = self._exporter.read_file(artifact.box, artifact.path)
        return (
            rewrite_desktop_entry(original, artifact.box),
            rewrite_desktop_entry(original, artifact.box, fallback=True),
        )

    def resolve(self, artifact: Artifact) -> ExportDecision:
        """Render an artifact and decide where it goes.

        Raises:
            PkgbridgeError: If the artifact cannot be rendered.
        """
        content, fallback_content = self.render(artifact)
        return self._exporter.resolver.resolve(
            artifact, content, self.records, fallback_content=fallback_content
        )

    def _upsert(self, decision: ExportDecision, host_path: str, refresh: bool) -> None:
        # An artifact keeps one record; an older one at another path is stale
        for stale in [
            path
            for path, record in self.records.items()
            if path != host_path and record.matches(decision.artifact)
        ]:
            logger.info("Forgetting export %s, now at %s", stale, host_path)
            del self.records[stale]
            self.dirty = True

        previous = self.records.get(host_path)
        digest = content_digest(decision.content)
        if previous is not None and not refresh and previous.digest == digest:
            return
        self.records[host_path] = ExportRecord(
            host_path=host_path,
            box=decision.artifact.box,
            package=decision.artifact.package,
            kind=decision.artifact.kind,
            source_path=decision.artifact.path,
            exported_at=_now() if refresh or previous is None else previous.exported_at,
            digest=digest,
        )
        self.dirty = True

    def apply(self, decision: ExportDecision) -> ExportOutcome:
        """Materialize one decision.

        Claims of a host path made earlier in the same session are seen by
        later resolutions, because records are updated immediately.
        """
        status = _STATUS_BY_DECISION[decision.kind]
        artifact = decision.artifact

        host_path = decision.host_path
        if decision.kind == DecisionKind.SKIP or host_path is None:
            logger.warning("Skipping %s: %s", artifact.path, decision.reason)
            return ExportOutcome(artifact=artifact, status=status, message=decision.reason)

        if self._exporter.dry_run:
            return ExportOutcome(
                artifact=artifact,
                status=status,
                host_path=host_path,
                message=decision.reason or None,
            )

        if decision.kind == DecisionKind.NOOP:
            self._upsert(decision, host_path, refresh=False)
            return ExportOutcome(artifact=artifact, status=status, host_path=host_path)

        mode = DESKTOP_MODE if artifact.kind == ArtifactKind.DESKTOP else BINARY_MODE
        try:
            write_atomic(Path(host_path), decision.content.encode("utf-8"), mode=mode)
        except OSError as e:
            logger.warning("Cannot write %s: %s", host_path, e)
            return ExportOutcome(
                artifact=artifact,
                status=OutcomeStatus.FAILED,
                host_path=host_path,
                message=str(e),
            )

        self._upsert(decision, host_path, refresh=True)
        logger.info("Exported %s -> %s", artifact.path, host_path)
        return ExportOutcome(
            artifact=artifact,
            status=status,
            host_path=host_path,
            message=decision.reason or None,
        )

    def export(self, artifacts: Iterable[Artifact]) -> list[ExportOutcome]:
        """Resolve and materialize artifacts one at a time, in order.

        A failure on one artifact becomes its FAILED outcome and the rest
        are still exported.
        """
        outcomes: list[ExportOutcome] = []
        for artifact in sorted(artifacts, key=lambda a: a.sort_key):
            try:
                outcomes.append(self.apply(self.resolve(artifact)))
            except PkgbridgeError as e:
                logger.warning("Cannot export %s: %s", artifact.path, e)
                outcomes.append(
                    ExportOutcome(artifact=artifact, status=OutcomeStatus.FAILED, message=str(e))
                )
            except Exception as e:
                logger.exception("Unexpected error exporting %s", artifact.path)
                outcomes.append(
                    ExportOutcome(
                        artifact=artifact,
                        status=OutcomeStatus.FAILED,
                        message=f"{type(e).__name__}: {e}",
                    )
                )
        return outcomes

    def remove(self, box: str, package: str) -> list[ExportRecord]:
        """Remove every export of a package from a box.

        Files whose content no longer matches the recorded digest were
        modified by someone else and are left in place; their records are
        dropped all the same.

        Returns:
            The records that were removed.
        """
        removed: list[ExportRecord] = []
        for host_path, record in sorted(self.records.items()):
            if record.box != box or record.package != package:
                continue
            removed.append(record)
            if self._exporter.dry_run:
                continue

            path = Path(host_path)
            try:
                current = path.read_bytes()
            except FileNotFoundError:
                current = None
            except OSError as e:
                logger.warning("Cannot read %s: %s", host_path, e)
                current = None

            if current is not None:
                if hashlib.sha256(current).hexdigest() == record.digest:
                    path.unlink(missing_ok=True)
                    logger.info("Removed %s", host_path)
                else:
                    logger.warning("Leaving modified file %s in place", host_path)

            del self.records[host_path]
            self.dirty = True
        return removed


class Exporter:
    """Materializes artifacts into the host export directories.

    Attributes:
        store: State store holding the export records and lock directory.
        resolver: Resolver deciding host names.
        read_file: Reads launcher files from inside a box.
        render_manager: Renders package-manager shims (None disables them).
        dry_run: Resolve only; never touch files or records.
    """

    def __init__(
        self,
        store: StateStore,
        *,
        bin_dir: Path | None = None,
        apps_dir: Path | None = None,
        read_file: FileReader | None = None,
        render_manager: ManagerRenderer | None = None,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.resolver = ExportResolver(
            bin_dir if bin_dir is not None else get_host_bin_dir(),
            apps_dir if apps_dir is not None else get_host_apps_dir(),
        )
        self.read_file: FileReader = read_file if read_file is not None else read_box_file
        self.render_manager = render_manager
        self.dry_run = dry_run

    @contextmanager
    def session(self) -> Iterator[ExportSession]:
        """Open an export session under the global export lock."""
        with exports_lock(self.store.locks_dir):
            session = ExportSession(self, self.store.load_exports())
            try:
                yield session
            finally:
                if session.dirty and not self.dry_run:
                    self.store.save_exports(session.records)

    def export(self, artifacts: Iterable[Artifact]) -> list[ExportOutcome]:
        """Export artifacts in a fresh session."""
        with self.session() as session:
            return session.export(artifacts)

    def unexport(self, box: str, package: str) -> list[ExportRecord]:
        """Remove all exports of a package in a fresh session."""
        with self.session() as session:
            return session.remove(box, package)
