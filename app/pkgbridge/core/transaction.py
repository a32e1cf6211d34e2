"""Transaction orchestrator.

Drives one package-manager transaction against one box through its
lifecycle: capture the baseline, run the package manager, diff the
inventories, scan the changed packages and export their artifacts.

A transaction can run in one process (``pm run``) or be split across two
processes by the generated package-manager shims (``pm snapshot`` before
the manager runs, ``pm post-transaction`` after). In the split form, the
pending marker persisted by the first phase carries the transaction over
the gap.
"""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from pkgbridge.core.diff import InventoryDiff, diff_snapshots
from pkgbridge.core.errors import (
    LockContentionError,
    PkgbridgeError,
    SnapshotUnavailableError,
    TransactionStateError,
)
from pkgbridge.core.lock import BoxScope, pid_alive
from pkgbridge.core.snapshot import capture_snapshot
from pkgbridge.core.state import PendingTransaction, StateStore
from pkgbridge.export.scanner import ArtifactScanner
from pkgbridge.export.writer import Exporter
from pkgbridge.models.box import Box
from pkgbridge.models.config import UserConfig
from pkgbridge.models.export import ExportOutcome, OutcomeStatus, summarize_outcomes
from pkgbridge.models.snapshot import Snapshot
from pkgbridge.utils.shell import (
    box_command,
    command_exists,
    enter_box,
    run_command,
    run_interactive,
)

logger = logging.getLogger(__name__)

INTERRUPTED_EXIT_CODE = 130

# Prints "sudo", "doas" or "none": the privilege helper available in a box
_ELEVATION_PROBE = (
    'if [ "$(id -u)" = 0 ]; then echo none; '
    "elif command -v sudo >/dev/null 2>&1; then echo sudo; "
    "elif command -v doas >/dev/null 2>&1; then echo doas; "
    "else echo none; fi"
)

SnapshotCapture = Callable[[Box], Snapshot]
CommandRunner = Callable[[list[str]], int]


class TxState(str, Enum):
    """Lifecycle state of a transaction."""

    IDLE = "idle"
    SNAPSHOTTING = "snapshotting"
    EXECUTING = "executing"
    DIFFING = "diffing"
    SCANNING = "scanning"
    RESOLVING = "resolving"
    EXPORTING = "exporting"
    COMMITTED = "committed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        """True for COMMITTED and ABORTED."""
        return self in (TxState.COMMITTED, TxState.ABORTED)


_FORWARD: dict[TxState, TxState] = {
    TxState.IDLE: TxState.SNAPSHOTTING,
    TxState.SNAPSHOTTING: TxState.EXECUTING,
    TxState.EXECUTING: TxState.DIFFING,
    TxState.DIFFING: TxState.SCANNING,
    TxState.SCANNING: TxState.RESOLVING,
    TxState.RESOLVING: TxState.EXPORTING,
    TxState.EXPORTING: TxState.COMMITTED,
}


def can_transition(current: TxState, target: TxState) -> bool:
    """Check whether a state transition is legal."""
    if current.is_terminal:
        return False
    return target == TxState.ABORTED or _FORWARD.get(current) == target


@dataclass
class TransactionReport:
    """Everything that happened in one transaction.

    Attributes:
        box: Box the transaction ran against.
        state: Final (or current) lifecycle state.
        exit_code: Package-manager exit status, once known.
        interrupted: Whether the user interrupted the package manager.
        diff: Packages the transaction added or changed.
        partials: Notes about packages that could not be scanned.
        outcomes: Per-artifact export results.
        error: Reason the transaction aborted, if it did.
    """

    box: str
    state: TxState = TxState.IDLE
    exit_code: int | None = None
    interrupted: bool = False
    diff: InventoryDiff = field(default_factory=InventoryDiff)
    partials: list[str] = field(default_factory=list)
    outcomes: list[ExportOutcome] = field(default_factory=list)
    error: str | None = None

    @property
    def summary(self) -> dict[str, int]:
        """Outcome counts per status."""
        return summarize_outcomes(self.outcomes)

    @property
    def exported(self) -> list[ExportOutcome]:
        """Outcomes that put something new on the host."""
        return [
            o for o in self.outcomes if o.status in (OutcomeStatus.EXPORTED, OutcomeStatus.COLLIDED)
        ]

    @property
    def process_exit_code(self) -> int:
        """Exit status a CLI command should return for this transaction."""
        if self.interrupted:
            return INTERRUPTED_EXIT_CODE
        if self.exit_code is not None:
            return self.exit_code
        return 1 if self.error else 0


def elevation_prefix(box: str) -> tuple[bool, list[str]]:
    """Decide how to run the package manager with privileges.

    Order: rootful ``distrobox enter --root``, then ``sudo`` inside the
    box, then ``doas``, then nothing.

    Returns:
        Tuple of (enter rootful box, argv prefix inside the box).
    """
    try:
        if enter_box(box, "true", root=True, timeout=30.0).success:
            return True, []
    except (FileNotFoundError, OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Rootful probe for %s failed: %s", box, e)

    try:
        result = enter_box(box, _ELEVATION_PROBE)
    except (FileNotFoundError, OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Elevation probe for %s failed: %s", box, e)
        return False, []

    helper = result.stdout.strip().splitlines()[-1] if result.stdout.strip() else "none"
    if result.success and helper in ("sudo", "doas"):
        return False, [helper]
    return False, []


def notify_exports(report: TransactionReport) -> bool:
    """Send a desktop notification listing new exports.

    Best effort: does nothing when notify-send is missing or fails.

    Returns:
        True if a notification was sent.
    """
    exported = report.exported
    if not exported or not command_exists("notify-send"):
        return False

    names = ", ".join(sorted({o.artifact.name for o in exported}))
    try:
        result = run_command(
            ["notify-send", "--app-name=pkgbridge", f"Exported from {report.box}", names],
            timeout=10.0,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("notify-send failed: %s", e)
        return False
    return result.success


class TransactionOrchestrator:
    """Runs one transaction against one box.

    Collaborators are injectable so the lifecycle can be exercised
    without containers.

    Example:
        >>> orchestrator = TransactionOrchestrator(box, store=StateStore())
        >>> report = orchestrator.run(["install", "-y", "htop"])
        >>> print(report.summary)
    """

    def __init__(
        self,
        box: Box,
        *,
        store: StateStore | None = None,
        config: UserConfig | None = None,
        owner: int | None = None,
        capture: SnapshotCapture = capture_snapshot,
        scanner: ArtifactScanner | None = None,
        exporter: Exporter | None = None,
        runner: CommandRunner = run_interactive,
    ) -> None:
        self.box = box
        self.store = store if store is not None else StateStore()
        self.config = config if config is not None else UserConfig()
        self.owner = owner if owner is not None else os.getpid()
        self._capture = capture
        self._scanner = scanner if scanner is not None else ArtifactScanner(self.config.policy)
        self._exporter = exporter if exporter is not None else Exporter(self.store)
        self._runner = runner
        self.scope = BoxScope(
            self.store.locks_dir,
            box.name,
            mode=self.config.policy.lock_mode,
            timeout=self.config.policy.lock_timeout,
        )
        self.report = TransactionReport(box=box.name)
        self.baseline: Snapshot | None = None
        self._started_at = datetime.now(UTC).isoformat()

    @property
    def state(self) -> TxState:
        """Current lifecycle state."""
        return self.report.state

    def _transition(self, target: TxState) -> None:
        if not can_transition(self.report.state, target):
            msg = f"Illegal transition {self.report.state.value} -> {target.value}"
            raise TransactionStateError(msg)
        logger.debug(
            "Transaction on %s: %s -> %s", self.box.name, self.report.state.value, target.value
        )
        self.report.state = target

    def abort(self, reason: str) -> TransactionReport:
        """Abort the transaction without promoting any snapshot.

        The pending marker is dropped and the box scope released. The
        persisted current snapshot stays as it was, so a retry diffs
        against the same baseline.
        """
        self._transition(TxState.ABORTED)
        self.report.error = reason
        logger.warning("Transaction on %s aborted: %s", self.box.name, reason)
        self.store.clear_pending(self.box.name)
        self.scope.release(self.owner)
        return self.report

    def begin(self) -> Snapshot:
        """Acquire the box and establish the baseline.

        Returns:
            The baseline snapshot the transaction will diff against.

        Raises:
            LockContentionError: If another transaction holds the box.
            SnapshotUnavailableError: If the inventory cannot be captured.
            TransactionStateError: If the transaction already started.
        """
        self._transition(TxState.SNAPSHOTTING)
        try:
            self.scope.acquire(self.owner)
        except LockContentionError as e:
            self._transition(TxState.ABORTED)
            self.report.error = str(e)
            raise

        try:
            before = self._capture(self.box)
        except SnapshotUnavailableError as e:
            self.abort(str(e))
            raise

        baseline = self.store.load_snapshot(self.box.name)
        if baseline is None:
            logger.debug("No current snapshot of %s; using the pre-capture", self.box.name)
            self.store.save_snapshot(before)
            baseline = before
        self.baseline = baseline

        self.store.save_pending(
            PendingTransaction(
                box=self.box.name,
                owner=self.owner,
                started_at=self._started_at,
                state=TxState.EXECUTING.value,
                baseline_taken_at=baseline.taken_at,
                family=self.box.family.value,
            )
        )
        self._transition(TxState.EXECUTING)
        return baseline

    @classmethod
    def resume(
        cls,
        box: Box,
        *,
        store: StateStore | None = None,
        config: UserConfig | None = None,
        owner: int | None = None,
        capture: SnapshotCapture = capture_snapshot,
        scanner: ArtifactScanner | None = None,
        exporter: Exporter | None = None,
    ) -> TransactionOrchestrator:
        """Pick up a transaction whose first phase ran in another process.

        Raises:
            TransactionStateError: If no transaction is pending for the box,
                or it belongs to another live process.
        """
        orchestrator = cls(
            box,
            store=store,
            config=config,
            owner=owner,
            capture=capture,
            scanner=scanner,
            exporter=exporter,
        )
        pending = orchestrator.store.load_pending(box.name)
        if pending is None:
            msg = f"No pending transaction for box '{box.name}'"
            raise TransactionStateError(msg)

        if pending.owner != orchestrator.owner and pid_alive(pending.owner):
            msg = f"Pending transaction on '{box.name}' belongs to pid {pending.owner}"
            raise TransactionStateError(msg)

        orchestrator.scope.acquire(orchestrator.owner)
        if pending.state != TxState.EXECUTING.value:
            orchestrator.store.clear_pending(box.name)
            orchestrator.scope.release(orchestrator.owner)
            msg = f"Pending transaction on '{box.name}' is in state {pending.state}"
            raise TransactionStateError(msg)

        orchestrator._started_at = pending.started_at
        orchestrator.report.state = TxState.EXECUTING

        orchestrator.baseline = orchestrator.store.load_snapshot(box.name)
        return orchestrator

    def execute(self, argv: list[str]) -> int:
        """Run the box's package manager with the given arguments.

        Output streams live to the terminal. A non-zero exit is recorded,
        not raised. A KeyboardInterrupt marks the transaction interrupted.

        Returns:
            The package manager's exit status (130 when interrupted).

        Raises:
            TransactionStateError: If called outside the executing state.
        """
        if self.state != TxState.EXECUTING:
            msg = f"Cannot execute in state {self.state.value}"
            raise TransactionStateError(msg)

        root, prefix = elevation_prefix(self.box.name)
        args = box_command(self.box.name, [*prefix, *argv], root=root)
        logger.debug("Running %s", " ".join(args))
        try:
            code = self._runner(args)
        except KeyboardInterrupt:
            self.report.interrupted = True
            code = INTERRUPTED_EXIT_CODE
        except (FileNotFoundError, OSError) as e:
            logger.error("Cannot run package manager in %s: %s", self.box.name, e)
            code = 127

        self.report.exit_code = code
        if code != 0 and not self.report.interrupted:
            logger.warning("Package manager in %s exited with status %d", self.box.name, code)
        return code

    def finish(self, exit_code: int, interrupted: bool = False) -> TransactionReport:
        """Diff, scan and export, then commit or abort.

        Runs even when the package manager failed or was interrupted:
        whatever was installed before the failure still gets exported.
        Interrupted transactions abort afterwards without promoting the
        new snapshot. So does any unexpected error, which also drops the
        pending marker and releases the box.

        Raises:
            TransactionStateError: If called outside the executing state.
        """
        if self.state != TxState.EXECUTING:
            msg = f"Cannot finish in state {self.state.value}"
            raise TransactionStateError(msg)

        self.report.exit_code = exit_code
        self.report.interrupted = self.report.interrupted or interrupted

        try:
            return self._complete()
        except PkgbridgeError as e:
            if self.state.is_terminal:
                raise
            return self.abort(str(e))
        except Exception as e:
            if self.state.is_terminal:
                raise
            logger.exception("Transaction on %s failed", self.box.name)
            return self.abort(f"Unexpected error: {type(e).__name__}: {e}")

    def _complete(self) -> TransactionReport:
        self._transition(TxState.DIFFING)
        if self.baseline is None:
            return self.abort("Baseline snapshot is missing")
        try:
            after = self._capture(self.box)
        except SnapshotUnavailableError as e:
            return self.abort(str(e))

        self.report.diff = diff_snapshots(self.baseline, after)
        logger.debug(
            "Diff for %s: %d new, %d upgraded",
            self.box.name,
            len(self.report.diff.new),
            len(self.report.diff.upgraded),
        )

        self._transition(TxState.SCANNING)
        scan = self._scanner.scan(self.box, self.report.diff)
        self.report.partials.extend(scan.partials)

        self._transition(TxState.RESOLVING)
        with self._exporter.session() as session:
            self._transition(TxState.EXPORTING)
            self.report.outcomes = session.export(scan.artifacts)

        if self.report.interrupted:
            return self.abort("Package manager was interrupted")

        self.store.save_snapshot(after)
        self.store.clear_pending(self.box.name)
        self.scope.release(self.owner)
        self._transition(TxState.COMMITTED)
        return self.report

    def run(self, argv: list[str]) -> TransactionReport:
        """Run a whole transaction in this process.

        Raises:
            LockContentionError: If another transaction holds the box.
            SnapshotUnavailableError: If the baseline cannot be captured.
        """
        self.begin()
        code = self.execute(argv)
        return self.finish(code, interrupted=self.report.interrupted)
