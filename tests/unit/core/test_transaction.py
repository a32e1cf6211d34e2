"""Unit tests for the transaction orchestrator."""

import os
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from pkgbridge.core.diff import InventoryDiff
from pkgbridge.core.errors import (
    LockContentionError,
    SnapshotUnavailableError,
    TransactionStateError,
)
from pkgbridge.core.lock import BoxScope
from pkgbridge.core.state import StateStore, write_toml
from pkgbridge.core.transaction import (
    INTERRUPTED_EXIT_CODE,
    TransactionOrchestrator,
    TransactionReport,
    TxState,
    can_transition,
    elevation_prefix,
    notify_exports,
)
from pkgbridge.export.scanner import ScanResult
from pkgbridge.export.writer import Exporter
from pkgbridge.models.artifact import Artifact, ArtifactKind
from pkgbridge.models.box import Box
from pkgbridge.models.config import PolicyConfig, UserConfig
from pkgbridge.models.export import ExportOutcome, OutcomeStatus
from pkgbridge.models.snapshot import Snapshot
from pkgbridge.utils.shell import CommandResult

DEAD_PID = 2**22 + 12345

BEFORE = (("bash", "5.2"), ("coreutils", "9.4"))
AFTER = (*BEFORE, ("htop", "3.3"))


class FakeScanner:
    """Scanner returning one binary per changed package."""

    def __init__(self, partials: tuple[str, ...] = ()) -> None:
        self.partials = partials
        self.scanned: list[tuple[str, ...]] = []

    def scan(self, box: Box, diff: InventoryDiff) -> ScanResult:
        self.scanned.append(diff.names)
        artifacts = tuple(
            Artifact(box=box.name, package=name, kind=ArtifactKind.BINARY, path=f"/usr/bin/{name}")
            for name in diff.names
        )
        return ScanResult(artifacts=artifacts, partials=self.partials)


def capture_sequence(*results: tuple | Exception) -> Callable[[Box], Snapshot]:
    """Capture function returning (or raising) the given results in order."""
    pending = list(results)

    def capture(box: Box) -> Snapshot:
        result = pending.pop(0)
        if isinstance(result, Exception):
            raise result
        return Snapshot.from_entries(box.name, result)

    return capture


@pytest.fixture(autouse=True)
def rootful_box():
    """Every box can be entered rootful."""
    with patch("pkgbridge.core.transaction.enter_box") as mock_enter:
        mock_enter.return_value = CommandResult(stdout="", stderr="", returncode=0)
        yield mock_enter


@pytest.fixture
def exporter(store: StateStore, bin_dir: Path, apps_dir: Path) -> Exporter:
    """Exporter writing into temporary host directories."""
    return Exporter(store, bin_dir=bin_dir, apps_dir=apps_dir)


def _orchestrator(
    box: Box,
    store: StateStore,
    exporter: Exporter,
    *captures: tuple | Exception,
    runner: Callable[[list[str]], int] | None = None,
    config: UserConfig | None = None,
    scanner: FakeScanner | None = None,
) -> TransactionOrchestrator:
    return TransactionOrchestrator(
        box,
        store=store,
        config=config,
        capture=capture_sequence(*captures),
        scanner=scanner or FakeScanner(),  # type: ignore[arg-type]
        exporter=exporter,
        runner=runner or (lambda args: 0),
    )


class TestStateMachine:
    """Tests for the transaction state machine."""

    def test_forward_transitions(self) -> None:
        """Each state advances to exactly one successor."""
        order = [
            TxState.IDLE,
            TxState.SNAPSHOTTING,
            TxState.EXECUTING,
            TxState.DIFFING,
            TxState.SCANNING,
            TxState.RESOLVING,
            TxState.EXPORTING,
            TxState.COMMITTED,
        ]
        for current, target in zip(order, order[1:], strict=False):
            assert can_transition(current, target)

    def test_skipping_states_is_illegal(self) -> None:
        """States cannot be skipped."""
        assert not can_transition(TxState.IDLE, TxState.EXECUTING)
        assert not can_transition(TxState.DIFFING, TxState.EXPORTING)

    def test_abort_from_any_live_state(self) -> None:
        """Every non-terminal state may abort."""
        for state in TxState:
            assert can_transition(state, TxState.ABORTED) is not state.is_terminal

    def test_terminal_states_are_final(self) -> None:
        """Nothing follows COMMITTED or ABORTED."""
        assert not can_transition(TxState.COMMITTED, TxState.IDLE)
        assert not can_transition(TxState.ABORTED, TxState.SNAPSHOTTING)

    def test_finish_before_begin_raises(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """finish() outside EXECUTING is rejected."""
        orchestrator = _orchestrator(fedora_box, store, exporter)

        with pytest.raises(TransactionStateError):
            orchestrator.finish(0)

    def test_begin_twice_raises(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """A transaction cannot begin twice."""
        orchestrator = _orchestrator(fedora_box, store, exporter, BEFORE)
        orchestrator.begin()

        with pytest.raises(TransactionStateError, match="Illegal transition"):
            orchestrator.begin()


class TestRun:
    """Tests for a whole transaction in one process."""

    def test_commit_exports_and_promotes(
        self, fedora_box: Box, store: StateStore, exporter: Exporter, bin_dir: Path
    ) -> None:
        """A successful transaction exports new packages and promotes the snapshot."""
        calls: list[list[str]] = []
        orchestrator = _orchestrator(
            fedora_box, store, exporter, BEFORE, AFTER, runner=lambda args: calls.append(args) or 0
        )

        report = orchestrator.run(["install", "-y", "htop"])

        assert report.state == TxState.COMMITTED
        assert report.diff.names == ("htop",)
        assert report.summary["exported"] == 1
        assert (bin_dir / "htop").exists()
        saved = store.load_snapshot(fedora_box.name)
        assert saved is not None
        assert saved.as_mapping()["htop"] == "3.3"
        assert store.load_pending(fedora_box.name) is None
        assert orchestrator.scope.read_lease() is None
        assert calls == [
            ["distrobox", "enter", "--root", "-n", "fedora-latest", "--", "install", "-y", "htop"]
        ]

    def test_nothing_changed(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """An unchanged inventory commits with no exports."""
        orchestrator = _orchestrator(fedora_box, store, exporter, BEFORE, BEFORE)

        report = orchestrator.run(["upgrade"])

        assert report.state == TxState.COMMITTED
        assert report.diff.is_empty
        assert report.outcomes == []

    def test_failed_manager_still_exports(
        self, fedora_box: Box, store: StateStore, exporter: Exporter, bin_dir: Path
    ) -> None:
        """Packages installed before a failure are still exported."""
        orchestrator = _orchestrator(
            fedora_box, store, exporter, BEFORE, AFTER, runner=lambda args: 1
        )

        report = orchestrator.run(["install", "htop", "missing-package"])

        assert report.state == TxState.COMMITTED
        assert report.exit_code == 1
        assert report.process_exit_code == 1
        assert (bin_dir / "htop").exists()

    def test_interrupted_exports_then_aborts(
        self, fedora_box: Box, store: StateStore, exporter: Exporter, bin_dir: Path
    ) -> None:
        """An interrupt exports what landed but does not promote the snapshot."""

        def interrupt(args: list[str]) -> int:
            raise KeyboardInterrupt

        orchestrator = _orchestrator(
            fedora_box, store, exporter, BEFORE, AFTER, runner=interrupt
        )

        report = orchestrator.run(["install", "htop"])

        assert report.state == TxState.ABORTED
        assert report.interrupted
        assert report.process_exit_code == INTERRUPTED_EXIT_CODE
        assert (bin_dir / "htop").exists()
        saved = store.load_snapshot(fedora_box.name)
        assert saved is not None
        assert "htop" not in saved.as_mapping()
        assert orchestrator.scope.read_lease() is None

    def test_missing_runner_binary(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """A manager that cannot be started reports status 127."""

        def missing(args: list[str]) -> int:
            raise FileNotFoundError("distrobox")

        orchestrator = _orchestrator(fedora_box, store, exporter, BEFORE, BEFORE, runner=missing)

        assert orchestrator.run(["install", "x"]).exit_code == 127

    def test_partials_are_reported(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """Scan problems are carried in the report."""
        orchestrator = _orchestrator(
            fedora_box,
            store,
            exporter,
            BEFORE,
            AFTER,
            scanner=FakeScanner(partials=("Cannot list files of htop",)),
        )

        report = orchestrator.run(["install", "htop"])

        assert report.partials == ["Cannot list files of htop"]
        assert report.state == TxState.COMMITTED


class TestAbortAndRetry:
    """Tests for aborted transactions and retries."""

    def test_baseline_snapshot_failure_aborts(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """A failed baseline capture aborts and releases the box."""
        orchestrator = _orchestrator(
            fedora_box, store, exporter, SnapshotUnavailableError("box is gone")
        )

        with pytest.raises(SnapshotUnavailableError):
            orchestrator.run(["install", "htop"])

        assert orchestrator.state == TxState.ABORTED
        assert orchestrator.scope.read_lease() is None

    def test_retry_diffs_against_same_baseline(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """After an abort, the retry still sees the packages as new."""
        store.save_snapshot(Snapshot.from_entries(fedora_box.name, BEFORE, taken_at="t0"))
        first = _orchestrator(
            fedora_box, store, exporter, AFTER, SnapshotUnavailableError("lost")
        )

        aborted = first.run(["install", "htop"])

        assert aborted.state == TxState.ABORTED
        saved = store.load_snapshot(fedora_box.name)
        assert saved is not None
        assert saved.taken_at == "t0"

        retry = _orchestrator(fedora_box, store, exporter, AFTER, AFTER)
        report = retry.run(["install", "htop"])

        assert report.state == TxState.COMMITTED
        assert report.diff.names == ("htop",)

    def test_existing_baseline_is_kept(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """Packages installed outside pkgbridge are picked up by the next diff."""
        store.save_snapshot(Snapshot.from_entries(fedora_box.name, BEFORE, taken_at="t0"))
        orchestrator = _orchestrator(fedora_box, store, exporter, AFTER, AFTER)

        report = orchestrator.run(["upgrade"])

        assert report.diff.names == ("htop",)

    def test_unexpected_scan_error_aborts(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """An error during the scan aborts and cleans up instead of escaping."""
        store.save_snapshot(Snapshot.from_entries(fedora_box.name, BEFORE, taken_at="t0"))
        scanner = FakeScanner()
        crash = MagicMock(side_effect=RuntimeError("scanner crashed"))
        scanner.scan = crash  # type: ignore[method-assign]
        orchestrator = _orchestrator(fedora_box, store, exporter, AFTER, AFTER, scanner=scanner)

        report = orchestrator.run(["install", "htop"])

        assert report.state == TxState.ABORTED
        assert report.error == "Unexpected error: RuntimeError: scanner crashed"
        assert store.load_pending(fedora_box.name) is None
        assert orchestrator.scope.read_lease() is None
        saved = store.load_snapshot(fedora_box.name)
        assert saved is not None
        assert saved.taken_at == "t0"


class TestLocking:
    """Tests for box scope handling."""

    def test_contention_fails_fast(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """In fail mode a busy box aborts the transaction."""
        BoxScope(store.locks_dir, fedora_box.name).acquire(os.getppid())
        config = UserConfig(policy=PolicyConfig(lock_mode="fail"))
        orchestrator = _orchestrator(fedora_box, store, exporter, BEFORE, config=config)

        with pytest.raises(LockContentionError):
            orchestrator.run(["install", "htop"])

        assert orchestrator.state == TxState.ABORTED
        assert store.load_pending(fedora_box.name) is None

    def test_stale_lease_is_taken_over(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """A lease left by a dead process does not block the box."""
        scope = BoxScope(store.locks_dir, fedora_box.name)
        write_toml(
            scope.lease_path,
            {"box": fedora_box.name, "owner": DEAD_PID, "acquired_at": "t"},
        )
        config = UserConfig(policy=PolicyConfig(lock_mode="fail"))
        orchestrator = _orchestrator(fedora_box, store, exporter, BEFORE, AFTER, config=config)

        report = orchestrator.run(["install", "htop"])

        assert report.state == TxState.COMMITTED

    def test_other_box_is_not_blocked(
        self, fedora_box: Box, debian_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """Transactions on different boxes do not contend."""
        BoxScope(store.locks_dir, debian_box.name).acquire(os.getppid())
        config = UserConfig(policy=PolicyConfig(lock_mode="fail"))
        orchestrator = _orchestrator(fedora_box, store, exporter, BEFORE, BEFORE, config=config)

        assert orchestrator.run(["upgrade"]).state == TxState.COMMITTED


class TestResume:
    """Tests for two-phase transactions."""

    def test_second_phase_completes(
        self, fedora_box: Box, store: StateStore, exporter: Exporter, bin_dir: Path
    ) -> None:
        """A pending transaction is finished by a second orchestrator."""
        first = _orchestrator(fedora_box, store, exporter, BEFORE)
        first.begin()
        pending = store.load_pending(fedora_box.name)
        assert pending is not None
        assert pending.family == "fedora"

        second = TransactionOrchestrator.resume(
            fedora_box,
            store=store,
            owner=first.owner,
            capture=capture_sequence(AFTER),
            scanner=FakeScanner(),  # type: ignore[arg-type]
            exporter=exporter,
        )
        report = second.finish(0)

        assert report.state == TxState.COMMITTED
        assert (bin_dir / "htop").exists()
        assert store.load_pending(fedora_box.name) is None

    def test_nothing_pending_raises(self, fedora_box: Box, store: StateStore) -> None:
        """Resuming without a first phase fails."""
        with pytest.raises(TransactionStateError, match="No pending transaction"):
            TransactionOrchestrator.resume(fedora_box, store=store)

    def test_pending_of_live_process_refused(
        self, fedora_box: Box, store: StateStore, exporter: Exporter
    ) -> None:
        """Another live process's transaction cannot be resumed."""
        first = _orchestrator(fedora_box, store, exporter, BEFORE)
        first.owner = os.getppid()
        first.begin()

        with pytest.raises(TransactionStateError, match="belongs to pid"):
            TransactionOrchestrator.resume(fedora_box, store=store, owner=os.getpid())


class TestHelpers:
    """Tests for elevation and notification helpers."""

    def test_rootful_preferred(self, rootful_box: MagicMock) -> None:
        """A working rootful box needs no in-box helper."""
        assert elevation_prefix("b") == (True, [])

    def test_sudo_fallback(self, rootful_box: MagicMock) -> None:
        """Without a rootful box, sudo inside the box is used."""
        rootful_box.side_effect = [
            CommandResult(stdout="", stderr="no root", returncode=1),
            CommandResult(stdout="sudo\n", stderr="", returncode=0),
        ]

        assert elevation_prefix("b") == (False, ["sudo"])

    def test_no_helper(self, rootful_box: MagicMock) -> None:
        """Without any helper the manager runs as is."""
        rootful_box.side_effect = [
            OSError("no runtime"),
            CommandResult(stdout="none\n", stderr="", returncode=0),
        ]

        assert elevation_prefix("b") == (False, [])

    @patch("pkgbridge.core.transaction.command_exists", return_value=False)
    def test_notify_without_notify_send(self, _exists: MagicMock) -> None:
        """Missing notify-send is silently ignored."""
        artifact = Artifact("b", "htop", ArtifactKind.BINARY, "/usr/bin/htop")
        report = TransactionReport(
            box="b", outcomes=[ExportOutcome(artifact, OutcomeStatus.EXPORTED, "/h/htop")]
        )

        assert notify_exports(report) is False

    @patch("pkgbridge.core.transaction.run_command")
    @patch("pkgbridge.core.transaction.command_exists", return_value=True)
    def test_notify_lists_exports(self, _exists: MagicMock, mock_run: MagicMock) -> None:
        """The notification names each exported artifact once."""
        mock_run.return_value = CommandResult(stdout="", stderr="", returncode=0)
        artifact = Artifact("b", "htop", ArtifactKind.BINARY, "/usr/bin/htop")
        report = TransactionReport(
            box="b",
            outcomes=[
                ExportOutcome(artifact, OutcomeStatus.EXPORTED, "/h/htop"),
                ExportOutcome(artifact, OutcomeStatus.COLLIDED, "/h/htop-b"),
            ],
        )

        assert notify_exports(report) is True
        assert mock_run.call_args.args[0][-1] == "htop"

    def test_process_exit_code(self) -> None:
        """Errors without an exit code map to status 1."""
        assert TransactionReport(box="b").process_exit_code == 0
        assert TransactionReport(box="b", error="boom").process_exit_code == 1
        assert TransactionReport(box="b", exit_code=100).process_exit_code == 100
