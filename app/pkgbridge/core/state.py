"""Durable state: snapshots, export records and pending transactions.

All files are TOML, written atomically (temporary file in the same
directory, then os.replace()) so readers never observe a half-written
file. Missing or corrupt files are treated as empty state with a warning;
they are never fatal.

Layout under ~/.local/state/pkgbridge/:
- snapshots/<box>.toml      current inventory snapshot per box
- transactions/<box>.toml   marker of a transaction between its two phases
- exports.toml              every ExportRecord, keyed by host path
- locks/                    lock and lease files (see pkgbridge.core.lock)
"""

from __future__ import annotations

import logging
import os
import re
import tomllib
from dataclasses import dataclass
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

import tomli_w

from pkgbridge.core.errors import StateCorruptError
from pkgbridge.core.paths import get_state_dir
from pkgbridge.models.export import ExportRecord
from pkgbridge.models.snapshot import Snapshot

logger = logging.getLogger(__name__)

STATE_FORMAT = 1


def box_key(box: str) -> str:
    """Turn a box name into a safe file stem."""
    return re.sub(r"[^A-Za-z0-9_.-]", "_", box) or "_"


def write_atomic(path: Path, data: bytes, mode: int | None = None) -> None:
    """Write a file atomically.

    The file is written to a temporary file in the same directory and
    moved into place with os.replace(). The temporary file is cleaned up
    on failure.

    Args:
        path: Destination path.
        data: File content.
        mode: Optional permission bits applied before the rename.

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            mode="wb",
            dir=path.parent,
            prefix=f".{path.name}.",
            delete=False,
            suffix=".tmp",
        ) as f:
            tmp_path = Path(f.name)
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except OSError:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise


def write_toml(path: Path, data: dict[str, Any]) -> None:
    """Serialize a dictionary to TOML and write it atomically."""
    write_atomic(path, tomli_w.dumps(data).encode("utf-8"))


def read_toml(path: Path) -> dict[str, Any] | None:
    """Read a TOML file.

    Args:
        path: File to read.

    Returns:
        Parsed data, or None if the file does not exist.

    Raises:
        StateCorruptError: If the file exists but cannot be read or parsed.
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        return None
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {path}: {e}"
        raise StateCorruptError(msg) from e
    except OSError as e:
        msg = f"Cannot read {path}: {e}"
        raise StateCorruptError(msg) from e


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """Persisted marker of a transaction waiting for its second phase.

    Attributes:
        box: Box the transaction runs against.
        owner: PID holding the box scope.
        started_at: ISO 8601 timestamp of the first phase.
        state: Persisted state-machine state.
        baseline_taken_at: Timestamp of the baseline snapshot.
        family: Family of the box, so the second phase needs no lookup.
    """

    box: str
    owner: int
    started_at: str
    state: str
    baseline_taken_at: str
    family: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for TOML storage."""
        return {
            "box": self.box,
            "owner": self.owner,
            "started_at": self.started_at,
            "state": self.state,
            "baseline_taken_at": self.baseline_taken_at,
            "family": self.family,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingTransaction:
        """Deserialize from dictionary.

        Raises:
            KeyError: If required fields are missing.
            ValueError: If owner is not an integer.
        """
        return cls(
            box=str(data["box"]),
            owner=int(data["owner"]),
            started_at=str(data["started_at"]),
            state=str(data["state"]),
            baseline_taken_at=str(data["baseline_taken_at"]),
            family=str(data.get("family", "unknown")),
        )


class StateStore:
    """Reads and writes pkgbridge's persisted state.

    The store does not lock by itself; callers hold the per-box scope
    (snapshots, pending markers) or the export lock (export records)
    around read-modify-write cycles.

    Attributes:
        state_dir: Root directory of all persisted state.
    """

    EXPORTS_FILENAME = "exports.toml"

    def __init__(self, state_dir: Path | None = None) -> None:
        """Initialize StateStore.

        Args:
            state_dir: Optional override for state directory.
                      Default: ~/.local/state/pkgbridge
        """
        self._state_dir = state_dir if state_dir is not None else get_state_dir()

    @property
    def state_dir(self) -> Path:
        """Root directory of all persisted state."""
        return self._state_dir

    @property
    def snapshots_dir(self) -> Path:
        """Directory of per-box current snapshots."""
        return self._state_dir / "snapshots"

    @property
    def transactions_dir(self) -> Path:
        """Directory of pending transaction markers."""
        return self._state_dir / "transactions"

    @property
    def locks_dir(self) -> Path:
        """Directory of lock and lease files."""
        return self._state_dir / "locks"

    @property
    def exports_path(self) -> Path:
        """Path of the export record file."""
        return self._state_dir / self.EXPORTS_FILENAME

    def snapshot_path(self, box: str) -> Path:
        """Path of the current snapshot of a box."""
        return self.snapshots_dir / f"{box_key(box)}.toml"

    def pending_path(self, box: str) -> Path:
        """Path of the pending transaction marker of a box."""
        return self.transactions_dir / f"{box_key(box)}.toml"

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def load_snapshot(self, box: str) -> Snapshot | None:
        """Load the current snapshot of a box.

        Returns:
            The Snapshot, or None when missing or corrupt.
        """
        path = self.snapshot_path(box)
        try:
            data = read_toml(path)
            if data is None:
                return None
            snapshot = Snapshot.from_dict(data)
        except (StateCorruptError, KeyError, ValueError, TypeError) as e:
            logger.warning("Ignoring corrupt snapshot %s: %s", path, e)
            return None

        if snapshot.box != box:
            logger.warning("Ignoring snapshot %s: belongs to box %r", path, snapshot.box)
            return None
        return snapshot

    def save_snapshot(self, snapshot: Snapshot) -> Path:
        """Persist a snapshot as the current one of its box.

        Returns:
            Path the snapshot was written to.
        """
        path = self.snapshot_path(snapshot.box)
        write_toml(path, snapshot.to_dict())
        logger.debug("Saved snapshot of %s (%d packages)", snapshot.box, len(snapshot))
        return path

    # -------------------------------------------------------------------------
    # Export records
    # -------------------------------------------------------------------------

    def load_exports(self) -> dict[str, ExportRecord]:
        """Load all export records keyed by host path.

        Returns:
            Records by host path; empty when missing or corrupt. Individual
            malformed records are skipped.
        """
        try:
            data = read_toml(self.exports_path)
        except StateCorruptError as e:
            logger.warning("Ignoring corrupt export records: %s", e)
            return {}
        if data is None:
            return {}

        records: dict[str, ExportRecord] = {}
        raw_records = data.get("exports", [])
        if not isinstance(raw_records, list):
            logger.warning("Ignoring export records: 'exports' is not an array")
            return {}

        for index, raw in enumerate(raw_records):
            try:
                record = ExportRecord.from_dict(raw)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("Skipping corrupt export record %d: %s", index, e)
                continue
            records[record.host_path] = record
        return records

    def save_exports(self, records: dict[str, ExportRecord]) -> None:
        """Persist the full set of export records."""
        data = {
            "format": STATE_FORMAT,
            "exports": [records[key].to_dict() for key in sorted(records)],
        }
        write_toml(self.exports_path, data)

    # -------------------------------------------------------------------------
    # Pending transactions
    # -------------------------------------------------------------------------

    def load_pending(self, box: str) -> PendingTransaction | None:
        """Load the pending transaction marker of a box, if any."""
        path = self.pending_path(box)
        try:
            data = read_toml(path)
            if data is None:
                return None
            return PendingTransaction.from_dict(data)
        except (StateCorruptError, KeyError, ValueError, TypeError) as e:
            logger.warning("Ignoring corrupt transaction marker %s: %s", path, e)
            return None

    def save_pending(self, pending: PendingTransaction) -> None:
        """Persist a pending transaction marker."""
        write_toml(self.pending_path(pending.box), pending.to_dict())

    def clear_pending(self, box: str) -> None:
        """Remove the pending transaction marker of a box."""
        self.pending_path(box).unlink(missing_ok=True)
