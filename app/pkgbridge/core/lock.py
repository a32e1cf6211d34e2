"""Per-box transaction scopes and the global export lock.

A box scope is a persisted lease (``locks/<box>.lease``) naming the PID
that owns the current transaction. The lease outlives a single process so
that the two phases of a shim-driven transaction (``pm snapshot`` and
``pm post-transaction``) share one scope. Every read-modify-write of a
lease happens under an exclusive ``flock`` on ``locks/<box>.lock``.

A lease whose owner is no longer running is stale and is taken over.
"""

from __future__ import annotations

import fcntl
import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pkgbridge.core.errors import LockContentionError, StateCorruptError
from pkgbridge.core.state import box_key, read_toml, write_toml
from pkgbridge.models.config import LockMode

logger = logging.getLogger(__name__)

EXPORTS_LOCK_NAME = "exports.lock"


def pid_alive(pid: int) -> bool:
    """Check whether a process with the given PID is running."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


@contextmanager
def file_lock(
    path: Path,
    *,
    wait: bool = True,
    timeout: float | None = None,
    poll_interval: float = 0.1,
) -> Iterator[None]:
    """Hold an exclusive flock on a file.

    Args:
        path: Lock file (created if missing).
        wait: Block until the lock is free. If False, fail immediately.
        timeout: Maximum seconds to wait (None waits forever).
        poll_interval: Seconds between attempts while waiting with a timeout.

    Raises:
        LockContentionError: If the lock cannot be acquired.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a+") as handle:
        if wait and timeout is None:
            fcntl.flock(handle, fcntl.LOCK_EX)
        else:
            deadline = time.monotonic() + (timeout or 0.0)
            while True:
                try:
                    fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if not wait or time.monotonic() >= deadline:
                        msg = f"Lock {path} is held by another process"
                        raise LockContentionError(msg) from None
                    time.sleep(poll_interval)
        try:
            yield
        finally:
            fcntl.flock(handle, fcntl.LOCK_UN)


@contextmanager
def exports_lock(lock_dir: Path) -> Iterator[None]:
    """Serialize access to the host export directories and records."""
    with file_lock(lock_dir / EXPORTS_LOCK_NAME):
        yield


@dataclass(frozen=True, slots=True)
class Lease:
    """Persisted ownership of a box scope.

    Attributes:
        box: Box the lease covers.
        owner: PID of the owning process.
        acquired_at: ISO 8601 timestamp of acquisition.
    """

    box: str
    owner: int
    acquired_at: str


class BoxScope:
    """Exclusive transaction scope for one box.

    Example:
        >>> scope = BoxScope(lock_dir, "fedora-latest", mode="fail")
        >>> scope.acquire(os.getpid())
        >>> try:
        ...     ...
        ... finally:
        ...     scope.release(os.getpid())
    """

    def __init__(
        self,
        lock_dir: Path,
        box: str,
        *,
        mode: LockMode = "wait",
        timeout: float = 300.0,
        poll_interval: float = 0.5,
    ) -> None:
        self.box = box
        self.mode = mode
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.lease_path = lock_dir / f"{box_key(box)}.lease"
        self.lock_path = lock_dir / f"{box_key(box)}.lock"

    def read_lease(self) -> Lease | None:
        """Read the current lease, if any. Corrupt leases count as absent."""
        try:
            data = read_toml(self.lease_path)
            if data is None:
                return None
            return Lease(
                box=str(data["box"]),
                owner=int(data["owner"]),
                acquired_at=str(data["acquired_at"]),
            )
        except (StateCorruptError, KeyError, ValueError, TypeError) as e:
            logger.warning("Ignoring corrupt lease %s: %s", self.lease_path, e)
            return None

    def _try_acquire(self, owner: int) -> Lease | None:
        with file_lock(self.lock_path):
            current = self.read_lease()
            if current is not None and current.owner != owner:
                if pid_alive(current.owner):
                    return None
                logger.warning(
                    "Taking over stale lease on box %s (owner %d is gone)",
                    self.box,
                    current.owner,
                )
            if current is not None and current.owner == owner:
                return current

            lease = Lease(
                box=self.box,
                owner=owner,
                acquired_at=datetime.now(UTC).isoformat(),
            )
            write_toml(
                self.lease_path,
                {"box": lease.box, "owner": lease.owner, "acquired_at": lease.acquired_at},
            )
            return lease

    def acquire(self, owner: int) -> Lease:
        """Acquire the scope for a PID.

        Re-acquiring a scope already held by the same owner succeeds.

        Args:
            owner: PID that will own the scope.

        Returns:
            The lease now held.

        Raises:
            LockContentionError: If another live process holds the scope and
                mode is "fail", or the wait timeout expires.
        """
        deadline = time.monotonic() + self.timeout
        while True:
            lease = self._try_acquire(owner)
            if lease is not None:
                logger.debug("Acquired scope of box %s for pid %d", self.box, owner)
                return lease

            holder = self.read_lease()
            holder_pid = holder.owner if holder is not None else "?"
            if self.mode == "fail" or time.monotonic() >= deadline:
                msg = (
                    f"Box '{self.box}' is busy: another transaction "
                    f"(pid {holder_pid}) is in progress"
                )
                raise LockContentionError(msg)

            logger.info("Waiting for transaction on box %s (pid %s)", self.box, holder_pid)
            time.sleep(self.poll_interval)

    def release(self, owner: int) -> bool:
        """Release the scope if the PID owns it.

        Returns:
            True if a lease was removed.
        """
        with file_lock(self.lock_path):
            current = self.read_lease()
            if current is None or current.owner != owner:
                return False
            self.lease_path.unlink(missing_ok=True)
        logger.debug("Released scope of box %s for pid %d", self.box, owner)
        return True
