"""Exception hierarchy for pkgbridge.

Fatal errors (box selection, snapshots, locking) propagate to the CLI and
abort the enclosing transaction. The non-fatal kinds are mostly carried
as data in reports; the classes exist so callers can raise and catch them
at the per-package and per-artifact boundaries.
"""


class PkgbridgeError(Exception):
    """Base exception for all pkgbridge errors."""


class BoxNotFoundError(PkgbridgeError):
    """Raised when an explicitly named box is absent or unreachable."""


class NoMatchingBoxError(PkgbridgeError):
    """Raised when no live box of the required family exists."""


class BoxUnreachableError(PkgbridgeError):
    """Raised when a box is listed but cannot be entered."""


class SnapshotUnavailableError(PkgbridgeError):
    """Raised when the package inventory of a box cannot be captured."""


class PackageManagerFailedError(PkgbridgeError):
    """Raised when the in-box package manager exits non-zero.

    The orchestrator never raises this itself; the exit code is surfaced
    in the transaction report instead.
    """

    def __init__(self, exit_code: int) -> None:
        super().__init__(f"Package manager exited with status {exit_code}")
        self.exit_code = exit_code


class ArtifactScanPartialError(PkgbridgeError):
    """Raised when the files owned by a single package cannot be listed."""


class ExportCollisionError(PkgbridgeError):
    """Raised when both the direct and the fallback host name are taken."""


class DesktopEntryError(PkgbridgeError):
    """Raised when a desktop launcher file is malformed."""


class StateCorruptError(PkgbridgeError):
    """Raised when a persisted state file cannot be parsed."""


class LockContentionError(PkgbridgeError):
    """Raised when another transaction holds the scope of a box."""


class TransactionStateError(PkgbridgeError):
    """Raised on an illegal transaction state transition."""


class ConfigError(PkgbridgeError):
    """Raised when the user configuration cannot be written."""
