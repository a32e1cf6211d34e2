"""Shell execution utilities.

Provides safe subprocess execution with proper error handling, plus the
small set of distrobox invocations every other module builds on.
"""

import os
import shutil
import subprocess
from dataclasses import dataclass

# Default timeout for in-box queries (inventory, owned files, identity).
# Entering a stopped box starts it first, which can take a while.
BOX_QUERY_TIMEOUT: float = 120.0


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Result of a shell command execution.

    Attributes:
        stdout: Standard output from the command.
        stderr: Standard error from the command.
        returncode: Exit code of the command.
    """

    stdout: str
    stderr: str
    returncode: int

    @property
    def success(self) -> bool:
        """Check if command executed successfully."""
        return self.returncode == 0


def run_command(
    args: list[str],
    *,
    check: bool = False,
    timeout: float | None = 60.0,
    cwd: str | None = None,
) -> CommandResult:
    """Execute a shell command and return the result.

    Args:
        args: Command and arguments to execute.
        check: If True, raise CalledProcessError on non-zero exit.
        timeout: Maximum time in seconds to wait for command.
        cwd: Working directory for the command. If None, uses current directory.

    Returns:
        CommandResult with stdout, stderr, and returncode.

    Raises:
        subprocess.CalledProcessError: If check=True and command fails.
        subprocess.TimeoutExpired: If command exceeds timeout.
        FileNotFoundError: If command executable is not found.
    """
    result = subprocess.run(
        args,
        capture_output=True,
        text=True,
        check=check,
        timeout=timeout,
        cwd=cwd,
    )
    return CommandResult(
        stdout=result.stdout,
        stderr=result.stderr,
        returncode=result.returncode,
    )


def command_exists(name: str) -> bool:
    """Check if a command exists in the system PATH.

    Args:
        name: Command name to check.

    Returns:
        True if command exists, False otherwise.
    """
    return shutil.which(name) is not None


def run_interactive(
    args: list[str],
    *,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> int:
    """Execute a command interactively, inheriting the terminal.

    Unlike run_command(), this does NOT capture stdout/stderr, so the
    package manager's output streams live to the user. There is no
    timeout: package transactions legitimately take long.

    Args:
        args: Command and arguments to execute.
        cwd: Working directory for the command.
        env: Additional environment variables (merged with current env).

    Returns:
        Exit code of the command.

    Raises:
        FileNotFoundError: If command executable is not found.
        OSError: If command cannot be executed.
        KeyboardInterrupt: If the user interrupts the command.
    """
    full_env = {**os.environ, **(env or {})}
    result = subprocess.run(
        args,
        check=False,
        cwd=cwd,
        env=full_env,
    )
    return result.returncode


def box_command(box: str, argv: list[str], *, root: bool = False) -> list[str]:
    """Build the argv that runs a command inside a distrobox.

    Args:
        box: Box name.
        argv: Command and arguments to run inside the box.
        root: Enter the rootful variant of the box.

    Returns:
        Full host-side argv.
    """
    args = ["distrobox", "enter"]
    if root:
        args.append("--root")
    args.extend(["-n", box, "--", *argv])
    return args


def enter_box(
    box: str,
    script: str,
    *,
    root: bool = False,
    timeout: float | None = BOX_QUERY_TIMEOUT,
) -> CommandResult:
    """Run a shell snippet inside a box and capture its output.

    Args:
        box: Box name.
        script: Shell snippet passed to ``sh -c`` inside the box.
        root: Enter the rootful variant of the box.
        timeout: Maximum time in seconds to wait.

    Returns:
        CommandResult of the in-box command.

    Raises:
        FileNotFoundError: If distrobox is not installed.
        subprocess.TimeoutExpired: If the command exceeds the timeout.
    """
    return run_command(box_command(box, ["sh", "-c", script], root=root), timeout=timeout)


def which_outside(name: str, excluded_dir: str) -> str | None:
    """Resolve a command on PATH, ignoring one directory.

    Used to tell a genuine host tool apart from a shim pkgbridge itself
    placed in its bin directory.

    Args:
        name: Command name to resolve.
        excluded_dir: Directory whose entries do not count.

    Returns:
        Resolved path, or None if the command only exists in excluded_dir.
    """
    excluded = os.path.realpath(excluded_dir)
    for entry in os.environ.get("PATH", "").split(os.pathsep):
        if not entry or os.path.realpath(entry) == excluded:
            continue
        found = shutil.which(name, path=entry)
        if found is not None:
            return found
    return None
