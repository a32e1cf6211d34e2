"""Desktop launcher rewriting.

A launcher exported from a box must start its program inside that box,
so every ``Exec=`` line is wrapped in ``distrobox enter``. The rewrite is
line-based and keeps every other line, comment and group untouched.
"""

import re

from pkgbridge.core.errors import DesktopEntryError

MAIN_GROUP = "[Desktop Entry]"
BOX_KEY = "X-Pkgbridge-Box"

# Characters that force an Exec= argument into double quotes
_EXEC_RESERVED = frozenset(" \t\n\"'\\><~|&;$*?#()`")


def _split_key(line: str) -> tuple[str, str] | None:
    """Split ``Key=Value``, returning None for non key/value lines."""
    if "=" not in line or line.lstrip().startswith("#"):
        return None
    key, value = line.split("=", 1)
    return key.strip(), value.strip()


def validate_desktop_entry(text: str) -> None:
    """Check that a launcher has a main group with an Exec key.

    Raises:
        DesktopEntryError: If the launcher is malformed.
    """
    group: str | None = None
    has_main = False
    has_exec = False
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("[") and line.endswith("]"):
            group = line
            has_main = has_main or group == MAIN_GROUP
            continue
        pair = _split_key(line)
        if group == MAIN_GROUP and pair is not None and pair[0] == "Exec" and pair[1]:
            has_exec = True

    if not has_main:
        msg = f"Missing {MAIN_GROUP} group"
        raise DesktopEntryError(msg)
    if not has_exec:
        msg = f"No Exec= line in {MAIN_GROUP}"
        raise DesktopEntryError(msg)


def quote_exec_arg(arg: str) -> str:
    """Quote one ``Exec=`` argument following the Desktop Entry rules.

    Reserved characters put the argument in double quotes, with ``"``,
    ``$``, backtick and backslash escaped inside them. Backslashes are then
    escaped once more as a string value, and ``%`` is doubled so it is not
    read as a field code.
    """
    arg = arg.replace("%", "%%")
    if arg and not any(c in _EXEC_RESERVED for c in arg):
        return arg
    escaped = re.sub(r'(["`$\\])', r"\\\1", arg)
    return '"' + escaped.replace("\\", "\\\\") + '"'


def wrap_exec(command: str, box: str) -> str:
    """Wrap a launcher command so it runs inside the box."""
    if "distrobox enter" in command:
        return command
    return f"distrobox enter -n {quote_exec_arg(box)} -- {command}"


def rewrite_desktop_entry(text: str, box: str, *, fallback: bool = False) -> str:
    """Rewrite a launcher for export from a box.

    - every ``Exec=`` line, in every group, runs through ``distrobox enter``
    - ``TryExec=`` lines are dropped (the program is not on the host)
    - on fallback exports ``Name=`` gets a `` (<box>)`` suffix
    - ``X-Pkgbridge-Box=<box>`` is set in the main group

    Args:
        text: Original launcher content.
        box: Box the launcher comes from.
        fallback: Whether the launcher is exported under a fallback name.

    Returns:
        Rewritten launcher content, newline-terminated.

    Raises:
        DesktopEntryError: If the launcher is malformed.
    """
    validate_desktop_entry(text)

    suffix = f" ({box})"
    out: list[str] = []
    group: str | None = None
    box_key_written = False

    def close_main_group() -> None:
        nonlocal box_key_written
        if group == MAIN_GROUP and not box_key_written:
            while out and not out[-1].strip():
                out.pop()
            out.append(f"{BOX_KEY}={box}")
            box_key_written = True

    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("[") and line.endswith("]"):
            close_main_group()
            if out and out[-1].strip():
                out.append("")
            group = line
            out.append(raw)
            continue

        pair = _split_key(line)
        if pair is None:
            out.append(raw)
            continue

        key, value = pair
        if key == "Exec" and value:
            out.append(f"Exec={wrap_exec(value, box)}")
        elif key == "TryExec":
            continue
        elif key == BOX_KEY:
            continue
        elif key == "Name" and group == MAIN_GROUP and fallback and not value.endswith(suffix):
            out.append(f"Name={value}{suffix}")
        else:
            out.append(raw)

    close_main_group()
    return "\n".join(out) + "\n"
