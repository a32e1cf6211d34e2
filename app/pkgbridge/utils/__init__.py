"""Utility modules for pkgbridge.

This module exports commonly used utility functions.
"""

from pkgbridge.utils.formatting import (
    configure_logging,
    console,
    create_table,
    err_console,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from pkgbridge.utils.shell import (
    CommandResult,
    box_command,
    command_exists,
    enter_box,
    run_command,
    run_interactive,
)

__all__ = [
    "CommandResult",
    "box_command",
    "command_exists",
    "configure_logging",
    "console",
    "create_table",
    "enter_box",
    "err_console",
    "print_error",
    "print_info",
    "print_success",
    "print_warning",
    "run_command",
    "run_interactive",
]
