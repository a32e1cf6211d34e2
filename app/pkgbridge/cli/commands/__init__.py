"""CLI commands for pkgbridge.

This package contains all subcommand implementations.
"""

from pkgbridge.cli.commands import boxes, doctor, export, exports, pm, uninstall, unexport

__all__ = ["boxes", "doctor", "export", "exports", "pm", "uninstall", "unexport"]
