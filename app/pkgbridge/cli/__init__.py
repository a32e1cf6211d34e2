"""CLI package for pkgbridge.

This package contains the Typer application and all subcommands.
"""

from pkgbridge.cli.main import app

__all__ = ["app"]
