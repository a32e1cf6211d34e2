"""Artifact scanning and host export.

This package finds host-exportable files owned by changed packages,
decides their host names and writes the shims and launchers.
"""

from pkgbridge.export.resolver import ExportResolver, fallback_name, sanitize_box_name
from pkgbridge.export.scanner import ArtifactScanner, ScanResult
from pkgbridge.export.writer import ExportSession, Exporter, render_binary_shim

__all__ = [
    "ArtifactScanner",
    "ExportResolver",
    "ExportSession",
    "Exporter",
    "ScanResult",
    "fallback_name",
    "render_binary_shim",
    "sanitize_box_name",
]
