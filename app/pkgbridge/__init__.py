"""pkgbridge - export packages installed in distrobox containers to the host."""

__version__ = "0.1.0"
