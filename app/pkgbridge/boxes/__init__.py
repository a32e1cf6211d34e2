"""Box discovery and the per-family command table."""

from pkgbridge.boxes.families import (
    FAMILY_COMMANDS,
    FamilyCommands,
    classify_os_release,
    commands_for,
)
from pkgbridge.boxes.registry import BoxRegistry, ListedBox, parse_box_list

__all__ = [
    "FAMILY_COMMANDS",
    "BoxRegistry",
    "FamilyCommands",
    "ListedBox",
    "classify_os_release",
    "commands_for",
    "parse_box_list",
]
