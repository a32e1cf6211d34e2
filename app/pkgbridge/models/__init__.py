"""Data models for pkgbridge.

This module exports the core data structures used throughout the application.
"""

from pkgbridge.models.artifact import Artifact, ArtifactKind
from pkgbridge.models.box import Box, Family
from pkgbridge.models.config import PolicyConfig, UserConfig
from pkgbridge.models.export import (
    DecisionKind,
    ExportDecision,
    ExportOutcome,
    ExportRecord,
    OutcomeStatus,
    summarize_outcomes,
)
from pkgbridge.models.snapshot import Snapshot

__all__ = [
    "Artifact",
    "ArtifactKind",
    "Box",
    "DecisionKind",
    "ExportDecision",
    "ExportOutcome",
    "ExportRecord",
    "Family",
    "OutcomeStatus",
    "PolicyConfig",
    "Snapshot",
    "UserConfig",
    "summarize_outcomes",
]
