"""Shared type definitions for znx.

This module contains dataclasses and enums shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum


class SlotState(str, Enum):
    """Generation state of an image slot."""

    ABSENT = "absent"
    EMPTY = "empty"
    SINGLE_GEN = "single"
    DUAL_GEN = "dual"


class SourceKind(str, Enum):
    """How a deploy source is fetched."""

    LOCAL = "local"
    ZSYNC = "zsync"
    DOWNLOAD = "download"


@dataclass
class OperationResult:
    """Result of a lifecycle command."""

    success: bool
    message: str
    code: str | None = None
    details: dict[str, object] = field(default_factory=dict)


__all__ = ["OperationResult", "SlotState", "SourceKind"]
