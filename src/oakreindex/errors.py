"""Exception hierarchy shared by the detection engine and its collaborators."""

from __future__ import annotations


class OakReindexError(Exception):
    """Base class for all oakreindex errors."""


class StoreError(OakReindexError):
    """Raised when the content repository cannot be read or written."""


class NodeNotFoundError(StoreError):
    """Raised when a node does not exist in the content repository."""

    def __init__(self, path: str) -> None:
        super().__init__(f"No node at {path}")
        self.path = path


class HookError(OakReindexError):
    """Raised by an install hook to signal a failed phase.

    During PREPARE this aborts the installation.
    """


class HookStateError(HookError):
    """Raised when hook phases arrive out of order."""


class ConfigError(OakReindexError):
    """Raised when the hook configuration is invalid."""


class PackageError(OakReindexError):
    """Raised when a content package cannot be loaded."""
