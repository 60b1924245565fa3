"""Collaborator interfaces consumed by the detection engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable

# Action codes reported by the installer for a single node.
ACTION_ADDED = "A"
ACTION_UPDATED = "U"
ACTION_DELETED = "D"
ACTION_UNCHANGED = "-"


@dataclass(frozen=True)
class ProgressEvent:
    """A single mutation reported by the installer."""

    action: str
    path: str


@runtime_checkable
class ProgressListener(Protocol):
    """Receives one message per node touched during an installation."""

    def on_message(self, action: str, path: str) -> None: ...

    def on_error(self, path: str, error: Exception) -> None: ...


class CoverageSource(Protocol):
    """Reports every path a package covers below *root*."""

    def for_each_covered_path(self, root: str, visitor: Callable[[str, str], None]) -> None: ...


class PropertyStore(Protocol):
    """Transactional property access on the content repository.

    ``get_property`` returns ``None`` for an absent property and raises
    :class:`~oakreindex.errors.NodeNotFoundError` for a missing node.
    """

    def get_property(self, path: str, name: str) -> object | None: ...

    def set_property(self, path: str, name: str, value: object) -> None: ...

    def remove_property(self, path: str, name: str) -> None: ...

    def commit(self) -> None: ...
