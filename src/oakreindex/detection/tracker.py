"""Track which index definitions an installation modifies."""

from __future__ import annotations

from typing import TYPE_CHECKING

from oakreindex.detection.classifier import DEFAULT_INDEX_ROOT_MARKER
from oakreindex.detection.discovery import DefinitionCollector
from oakreindex.detection.interfaces import ACTION_ADDED, ACTION_DELETED, ACTION_UPDATED

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_CHANGE_ACTIONS = (ACTION_ADDED, ACTION_UPDATED, ACTION_DELETED)


class ChangeTracker(DefinitionCollector):
    """Records definition roots touched by add/update/delete messages.

    Register it in the installer's listener slot for the duration of the
    import; :attr:`changed` then holds every definition that was modified.
    """

    def __init__(
        self,
        actions: Iterable[str] = DEFAULT_CHANGE_ACTIONS,
        *,
        marker: str = DEFAULT_INDEX_ROOT_MARKER,
    ) -> None:
        super().__init__(actions, marker=marker)

    @property
    def changed(self) -> frozenset[str]:
        return self.roots

    def __repr__(self) -> str:
        return f"ChangeTracker(actions={sorted(self.actions)!r}, changed={len(self.roots)})"
