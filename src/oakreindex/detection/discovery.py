"""Collect index definition roots from a stream of (action, path) reports."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from oakreindex.detection.classifier import DEFAULT_INDEX_ROOT_MARKER, classify
from oakreindex.detection.interfaces import ACTION_ADDED

if TYPE_CHECKING:
    from collections.abc import Iterable

    from oakreindex.detection.interfaces import CoverageSource

logger = logging.getLogger(__name__)


class DefinitionCollector:
    """Listener recording the definition roots of reported paths.

    Only messages whose action is in *actions* are considered.  Errors
    reported through the listener are ignored.
    """

    def __init__(
        self,
        actions: Iterable[str],
        *,
        marker: str = DEFAULT_INDEX_ROOT_MARKER,
    ) -> None:
        self._actions = frozenset(actions)
        self._marker = marker
        self._roots: set[str] = set()
        self.events_seen = 0

    @property
    def actions(self) -> frozenset[str]:
        return self._actions

    @property
    def roots(self) -> frozenset[str]:
        """Definition roots recorded so far."""
        return frozenset(self._roots)

    def on_message(self, action: str, path: str) -> None:
        self.events_seen += 1
        if action not in self._actions:
            return
        root = classify(path, self._marker)
        if root is not None:
            if root not in self._roots:
                logger.debug("%s %s -> definition %s", action, path, root)
            self._roots.add(root)

    def on_error(self, path: str, error: Exception) -> None:
        pass

    def __call__(self, action: str, path: str) -> None:
        self.on_message(action, path)


def discover(
    coverage: CoverageSource,
    actions: Iterable[str] = (ACTION_ADDED,),
    *,
    root: str = "/",
    marker: str = DEFAULT_INDEX_ROOT_MARKER,
) -> set[str]:
    """Return the definition roots covered by a package below *root*.

    Drives *coverage* once and keeps paths whose action is in *actions*.
    """
    collector = DefinitionCollector(actions, marker=marker)
    coverage.for_each_covered_path(root, collector)
    found = set(collector.roots)
    logger.info("Found %d index definition(s) in package coverage", len(found))
    return found
