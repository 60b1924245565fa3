"""Record, strip and restore the maintenance properties of index definitions.

Oak keeps two bookkeeping properties on every index definition:
``reindex`` (set to ``true`` to request a rebuild) and ``reindexCount``
(incremented after each rebuild).  A package rarely carries them, so the
installer would report every definition it covers as updated simply
because it drops them.  They are therefore removed before the import and
written back afterwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from oakreindex.errors import HookStateError, NodeNotFoundError, StoreError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from oakreindex.detection.interfaces import PropertyStore

logger = logging.getLogger(__name__)

PN_REINDEX = "reindex"
PN_REINDEX_COUNT = "reindexCount"


@dataclass
class ReindexRecord:
    """Maintenance properties of one definition, as found before the import."""

    reindex: bool = False
    reindex_count: int | None = None


@dataclass
class RestoreResult:
    """Summary of a restore pass."""

    reindexed: list[str] = field(default_factory=list)
    restored: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _as_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        raise ValueError(f"not a boolean: {value!r}")
    if isinstance(value, int):
        return value != 0
    raise ValueError(f"not a boolean: {value!r}")


def _as_int(value: object) -> int:
    if isinstance(value, bool):
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(value, (int, str)):
        return int(value)
    raise ValueError(f"not an integer: {value!r}")


class PropertySnapshotStore:
    """Owns the reindex records between PREPARE and restoration.

    Nothing is committed while stripping: the removals belong to the
    installation's transaction and roll back with it.  :meth:`restore`
    commits once, after all definitions have been written.
    """

    def __init__(
        self,
        store: PropertyStore,
        *,
        reindex_property: str = PN_REINDEX,
        reindex_count_property: str = PN_REINDEX_COUNT,
    ) -> None:
        self._store = store
        self._reindex_property = reindex_property
        self._count_property = reindex_count_property
        self._records: dict[str, ReindexRecord] | None = None
        self._restored = False

    @property
    def records(self) -> Mapping[str, ReindexRecord]:
        return MappingProxyType(self._records or {})

    def snapshot_and_strip(self, roots: Iterable[str]) -> Mapping[str, ReindexRecord]:
        """Record and remove the maintenance properties of every root.

        Roots that no longer exist, or whose properties cannot be read as
        a flag and a counter, are skipped and left untouched.  Other store
        errors propagate.
        """
        if self._records is not None:
            raise HookStateError("Maintenance properties were already recorded")
        records: dict[str, ReindexRecord] = {}
        for root in sorted(roots):
            try:
                records[root] = self._strip(root)
            except NodeNotFoundError:
                logger.warning("Index definition %s does not exist, not recording it", root)
            except ValueError as exc:
                logger.warning("Ignoring index definition %s: %s", root, exc)
        self._records = records
        return self.records

    def _strip(self, root: str) -> ReindexRecord:
        flag = self._store.get_property(root, self._reindex_property)
        count = self._store.get_property(root, self._count_property)
        record = ReindexRecord(
            reindex=False if flag is None else _as_bool(flag),
            reindex_count=None if count is None else _as_int(count),
        )
        if flag is not None:
            self._store.remove_property(root, self._reindex_property)
        if count is not None:
            self._store.remove_property(root, self._count_property)
        logger.debug(
            "Recorded %s: %s=%s %s=%s",
            root,
            self._reindex_property,
            record.reindex,
            self._count_property,
            record.reindex_count,
        )
        return record

    def restore(
        self,
        records: Mapping[str, ReindexRecord],
        changed: Iterable[str],
    ) -> RestoreResult:
        """Write the recorded properties back and commit once.

        Definitions in *changed* get ``reindex=true``.  A failure on one
        definition is logged and skipped; a failing commit propagates.
        """
        if self._restored:
            raise HookStateError("Maintenance properties were already restored")
        self._restored = True
        changed_roots = frozenset(changed)
        result = RestoreResult()
        for root in sorted(records):
            record = records[root]
            if root in changed_roots:
                record.reindex = True
            try:
                self._write(root, record)
            except StoreError as exc:
                logger.warning("Could not restore index properties on %s: %s", root, exc)
                result.skipped.append(root)
                result.warnings.append(f"{root}: {exc}")
                continue
            if root in changed_roots:
                logger.info("Marked index at %s for reindexing", root)
                result.reindexed.append(root)
            else:
                logger.info("Restored unchanged index properties for %s", root)
                result.restored.append(root)
        self._store.commit()
        self._records = {}
        return result

    def _write(self, root: str, record: ReindexRecord) -> None:
        self._store.set_property(root, self._reindex_property, record.reindex)
        if record.reindex_count is not None:
            self._store.set_property(root, self._count_property, record.reindex_count)
