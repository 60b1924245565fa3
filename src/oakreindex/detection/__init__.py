"""Detection domain: classify paths, track changes, reconcile maintenance properties."""

from oakreindex.detection.classifier import (
    DEFAULT_INDEX_ROOT_MARKER,
    classify,
    is_definition_root,
)
from oakreindex.detection.discovery import DefinitionCollector, discover
from oakreindex.detection.interfaces import (
    ACTION_ADDED,
    ACTION_DELETED,
    ACTION_UNCHANGED,
    ACTION_UPDATED,
    CoverageSource,
    ProgressEvent,
    ProgressListener,
    PropertyStore,
)
from oakreindex.detection.multiplexer import CompoundListener, LoggingListener, compose
from oakreindex.detection.snapshot import (
    PN_REINDEX,
    PN_REINDEX_COUNT,
    PropertySnapshotStore,
    ReindexRecord,
    RestoreResult,
)
from oakreindex.detection.tracker import DEFAULT_CHANGE_ACTIONS, ChangeTracker

__all__ = [
    "ACTION_ADDED",
    "ACTION_DELETED",
    "ACTION_UNCHANGED",
    "ACTION_UPDATED",
    "DEFAULT_CHANGE_ACTIONS",
    "DEFAULT_INDEX_ROOT_MARKER",
    "PN_REINDEX",
    "PN_REINDEX_COUNT",
    "ChangeTracker",
    "CompoundListener",
    "CoverageSource",
    "DefinitionCollector",
    "LoggingListener",
    "ProgressEvent",
    "ProgressListener",
    "PropertySnapshotStore",
    "PropertyStore",
    "ReindexRecord",
    "RestoreResult",
    "classify",
    "compose",
    "discover",
    "is_definition_root",
]
