"""Install hook that marks modified Oak index definitions for reindexing.

The hook finds the index definitions covered by a package in the PREPARE
phase and transiently removes their ``reindex`` and ``reindexCount``
properties, so the import does not report them as changed just because
the package lacks those properties.  It then listens to the import and
records every definition that was added to, updated or deleted from.
Finally the recorded properties are written back, with ``reindex=true``
for the modified definitions.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from oakreindex.config import HookConfig
from oakreindex.detection.discovery import discover
from oakreindex.detection.multiplexer import compose
from oakreindex.detection.snapshot import PropertySnapshotStore
from oakreindex.detection.tracker import ChangeTracker
from oakreindex.errors import HookError, HookStateError, StoreError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from oakreindex.detection.interfaces import CoverageSource, ProgressListener, PropertyStore
    from oakreindex.detection.snapshot import RestoreResult

logger = logging.getLogger(__name__)


class InstallPhase(enum.Enum):
    """Lifecycle phases an installer signals to its hooks."""

    PREPARE = "prepare"
    PREPARE_FAILED = "prepare_failed"
    INSTALLED = "installed"
    INSTALL_FAILED = "install_failed"
    END = "end"


class HookState(enum.Enum):
    IDLE = "idle"
    PREPARED = "prepared"
    TRACKING = "tracking"
    RESTORED = "restored"
    ABORTED = "aborted"


@dataclass
class ImportOptions:
    """Mutable options of one import; hooks may replace the listener."""

    listener: ProgressListener | None = None


class InstallContext(Protocol):
    """What a hook sees of the running installation."""

    @property
    def phase(self) -> InstallPhase: ...

    @property
    def session(self) -> PropertyStore: ...

    @property
    def coverage(self) -> CoverageSource: ...

    @property
    def options(self) -> ImportOptions: ...


class InstallHook(Protocol):
    def execute(self, context: InstallContext) -> None: ...


class OakReindexInstallHook:
    """Phase-driven controller for one installation.

    Instances are single-use: a new installation needs a new hook.
    """

    def __init__(self, config: HookConfig | None = None) -> None:
        self._config = config or HookConfig()
        self._state = HookState.IDLE
        self._tracker = ChangeTracker(
            self._config.change_actions, marker=self._config.index_root_marker
        )
        self._snapshots: PropertySnapshotStore | None = None
        self.last_result: RestoreResult | None = None

    @property
    def state(self) -> HookState:
        if self._state is HookState.PREPARED and self._tracker.events_seen:
            return HookState.TRACKING
        return self._state

    @property
    def tracker(self) -> ChangeTracker:
        return self._tracker

    def execute(self, context: InstallContext) -> None:
        phase = context.phase
        if phase is InstallPhase.PREPARE:
            self._prepare(context)
        elif phase in (InstallPhase.INSTALLED, InstallPhase.END):
            self._restore()
        elif phase in (InstallPhase.PREPARE_FAILED, InstallPhase.INSTALL_FAILED):
            self._abort(phase)

    def _prepare(self, context: InstallContext) -> None:
        if self._state is not HookState.IDLE:
            raise HookStateError(f"PREPARE received in state {self._state.value}")
        cfg = self._config
        snapshots = PropertySnapshotStore(
            context.session,
            reindex_property=cfg.reindex_property,
            reindex_count_property=cfg.reindex_count_property,
        )
        try:
            roots = discover(
                context.coverage,
                cfg.discovery_actions,
                root=cfg.coverage_root,
                marker=cfg.index_root_marker,
            )
            snapshots.snapshot_and_strip(roots)
        except StoreError as exc:
            raise HookError(f"Could not record index definitions: {exc}") from exc
        self._snapshots = snapshots

        options = context.options
        options.listener = compose(options.listener, self._tracker)
        self._state = HookState.PREPARED
        logger.info("Tracking changes to %d index definition(s)", len(snapshots.records))

    def _restore(self) -> None:
        if self._state in (HookState.RESTORED, HookState.ABORTED):
            return
        if self._state is HookState.IDLE or self._snapshots is None:
            raise HookStateError("Restore requested before PREPARE")
        snapshots = self._snapshots
        try:
            self.last_result = snapshots.restore(snapshots.records, self._tracker.changed)
        except StoreError as exc:
            raise HookError(f"Could not save index properties: {exc}") from exc
        finally:
            self._state = HookState.RESTORED
            self._snapshots = None

    def _abort(self, phase: InstallPhase) -> None:
        if self._state is HookState.RESTORED:
            return
        logger.info("Installation failed (%s), discarding recorded index properties", phase.value)
        self._state = HookState.ABORTED
        self._snapshots = None


class HookProcessor:
    """Runs install hooks for each phase.

    Any failure during PREPARE vetoes the installation; in later phases it
    is only logged.
    """

    def __init__(self, hooks: Iterable[InstallHook] = ()) -> None:
        self._hooks = list(hooks)

    def add_hook(self, hook: InstallHook) -> None:
        self._hooks.append(hook)

    @property
    def has_hooks(self) -> bool:
        return bool(self._hooks)

    def execute(self, context: InstallContext) -> bool:
        """Run every hook for ``context.phase``; return False to abort."""
        for hook in self._hooks:
            try:
                hook.execute(context)
            except HookError as exc:
                if context.phase is InstallPhase.PREPARE:
                    logger.warning("Hook %r failed, prepare aborted: %s", hook, exc)
                    return False
                logger.warning("Hook %r failed in %s, ignored: %s", hook, context.phase.value, exc)
            except Exception:
                logger.exception("Hook %r raised an unexpected error", hook)
                if context.phase is InstallPhase.PREPARE:
                    return False
        return True
