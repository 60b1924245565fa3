"""Tests for oakreindex.hook — phase handling of the reindex install hook."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import pytest

from oakreindex.config import HookConfig
from oakreindex.detection.multiplexer import CompoundListener
from oakreindex.errors import HookError, HookStateError, NodeNotFoundError, StoreError
from oakreindex.hook import (
    HookProcessor,
    HookState,
    ImportOptions,
    InstallPhase,
    OakReindexInstallHook,
)


class MemoryStore:
    """Dict-backed property store that counts commits."""

    def __init__(self, nodes: dict[str, dict[str, object]] | None = None) -> None:
        self.nodes: dict[str, dict[str, object]] = {
            path: dict(props) for path, props in (nodes or {}).items()
        }
        self.commits = 0
        self.fail_on: set[str] = set()

    def _node(self, path: str) -> dict[str, object]:
        if path in self.fail_on:
            raise StoreError(f"simulated failure on {path}")
        if path not in self.nodes:
            raise NodeNotFoundError(path)
        return self.nodes[path]

    def get_property(self, path: str, name: str) -> object | None:
        return self._node(path).get(name)

    def set_property(self, path: str, name: str, value: object) -> None:
        self._node(path)[name] = value

    def remove_property(self, path: str, name: str) -> None:
        self._node(path).pop(name, None)

    def commit(self) -> None:
        self.commits += 1


@pytest.fixture()
def memory_store() -> MemoryStore:
    return MemoryStore(
        {
            "/oak:index/jcrMimeType": {
                "type": "property",
                "reindex": False,
                "reindexCount": 1,
            },
            "/oak:index/ntFile": {"type": "lucene"},
        }
    )


class RecordingListener:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []
        self.errors: list[tuple[str, Exception]] = []

    def on_message(self, action: str, path: str) -> None:
        self.messages.append((action, path))

    def on_error(self, path: str, error: Exception) -> None:
        self.errors.append((path, error))


class ListCoverage:
    """Coverage source replaying a fixed list of (action, path) reports."""

    def __init__(self, reports: list[tuple[str, str]]) -> None:
        self.reports = reports
        self.calls: list[str] = []

    def for_each_covered_path(self, root: str, visitor: Callable[[str, str], None]) -> None:
        self.calls.append(root)
        for action, path in self.reports:
            visitor(action, path)


@dataclass
class FakeContext:
    phase: InstallPhase
    session: MemoryStore
    coverage: ListCoverage
    options: ImportOptions


def _context(store: MemoryStore, reports: list[tuple[str, str]] | None = None) -> FakeContext:
    coverage = ListCoverage(reports if reports is not None else [("A", p) for p in store.nodes])
    return FakeContext(InstallPhase.PREPARE, store, coverage, ImportOptions())


def _run(hook: OakReindexInstallHook, ctx: FakeContext, phase: InstallPhase) -> None:
    ctx.phase = phase
    hook.execute(ctx)


class TestPrepare:
    def test_strips_and_registers_tracker(self, memory_store: MemoryStore) -> None:
        existing = RecordingListener()
        ctx = _context(memory_store)
        ctx.options.listener = existing
        hook = OakReindexInstallHook()

        hook.execute(ctx)

        assert hook.state is HookState.PREPARED
        assert "reindexCount" not in memory_store.nodes["/oak:index/jcrMimeType"]
        listener = ctx.options.listener
        assert isinstance(listener, CompoundListener)
        assert listener.listeners == (existing, hook.tracker)

    def test_registers_without_existing_listener(self, memory_store: MemoryStore) -> None:
        ctx = _context(memory_store)
        hook = OakReindexInstallHook()
        hook.execute(ctx)
        assert isinstance(ctx.options.listener, CompoundListener)
        assert ctx.options.listener.listeners == (hook.tracker,)

    def test_existing_compound_is_flattened(self, memory_store: MemoryStore) -> None:
        first, second = RecordingListener(), RecordingListener()
        ctx = _context(memory_store)
        ctx.options.listener = CompoundListener((first, second))
        hook = OakReindexInstallHook()
        hook.execute(ctx)
        listener = ctx.options.listener
        assert isinstance(listener, CompoundListener)
        assert listener.listeners == (first, second, hook.tracker)

    def test_store_failure_is_fatal(self, memory_store: MemoryStore) -> None:
        memory_store.fail_on.add("/oak:index/ntFile")
        ctx = _context(memory_store)
        hook = OakReindexInstallHook()

        with pytest.raises(HookError) as exc_info:
            hook.execute(ctx)

        assert isinstance(exc_info.value.__cause__, StoreError)
        assert hook.state is HookState.IDLE
        assert ctx.options.listener is None

    def test_prepare_twice_rejected(self, memory_store: MemoryStore) -> None:
        ctx = _context(memory_store)
        hook = OakReindexInstallHook()
        hook.execute(ctx)
        with pytest.raises(HookStateError):
            hook.execute(ctx)

    def test_uses_configured_coverage_root(self, memory_store: MemoryStore) -> None:
        ctx = _context(memory_store)
        OakReindexInstallHook(HookConfig(coverage_root="/oak:index")).execute(ctx)
        assert ctx.coverage.calls == ["/oak:index"]


class TestTracking:
    def test_state_becomes_tracking_after_first_event(self, memory_store: MemoryStore) -> None:
        ctx = _context(memory_store)
        hook = OakReindexInstallHook()
        hook.execute(ctx)
        assert ctx.options.listener is not None
        ctx.options.listener.on_message("-", "/content")
        assert hook.state is HookState.TRACKING

    def test_existing_listener_still_receives_events(self, memory_store: MemoryStore) -> None:
        existing = RecordingListener()
        ctx = _context(memory_store)
        ctx.options.listener = existing
        hook = OakReindexInstallHook()
        hook.execute(ctx)

        assert ctx.options.listener is not None
        ctx.options.listener.on_message("U", "/oak:index/ntFile/rules")
        ctx.options.listener.on_error("/content/x", RuntimeError("bad"))

        assert existing.messages == [("U", "/oak:index/ntFile/rules")]
        assert len(existing.errors) == 1
        assert hook.tracker.changed == frozenset({"/oak:index/ntFile"})


class TestRestore:
    def test_changed_definition_marked(self, memory_store: MemoryStore) -> None:
        ctx = _context(memory_store)
        hook = OakReindexInstallHook()
        hook.execute(ctx)
        assert ctx.options.listener is not None
        ctx.options.listener.on_message("U", "/oak:index/jcrMimeType/someChild")
        _run(hook, ctx, InstallPhase.INSTALLED)

        assert memory_store.nodes["/oak:index/jcrMimeType"]["reindex"] is True
        assert memory_store.nodes["/oak:index/jcrMimeType"]["reindexCount"] == 1
        assert memory_store.nodes["/oak:index/ntFile"]["reindex"] is False
        assert hook.state is HookState.RESTORED
        assert hook.last_result is not None
        assert hook.last_result.reindexed == ["/oak:index/jcrMimeType"]

    def test_restores_exactly_once(self, memory_store: MemoryStore) -> None:
        ctx = _context(memory_store)
        hook = OakReindexInstallHook()
        hook.execute(ctx)
        _run(hook, ctx, InstallPhase.INSTALLED)
        _run(hook, ctx, InstallPhase.END)
        assert memory_store.commits == 1

    def test_end_alone_restores(self, memory_store: MemoryStore) -> None:
        ctx = _context(memory_store)
        hook = OakReindexInstallHook()
        hook.execute(ctx)
        _run(hook, ctx, InstallPhase.END)
        assert hook.state is HookState.RESTORED
        assert memory_store.nodes["/oak:index/jcrMimeType"]["reindexCount"] == 1

    def test_restore_before_prepare_rejected(self, memory_store: MemoryStore) -> None:
        ctx = _context(memory_store)
        hook = OakReindexInstallHook()
        with pytest.raises(HookStateError):
            _run(hook, ctx, InstallPhase.INSTALLED)

    def test_commit_failure_surfaced(self, memory_store: MemoryStore) -> None:
        def fail() -> None:
            raise StoreError("locked")

        ctx = _context(memory_store)
        hook = OakReindexInstallHook()
        hook.execute(ctx)
        memory_store.commit = fail  # type: ignore[method-assign]

        with pytest.raises(HookError, match="locked"):
            _run(hook, ctx, InstallPhase.INSTALLED)
        assert hook.state is HookState.RESTORED
        _run(hook, ctx, InstallPhase.END)  # no second attempt

    def test_deleted_definition_does_not_abort(self, memory_store: MemoryStore) -> None:
        ctx = _context(memory_store)
        hook = OakReindexInstallHook()
        hook.execute(ctx)
        assert ctx.options.listener is not None
        ctx.options.listener.on_message("D", "/oak:index/ntFile")
        del memory_store.nodes["/oak:index/ntFile"]

        _run(hook, ctx, InstallPhase.INSTALLED)

        assert hook.last_result is not None
        assert hook.last_result.skipped == ["/oak:index/ntFile"]
        assert memory_store.nodes["/oak:index/jcrMimeType"]["reindex"] is False


class TestAbort:
    @pytest.mark.parametrize("phase", [InstallPhase.PREPARE_FAILED, InstallPhase.INSTALL_FAILED])
    def test_failure_discards_state(self, memory_store: MemoryStore, phase: InstallPhase) -> None:
        ctx = _context(memory_store)
        hook = OakReindexInstallHook()
        hook.execute(ctx)
        _run(hook, ctx, phase)
        _run(hook, ctx, InstallPhase.END)

        assert hook.state is HookState.ABORTED
        assert memory_store.commits == 0
        assert hook.last_result is None


class _RaisingHook:
    def __init__(self, error: Exception) -> None:
        self.error = error

    def execute(self, context: FakeContext) -> None:
        raise self.error


class _CountingHook:
    def __init__(self) -> None:
        self.phases: list[InstallPhase] = []

    def execute(self, context: FakeContext) -> None:
        self.phases.append(context.phase)


class TestHookProcessor:
    def test_prepare_failure_vetoes(
        self, memory_store: MemoryStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        after = _CountingHook()
        processor = HookProcessor([_RaisingHook(HookError("nope")), after])
        with caplog.at_level(logging.WARNING, logger="oakreindex.hook"):
            assert processor.execute(_context(memory_store)) is False
        assert after.phases == []
        assert "prepare aborted" in caplog.text

    def test_later_phase_failure_ignored(self, memory_store: MemoryStore) -> None:
        after = _CountingHook()
        processor = HookProcessor([_RaisingHook(HookError("nope")), after])
        ctx = _context(memory_store)
        ctx.phase = InstallPhase.INSTALLED
        assert processor.execute(ctx) is True
        assert after.phases == [InstallPhase.INSTALLED]

    def test_unexpected_error_in_prepare_vetoes(
        self, memory_store: MemoryStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        after = _CountingHook()
        processor = HookProcessor([_RaisingHook(RuntimeError("bug")), after])
        with caplog.at_level(logging.ERROR, logger="oakreindex.hook"):
            assert processor.execute(_context(memory_store)) is False
        assert after.phases == []
        assert "unexpected error" in caplog.text

    def test_unexpected_error_in_later_phase_logged(
        self, memory_store: MemoryStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        processor = HookProcessor([_RaisingHook(RuntimeError("bug"))])
        ctx = _context(memory_store)
        ctx.phase = InstallPhase.END
        with caplog.at_level(logging.ERROR, logger="oakreindex.hook"):
            assert processor.execute(ctx) is True
        assert "unexpected error" in caplog.text

    def test_has_hooks(self) -> None:
        processor = HookProcessor()
        assert processor.has_hooks is False
        processor.add_hook(_CountingHook())
        assert processor.has_hooks is True
