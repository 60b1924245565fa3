"""Content packages: YAML loading, coverage, and replace-mode installation.

A package declares filter roots and the nodes it brings below them::

    name: jcr-mime-type-index
    filters:
      - root: /oak:index/jcrMimeType
    nodes:
      /oak:index/jcrMimeType:
        type: property
        propertyNames: [jcr:mimeType]

Installing replaces everything below each filter root with the package's
content and reports one progress message per node: ``A`` added, ``U``
properties changed, ``-`` unchanged, ``D`` removed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

import yaml

from oakreindex.detection.interfaces import (
    ACTION_ADDED,
    ACTION_DELETED,
    ACTION_UNCHANGED,
    ACTION_UPDATED,
    ProgressEvent,
)
from oakreindex.detection.multiplexer import LoggingListener, compose
from oakreindex.errors import PackageError, StoreError
from oakreindex.hook import HookProcessor, ImportOptions, InstallPhase
from oakreindex.infrastructure.db import ROOT_PATH, normalize_path, parent_path

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

    from oakreindex.detection.interfaces import ProgressListener
    from oakreindex.hook import InstallHook
    from oakreindex.infrastructure.db import Session

logger = logging.getLogger(__name__)

_SCALAR_TYPES = (str, int, float, bool)


def _is_under(path: str, root: str) -> bool:
    """Check if *path* is *root* or one of its descendants."""
    if root == ROOT_PATH:
        return True
    return path == root or path.startswith(root + "/")


@dataclass(frozen=True)
class ContentPackage:
    """A parsed content package."""

    name: str
    filters: tuple[str, ...]
    nodes: dict[str, dict[str, object]] = field(default_factory=dict)

    def nodes_under(self, root: str) -> list[str]:
        return sorted(p for p in self.nodes if _is_under(p, root))


def _valid_value(value: object) -> bool:
    if isinstance(value, _SCALAR_TYPES):
        return True
    if isinstance(value, list):
        return all(isinstance(v, _SCALAR_TYPES) for v in value)
    return False


def parse_package(data: object, *, default_name: str = "package") -> ContentPackage:
    """Validate a loaded YAML document and build a :class:`ContentPackage`."""
    if not isinstance(data, dict):
        raise PackageError("Package must be a mapping")

    name = data.get("name", default_name)
    if not isinstance(name, str) or not name:
        raise PackageError("Package name must be a non-empty string")

    filters: list[str] = []
    for entry in data.get("filters") or []:
        root = entry.get("root") if isinstance(entry, dict) else entry
        if not isinstance(root, str):
            raise PackageError(f"Invalid filter entry: {entry!r}")
        try:
            filters.append(normalize_path(root))
        except StoreError as exc:
            raise PackageError(f"Invalid filter root {root!r}") from exc
    if not filters:
        raise PackageError(f"Package {name} declares no filters")

    raw_nodes = data.get("nodes") or {}
    if not isinstance(raw_nodes, dict):
        raise PackageError("'nodes' must be a mapping of path to properties")

    nodes: dict[str, dict[str, object]] = {}
    for raw_path, props in raw_nodes.items():
        try:
            path = normalize_path(str(raw_path))
        except StoreError as exc:
            raise PackageError(f"Invalid node path {raw_path!r}") from exc
        props = props or {}
        if not isinstance(props, dict):
            raise PackageError(f"Properties of {path} must be a mapping")
        for prop_name, value in props.items():
            if not _valid_value(value):
                raise PackageError(f"Unsupported value for {path}/{prop_name}: {value!r}")
        if not any(_is_under(path, f) for f in filters):
            raise PackageError(f"Node {path} is not covered by any filter")
        nodes[path] = {str(k): v for k, v in props.items()}

    # Every node below a filter root needs its parent in the package too.
    for path in nodes:
        if path in filters:
            continue
        parent = parent_path(path)
        if parent is not None and parent not in nodes:
            raise PackageError(f"Parent of {path} is missing from the package")

    return ContentPackage(name=name, filters=tuple(filters), nodes=nodes)


def load_package(package_path: Path) -> ContentPackage:
    """Load a content package from a YAML file."""
    try:
        with package_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise PackageError(f"Cannot read {package_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise PackageError(f"Cannot parse {package_path}: {exc}") from exc
    return parse_package(data, default_name=package_path.stem)


class PackageCoverage:
    """Reports the existing repository nodes a package's filters cover."""

    def __init__(self, session: Session, package: ContentPackage) -> None:
        self._session = session
        self._package = package

    def for_each_covered_path(self, root: str, visitor: Callable[[str, str], None]) -> None:
        scope = normalize_path(root)
        covered: set[str] = set()
        for filter_root in self._package.filters:
            if _is_under(filter_root, scope):
                start = filter_root
            elif _is_under(scope, filter_root):
                start = scope
            else:
                continue
            if self._session.node_exists(start):
                covered.update(self._session.list_nodes(start))
        for path in sorted(covered):
            visitor(ACTION_ADDED, path)


@dataclass(frozen=True)
class InstallationContext:
    """The context handed to hooks for one phase."""

    phase: InstallPhase
    session: Session
    coverage: PackageCoverage
    options: ImportOptions


@dataclass
class InstallResult:
    """Outcome of installing one package."""

    package: str
    success: bool = False
    events: list[ProgressEvent] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class _EventRecorder:
    def __init__(self, result: InstallResult) -> None:
        self._result = result

    def on_message(self, action: str, path: str) -> None:
        self._result.events.append(ProgressEvent(action, path))

    def on_error(self, path: str, error: Exception) -> None:
        self._result.errors.append(f"{path}: {error}")


class PackageInstaller:
    """Installs content packages into a repository session, running hooks."""

    def __init__(
        self,
        session: Session,
        hooks: Iterable[InstallHook] = (),
        *,
        listener: ProgressListener | None = None,
    ) -> None:
        self._session = session
        self._processor = HookProcessor(hooks)
        self._listener = listener

    def install(self, package: ContentPackage) -> InstallResult:
        """Install *package*; pending changes are rolled back on failure."""
        result = InstallResult(package=package.name)
        options = ImportOptions(listener=self._listener or LoggingListener())
        ctx = InstallationContext(
            phase=InstallPhase.PREPARE,
            session=self._session,
            coverage=PackageCoverage(self._session, package),
            options=options,
        )

        if not self._processor.execute(ctx):
            logger.warning("Installation of %s aborted in prepare phase", package.name)
            self._processor.execute(replace(ctx, phase=InstallPhase.PREPARE_FAILED))
            self._session.rollback()
            result.errors.append("prepare phase aborted by install hook")
            return result

        listener = compose(options.listener, _EventRecorder(result))
        try:
            self._import(package, listener)
        except StoreError as exc:
            logger.warning("Installation of %s failed: %s", package.name, exc)
            result.errors.append(str(exc))
            self._processor.execute(replace(ctx, phase=InstallPhase.INSTALL_FAILED))
            self._session.rollback()
            self._processor.execute(replace(ctx, phase=InstallPhase.END))
            return result

        self._processor.execute(replace(ctx, phase=InstallPhase.INSTALLED))
        try:
            if self._session.has_pending_changes:
                self._session.commit()
        except StoreError as exc:
            logger.warning("Could not save %s, rolling back: %s", package.name, exc)
            result.errors.append(str(exc))
            self._session.rollback()
            self._processor.execute(replace(ctx, phase=InstallPhase.END))
            return result
        self._processor.execute(replace(ctx, phase=InstallPhase.END))
        result.success = True
        logger.info("Installed %s (%d node events)", package.name, len(result.events))
        return result

    def _import(self, package: ContentPackage, listener: ProgressListener) -> None:
        session = self._session
        for filter_root in package.filters:
            declared = package.nodes_under(filter_root)
            for path in declared:
                props = package.nodes[path]
                try:
                    if session.add_node(path):
                        session.set_properties(path, props)
                        listener.on_message(ACTION_ADDED, path)
                    elif session.get_properties(path) != props:
                        session.set_properties(path, props)
                        listener.on_message(ACTION_UPDATED, path)
                    else:
                        listener.on_message(ACTION_UNCHANGED, path)
                except StoreError as exc:
                    listener.on_error(path, exc)

            if not session.node_exists(filter_root):
                continue
            keep = set(declared)
            for path in reversed(session.list_nodes(filter_root)):
                if path in keep or path == ROOT_PATH or not session.node_exists(path):
                    continue
                session.remove_node(path)
                listener.on_message(ACTION_DELETED, path)
