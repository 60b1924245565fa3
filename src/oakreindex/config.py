"""Hook configuration: defaults and ``config.yml`` loading."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING

import yaml

from oakreindex.detection.classifier import DEFAULT_INDEX_ROOT_MARKER
from oakreindex.detection.interfaces import ACTION_ADDED
from oakreindex.detection.snapshot import PN_REINDEX, PN_REINDEX_COUNT
from oakreindex.detection.tracker import DEFAULT_CHANGE_ACTIONS
from oakreindex.errors import ConfigError

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_SECTION = "reindex_hook"


@dataclass(frozen=True)
class HookConfig:
    """Names and action codes the reindex hook works with."""

    index_root_marker: str = DEFAULT_INDEX_ROOT_MARKER
    reindex_property: str = PN_REINDEX
    reindex_count_property: str = PN_REINDEX_COUNT
    change_actions: tuple[str, ...] = DEFAULT_CHANGE_ACTIONS
    discovery_actions: tuple[str, ...] = (ACTION_ADDED,)
    coverage_root: str = "/"


_STR_KEYS = frozenset(
    {"index_root_marker", "reindex_property", "reindex_count_property", "coverage_root"}
)
_ACTION_KEYS = frozenset({"change_actions", "discovery_actions"})


def config_from_dict(data: dict[str, object]) -> HookConfig:
    """Build a :class:`HookConfig` from the ``reindex_hook`` mapping.

    Unknown keys are logged and ignored; values of the wrong type raise
    :class:`ConfigError`.
    """
    known = {f.name for f in fields(HookConfig)}
    kwargs: dict[str, object] = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("Unknown %s key %r ignored", CONFIG_SECTION, key)
            continue
        if key in _STR_KEYS:
            if not isinstance(value, str) or not value:
                raise ConfigError(f"{CONFIG_SECTION}.{key} must be a non-empty string")
            kwargs[key] = value
        elif key in _ACTION_KEYS:
            if not isinstance(value, list) or not all(
                isinstance(v, str) and v for v in value
            ):
                raise ConfigError(f"{CONFIG_SECTION}.{key} must be a list of action codes")
            kwargs[key] = tuple(value)

    marker = kwargs.get("index_root_marker")
    if isinstance(marker, str) and "/" in marker:
        raise ConfigError(f"{CONFIG_SECTION}.index_root_marker must be a single path segment")
    root = kwargs.get("coverage_root")
    if isinstance(root, str) and not root.startswith("/"):
        raise ConfigError(f"{CONFIG_SECTION}.coverage_root must be an absolute path")
    return HookConfig(**kwargs)  # type: ignore[arg-type]


def load_config(config_path: Path) -> HookConfig:
    """Load hook settings from a YAML file.

    A missing file, or a file without a ``reindex_hook`` section, yields
    the defaults.
    """
    if not config_path.is_file():
        return HookConfig()

    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse {config_path}: {exc}") from exc

    if data is None:
        return HookConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    section = data.get(CONFIG_SECTION)
    if section is None:
        return HookConfig()
    if not isinstance(section, dict):
        raise ConfigError(f"{CONFIG_SECTION} in {config_path} must be a mapping")
    return config_from_dict(section)
