"""Fan installer progress messages out to several listeners."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from oakreindex.detection.interfaces import ProgressListener

logger = logging.getLogger(__name__)


class CompoundListener:
    """Delegates every message to its listeners, in registration order.

    Instances are built with :func:`compose`, which flattens nested
    compound listeners so delivery never recurses.  A listener that raises
    is logged and skipped; the remaining listeners still receive the message.
    """

    def __init__(self, listeners: tuple[ProgressListener, ...]) -> None:
        self._listeners = listeners

    @property
    def listeners(self) -> tuple[ProgressListener, ...]:
        return self._listeners

    def __len__(self) -> int:
        return len(self._listeners)

    def __iter__(self) -> Iterator[ProgressListener]:
        return iter(self._listeners)

    def on_message(self, action: str, path: str) -> None:
        for listener in self._listeners:
            try:
                listener.on_message(action, path)
            except Exception:
                logger.exception("Listener %r failed on %s %s", listener, action, path)

    def on_error(self, path: str, error: Exception) -> None:
        for listener in self._listeners:
            try:
                listener.on_error(path, error)
            except Exception:
                logger.exception("Listener %r failed on error for %s", listener, path)

    def __repr__(self) -> str:
        return f"CompoundListener({list(self._listeners)!r})"


def compose(*listeners: ProgressListener | None) -> CompoundListener:
    """Combine *listeners* into one flat :class:`CompoundListener`.

    ``None`` entries are skipped; compound entries contribute their leaves.
    """
    flat: list[ProgressListener] = []
    for listener in listeners:
        if listener is None:
            continue
        if isinstance(listener, CompoundListener):
            flat.extend(listener.listeners)
        else:
            flat.append(listener)
    return CompoundListener(tuple(flat))


class LoggingListener:
    """Logs every progress message; the installer's default listener."""

    def __init__(self, name: str = "oakreindex.install") -> None:
        self._log = logging.getLogger(name)

    def on_message(self, action: str, path: str) -> None:
        self._log.info("%s %s", action, path)

    def on_error(self, path: str, error: Exception) -> None:
        self._log.warning("E %s %s", path, error)
