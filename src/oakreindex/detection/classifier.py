"""Map repository paths to the index definition that owns them."""

from __future__ import annotations

DEFAULT_INDEX_ROOT_MARKER = "oak:index"


def classify(path: str, marker: str = DEFAULT_INDEX_ROOT_MARKER) -> str | None:
    """Return the definition root owning *path*, or ``None``.

    A definition root is the direct child of the first path segment named
    *marker*::

        /oak:index/foo/bar      -> /oak:index/foo
        /oak:index/foo          -> /oak:index/foo
        /oak:index              -> None
        /content/oak:index/foo  -> /content/oak:index/foo
        /oak:index/a/oak:index/b -> /oak:index/a

    Matching is per segment, so ``/oak:indexes/foo`` is not classified.
    Relative paths are never classified.
    """
    if not path.startswith("/"):
        return None
    segments = [s for s in path.split("/") if s]
    try:
        pos = segments.index(marker)
    except ValueError:
        return None
    if pos + 1 >= len(segments):
        # Mutation on the container itself.
        return None
    return "/" + "/".join(segments[: pos + 2])


def is_definition_root(path: str, marker: str = DEFAULT_INDEX_ROOT_MARKER) -> bool:
    """Return True if *path* is itself a definition root."""
    root = classify(path, marker)
    return root is not None and root == path.rstrip("/")
