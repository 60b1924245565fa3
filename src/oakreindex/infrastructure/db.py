"""SQLite content repository: a node tree with JSON-valued properties."""

from __future__ import annotations

import json
import sqlite3
from typing import TYPE_CHECKING, Any

from oakreindex.errors import NodeNotFoundError, StoreError

if TYPE_CHECKING:
    from pathlib import Path

# Schema version — increment on breaking changes
SCHEMA_VERSION = "1"

ROOT_PATH = "/"

_SCHEMA_SQL = """\
-- Repository nodes
CREATE TABLE IF NOT EXISTS nodes (
    path   TEXT PRIMARY KEY,
    parent TEXT REFERENCES nodes(path) ON DELETE CASCADE
);

-- Node properties (JSON encoded values)
CREATE TABLE IF NOT EXISTS properties (
    path  TEXT NOT NULL REFERENCES nodes(path) ON DELETE CASCADE,
    name  TEXT NOT NULL,
    value TEXT NOT NULL,
    PRIMARY KEY (path, name)
);

-- Repository metadata
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_nodes_parent ON nodes(parent);

INSERT OR IGNORE INTO nodes (path, parent) VALUES ('/', NULL);
"""


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) a repository database with proper PRAGMAs.

    Sets WAL journal mode (persistent per-file) and enables foreign keys
    (per-connection, required on every open).

    Returns a connection with ``sqlite3.Row`` row factory.
    """
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and the root node if they don't exist.

    Safe to call multiple times (uses IF NOT EXISTS).
    """
    conn.executescript(_SCHEMA_SQL)
    conn.execute(
        "INSERT OR IGNORE INTO meta (key, value) VALUES ('schema_version', ?)",
        (SCHEMA_VERSION,),
    )
    conn.commit()


def normalize_path(path: str) -> str:
    """Return *path* without empty segments; raise StoreError if relative."""
    if not path.startswith("/"):
        raise StoreError(f"Not an absolute path: {path!r}")
    segments = [s for s in path.split("/") if s]
    return "/" + "/".join(segments)


def parent_path(path: str) -> str | None:
    """Return the parent of a normalized path, ``None`` for the root."""
    if path == ROOT_PATH:
        return None
    head = path.rsplit("/", 1)[0]
    return head or ROOT_PATH


class Session:
    """Transactional view of the repository.

    Writes stay pending until :meth:`commit`; :meth:`rollback` discards
    them.  Every database failure is raised as :class:`StoreError`.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @classmethod
    def open(cls, db_path: Path) -> Session:
        conn = open_db(db_path)
        create_schema(conn)
        return cls(conn)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    # -- nodes ---------------------------------------------------------------

    def node_exists(self, path: str) -> bool:
        row = self._execute(
            "SELECT 1 FROM nodes WHERE path = ?", (normalize_path(path),)
        ).fetchone()
        return row is not None

    def _require(self, path: str) -> str:
        norm = normalize_path(path)
        if not self.node_exists(norm):
            raise NodeNotFoundError(norm)
        return norm

    def add_node(self, path: str) -> bool:
        """Create the node at *path* and any missing ancestors.

        Returns True if the node itself was created.
        """
        norm = normalize_path(path)
        if self.node_exists(norm):
            return False
        parent = parent_path(norm)
        if parent is not None:
            self.add_node(parent)
        self._execute("INSERT INTO nodes (path, parent) VALUES (?, ?)", (norm, parent))
        return True

    def remove_node(self, path: str) -> None:
        """Remove the node at *path* with its subtree and properties."""
        norm = self._require(path)
        if norm == ROOT_PATH:
            raise StoreError("The root node cannot be removed")
        self._execute(
            "DELETE FROM nodes WHERE path = ? OR substr(path, 1, ?) = ?",
            (norm, len(norm) + 1, norm + "/"),
        )

    def list_nodes(self, root: str = ROOT_PATH) -> list[str]:
        """Return *root* and every node below it, parents before children."""
        norm = normalize_path(root)
        if norm == ROOT_PATH:
            rows = self._execute("SELECT path FROM nodes ORDER BY path").fetchall()
        else:
            rows = self._execute(
                "SELECT path FROM nodes WHERE path = ? OR substr(path, 1, ?) = ? ORDER BY path",
                (norm, len(norm) + 1, norm + "/"),
            ).fetchall()
        return [row["path"] for row in rows]

    def children(self, path: str) -> list[str]:
        norm = self._require(path)
        rows = self._execute(
            "SELECT path FROM nodes WHERE parent = ? ORDER BY path", (norm,)
        ).fetchall()
        return [row["path"] for row in rows]

    # -- properties ----------------------------------------------------------

    def get_property(self, path: str, name: str) -> object | None:
        norm = self._require(path)
        row = self._execute(
            "SELECT value FROM properties WHERE path = ? AND name = ?", (norm, name)
        ).fetchone()
        if row is None:
            return None
        return json.loads(row["value"])

    def get_properties(self, path: str) -> dict[str, object]:
        norm = self._require(path)
        rows = self._execute(
            "SELECT name, value FROM properties WHERE path = ? ORDER BY name", (norm,)
        ).fetchall()
        return {row["name"]: json.loads(row["value"]) for row in rows}

    def set_property(self, path: str, name: str, value: object) -> None:
        norm = self._require(path)
        if value is None:
            raise StoreError(f"Cannot store None as {name} on {norm}")
        self._execute(
            "INSERT INTO properties (path, name, value) VALUES (?, ?, ?) "
            "ON CONFLICT(path, name) DO UPDATE SET value = excluded.value",
            (norm, name, json.dumps(value, ensure_ascii=False)),
        )

    def set_properties(self, path: str, properties: dict[str, object]) -> None:
        """Replace all properties of *path* with *properties*."""
        norm = self._require(path)
        self._execute("DELETE FROM properties WHERE path = ?", (norm,))
        for name, value in properties.items():
            self.set_property(norm, name, value)

    def remove_property(self, path: str, name: str) -> None:
        norm = self._require(path)
        self._execute("DELETE FROM properties WHERE path = ? AND name = ?", (norm, name))

    # -- transaction ---------------------------------------------------------

    @property
    def has_pending_changes(self) -> bool:
        return self._conn.in_transaction

    def commit(self) -> None:
        try:
            self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Commit failed: {exc}") from exc

    def rollback(self) -> None:
        try:
            self._conn.rollback()
        except sqlite3.Error as exc:
            raise StoreError(f"Rollback failed: {exc}") from exc

    def refresh(self) -> None:
        """Discard pending changes, like ``Session.refresh(false)`` in JCR."""
        self.rollback()
