"""Storage side of oakreindex: the SQLite content repository.

Package loading and installation live in
:mod:`oakreindex.infrastructure.package`, which needs the hook module and
is imported from there.
"""

from oakreindex.infrastructure.db import (
    ROOT_PATH,
    SCHEMA_VERSION,
    Session,
    create_schema,
    normalize_path,
    open_db,
    parent_path,
)

__all__ = [
    "ROOT_PATH",
    "SCHEMA_VERSION",
    "Session",
    "create_schema",
    "normalize_path",
    "open_db",
    "parent_path",
]
