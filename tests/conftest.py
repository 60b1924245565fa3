"""Shared test fixtures for oakreindex."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

import pytest

from oakreindex.infrastructure.db import Session

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture()
def session(tmp_path: Path) -> Iterator[Session]:
    """An empty repository session backed by a temporary database."""
    sess = Session.open(tmp_path / "repository.db")
    yield sess
    sess.close()


@pytest.fixture()
def index_session(session: Session) -> Session:
    """A repository holding one indexed property index definition."""
    session.add_node("/oak:index/jcrMimeType")
    session.set_properties(
        "/oak:index/jcrMimeType",
        {
            "type": "property",
            "propertyNames": ["jcr:mimeType"],
            "reindex": False,
            "reindexCount": 1,
        },
    )
    session.add_node("/oak:index/jcrMimeType/someChild")
    session.set_properties("/oak:index/jcrMimeType/someChild", {"weight": 1})
    session.commit()
    return session
