"""Shared pytest fixtures for quire tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine

from quire.config.settings import QuireSettings
from quire.infrastructure.context import EntityContext
from quire.infrastructure.database.engine import init_database
from quire.infrastructure.filesystem import NoteFileStore
from quire.infrastructure.index import NotesIndex
from quire.infrastructure.workspace import Workspace


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep ambient QUIRE_* variables from leaking into settings."""
    for key in list(os.environ):
        if key.startswith("QUIRE_"):
            monkeypatch.delenv(key)


@pytest.fixture
def settings(tmp_path: Path) -> QuireSettings:
    """Settings rooted at a temp directory with no retry delay."""
    return QuireSettings.load(root=tmp_path, retry={"attempts": 3, "delay": 0.0})


@pytest.fixture
def workspace(settings: QuireSettings) -> Generator[Workspace]:
    """Fully initialized workspace on a temp directory."""
    ws = Workspace(settings)
    try:
        yield ws
    finally:
        ws.close()


@pytest.fixture
def store(tmp_path: Path) -> NoteFileStore:
    return NoteFileStore(tmp_path)


@pytest.fixture
def db_engine(tmp_path: Path) -> Generator[Engine]:
    """Initialized SQLite engine with all tables created."""
    engine = init_database(tmp_path)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def index(db_engine: Engine) -> NotesIndex:
    return NotesIndex(db_engine)


@pytest.fixture
def context(workspace: Workspace) -> EntityContext:
    """The workspace's foreground context."""
    return workspace.context
