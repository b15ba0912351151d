"""
Shared fixtures for the aur-mirror-meta test suite.
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from aur_mirror_meta.core.dependencies import get_github_token, get_index_store
from aur_mirror_meta.main import app
from aur_mirror_meta.storage.sqlite_db_manager import SqliteIndexStore

from tests.helpers import FOO_COMMIT, PARU_COMMIT, PARU_SRCINFO, SPLIT_SRCINFO, write_branch


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "index" / "aur-meta.db"


@pytest.fixture
def store(db_path: Path) -> SqliteIndexStore:
    """An initialized, empty index store backed by a temporary file."""
    index_store = SqliteIndexStore(db_path)
    index_store.initialize()
    return index_store


@pytest.fixture
def populated_store(store: SqliteIndexStore) -> SqliteIndexStore:
    """Store holding the paru and python-foo branches."""
    write_branch(store, "paru", PARU_COMMIT, PARU_SRCINFO)
    write_branch(store, "python-foo", FOO_COMMIT, SPLIT_SRCINFO)
    return store


@pytest.fixture
def client(populated_store: SqliteIndexStore):
    """TestClient for the app, served from the populated store and without a token."""
    app.dependency_overrides[get_index_store] = lambda: populated_store
    app.dependency_overrides[get_github_token] = lambda: None
    yield TestClient(app)
    app.dependency_overrides.clear()
