"""
Root Pytest Fixtures.

Shared fixtures available to all test types.

Test Database Configuration:
    Every store fixture opens a fresh SQLite file under pytest's tmp_path,
    provisioned from the packaged schema script. Configuration uses the
    schema defaults so tests never depend on config/settings/*.yaml.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from notestore.core.config import AppConfig
from notestore.store import NoteStore


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration built from schema defaults only."""
    return AppConfig()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Location of the per-test database file."""
    return tmp_path / "notes.db"


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
async def store(db_path: Path, app_config: AppConfig) -> AsyncGenerator[NoteStore, None]:
    """
    Provide an open, provisioned store for a single test.

    Usage:
        async def test_create(store: NoteStore):
            result = await store.create_item({"type": "book", "title": "A"})
            assert result.success
    """
    note_store = await NoteStore.open(db_path, config=app_config)
    yield note_store
    await note_store.close()
