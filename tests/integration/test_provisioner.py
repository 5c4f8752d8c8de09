"""
Integration Tests for schema provisioning.

Runs the packaged script against real SQLite files.
"""

import pytest

from notestore.core.database import create_engine
from notestore.core.exceptions import SchemaError
from notestore.migrations.provisioner import SchemaProvisioner, schema_snapshot
from notestore.store import NoteStore

pytestmark = pytest.mark.integration


class TestProvision:
    """Tests for provisioning a fresh and an existing database."""

    @pytest.mark.asyncio
    async def test_fresh_database(self, store: NoteStore):
        report = store.provision_report
        names = {name for _, name, _ in await schema_snapshot(store.engine)}

        assert report.ok
        assert report.version == 1
        assert {"items", "settings", "items_fts", "tree_items"} <= names
        assert {
            "items_hierarchy_insert",
            "items_hierarchy_update",
            "items_fts_insert",
            "items_fts_update",
            "items_fts_delete",
            "idx_items_live_sibling_order",
        } <= names

    @pytest.mark.asyncio
    async def test_rerun_leaves_schema_identical(self, store: NoteStore):
        before = await schema_snapshot(store.engine)

        report = await SchemaProvisioner(store.engine).provision()

        assert report.ok
        assert await schema_snapshot(store.engine) == before

    @pytest.mark.asyncio
    async def test_added_columns_are_skipped_on_fresh_tables(self, store: NoteStore):
        # the trailing ALTER TABLE statements hit "duplicate column name"
        assert store.provision_report.skipped == 3

    @pytest.mark.asyncio
    async def test_records_user_version(self, store: NoteStore):
        assert await SchemaProvisioner(store.engine).user_version() == 1

    @pytest.mark.asyncio
    async def test_reopen_keeps_data(self, db_path, app_config):
        async with await NoteStore.open(db_path, config=app_config) as first:
            created = (await first.create_item({"type": "book", "title": "Kept"})).unwrap()

        async with await NoteStore.open(db_path, config=app_config) as second:
            fetched = (await second.get_item(created.id)).unwrap()

        assert fetched.title == "Kept"


class TestLegacyDatabase:
    """A database created before the later columns existed."""

    @pytest.mark.asyncio
    async def test_missing_columns_are_added(self, db_path, app_config):
        engine = create_engine(str(db_path), app_config.database)
        async with engine.begin() as conn:
            await conn.exec_driver_sql(
                "CREATE TABLE items ("
                "id TEXT PRIMARY KEY, type TEXT NOT NULL, title TEXT NOT NULL DEFAULT 'Untitled', "
                "content TEXT NULL, content_type TEXT NOT NULL DEFAULT 'html', "
                "content_plaintext TEXT NULL, parent_id TEXT NULL REFERENCES items(id), "
                "sort_order TEXT NOT NULL, metadata TEXT NOT NULL DEFAULT '{}', "
                "created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP, "
                "updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP, "
                "deleted_at DATETIME NULL)"
            )
            await conn.exec_driver_sql(
                "INSERT INTO items (id, type, title, sort_order) VALUES ('old', 'book', 'Legacy', 'a0')"
            )

        try:
            report = await SchemaProvisioner(engine).provision()
            async with engine.connect() as conn:
                columns = {row[1] for row in (await conn.exec_driver_sql("PRAGMA table_info(items)")).fetchall()}
        finally:
            await engine.dispose()

        assert report.ok
        assert {"content_raw", "word_count", "character_count"} <= columns

        async with await NoteStore.open(db_path, config=app_config) as store:
            legacy = (await store.get_item("old")).unwrap()

        assert legacy.title == "Legacy"
        assert legacy.word_count == 0


class TestFailures:
    """Tests for statements outside the tolerated set."""

    @pytest.mark.asyncio
    async def test_unexpected_failure_raises_schema_error(self, db_path, app_config):
        engine = create_engine(str(db_path), app_config.database)
        script = "CREATE TABLE IF NOT EXISTS t (x INTEGER);\nINSERT INTO missing_table VALUES (1);\n"

        try:
            with pytest.raises(SchemaError) as exc_info:
                await SchemaProvisioner(engine).provision(script)
        finally:
            await engine.dispose()

        assert "missing_table" in exc_info.value.details["statement"]

    @pytest.mark.asyncio
    async def test_already_exists_is_skipped(self, db_path, app_config):
        engine = create_engine(str(db_path), app_config.database)
        script = "CREATE TABLE t (x INTEGER);\n"

        try:
            first = await SchemaProvisioner(engine).provision(script)
            second = await SchemaProvisioner(engine).provision(script)
        finally:
            await engine.dispose()

        assert (first.executed, first.skipped) == (1, 0)
        assert (second.executed, second.skipped) == (0, 1)
        assert second.version is None

    @pytest.mark.asyncio
    async def test_open_reports_schema_error(self, db_path, app_config, monkeypatch):
        monkeypatch.setattr(
            "notestore.migrations.provisioner.load_schema_script",
            lambda name="base.sql": "SELECT * FROM nowhere;",
        )

        with pytest.raises(SchemaError):
            await NoteStore.open(db_path, config=app_config)
