"""
Integration Tests for the settings store.
"""

import json

import pytest
from sqlalchemy import text

from notestore.store import NoteStore

pytestmark = pytest.mark.integration


class TestKeyValue:
    """Tests for get/set/delete."""

    @pytest.mark.asyncio
    async def test_json_values_round_trip(self, store: NoteStore):
        value = {"font": "Inter", "sizes": [12, 14], "dark": True, "ratio": 1.5, "none": None}

        (await store.settings.set("editor", value)).unwrap()

        assert (await store.settings.get("editor")).unwrap() == value

    @pytest.mark.asyncio
    async def test_overwrite(self, store: NoteStore):
        await store.settings.set("theme", "light")
        await store.settings.set("theme", "dark")

        assert (await store.settings.get("theme")).unwrap() == "dark"
        assert (await store.get_storage_info()).unwrap().settings == 1

    @pytest.mark.asyncio
    async def test_default_for_missing(self, store: NoteStore):
        assert (await store.settings.get("missing", 42)).unwrap() == 42

    @pytest.mark.asyncio
    async def test_delete(self, store: NoteStore):
        await store.settings.set("theme", "dark")

        assert (await store.settings.delete("theme")).unwrap() is True
        assert (await store.settings.delete("theme")).unwrap() is False
        assert (await store.settings.get("theme")).unwrap() is None

    @pytest.mark.asyncio
    async def test_invalid_value_is_a_failed_result(self, store: NoteStore):
        result = await store.settings.set("bad", {1, 2})

        assert result.error.kind == "ValidationError"

    @pytest.mark.asyncio
    async def test_corrupt_row_reads_as_default(self, store: NoteStore):
        async with store.session_factory() as session:
            async with session.begin():
                await session.execute(
                    text("INSERT INTO settings (key, value) VALUES ('broken', '{not json')")
                )

        assert (await store.settings.get("broken", "fallback")).unwrap() == "fallback"
        assert (await store.settings.get_all()).unwrap() == {"broken": "{not json"}


class TestBulk:
    """Tests for get_many/set_many/get_all."""

    @pytest.mark.asyncio
    async def test_set_many_then_get_many(self, store: NoteStore):
        (await store.settings.set_many({"a": 1, "b": [2], "c": {"d": 3}})).unwrap()

        assert (await store.settings.get_many(["a", "c", "zzz"])).unwrap() == {"a": 1, "c": {"d": 3}}
        assert (await store.settings.get_many({"a": 0, "zzz": "dflt"})).unwrap() == {"a": 1, "zzz": "dflt"}
        assert (await store.settings.get_all()).unwrap() == {"a": 1, "b": [2], "c": {"d": 3}}

    @pytest.mark.asyncio
    async def test_set_many_is_atomic(self, store: NoteStore):
        await store.settings.set("a", "original")

        result = await store.settings.set_many({"a": "changed", "b": float("inf")})

        assert result.success is False
        assert (await store.settings.get_all()).unwrap() == {"a": "original"}


class TestExportImport:
    """Tests for the versioned export envelope."""

    @pytest.mark.asyncio
    async def test_export_envelope(self, store: NoteStore):
        await store.settings.set("theme", "dark")

        envelope = (await store.settings.export_settings()).unwrap()
        document = json.loads(envelope.to_json())

        assert document["version"] == 1
        assert document["settings"] == {"theme": "dark"}
        assert document["appVersion"] == store.config.application.version
        assert "exportedAt" in document

    @pytest.mark.asyncio
    async def test_file_round_trip(self, store: NoteStore, tmp_path, app_config):
        await store.settings.set_many({"theme": "dark", "sidebar": {"width": 240}})
        target = tmp_path / "exports" / "settings.json"

        (await store.settings.export_settings(target)).unwrap()

        async with await NoteStore.open(tmp_path / "other.db", config=app_config) as other:
            count = (await other.settings.import_settings(target)).unwrap()
            imported = (await other.settings.get_all()).unwrap()

        assert count == 2
        assert imported == {"theme": "dark", "sidebar": {"width": 240}}

    @pytest.mark.asyncio
    async def test_import_from_json_text(self, store: NoteStore):
        document = json.dumps({"version": 1, "exportedAt": "2024-01-01T00:00:00Z", "settings": {"x": 1}})

        assert (await store.settings.import_settings(document)).unwrap() == 1
        assert (await store.settings.get("x")).unwrap() == 1

    @pytest.mark.asyncio
    async def test_import_merges_over_existing(self, store: NoteStore):
        await store.settings.set_many({"keep": True, "x": 0})

        await store.settings.import_settings({"version": 1, "exportedAt": "2024-01-01T00:00:00", "settings": {"x": 1}})

        assert (await store.settings.get_all()).unwrap() == {"keep": True, "x": 1}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "document",
        [
            {"version": 2, "exportedAt": "2024-01-01T00:00:00", "settings": {"theme": "light"}},
            {"exportedAt": "2024-01-01T00:00:00", "settings": {"theme": "light"}},
            {"version": 1, "exportedAt": "2024-01-01T00:00:00", "settings": "theme=light"},
            '{"version": 1, "settings": {',
        ],
    )
    async def test_invalid_envelope_applies_nothing(self, store: NoteStore, document):
        await store.settings.set("theme", "dark")

        result = await store.settings.import_settings(document)

        assert result.error.kind == "ValidationError"
        assert (await store.settings.get_all()).unwrap() == {"theme": "dark"}

    @pytest.mark.asyncio
    async def test_unserializable_value_applies_nothing(self, store: NoteStore):
        result = await store.settings.import_settings({
            "version": 1,
            "exportedAt": "2024-01-01T00:00:00",
            "settings": {"ok": 1, "bad": float("nan")},
        })

        assert result.error.kind == "ValidationError"
        assert (await store.settings.get_all()).unwrap() == {}

    @pytest.mark.asyncio
    async def test_missing_file(self, store: NoteStore, tmp_path):
        result = await store.settings.import_settings(tmp_path / "absent.json")

        assert result.error.kind == "ValidationError"
