"""
Integration Tests for full-text search and index rebuild.
"""

import asyncio

import pytest
from sqlalchemy import text

from notestore.store import NoteStore

pytestmark = pytest.mark.integration


async def fts_rows(store: NoteStore) -> list[tuple[str, str, str]]:
    async with store.session_factory() as session:
        result = await session.execute(
            text("SELECT item_id, title, content_plaintext FROM items_fts ORDER BY item_id")
        )
        return [tuple(row) for row in result.all()]


class TestQuery:
    """Tests for search_items."""

    @pytest.mark.asyncio
    async def test_content_match_with_highlight(self, store: NoteStore, library):
        results = (await store.search_items("alpha")).unwrap()

        assert [r.item.id for r in results] == [library["C"].id]
        assert "<mark>alpha</mark>" in results[0].snippet

    @pytest.mark.asyncio
    async def test_prefix_match(self, store: NoteStore, library):
        results = (await store.search_items("bet")).unwrap()

        assert [r.item.title for r in results] == ["Note C"]

    @pytest.mark.asyncio
    async def test_title_match(self, store: NoteStore, library):
        results = (await store.search_items("section")).unwrap()

        assert [r.item.id for r in results] == [library["B"].id]

    @pytest.mark.asyncio
    async def test_type_filter(self, store: NoteStore, library):
        notes = (await store.search_items("note", types=["note"])).unwrap()
        books = (await store.search_items("note", types=["book"])).unwrap()

        assert {r.item.title for r in notes} == {"Note C", "Note D", "Note E"}
        assert books == []

    @pytest.mark.asyncio
    async def test_empty_type_filter_matches_nothing(self, store: NoteStore, library):
        everything = (await store.search_items("note", types=None)).unwrap()
        nothing = (await store.search_items("note", types=[])).unwrap()

        assert len(everything) == 3
        assert nothing == []

    @pytest.mark.asyncio
    async def test_limit(self, store: NoteStore, library):
        results = (await store.search_items("note", limit=2)).unwrap()

        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_ranked_best_first(self, store: NoteStore, library):
        await store.create_item({"type": "note", "title": "gamma gamma gamma", "content": "<p>gamma gamma</p>"})
        await store.create_item({"type": "note", "title": "Misc", "content": "<p>a long text with gamma once among many other words</p>"})

        results = (await store.search_items("gamma")).unwrap()

        assert results[0].item.title == "gamma gamma gamma"
        assert results[0].rank <= results[1].rank

    @pytest.mark.asyncio
    async def test_deleted_items_excluded(self, store: NoteStore, library):
        await store.delete_item(library["B"].id)

        assert (await store.search_items("alpha")).unwrap() == []

        await store.restore_item(library["B"].id)

        assert len((await store.search_items("alpha")).unwrap()) == 1

    @pytest.mark.asyncio
    async def test_updates_are_indexed(self, store: NoteStore, library):
        await store.update_item(library["D"].id, {"content": "<p>zeppelin</p>"})

        results = (await store.search_items("zeppelin")).unwrap()

        assert [r.item.id for r in results] == [library["D"].id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   "])
    async def test_blank_query(self, store: NoteStore, library, query):
        assert (await store.search_items(query)).unwrap() == []

    @pytest.mark.asyncio
    async def test_operator_characters_are_literal(self, store: NoteStore, library):
        grouped = (await store.search_items('alpha ("beta')).unwrap()
        with_operator = (await store.search_items('alpha AND ("beta')).unwrap()

        assert [r.item.id for r in grouped] == [library["C"].id]
        assert with_operator == []

    @pytest.mark.asyncio
    async def test_substring_fallback(self, store: NoteStore, library, monkeypatch):
        monkeypatch.setattr(
            "notestore.services.search._FTS_QUERY",
            text("SELECT item_id, 0 AS score, '' AS snippet FROM missing_fts WHERE item_id = :match"),
        )

        results = (await store.search_items("alpha")).unwrap()

        assert [r.item.id for r in results] == [library["C"].id]
        assert "<mark>alpha</mark>" in results[0].snippet


class TestRebuild:
    """Tests for rebuild_search_index."""

    @pytest.mark.asyncio
    async def test_rebuild_matches_triggers(self, store: NoteStore, library):
        before = await fts_rows(store)

        total = (await store.rebuild_search_index(batch_size=2)).unwrap()

        assert total == 5
        assert await fts_rows(store) == before
        assert not await store.search.staging_exists()

    @pytest.mark.asyncio
    async def test_rebuild_repairs_drift(self, store: NoteStore, library):
        async with store.session_factory() as session:
            async with session.begin():
                await session.execute(text("DELETE FROM items_fts"))

        assert (await store.search_items("alpha")).unwrap() == []

        (await store.rebuild_search_index()).unwrap()

        assert len((await store.search_items("alpha")).unwrap()) == 1

    @pytest.mark.asyncio
    async def test_rebuild_skips_deleted(self, store: NoteStore, library):
        await store.delete_item(library["E"].id)

        total = (await store.rebuild_search_index()).unwrap()

        assert total == 4

    @pytest.mark.asyncio
    async def test_progress_reported_per_batch(self, store: NoteStore, library):
        seen = []

        (await store.rebuild_search_index(batch_size=2, progress=seen.append)).unwrap()

        assert seen == [2, 4, 5]

    @pytest.mark.asyncio
    async def test_interrupted_rebuild_leaves_live_index(self, store: NoteStore, library):
        before = await fts_rows(store)

        def cancel_after_first_batch(staged: int) -> None:
            raise asyncio.CancelledError

        with pytest.raises(asyncio.CancelledError):
            await store.rebuild_search_index(batch_size=2, progress=cancel_after_first_batch)

        assert await fts_rows(store) == before
        assert not await store.search.staging_exists()
        assert len((await store.search_items("alpha")).unwrap()) == 1

    @pytest.mark.asyncio
    async def test_rebuild_event(self, store: NoteStore, library):
        events = []
        store.events.subscribe(events.append, "search.index.rebuilt")

        await store.rebuild_search_index()

        assert [event.payload for event in events] == [{"rows": 5}]
