"""
Integration Test Fixtures.

Integration tests run against a real provisioned SQLite file.
"""

from typing import Any

import pytest

from notestore.store import NoteStore


async def _create(store: NoteStore, **params: Any):
    result = await store.create_item(params)
    assert result.success, result.error
    return result.data


@pytest.fixture
async def library(store: NoteStore) -> dict[str, Any]:
    """
    A small forest:

        Book A
          Section B
            Note C
          Note D
        Note E
    """
    book = await _create(store, type="book", title="Book A")
    section = await _create(store, type="section", title="Section B", parent_id=book.id)
    note_c = await _create(
        store, type="note", title="Note C", parent_id=section.id, content="<p>alpha beta</p>"
    )
    note_d = await _create(store, type="note", title="Note D", parent_id=book.id)
    note_e = await _create(store, type="note", title="Note E")
    return {"A": book, "B": section, "C": note_c, "D": note_d, "E": note_e}
