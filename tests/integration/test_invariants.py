"""
Randomized operation sequences.

Whatever mix of valid and invalid calls is made, the live forest must stay
well-formed: no orphans, no cycles, no forbidden placements and no shared
sort keys among siblings.
"""

import random

import pytest

from notestore.domain.tree import Tree
from notestore.store import NoteStore

pytestmark = pytest.mark.integration

TYPES = ("book", "section", "note")


async def live_tree(store: NoteStore) -> Tree:
    return Tree.build((await store.get_all_items()).unwrap())


async def random_step(store: NoteStore, rng: random.Random) -> None:
    items = (await store.get_all_items(include_deleted=True)).unwrap()
    live = [i for i in items if i.deleted_at is None]
    deleted = [i for i in items if i.deleted_at is not None]
    parents = [None, *(i.id for i in live)]

    action = rng.choice(("create", "create", "move", "reorder", "delete", "restore", "purge"))
    if action == "create" or not live:
        await store.create_item({
            "type": rng.choice(TYPES),
            "title": f"item {len(items)}",
            "parent_id": rng.choice(parents),
            "index": rng.randint(0, 4),
        })
    elif action == "move":
        await store.move_item(rng.choice(live).id, rng.choice(parents), rng.choice((None, 0, 1, 3)))
    elif action == "reorder":
        item = rng.choice(live)
        await store.reorder_item(item.id, rng.randint(0, 5), item.parent_id)
    elif action == "delete":
        await store.delete_item(rng.choice(live).id)
    elif action == "restore" and deleted:
        await store.restore_item(rng.choice(deleted).id)
    elif action == "purge" and deleted:
        await store.purge_item(rng.choice(deleted).id)


class TestRandomSequences:
    """The forest stays well-formed under random operations."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", [1, 7, 42])
    async def test_no_violations(self, store: NoteStore, seed):
        rng = random.Random(seed)

        for _ in range(60):
            await random_step(store, rng)

        tree = await live_tree(store)
        assert tree.violations() == []
        assert len(tree.flatten()) == len(tree)

    @pytest.mark.asyncio
    async def test_materializer_tracks_random_sequence(self, store: NoteStore):
        rng = random.Random(3)
        materializer = await store.tree_materializer()

        for _ in range(40):
            await random_step(store, rng)

        fresh = await live_tree(store)
        assert [(d, i.id) for d, i in materializer.tree.flatten()] == [
            (d, i.id) for d, i in fresh.flatten()
        ]
