"""
Item Repository.

Row access for the items table. No business rules live here: hierarchy,
key allocation and cascade policy belong to ItemService.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.sql import ColumnElement

from notestore.domain.sort_keys import sort_key
from notestore.models.item import Item
from notestore.repositories.base import BaseRepository


def _parent_is(parent_id: str | None) -> ColumnElement[bool]:
    if parent_id is None:
        return Item.parent_id.is_(None)
    return Item.parent_id == parent_id


class ItemRepository(BaseRepository[Item]):
    """Repository for items."""

    model = Item

    async def get_live(self, item_id: str) -> Item | None:
        """Item by id, or None when missing or soft-deleted."""
        result = await self.session.execute(
            select(Item).where(Item.id == item_id, Item.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def get_by_ids(self, item_ids: list[str]) -> list[Item]:
        if not item_ids:
            return []
        result = await self.session.execute(
            select(Item)
            .where(Item.id.in_(item_ids))
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_items(self, include_deleted: bool = False) -> list[Item]:
        """All items, live only unless include_deleted."""
        query = select(Item)
        if not include_deleted:
            query = query.where(Item.deleted_at.is_(None))
        result = await self.session.execute(query)
        items = list(result.scalars().all())
        items.sort(key=lambda i: (i.parent_id or "", sort_key(i.sort_order), i.id))
        return items

    async def list_deleted(self) -> list[Item]:
        result = await self.session.execute(
            select(Item).where(Item.deleted_at.is_not(None)).order_by(Item.deleted_at.desc())
        )
        return list(result.scalars().all())

    async def live_children(self, parent_id: str | None) -> list[Item]:
        """Live children in key order."""
        result = await self.session.execute(
            select(Item).where(_parent_is(parent_id), Item.deleted_at.is_(None))
        )
        children = list(result.scalars().all())
        children.sort(key=lambda i: (sort_key(i.sort_order), i.id))
        return children

    async def live_sibling_keys(
        self,
        parent_id: str | None,
        exclude_id: str | None = None,
    ) -> list[str]:
        """Sort keys of the live children of ``parent_id``, ascending."""
        query = select(Item.sort_order).where(_parent_is(parent_id), Item.deleted_at.is_(None))
        if exclude_id is not None:
            query = query.where(Item.id != exclude_id)
        result = await self.session.execute(query)
        return sorted(result.scalars().all(), key=sort_key)

    async def sort_key_taken(
        self,
        parent_id: str | None,
        key: str,
        exclude_id: str | None = None,
    ) -> bool:
        query = select(Item.id).where(
            _parent_is(parent_id),
            Item.deleted_at.is_(None),
            Item.sort_order == key,
        )
        if exclude_id is not None:
            query = query.where(Item.id != exclude_id)
        result = await self.session.execute(query.limit(1))
        return result.first() is not None

    async def max_sibling_key(self, parent_id: str | None, exclude_id: str | None = None) -> str | None:
        keys = await self.live_sibling_keys(parent_id, exclude_id)
        return keys[-1] if keys else None

    async def ancestor_ids(self, item_id: str) -> list[str]:
        """Ids from the parent to the root. UNION keeps a corrupt cycle finite."""
        ancestors = (
            select(Item.parent_id.label("id"))
            .where(Item.id == item_id, Item.parent_id.is_not(None))
            .cte("ancestors", recursive=True)
        )
        ancestors = ancestors.union(
            select(Item.parent_id).where(
                Item.id == ancestors.c.id,
                Item.parent_id.is_not(None),
            )
        )
        result = await self.session.execute(select(ancestors.c.id))
        return [row[0] for row in result.all()]

    async def descendant_ids(
        self,
        item_id: str,
        *,
        live_only: bool = False,
        deleted_at: datetime | None = None,
    ) -> list[str]:
        """
        Ids of every item below ``item_id``.

        ``live_only`` follows live rows only; ``deleted_at`` follows rows
        deleted with exactly that stamp.
        """
        conditions: list[ColumnElement[bool]] = []
        if live_only:
            conditions.append(Item.deleted_at.is_(None))
        if deleted_at is not None:
            conditions.append(Item.deleted_at == deleted_at)

        descendants = (
            select(Item.id, Item.parent_id)
            .where(Item.parent_id == item_id, *conditions)
            .cte("descendants", recursive=True)
        )
        descendants = descendants.union(
            select(Item.id, Item.parent_id).where(
                Item.parent_id == descendants.c.id,
                *conditions,
            )
        )
        result = await self.session.execute(select(descendants.c.id))
        return [row[0] for row in result.all() if row[0] != item_id]

    async def soft_delete(self, item_ids: list[str], stamp: datetime) -> int:
        if not item_ids:
            return 0
        result = await self.session.execute(
            update(Item)
            .where(Item.id.in_(item_ids), Item.deleted_at.is_(None))
            .values(deleted_at=stamp, updated_at=stamp)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def restore(self, item_ids: list[str], stamp: datetime) -> int:
        if not item_ids:
            return 0
        result = await self.session.execute(
            update(Item)
            .where(Item.id.in_(item_ids))
            .values(deleted_at=None, updated_at=stamp)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def hard_delete(self, item_ids: list[str]) -> int:
        """Remove rows irreversibly. Children and parents may go in one call."""
        if not item_ids:
            return 0
        result = await self.session.execute(
            delete(Item)
            .where(Item.id.in_(item_ids))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def trash_roots(self) -> list[Item]:
        """Deleted items whose parent is live or the root."""
        parent = Item.__table__.alias("parent")
        live_parent = (
            select(parent.c.id)
            .where(parent.c.id == Item.parent_id, parent.c.deleted_at.is_(None))
            .exists()
        )
        result = await self.session.execute(
            select(Item).where(
                Item.deleted_at.is_not(None),
                (Item.parent_id.is_(None)) | live_parent,
            )
        )
        return list(result.scalars().all())

    async def count_by_type(self, include_deleted: bool = False) -> dict[str, int]:
        query = select(Item.type, func.count()).group_by(Item.type)
        if not include_deleted:
            query = query.where(Item.deleted_at.is_(None))
        result = await self.session.execute(query)
        return {row[0]: row[1] for row in result.all()}

    async def count_deleted(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(Item).where(Item.deleted_at.is_not(None))
        )
        return result.scalar_one()

    async def tree_rows(self) -> list[dict[str, Any]]:
        """Rows of the tree_items view."""
        result = await self.session.execute(
            text(
                "SELECT id, type, title, parent_id, sort_order, custom_icon, "
                "custom_text_color, is_pinned FROM tree_items"
            )
        )
        return [dict(row) for row in result.mappings().all()]
