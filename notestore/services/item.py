"""
Item Service.

Business rules for the item forest: placement validation, sort-key
allocation, soft delete with cascade, restore and purge. One instance per
transaction; events for the changes are collected in ``pending_events``
and published by the caller once the transaction has committed.
"""

from types import SimpleNamespace
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from notestore.core.exceptions import ConflictError, NotFoundError, ValidationError
from notestore.core.utils import utc_now
from notestore.domain.hierarchy import ItemType, ensure_can_be_child_of
from notestore.domain.plaintext import ContentType, analyze
from notestore.domain.sort_keys import InvalidSortKeyError, key_between
from notestore.domain.tree import Tree, TreeNode, neighbors_at
from notestore.events.schemas import (
    EventEnvelope,
    ItemCreated,
    ItemDeleted,
    ItemMoved,
    ItemPurged,
    ItemReordered,
    ItemRestored,
    ItemUpdated,
)
from notestore.models.base import new_id
from notestore.models.item import Item
from notestore.repositories.item import ItemRepository
from notestore.schemas.item import (
    PRESENTATION_KEYS,
    ItemCreate,
    ItemRead,
    ItemUpdate,
    TreeEntry,
)
from notestore.services.base import BaseService


class ItemService(BaseService):
    """
    Service for item business logic.

    Every mutation validates before it writes, so a rejected call leaves
    the store unchanged.
    """

    MAX_KEY_ATTEMPTS = 8

    def __init__(self, session: AsyncSession, correlation_id: str | None = None) -> None:
        super().__init__(session, correlation_id)
        self.repo = ItemRepository(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_item(self, item_id: str) -> Item:
        """
        Get a live item.

        Raises:
            NotFoundError: If the item is missing or soft-deleted
        """
        item = await self.repo.get_live(item_id)
        if item is None:
            raise NotFoundError(f"Item not found: {item_id}", details={"id": item_id})
        return item

    async def list_items(self, include_deleted: bool = False) -> list[Item]:
        return await self.repo.list_items(include_deleted=include_deleted)

    async def list_trash(self) -> list[Item]:
        """Top-level deleted items, newest deletion first."""
        roots = await self.repo.trash_roots()
        return sorted(roots, key=lambda i: i.deleted_at, reverse=True)

    async def get_tree(self) -> list[TreeEntry]:
        """Nested view of live items built from the tree_items view."""
        rows = await self.repo.tree_rows()
        tree = Tree.build(SimpleNamespace(**row, deleted_at=None) for row in rows)

        def to_entry(node: TreeNode) -> TreeEntry:
            row = node.item
            return TreeEntry(
                id=row.id,
                type=row.type,
                title=row.title,
                parent_id=row.parent_id,
                sort_order=row.sort_order,
                custom_icon=row.custom_icon,
                custom_text_color=row.custom_text_color,
                is_pinned=bool(row.is_pinned),
                children=[to_entry(child) for child in node.children],
            )

        return [to_entry(node) for node in tree.nested()]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve_parent(self, parent_id: str | None) -> Item | None:
        if parent_id is None:
            return None
        parent = await self.repo.get_live(parent_id)
        if parent is None:
            raise NotFoundError(
                f"Parent not found: {parent_id}",
                details={"parent_id": parent_id},
            )
        return parent

    async def _position_bounds(
        self,
        parent_id: str | None,
        *,
        index: int | None = None,
        after_id: str | None = None,
        before_id: str | None = None,
        exclude_id: str | None = None,
    ) -> tuple[str | None, str | None]:
        """Neighbour keys for the requested position among live siblings."""
        keys = await self.repo.live_sibling_keys(parent_id, exclude_id)
        if after_id is None and before_id is None:
            return neighbors_at(keys, index)

        siblings = {
            child.id: child.sort_order
            for child in await self.repo.live_children(parent_id)
            if child.id != exclude_id
        }
        for anchor in (after_id, before_id):
            if anchor is not None and anchor not in siblings:
                raise ValidationError(
                    f"Anchor {anchor} is not a live sibling under {parent_id or 'root'}",
                    details={"anchor_id": anchor, "parent_id": parent_id},
                )

        if after_id is not None:
            lower = siblings[after_id]
            if before_id is not None:
                return lower, siblings[before_id]
            position = keys.index(lower) + 1
            return lower, keys[position] if position < len(keys) else None

        upper = siblings[before_id]
        position = keys.index(upper)
        return keys[position - 1] if position > 0 else None, upper

    async def _allocate_sort_key(
        self,
        parent_id: str | None,
        lower: str | None,
        upper: str | None,
        exclude_id: str | None = None,
    ) -> str:
        """
        Key strictly between the neighbours that no live sibling holds.

        A taken key is regenerated between itself and ``upper``. Unusable
        neighbours (inverted or malformed legacy keys) fall back to
        appending after the largest sibling key.

        Raises:
            ConflictError: If no free key is found within MAX_KEY_ATTEMPTS
        """
        try:
            candidate = key_between(lower, upper)
        except InvalidSortKeyError as e:
            self._logger.warning(
                "Unusable neighbour keys, appending instead",
                extra={"parent_id": parent_id, "lower": lower, "upper": upper, "error": str(e)},
            )
            upper = None
            try:
                candidate = key_between(await self.repo.max_sibling_key(parent_id, exclude_id), None)
            except InvalidSortKeyError as inner:
                raise ConflictError(
                    "Sibling keys are corrupt; cannot place item",
                    details={"parent_id": parent_id, "error": str(inner)},
                ) from inner

        for attempt in range(1, self.MAX_KEY_ATTEMPTS + 1):
            if not await self.repo.sort_key_taken(parent_id, candidate, exclude_id):
                return candidate
            self._logger.warning(
                "Sort key collision, regenerating",
                extra={
                    "code": "RES_CONFLICT",
                    "parent_id": parent_id,
                    "key": candidate,
                    "attempt": attempt,
                },
            )
            candidate = key_between(candidate, upper)

        raise ConflictError(
            "Could not allocate a unique sort key",
            details={"parent_id": parent_id, "attempts": self.MAX_KEY_ATTEMPTS},
        )

    def _emit(
        self,
        event_cls: type[EventEnvelope],
        items: list[Item] = (),
        removed_ids: list[str] = (),
        **extra: Any,
    ) -> None:
        self._queue_event(
            event_cls,
            {
                "items": [ItemRead.model_validate(i).model_dump(mode="json") for i in items],
                "removed_ids": list(removed_ids),
                **extra,
            },
        )

    @staticmethod
    def _merge_presentation(metadata: dict[str, Any], fields: dict[str, Any]) -> dict[str, Any]:
        merged = dict(metadata)
        for key in PRESENTATION_KEYS:
            if key not in fields:
                continue
            if fields[key] is None:
                merged.pop(key, None)
            else:
                merged[key] = fields[key]
        return merged

    @staticmethod
    def _reject_content(item_type: ItemType, content: str | None, content_raw: str | None) -> None:
        if item_type != ItemType.NOTE and (content or content_raw):
            raise ValidationError(
                f"{item_type.value}s cannot hold content; only notes do",
                details={"type": item_type.value},
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_item(self, data: ItemCreate) -> Item:
        """
        Create an item under ``data.parent_id`` at the requested position.

        Raises:
            NotFoundError: If the parent is missing or deleted
            ValidationError: If the hierarchy forbids the placement
        """
        parent = await self._resolve_parent(data.parent_id)
        ensure_can_be_child_of(data.type, ItemType(parent.type) if parent else None)
        self._reject_content(data.type, data.content, data.content_raw)

        lower, upper = await self._position_bounds(
            data.parent_id,
            index=data.index,
            after_id=data.after_id,
            before_id=data.before_id,
        )
        sort_order = await self._allocate_sort_key(data.parent_id, lower, upper)
        stats = analyze(data.content, data.content_type)
        fields = data.model_dump(exclude_unset=True)

        self._log_operation(
            "Creating item",
            type=data.type.value,
            parent_id=data.parent_id,
            sort_order=sort_order,
        )

        item = await self._execute_db_operation(
            "create_item",
            self.repo.create(
                id=new_id(),
                type=data.type.value,
                title=data.title,
                parent_id=data.parent_id,
                sort_order=sort_order,
                content=data.content,
                content_type=data.content_type.value,
                content_raw=data.content_raw,
                content_plaintext=stats.plaintext,
                word_count=stats.word_count,
                character_count=stats.character_count,
                meta=self._merge_presentation(data.metadata, fields),
            ),
        )

        self._emit(ItemCreated, [item])
        self._log_debug("Item created", item_id=item.id)
        return item

    async def update_item(self, item_id: str, patch: ItemUpdate) -> Item:
        """
        Update title, content or presentation of a live item.

        Raises:
            NotFoundError: If the item is missing or deleted
            ValidationError: If content is set on a container
        """
        item = await self.get_item(item_id)
        changes = patch.model_dump(exclude_unset=True)
        if not changes:
            return item

        values: dict[str, Any] = {}
        if "title" in changes:
            if not changes["title"]:
                raise ValidationError("title cannot be empty", details={"title": "required"})
            values["title"] = changes["title"]

        if {"content", "content_type", "content_raw"} & changes.keys():
            content = changes.get("content", item.content)
            content_raw = changes.get("content_raw", item.content_raw)
            content_type = changes.get("content_type") or ContentType(item.content_type)
            self._reject_content(ItemType(item.type), content, content_raw)
            stats = analyze(content, content_type)
            values.update(
                content=content,
                content_raw=content_raw,
                content_type=ContentType(content_type).value,
                content_plaintext=stats.plaintext,
                word_count=stats.word_count,
                character_count=stats.character_count,
            )

        metadata = dict(item.meta or {})
        if changes.get("metadata") is not None:
            metadata.update(changes["metadata"])
        metadata = self._merge_presentation(metadata, changes)
        if metadata != (item.meta or {}):
            values["meta"] = metadata

        if not values:
            return item

        self._log_operation("Updating item", item_id=item_id, fields=sorted(changes))
        item = await self._execute_db_operation("update_item", self.repo.update(item, **values))
        self._emit(ItemUpdated, [item], fields=sorted(changes))
        return item

    async def move_item(self, item_id: str, new_parent_id: str | None, index: int | None = None) -> Item:
        """
        Re-parent an item, placing it at ``index`` among its new siblings.

        Hierarchy is checked before cycles; either rejection leaves the
        store unchanged.

        Raises:
            NotFoundError: If the item or the new parent is missing or deleted
            ValidationError: For a forbidden placement or a cycle
        """
        item = await self.get_item(item_id)
        parent = await self._resolve_parent(new_parent_id)
        ensure_can_be_child_of(ItemType(item.type), ItemType(parent.type) if parent else None)

        if parent is not None and (
            parent.id == item.id or item.id in await self.repo.ancestor_ids(parent.id)
        ):
            raise ValidationError(
                "Cannot move an item into itself or one of its descendants",
                details={"item_id": item.id, "parent_id": parent.id},
            )

        lower, upper = await self._position_bounds(new_parent_id, index=index, exclude_id=item.id)
        sort_order = await self._allocate_sort_key(new_parent_id, lower, upper, exclude_id=item.id)
        old_parent_id = item.parent_id

        self._log_operation(
            "Moving item",
            item_id=item_id,
            from_parent_id=old_parent_id,
            to_parent_id=new_parent_id,
            sort_order=sort_order,
        )
        item = await self._execute_db_operation(
            "move_item",
            self.repo.update(item, parent_id=new_parent_id, sort_order=sort_order),
        )
        self._emit(ItemMoved, [item], from_parent_id=old_parent_id, to_parent_id=new_parent_id)
        return item

    async def reorder_item(self, item_id: str, index: int, parent_id: str | None) -> Item:
        """
        Move an item to ``index`` within its current parent.

        Raises:
            NotFoundError: If the item is missing or deleted
            ValidationError: If the item is not a child of ``parent_id``
        """
        item = await self.get_item(item_id)
        if item.parent_id != parent_id:
            raise ValidationError(
                "Item is not a child of the given parent",
                details={"item_id": item_id, "parent_id": parent_id, "actual_parent_id": item.parent_id},
            )

        lower, upper = await self._position_bounds(parent_id, index=index, exclude_id=item.id)
        sort_order = await self._allocate_sort_key(parent_id, lower, upper, exclude_id=item.id)

        self._log_operation("Reordering item", item_id=item_id, index=index, sort_order=sort_order)
        item = await self._execute_db_operation(
            "reorder_item",
            self.repo.update(item, sort_order=sort_order),
        )
        self._emit(ItemReordered, [item], index=index)
        return item

    async def delete_item(self, item_id: str) -> list[str]:
        """
        Soft-delete an item and its live descendants with one shared stamp.

        Returns:
            Ids of every item deleted by this call
        """
        item = await self.get_item(item_id)
        stamp = utc_now()
        ids = [item.id, *await self.repo.descendant_ids(item.id, live_only=True)]

        self._log_operation("Deleting item", item_id=item_id, cascade=len(ids) - 1)
        await self._execute_db_operation("delete_item", self.repo.soft_delete(ids, stamp))

        self._emit(ItemDeleted, await self.repo.get_by_ids(ids), deleted_ids=ids)
        return ids

    async def restore_item(self, item_id: str) -> Item:
        """
        Bring back a soft-deleted item and the descendants deleted with it.

        Raises:
            NotFoundError: If no such row exists
            ValidationError: If the item is live or its parent is not
        """
        item = await self.repo.get_by_id(item_id)
        if item.deleted_at is None:
            raise ValidationError("Item is not deleted", details={"id": item_id})
        if item.parent_id is not None and await self.repo.get_live(item.parent_id) is None:
            raise ValidationError(
                "Cannot restore into a deleted or missing parent; restore the parent first",
                details={"id": item_id, "parent_id": item.parent_id},
            )

        ids = [item.id, *await self.repo.descendant_ids(item.id, deleted_at=item.deleted_at)]

        if await self.repo.sort_key_taken(item.parent_id, item.sort_order, exclude_id=item.id):
            sort_order = await self._allocate_sort_key(
                item.parent_id,
                await self.repo.max_sibling_key(item.parent_id, exclude_id=item.id),
                None,
                exclude_id=item.id,
            )
            self._log_debug("Restored item re-keyed", item_id=item_id, sort_order=sort_order)
            await self._execute_db_operation(
                "restore_item",
                self.repo.update(item, sort_order=sort_order),
            )

        self._log_operation("Restoring item", item_id=item_id, cascade=len(ids) - 1)
        await self._execute_db_operation("restore_item", self.repo.restore(ids, utc_now()))

        restored = await self.repo.get_by_ids(ids)
        self._emit(ItemRestored, restored)
        return next(i for i in restored if i.id == item.id)

    async def purge_item(self, item_id: str) -> list[str]:
        """
        Permanently remove a soft-deleted item and its subtree.

        Rejected while any descendant is still live.

        Returns:
            Ids of every removed row
        """
        item = await self.repo.get_by_id(item_id)
        if item.deleted_at is None:
            raise ValidationError(
                "Only deleted items can be purged; delete it first",
                details={"id": item_id},
            )

        ids = await self._purgeable_subtree(item)
        self._log_operation("Purging item", item_id=item_id, rows=len(ids))
        await self._execute_db_operation("purge_item", self.repo.hard_delete(ids))
        self._emit(ItemPurged, removed_ids=ids)
        return ids

    async def _purgeable_subtree(self, item: Item) -> list[str]:
        descendant_ids = await self.repo.descendant_ids(item.id)
        live = [d.id for d in await self.repo.get_by_ids(descendant_ids) if d.deleted_at is None]
        if live:
            raise ValidationError(
                "Item has live descendants; delete or move them first",
                details={"id": item.id, "live_descendants": live},
            )
        return [item.id, *descendant_ids]

    async def empty_trash(self) -> list[str]:
        """Purge every top-level deleted item. Returns the removed ids."""
        removed: list[str] = []
        for root in await self.repo.trash_roots():
            try:
                removed.extend(await self._purgeable_subtree(root))
            except ValidationError as e:
                self._logger.warning(
                    "Skipping trash entry with live descendants",
                    extra={"item_id": root.id, "details": e.details},
                )

        removed = list(dict.fromkeys(removed))
        if not removed:
            return []

        self._log_operation("Emptying trash", rows=len(removed))
        await self._execute_db_operation("empty_trash", self.repo.hard_delete(removed))
        self._emit(ItemPurged, removed_ids=removed)
        return removed
