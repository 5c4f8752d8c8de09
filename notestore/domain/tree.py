"""
Tree Materializer.

Turns the flat item list into ordered sibling groups and a nested view.
Groups are keyed by ``parent_id`` (``None`` for the root) and sorted by
sort key byte order, ties broken by id so the result is deterministic.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from notestore.core.logging import get_logger
from notestore.domain.hierarchy import can_be_child_of
from notestore.domain.sort_keys import sort_key

logger = get_logger(__name__)


class TreeItem(Protocol):
    id: str
    type: Any
    parent_id: str | None
    sort_order: str
    deleted_at: Any


@dataclass
class TreeNode:
    """An item with its ordered children."""

    item: Any
    children: list["TreeNode"] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.item.id


def _group_order(item: TreeItem) -> tuple[bytes, str]:
    return sort_key(item.sort_order), item.id


def neighbors_at(keys: list[str], index: int | None) -> tuple[str | None, str | None]:
    """
    Bounds for inserting into an ordered key list at ``index``.

    ``None`` or an index past the end appends; ``0`` or less prepends.
    """
    if not keys:
        return None, None
    if index is None or index >= len(keys):
        return keys[-1], None
    if index <= 0:
        return None, keys[0]
    return keys[index - 1], keys[index]


class Tree:
    """Ordered forest built from a flat item list."""

    def __init__(self) -> None:
        self._items: dict[str, Any] = {}
        self._groups: dict[str | None, list[Any]] = defaultdict(list)

    @classmethod
    def build(cls, items: Iterable[TreeItem], include_deleted: bool = False) -> "Tree":
        tree = cls()
        for item in items:
            if item.deleted_at is not None and not include_deleted:
                continue
            tree._items[item.id] = item
            tree._groups[item.parent_id].append(item)
        for group in tree._groups.values():
            group.sort(key=_group_order)
        return tree

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def get(self, item_id: str) -> Any | None:
        return self._items.get(item_id)

    def items(self) -> list[Any]:
        return list(self._items.values())

    def children(self, parent_id: str | None = None) -> list[Any]:
        """Ordered children of ``parent_id`` (root when ``None``)."""
        return list(self._groups.get(parent_id, ()))

    def roots(self) -> list[Any]:
        return self.children(None)

    def sibling_keys(self, parent_id: str | None, exclude_id: str | None = None) -> list[str]:
        return [
            item.sort_order
            for item in self._groups.get(parent_id, ())
            if item.id != exclude_id
        ]

    def neighbors_at(
        self,
        parent_id: str | None,
        index: int | None,
        exclude_id: str | None = None,
    ) -> tuple[str | None, str | None]:
        return neighbors_at(self.sibling_keys(parent_id, exclude_id), index)

    def ancestors(self, item_id: str) -> list[str]:
        """Ids from the parent up to the root. Stops if a cycle is met."""
        chain: list[str] = []
        seen = {item_id}
        current = self._items.get(item_id)
        while current is not None and current.parent_id is not None:
            parent_id = current.parent_id
            if parent_id in seen:
                break
            chain.append(parent_id)
            seen.add(parent_id)
            current = self._items.get(parent_id)
        return chain

    def is_descendant(self, candidate_id: str, ancestor_id: str) -> bool:
        """True when ``candidate_id`` lies strictly below ``ancestor_id``."""
        return ancestor_id in self.ancestors(candidate_id)

    def descendants(self, item_id: str) -> list[str]:
        result: list[str] = []
        stack = [child.id for child in reversed(self._groups.get(item_id, ()))]
        seen = {item_id}
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            result.append(current)
            stack.extend(child.id for child in reversed(self._groups.get(current, ())))
        return result

    def nested(self) -> list[TreeNode]:
        """Nested view reachable from the root, in visual order."""
        seen: set[str] = set()

        def build(parent_id: str | None) -> list[TreeNode]:
            nodes = []
            for item in self._groups.get(parent_id, ()):
                if item.id in seen:
                    continue
                seen.add(item.id)
                nodes.append(TreeNode(item=item, children=build(item.id)))
            return nodes

        return build(None)

    def flatten(self) -> list[tuple[int, Any]]:
        """Depth-first ``(depth, item)`` pairs in visual order."""
        result: list[tuple[int, Any]] = []

        def walk(nodes: list[TreeNode], depth: int) -> None:
            for node in nodes:
                result.append((depth, node.item))
                walk(node.children, depth + 1)

        walk(self.nested(), 0)
        return result

    def violations(self) -> list[str]:
        """Describe every broken invariant; empty when the forest is sound."""
        problems: list[str] = []
        for item in self._items.values():
            parent = None
            if item.parent_id is not None:
                parent = self._items.get(item.parent_id)
                if parent is None:
                    problems.append(f"orphan: {item.id} references missing parent {item.parent_id}")
                    continue
            parent_type = parent.type if parent is not None else None
            if not can_be_child_of(item.type, parent_type):
                problems.append(f"hierarchy: {item.id} ({item.type}) under {parent_type or 'root'}")
            if item.parent_id is not None and item.id in self.ancestors(item.parent_id) + [item.parent_id]:
                problems.append(f"cycle: {item.id}")
        for parent_id, group in self._groups.items():
            keys = [item.sort_order for item in group]
            if len(keys) != len(set(keys)):
                problems.append(f"duplicate sort keys under {parent_id or 'root'}")
        return problems

    # Incremental maintenance

    def upsert(self, item: TreeItem) -> None:
        """Insert or replace one item, re-sorting only the affected groups."""
        previous = self._items.get(item.id)
        if previous is not None:
            group = self._groups.get(previous.parent_id, [])
            self._groups[previous.parent_id] = [i for i in group if i.id != item.id]
        if item.deleted_at is not None:
            self._items.pop(item.id, None)
            return
        self._items[item.id] = item
        group = self._groups[item.parent_id]
        group.append(item)
        group.sort(key=_group_order)

    def remove(self, item_ids: Iterable[str]) -> None:
        for item_id in item_ids:
            previous = self._items.pop(item_id, None)
            if previous is None:
                continue
            group = self._groups.get(previous.parent_id, [])
            self._groups[previous.parent_id] = [i for i in group if i.id != item_id]


class TreeMaterializer:
    """
    Cached ordered tree kept current by store events.

    Usage:
        materializer = TreeMaterializer(loader=store_items)
        await materializer.refresh()
        materializer.attach(store.events)
    """

    def __init__(self, loader: Any = None, item_factory: Any = None) -> None:
        self._loader = loader
        self._item_factory = item_factory
        self._tree = Tree()
        self._bus: Any = None

    @property
    def tree(self) -> Tree:
        return self._tree

    async def refresh(self) -> Tree:
        """Rebuild from the loader's full item list."""
        if self._loader is None:
            raise RuntimeError("TreeMaterializer has no loader")
        self._tree = Tree.build(await self._loader())
        logger.debug("Tree materialized", extra={"items": len(self._tree)})
        return self._tree

    def attach(self, bus: Any) -> None:
        self.detach()
        bus.subscribe(self.handle)
        self._bus = bus

    def detach(self) -> None:
        if self._bus is not None:
            self._bus.unsubscribe(self.handle)
            self._bus = None

    def _as_item(self, data: Any) -> Any:
        if self._item_factory is not None and isinstance(data, dict):
            return self._item_factory(data)
        return data

    def handle(self, event: Any) -> None:
        """Apply one item event to the cached tree."""
        payload = event.payload
        for data in payload.get("items", ()):
            self._tree.upsert(self._as_item(data))
        removed = payload.get("removed_ids", ())
        if removed:
            self._tree.remove(removed)
