"""
Hierarchy Rules.

Static table of which item types may be placed under which parents.

    book    → root
    section → root, book
    note    → root, book, section

Pure functions, no storage access.
"""

from dataclasses import dataclass
from enum import Enum
from typing import assert_never

from notestore.core.exceptions import ValidationError


class ItemType(str, Enum):
    """Kind of item in the forest."""

    BOOK = "book"
    SECTION = "section"
    NOTE = "note"


ROOT_LABEL = "root"


def valid_parents_of(item_type: ItemType) -> frozenset[ItemType | None]:
    """Parent types an item of this type may sit under. None is the root."""
    match item_type:
        case ItemType.BOOK:
            return frozenset({None})
        case ItemType.SECTION:
            return frozenset({None, ItemType.BOOK})
        case ItemType.NOTE:
            return frozenset({None, ItemType.BOOK, ItemType.SECTION})
        case _:
            assert_never(item_type)


def can_be_child_of(child_type: ItemType, parent_type: ItemType | None) -> bool:
    """True iff child_type may be placed under parent_type (None = root)."""
    parent = ItemType(parent_type) if parent_type is not None else None
    return parent in valid_parents_of(ItemType(child_type))


def valid_children_of(parent_type: ItemType | None) -> frozenset[ItemType]:
    """Item types that may be placed under parent_type (None = root)."""
    return frozenset(t for t in ItemType if can_be_child_of(t, parent_type))


def can_have_children(item_type: ItemType) -> bool:
    """Notes are leaves; books and sections are containers."""
    return bool(valid_children_of(ItemType(item_type)))


def _label(parent_type: ItemType | None) -> str:
    return ROOT_LABEL if parent_type is None else ItemType(parent_type).value


def _ordered_labels(parents: frozenset[ItemType | None]) -> list[str]:
    # root first, then containers in declaration order
    ordered: list[ItemType | None] = [None, *ItemType]
    return [_label(p) for p in ordered if p in parents]


@dataclass(frozen=True)
class HierarchyCheck:
    """Outcome of a placement check. ``error`` is set when invalid."""

    valid: bool
    error: str | None = None
    allowed_parents: tuple[str, ...] = ()


def validate_move(child_type: ItemType, new_parent_type: ItemType | None) -> HierarchyCheck:
    """
    Check a placement and describe the permitted parents when it fails.

    Example:
        >>> validate_move(ItemType.BOOK, ItemType.SECTION).error
        'books cannot be placed in section. Valid locations: root'
    """
    child_type = ItemType(child_type)
    parent = ItemType(new_parent_type) if new_parent_type is not None else None
    allowed = tuple(_ordered_labels(valid_parents_of(child_type)))

    if can_be_child_of(child_type, parent):
        return HierarchyCheck(valid=True, allowed_parents=allowed)

    return HierarchyCheck(
        valid=False,
        error=(
            f"{child_type.value}s cannot be placed in {_label(parent)}. "
            f"Valid locations: {', '.join(allowed)}"
        ),
        allowed_parents=allowed,
    )


def ensure_can_be_child_of(child_type: ItemType, parent_type: ItemType | None) -> None:
    """
    Raise ValidationError when the placement is not permitted.

    Raises:
        ValidationError: with details listing the allowed parents
    """
    check = validate_move(child_type, parent_type)
    if not check.valid:
        raise ValidationError(
            check.error,
            details={
                "child_type": ItemType(child_type).value,
                "parent_type": _label(parent_type),
                "allowed_parents": list(check.allowed_parents),
            },
        )
