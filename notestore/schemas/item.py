"""
Item Schemas.

Request and read models for items.
"""

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from notestore.domain.hierarchy import ItemType
from notestore.domain.plaintext import ContentType

PRESENTATION_KEYS = ("custom_icon", "custom_text_color", "is_pinned")

# Fields that only move/reorder may change
HIERARCHY_FIELDS = frozenset({"type", "parent_id", "sort_order"})


class ItemCreate(BaseModel):
    """
    Parameters for creating an item.

    Placement: ``index`` inserts at that position among the new siblings,
    ``after_id`` / ``before_id`` insert next to (or between) given siblings,
    and with none of them the item is appended.
    """

    type: ItemType
    title: str = Field(default="Untitled", min_length=1, max_length=255)
    parent_id: str | None = None
    content: str | None = None
    content_type: ContentType = ContentType.HTML
    content_raw: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    custom_icon: str | None = None
    custom_text_color: str | None = None
    is_pinned: bool | None = None
    index: int | None = None
    after_id: str | None = None
    before_id: str | None = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _single_placement(self) -> "ItemCreate":
        if self.index is not None and (self.after_id or self.before_id):
            raise ValueError("index cannot be combined with after_id/before_id")
        return self


class ItemUpdate(BaseModel):
    """Patch for title, content and presentation. Only set fields apply."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    content: str | None = None
    content_type: ContentType | None = None
    content_raw: str | None = None
    metadata: dict[str, Any] | None = None
    custom_icon: str | None = None
    custom_text_color: str | None = None
    is_pinned: bool | None = None

    model_config = ConfigDict(extra="forbid")


class ItemRead(BaseModel):
    """Item as returned to callers."""

    id: str
    type: ItemType
    title: str
    parent_id: str | None = None
    sort_order: str
    content: str | None = None
    content_type: ContentType = ContentType.HTML
    content_raw: str | None = None
    content_plaintext: str | None = None
    word_count: int = 0
    character_count: int = 0
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("meta", "metadata"),
    )
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def custom_icon(self) -> str | None:
        return self.metadata.get("custom_icon")

    @property
    def custom_text_color(self) -> str | None:
        return self.metadata.get("custom_text_color")

    @property
    def is_pinned(self) -> bool:
        return bool(self.metadata.get("is_pinned", False))

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class TreeEntry(BaseModel):
    """One node of the nested tree view."""

    id: str
    type: ItemType
    title: str
    parent_id: str | None = None
    sort_order: str
    custom_icon: str | None = None
    custom_text_color: str | None = None
    is_pinned: bool = False
    children: list["TreeEntry"] = Field(default_factory=list)


class SearchResult(BaseModel):
    """A matching item with its highlighted excerpt."""

    item: ItemRead
    snippet: str
    rank: float


class StorageInfo(BaseModel):
    """Counts and size of the store."""

    notes: int = 0
    books: int = 0
    sections: int = 0
    deleted: int = 0
    settings: int = 0
    database_path: str
    database_size_bytes: int | None = None
    schema_version: int = 0
