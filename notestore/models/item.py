"""
Item Model.

One row per book, section or note. The table itself is created by the
schema provisioner; this mapping mirrors it.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notestore.models.base import Base, TimestampMixin, UUIDMixin


class Item(UUIDMixin, TimestampMixin, Base):
    """
    Item database model.

    ``sort_order`` is a fractional index key, unique among live siblings.
    ``meta`` maps to the ``metadata`` column (the attribute name is reserved
    by SQLAlchemy) and holds presentation attributes such as custom_icon,
    custom_text_color and is_pinned.
    """

    __tablename__ = "items"

    type: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="Untitled")
    parent_id: Mapped[str | None] = mapped_column(
        ForeignKey("items.id"),
        nullable=True,
        index=True,
    )
    sort_order: Mapped[str] = mapped_column(String, nullable=False)

    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_type: Mapped[str] = mapped_column(String(16), nullable=False, default="html")
    content_raw: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_plaintext: Mapped[str | None] = mapped_column(Text, nullable=True)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    character_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    meta: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Item(id={self.id}, type={self.type}, title={self.title!r})>"
