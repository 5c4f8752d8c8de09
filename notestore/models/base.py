"""
Declarative base and column mixins for the store's tables.

The tables are created by the schema provisioner from SQL, not by
``Base.metadata.create_all``; these mappings must track that script.
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from notestore.core.utils import utc_now


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """created_at is set once; updated_at follows every ORM update."""

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now, onupdate=utc_now
    )


class UUIDMixin:
    """Text primary key holding a random UUID4."""

    id: Mapped[str] = mapped_column(primary_key=True, default=new_id)
