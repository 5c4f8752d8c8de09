"""
Setting Model.

Flat key-value table. Values are JSON text.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notestore.models.base import Base, TimestampMixin


class Setting(TimestampMixin, Base):
    """A single settings entry."""

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<Setting(key={self.key!r})>"
