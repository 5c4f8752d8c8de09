"""
Generic repository over one mapped model.

Repositories only flush; the surrounding unit of work commits.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notestore.core.exceptions import NotFoundError
from notestore.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Primary-key lookup, insert and attribute update for ``model``."""

    model: type[ModelType]

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id_or_none(self, id: str) -> ModelType | None:
        # populate_existing: rows changed by bulk UPDATE statements in this
        # transaction must not be served stale from the identity map
        statement = (
            select(self.model)
            .where(self.model.id == str(id))
            .execution_options(populate_existing=True)
        )
        return (await self.session.execute(statement)).scalar_one_or_none()

    async def get_by_id(self, id: str) -> ModelType:
        """Like get_by_id_or_none, raising NotFoundError for a missing row."""
        found = await self.get_by_id_or_none(id)
        if found is None:
            raise NotFoundError(f"{self.model.__name__} not found: {id}", details={"id": str(id)})
        return found

    async def create(self, **values: Any) -> ModelType:
        """Insert a row and return it with server defaults loaded."""
        instance = self.model(**values)
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def update(self, instance: ModelType, **values: Any) -> ModelType:
        """Set mapped attributes on ``instance``; unknown names are ignored."""
        for name, value in values.items():
            if hasattr(instance, name):
                setattr(instance, name, value)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance
