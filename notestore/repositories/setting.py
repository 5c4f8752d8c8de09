"""
Setting Repository.

Key-value rows. Values arrive and leave as JSON text; decoding is the
service's job.
"""

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from notestore.core.utils import utc_now
from notestore.models.setting import Setting


class SettingRepository:
    """Repository for the settings table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_raw(self, key: str) -> str | None:
        result = await self.session.execute(select(Setting.value).where(Setting.key == key))
        return result.scalar_one_or_none()

    async def get_many_raw(self, keys: list[str]) -> dict[str, str]:
        if not keys:
            return {}
        result = await self.session.execute(
            select(Setting.key, Setting.value).where(Setting.key.in_(keys))
        )
        return {row[0]: row[1] for row in result.all()}

    async def all_raw(self) -> dict[str, str]:
        result = await self.session.execute(select(Setting.key, Setting.value).order_by(Setting.key))
        return {row[0]: row[1] for row in result.all()}

    async def upsert(self, key: str, value: str) -> None:
        now = utc_now()
        statement = insert(Setting).values(key=key, value=value, created_at=now, updated_at=now)
        statement = statement.on_conflict_do_update(
            index_elements=[Setting.key],
            set_={"value": statement.excluded.value, "updated_at": now},
        )
        await self.session.execute(statement)

    async def delete(self, key: str) -> bool:
        result = await self.session.execute(delete(Setting).where(Setting.key == key))
        return bool(result.rowcount)

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(Setting))
        return result.scalar_one()
