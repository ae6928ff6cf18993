from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pedibus.domain.enums.weather_type import WeatherType
from pedibus.domain.models.stats import Badge, ClientBadge, ClientStat
from pedibus.domain.schemas.models import DBActivitySession, DBBadge, DBClientBadge, DBClientStat
from pedibus.infrastructure.database.repositories.base_repository import BaseRepository


class StatsRepository(BaseRepository):

    async def get_for_session(self, session_id: str) -> List[ClientStat]:
        async with self.session_factory() as session:
            stmt = (
                select(DBClientStat)
                .where(DBClientStat.activity_session_id == session_id)
                .order_by(DBClientStat.person_id)
            )
            result = await session.execute(stmt)
            return [ClientStat.model_validate(row) for row in result.scalars().all()]

    async def get_with_weather_for_person(
        self, person_id: str
    ) -> List[Tuple[ClientStat, Optional[WeatherType]]]:
        """Every stat row of a person alongside the weather of its session."""
        async with self.session_factory() as session:
            stmt = (
                select(DBClientStat, DBActivitySession.weather_type)
                .join(DBActivitySession, DBActivitySession.id == DBClientStat.activity_session_id)
                .where(DBClientStat.person_id == person_id)
            )
            result = await session.execute(stmt)
            return [(ClientStat.model_validate(stat), weather) for stat, weather in result.all()]

    async def add_many(self, db: AsyncSession, stats: List[ClientStat]):
        db.add_all([DBClientStat(**stat.model_dump()) for stat in stats])
        await db.flush()


class BadgeRepository(BaseRepository):

    async def get_all(self) -> List[Badge]:
        async with self.session_factory() as session:
            result = await session.execute(select(DBBadge).order_by(DBBadge.name))
            return [Badge.model_validate(row) for row in result.scalars().all()]

    async def get_for_person(self, person_id: str) -> List[ClientBadge]:
        async with self.session_factory() as session:
            stmt = select(DBClientBadge).where(DBClientBadge.person_id == person_id)
            result = await session.execute(stmt)
            return [ClientBadge.model_validate(row) for row in result.scalars().all()]

    async def add(self, db: AsyncSession, badge: Badge) -> Badge:
        row = DBBadge(**badge.model_dump())
        db.add(row)
        await db.flush()
        return Badge.model_validate(row)

    async def award(self, db: AsyncSession, awards: List[ClientBadge]):
        db.add_all([
            DBClientBadge(badge_id=a.badge_id, person_id=a.person_id, role=a.role)
            for a in awards
        ])
        await db.flush()
