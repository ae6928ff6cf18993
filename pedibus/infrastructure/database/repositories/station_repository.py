from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pedibus.domain.enums.station_kind import StationKind
from pedibus.domain.models.route import Station
from pedibus.domain.schemas.models import DBStation
from pedibus.infrastructure.database.repositories.base_repository import BaseRepository


class StationRepository(BaseRepository):

    async def get_by_ids(self, station_ids: Iterable[str], db: Optional[AsyncSession] = None) -> Dict[str, Station]:
        ids = list(set(station_ids))
        if not ids:
            return {}
        async with self._use(db) as session:
            stmt = select(DBStation).where(DBStation.id.in_(ids))
            result = await session.execute(stmt)
            return {row.id: Station.model_validate(row) for row in result.scalars().all()}

    async def find_by_coordinates(self, db: AsyncSession, latitude: float, longitude: float) -> Optional[Station]:
        stmt = (
            select(DBStation)
            .where(DBStation.latitude == latitude)
            .where(DBStation.longitude == longitude)
        )
        result = await db.execute(stmt)
        row = result.scalars().first()
        return Station.model_validate(row) if row else None

    async def add(
        self,
        db: AsyncSession,
        name: str,
        latitude: float,
        longitude: float,
        kind: StationKind = StationKind.REGULAR,
    ) -> Station:
        row = DBStation(name=name, latitude=latitude, longitude=longitude, kind=kind)
        db.add(row)
        await db.flush()
        await db.refresh(row)
        return Station.model_validate(row)
