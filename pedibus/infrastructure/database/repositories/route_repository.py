from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pedibus.domain.enums.activity import ActivityType
from pedibus.domain.models.geo import BoundingBox
from pedibus.domain.models.route import Route, RouteStop
from pedibus.domain.schemas.models import DBRoute, DBRouteStation
from pedibus.infrastructure.database.repositories.base_repository import BaseRepository


class RouteRepository(BaseRepository):
    """Persisted routes and their ordered stop sequences."""

    async def get_by_id(self, route_id: str, db: Optional[AsyncSession] = None) -> Optional[Route]:
        async with self._use(db) as session:
            row = await session.get(DBRoute, route_id)
            return Route.model_validate(row) if row else None

    async def get_by_name(self, name: str, db: Optional[AsyncSession] = None) -> Optional[Route]:
        async with self._use(db) as session:
            result = await session.execute(select(DBRoute).where(DBRoute.name == name))
            row = result.scalars().first()
            return Route.model_validate(row) if row else None

    async def get_all(self) -> List[Route]:
        async with self.session_factory() as session:
            result = await session.execute(select(DBRoute).order_by(DBRoute.name))
            return [Route.model_validate(row) for row in result.scalars().all()]

    async def get_stops(self, route_id: str, db: Optional[AsyncSession] = None) -> List[RouteStop]:
        """Stops of a route ordered by stop number."""
        async with self._use(db) as session:
            stmt = (
                select(DBRouteStation)
                .where(DBRouteStation.route_id == route_id)
                .order_by(DBRouteStation.stop_number)
            )
            result = await session.execute(stmt)
            return [RouteStop.model_validate(row) for row in result.scalars().all()]

    async def add(
        self,
        db: AsyncSession,
        name: str,
        activity_type: ActivityType,
        total_distance_meters: int,
        bounding_box: BoundingBox,
    ) -> Route:
        row = DBRoute(
            name=name,
            activity_type=activity_type,
            total_distance_meters=total_distance_meters,
            bounds_north=bounding_box.north,
            bounds_south=bounding_box.south,
            bounds_east=bounding_box.east,
            bounds_west=bounding_box.west,
        )
        db.add(row)
        await db.flush()
        await db.refresh(row)
        return Route.model_validate(row)

    async def add_stops(self, db: AsyncSession, stops: List[RouteStop]):
        db.add_all([
            DBRouteStation(
                route_id=stop.route_id,
                station_id=stop.station_id,
                stop_number=stop.stop_number,
                distance_from_start_meters=stop.distance_from_start_meters,
                distance_from_previous_meters=stop.distance_from_previous_meters,
                time_from_start_minutes=stop.time_from_start_minutes,
            )
            for stop in stops
        ])
        await db.flush()
