from typing import Iterable, List, Optional, Sequence

from pedibus.application.services.route_ingestion import RouteIngestionPipeline
from pedibus.application.utils.distance_helper import DistanceHelper
from pedibus.core.exceptions import ErrorCode, NotFoundError, StateConflictError, ValidationError
from pedibus.core.logger import logger
from pedibus.domain.enums.activity import ActivityMode, ActivityType
from pedibus.domain.enums.station_kind import StationKind
from pedibus.domain.models.geo import Point, Waypoint
from pedibus.domain.models.route import IngestedRoute, IngestedStop, Route, RouteStop, RouteStopDetail
from pedibus.infrastructure.database.repositories.route_repository import RouteRepository
from pedibus.infrastructure.database.repositories.station_repository import StationRepository


class RouteService:
    """Catalog of routes: turns raw path data into persisted stop sequences."""

    def __init__(self, route_repository: RouteRepository, station_repository: StationRepository):
        self.routes = route_repository
        self.stations = station_repository
        self.logger = logger.getChild(self.__class__.__name__)

    @staticmethod
    def preview(
        activity_type: ActivityType,
        polyline: Sequence[Point],
        waypoints: Sequence[Waypoint],
    ) -> IngestedRoute:
        return RouteIngestionPipeline(ActivityMode.for_type(activity_type)).ingest(polyline, waypoints)

    async def import_route(
        self,
        name: str,
        activity_type: ActivityType,
        polyline: Sequence[Point],
        waypoints: Sequence[Waypoint],
        school_stop_names: Optional[Iterable[str]] = None,
    ) -> Route:
        """Ingest and persist a route in one transaction.

        Stations are shared: a stop whose coordinates match an existing station
        exactly reuses it, but two stops of one route never share coordinates.
        Without ``school_stop_names`` the last stop is the school.
        """
        ingested = self.preview(activity_type, polyline, waypoints)
        self._require_distinct_stations(ingested.stops)
        school_names = set(school_stop_names or [])
        last_number = ingested.stops[-1].stop_number

        async with self.routes.transaction() as db:
            if await self.routes.get_by_name(name, db):
                raise StateConflictError(f"Route '{name}' already exists", ErrorCode.ROUTE_EXISTS)

            route = await self.routes.add(
                db,
                name=name,
                activity_type=activity_type,
                total_distance_meters=ingested.total_distance_meters,
                bounding_box=ingested.bounding_box,
            )

            stops = []
            for stop in ingested.stops:
                is_school = stop.name in school_names if school_names else stop.stop_number == last_number
                station = await self.stations.find_by_coordinates(db, stop.lat, stop.lon)
                if station is None:
                    station = await self.stations.add(
                        db,
                        name=stop.name,
                        latitude=stop.lat,
                        longitude=stop.lon,
                        kind=StationKind.SCHOOL if is_school else StationKind.REGULAR,
                    )
                stops.append(RouteStop(
                    route_id=route.id,
                    station_id=station.id,
                    stop_number=stop.stop_number,
                    distance_from_start_meters=stop.distance_from_start_meters,
                    distance_from_previous_meters=stop.distance_from_previous_meters,
                    time_from_start_minutes=stop.time_from_start_minutes,
                ))
            await self.routes.add_stops(db, stops)

        self.logger.info(
            f"✅ Route '{name}' imported with {len(stops)} stops "
            f"({DistanceHelper.format_distance(route.total_distance_meters)})"
        )
        return route

    @staticmethod
    def _require_distinct_stations(stops: Sequence[IngestedStop]):
        seen = {}
        for stop in stops:
            key = (stop.lat, stop.lon)
            if key in seen:
                raise ValidationError(
                    f"Stops '{seen[key]}' and '{stop.name}' share the same coordinates",
                    ErrorCode.INVALID_ROUTE,
                )
            seen[key] = stop.name

    async def list_routes(self) -> List[Route]:
        return await self.routes.get_all()

    async def get_route(self, route_id: str) -> Route:
        route = await self.routes.get_by_id(route_id)
        if route is None:
            raise NotFoundError(f"Route {route_id} not found")
        return route

    async def get_route_stops(self, route_id: str) -> List[RouteStopDetail]:
        await self.get_route(route_id)
        stops = await self.routes.get_stops(route_id)
        stations = await self.stations.get_by_ids(s.station_id for s in stops)
        return [
            RouteStopDetail(
                station_id=stop.station_id,
                name=stations[stop.station_id].name,
                kind=stations[stop.station_id].kind,
                latitude=stations[stop.station_id].latitude,
                longitude=stations[stop.station_id].longitude,
                stop_number=stop.stop_number,
                distance_from_start_meters=stop.distance_from_start_meters,
                distance_from_previous_meters=stop.distance_from_previous_meters,
                time_from_start_minutes=stop.time_from_start_minutes,
            )
            for stop in stops
        ]
