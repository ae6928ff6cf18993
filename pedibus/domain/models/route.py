from datetime import datetime
from typing import List, Optional

from pedibus.domain.enums.activity import ActivityType
from pedibus.domain.enums.station_kind import StationKind
from pedibus.domain.models.base import DomainModel
from pedibus.domain.models.geo import BoundingBox


class Station(DomainModel):
    id: str
    name: str
    kind: StationKind
    latitude: float
    longitude: float


class RouteStop(DomainModel):
    """One entry of a route's persisted stop sequence."""
    route_id: str
    station_id: str
    stop_number: int
    distance_from_start_meters: int
    distance_from_previous_meters: int
    time_from_start_minutes: int


class Route(DomainModel):
    id: str
    name: str
    activity_type: ActivityType
    total_distance_meters: int
    bounds_north: float
    bounds_south: float
    bounds_east: float
    bounds_west: float
    created_at: Optional[datetime] = None

    @property
    def bounding_box(self) -> BoundingBox:
        return BoundingBox(
            north=self.bounds_north,
            south=self.bounds_south,
            east=self.bounds_east,
            west=self.bounds_west,
        )


class IngestedStop(DomainModel):
    """A stop produced by the ingestion pipeline, before it gets a station id."""
    name: str
    lat: float
    lon: float
    stop_number: int
    distance_from_start_meters: int
    distance_from_previous_meters: int
    time_from_start_minutes: int = 0


class IngestedRoute(DomainModel):
    stops: List[IngestedStop]
    bounding_box: BoundingBox
    total_distance_meters: int


class RouteStopDetail(DomainModel):
    """A persisted stop joined with its station."""
    station_id: str
    name: str
    kind: StationKind
    latitude: float
    longitude: float
    stop_number: int
    distance_from_start_meters: int
    distance_from_previous_meters: int
    time_from_start_minutes: int
