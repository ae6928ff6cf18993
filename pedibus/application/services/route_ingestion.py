"""Turns a raw path (polyline + named waypoints) into an ordered stop sequence.

The pipeline is pure: it never reads files or talks to the network, so the same
input always yields the same :class:`IngestedRoute`.
"""

import math
from dataclasses import dataclass
from typing import List, Sequence

from pedibus.application.utils.distance_helper import DistanceHelper
from pedibus.application.utils.time_estimator import TimeEstimator
from pedibus.core.exceptions import ErrorCode, ValidationError
from pedibus.domain.enums.activity import ActivityMode
from pedibus.domain.models.geo import Point, Waypoint
from pedibus.domain.models.route import IngestedRoute, IngestedStop

MIN_POLYLINE_POINTS = 2
MIN_STOPS = 2


@dataclass
class _MatchedWaypoint:
    waypoint: Waypoint
    route_index: int
    distance_along_route: float


class RouteIngestionPipeline:

    def __init__(self, mode: ActivityMode = ActivityMode.WALK):
        self.mode = mode

    def ingest(self, polyline: Sequence[Point], waypoints: Sequence[Waypoint]) -> IngestedRoute:
        if len(polyline) < MIN_POLYLINE_POINTS:
            raise ValidationError(
                f"A route needs at least {MIN_POLYLINE_POINTS} path points, got {len(polyline)}",
                ErrorCode.INVALID_ROUTE,
            )

        cumulative = DistanceHelper.cumulative_distances(polyline)
        matched = self._match_waypoints(polyline, cumulative, waypoints)

        if len(matched) < MIN_STOPS:
            raise ValidationError(
                f"A route needs at least {MIN_STOPS} stops, got {len(matched)}",
                ErrorCode.INSUFFICIENT_STOPS,
            )

        offset = matched[0].distance_along_route
        stops = self._build_stops(matched, offset)

        return IngestedRoute(
            stops=stops,
            bounding_box=DistanceHelper.bounding_box(polyline),
            total_distance_meters=max(0, math.trunc(cumulative[-1] - offset)),
        )

    @staticmethod
    def _match_waypoints(
        polyline: Sequence[Point], cumulative: List[float], waypoints: Sequence[Waypoint]
    ) -> List[_MatchedWaypoint]:
        matched = []
        for waypoint in waypoints:
            index = DistanceHelper.closest_point_index(waypoint.point, polyline)
            matched.append(_MatchedWaypoint(waypoint, index, cumulative[index]))

        # Stable sort: waypoints snapped to the same vertex keep their input order
        matched.sort(key=lambda m: m.distance_along_route)
        return matched

    def _build_stops(self, matched: List[_MatchedWaypoint], offset: float) -> List[IngestedStop]:
        stops: List[IngestedStop] = []
        previous_from_start = 0
        for stop_number, item in enumerate(matched, start=1):
            # Whole meters, floored; differences are taken on the floored values
            # so distance_from_previous always adds up to distance_from_start.
            from_start = math.floor(item.distance_along_route - offset)
            from_previous = max(0, from_start - previous_from_start) if stops else 0

            stops.append(IngestedStop(
                name=item.waypoint.name,
                lat=item.waypoint.lat,
                lon=item.waypoint.lon,
                stop_number=stop_number,
                distance_from_start_meters=from_start,
                distance_from_previous_meters=from_previous,
                time_from_start_minutes=TimeEstimator.estimate_minutes(from_start, self.mode),
            ))
            previous_from_start = from_start
        return stops


def ingest_route(
    polyline: Sequence[Point],
    waypoints: Sequence[Waypoint],
    mode: ActivityMode = ActivityMode.WALK,
) -> IngestedRoute:
    return RouteIngestionPipeline(mode).ingest(polyline, waypoints)
