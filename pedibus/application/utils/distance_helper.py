import math
from typing import List, Sequence

from pedibus.domain.models.geo import BoundingBox, Point


class DistanceHelper:
    EARTH_RADIUS_KM = 6371.0  # Average Earth radius in kilometers

    @staticmethod
    def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculates the great-circle distance between two points on Earth, in kilometers."""
        phi1 = math.radians(lat1)
        phi2 = math.radians(lat2)
        delta_phi = math.radians(lat2 - lat1)
        delta_lambda = math.radians(lon2 - lon1)

        a = (math.sin(delta_phi / 2) ** 2 +
             math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
        return DistanceHelper.EARTH_RADIUS_KM * c

    @staticmethod
    def haversine_meters(a: Point, b: Point) -> float:
        return DistanceHelper.haversine_distance(a.lat, a.lon, b.lat, b.lon) * 1000

    @staticmethod
    def cumulative_distances(points: Sequence[Point]) -> List[float]:
        """Distance in meters from the first point to each point, following the path."""
        cumulative = [0.0]
        total = 0.0
        for previous, current in zip(points, points[1:]):
            total += DistanceHelper.haversine_meters(previous, current)
            cumulative.append(total)
        return cumulative

    @staticmethod
    def closest_point_index(target: Point, line: Sequence[Point]) -> int:
        """Index of the vertex nearest to ``target``; the first one wins on ties."""
        min_distance = math.inf
        min_index = 0
        for index, point in enumerate(line):
            distance = DistanceHelper.haversine_meters(target, point)
            if distance < min_distance:
                min_distance = distance
                min_index = index
        return min_index

    @staticmethod
    def bounding_box(points: Sequence[Point]) -> BoundingBox:
        latitudes = [p.lat for p in points]
        longitudes = [p.lon for p in points]
        return BoundingBox(
            north=max(latitudes),
            south=min(latitudes),
            east=max(longitudes),
            west=min(longitudes),
        )

    @staticmethod
    def format_distance(distance_meters: float) -> str:
        if distance_meters < 1000:
            return f"{int(distance_meters)}m"
        return f"{distance_meters / 1000:.1f}km"
