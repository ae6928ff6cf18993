from pydantic import Field

from pedibus.domain.models.base import DomainModel


class Point(DomainModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class Waypoint(DomainModel):
    """A named candidate stop read from raw path data."""
    name: str
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)

    @property
    def point(self) -> Point:
        return Point(lat=self.lat, lon=self.lon)


class BoundingBox(DomainModel):
    north: float
    south: float
    east: float
    west: float
