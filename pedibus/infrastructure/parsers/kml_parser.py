import io
import zipfile
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from pedibus.core.exceptions import ErrorCode, ValidationError
from pedibus.core.logger import logger
from pedibus.domain.models.geo import Point, Waypoint


@dataclass
class RawRoute:
    """Path data as read from a KML document, before ingestion."""
    polyline: List[Point] = field(default_factory=list)
    waypoints: List[Waypoint] = field(default_factory=list)


def _local_name(tag: str) -> str:
    # "{http://www.opengis.net/kml/2.2}Placemark" -> "Placemark"
    return tag.rsplit("}", 1)[-1]


def _parse_coordinate(raw: str) -> Optional[Tuple[float, float]]:
    parts = raw.strip().split(",")
    if len(parts) < 2:
        return None
    try:
        lon = float(parts[0])
        lat = float(parts[1])
    except ValueError:
        return None
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return lat, lon


class KmlParser:

    @staticmethod
    def parse_kml(kml_text: str) -> RawRoute:
        try:
            root = ET.fromstring(kml_text)
        except ET.ParseError as e:
            raise ValidationError(f"Malformed KML document: {e}", ErrorCode.INVALID_ROUTE)

        route = RawRoute()
        for element in root.iter():
            name = _local_name(element.tag)
            if name == "LineString":
                route.polyline.extend(KmlParser._line_points(element))
            elif name == "Placemark":
                waypoint = KmlParser._placemark_waypoint(element)
                if waypoint:
                    route.waypoints.append(waypoint)

        logger.debug(
            f"[KmlParser] {len(route.polyline)} path points, {len(route.waypoints)} placemarks"
        )
        return route

    @staticmethod
    def parse_kmz(kmz_data: bytes) -> RawRoute:
        try:
            with zipfile.ZipFile(io.BytesIO(kmz_data)) as z:
                kml_name = next((n for n in z.namelist() if n.lower().endswith(".kml")), None)
                if kml_name is None:
                    raise ValidationError("No .kml file found inside the .kmz archive", ErrorCode.INVALID_ROUTE)
                kml_data = z.read(kml_name)
        except zipfile.BadZipFile as e:
            raise ValidationError(f"Malformed KMZ archive: {e}", ErrorCode.INVALID_ROUTE)
        return KmlParser.parse_kml(KmlParser._decode(kml_data))

    @staticmethod
    def parse_file(path: Path) -> RawRoute:
        if path.suffix.lower() == ".kmz":
            return KmlParser.parse_kmz(path.read_bytes())
        return KmlParser.parse_kml(KmlParser._decode(path.read_bytes()))

    @staticmethod
    def _decode(data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError(f"KML document is not valid UTF-8: {e}", ErrorCode.INVALID_ROUTE)

    @staticmethod
    def _line_points(line_string: ET.Element) -> List[Point]:
        coordinates = next(
            (child for child in line_string if _local_name(child.tag) == "coordinates"), None
        )
        if coordinates is None or not coordinates.text:
            return []

        points = []
        for raw in coordinates.text.split():
            parsed = _parse_coordinate(raw)
            if parsed:
                points.append(Point(lat=parsed[0], lon=parsed[1]))
        return points

    @staticmethod
    def _placemark_waypoint(placemark: ET.Element) -> Optional[Waypoint]:
        name = ""
        point_coordinates = None
        for child in placemark:
            tag = _local_name(child.tag)
            if tag == "name":
                name = (child.text or "").strip()
            elif tag == "Point":
                point_coordinates = next(
                    (c for c in child if _local_name(c.tag) == "coordinates"), None
                )

        if point_coordinates is None or not point_coordinates.text:
            return None
        parsed = _parse_coordinate(point_coordinates.text)
        if parsed is None:
            return None
        return Waypoint(name=name, lat=parsed[0], lon=parsed[1])
