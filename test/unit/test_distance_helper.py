import pytest

from pedibus.application.utils.distance_helper import DistanceHelper
from pedibus.domain.models.geo import Point


def test_haversine_distance_is_zero_for_identical_points():
    assert DistanceHelper.haversine_distance(41.55, -8.42, 41.55, -8.42) == 0


def test_haversine_distance_one_degree_of_latitude():
    # 1° of latitude on a 6371 km sphere
    assert DistanceHelper.haversine_distance(0, 0, 1, 0) == pytest.approx(111.195, abs=0.01)


def test_cumulative_distances_follow_the_path():
    points = [Point(lat=41.55, lon=-8.42), Point(lat=41.551, lon=-8.42), Point(lat=41.552, lon=-8.42)]
    cumulative = DistanceHelper.cumulative_distances(points)

    assert cumulative[0] == 0
    assert cumulative[1] == pytest.approx(DistanceHelper.haversine_meters(points[0], points[1]))
    assert cumulative[2] == pytest.approx(2 * cumulative[1], rel=1e-6)


def test_closest_point_index_prefers_first_vertex_on_ties():
    line = [Point(lat=41.55, lon=-8.42), Point(lat=41.56, lon=-8.42), Point(lat=41.55, lon=-8.42)]
    assert DistanceHelper.closest_point_index(Point(lat=41.55, lon=-8.42), line) == 0
    assert DistanceHelper.closest_point_index(Point(lat=41.559, lon=-8.42), line) == 1


def test_bounding_box_covers_every_point():
    points = [Point(lat=41.54, lon=-8.42), Point(lat=41.55, lon=-8.43), Point(lat=41.545, lon=-8.41)]
    box = DistanceHelper.bounding_box(points)

    assert (box.north, box.south, box.east, box.west) == (41.55, 41.54, -8.41, -8.43)


@pytest.mark.parametrize("meters, expected", [(0, "0m"), (999.9, "999m"), (1500, "1.5km")])
def test_format_distance(meters, expected):
    assert DistanceHelper.format_distance(meters) == expected
