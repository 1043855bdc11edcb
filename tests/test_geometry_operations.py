import pytest

from core.exceptions import UnsupportedGeometry
from geometry_engine import operations as ops
from geometry_engine.shapes import Envelope, Multipoint, Point, Polygon, Polyline

# clockwise outer ring and counter-clockwise hole (ESRI convention)
OUTER = [[0, 0], [0, 10], [10, 10], [10, 0], [0, 0]]
HOLE = [[2, 2], [8, 2], [8, 8], [2, 8], [2, 2]]
ISLAND = [[20, 0], [20, 5], [25, 5], [25, 0], [20, 0]]

SQUARE = Polygon([OUTER])
DONUT = Polygon([OUTER, HOLE])


def test_ring_orientation():
    assert ops.is_clockwise(OUTER)
    assert not ops.is_clockwise(HOLE)


def test_group_rings_by_first_ring_polarity():
    assert ops.group_rings(Polygon([OUTER, HOLE, ISLAND])) == [[OUTER, HOLE], [ISLAND]]

    # a polygon written counter-clockwise first treats counter-clockwise as outer
    reversed_rings = [list(reversed(r)) for r in (OUTER, HOLE)]
    assert ops.group_rings(Polygon(reversed_rings)) == [reversed_rings]


def test_length_and_perimeter():
    assert ops.length(Polyline.from_points((0, 0), (3, 4), (3, 10))) == 11
    assert ops.perimeter(SQUARE) == 40
    assert ops.length(None) == 0


def test_area_subtracts_holes():
    assert ops.area(SQUARE) == 100
    assert ops.area(DONUT) == 64
    assert ops.area(Polygon([HOLE])) == -36


def test_extent_carries_spatial_reference():
    line = Polyline([[[1, 5], [-2, 3]], [[4, 0]]], spatial_reference=3857)

    assert ops.extent(line) == Envelope(-2, 0, 4, 5, 3857)
    assert ops.extent(Point(1, 2)) == Envelope(1, 2, 1, 2)


def test_extent_of_empty_geometry():
    with pytest.raises(UnsupportedGeometry):
        ops.extent(Multipoint([]))


def test_buffer_and_centre():
    assert ops.buffer(Envelope(0, 0, 2, 4), 1) == Envelope(-1, -1, 3, 5)
    assert ops.buffer(Envelope(0, 0, 2, 10), -3) == Envelope(1, 3, 1, 7)
    assert ops.centre(Envelope(0, 0, 2, 4, 4326)) == Point(1, 2, spatial_reference=4326)


def test_intersect_crossing_lines():
    a = Polyline.from_points((0, 0), (2, 2), spatial_reference=4326)
    b = Polyline.from_points((0, 2), (2, 0))

    assert ops.intersect(a, b) == [Point(1, 1, spatial_reference=4326)]
    assert ops.intersects(a, b)


def test_parallel_and_distant_lines_do_not_intersect():
    a = Polyline.from_points((0, 0), (2, 0))

    assert ops.intersect(a, Polyline.from_points((0, 1), (2, 1))) == []
    assert not ops.intersects(a, Polyline.from_points((10, 10), (12, 12)))
    assert ops.intersect(a, None) == []


def test_intersect_polygon_boundary():
    line = Polyline.from_points((-5, 5), (5, 5))

    assert ops.intersect(line, SQUARE) == [Point(0, 5)]


def test_contains_point_honours_holes():
    assert ops.contains(DONUT, Point(1, 1))
    assert not ops.contains(DONUT, Point(5, 5))
    assert not ops.contains(DONUT, Point(15, 5))
    assert ops.within(Point(5, 5), SQUARE)


def test_contains_lines_and_polygons():
    assert ops.contains(SQUARE, Polyline.from_points((1, 1), (9, 9)))
    assert not ops.contains(SQUARE, Polyline.from_points((5, 5), (15, 5)))
    assert ops.contains(SQUARE, Polygon([[[1, 1], [1, 2], [2, 2], [2, 1], [1, 1]]]))
    assert ops.contains(SQUARE, Multipoint([[1, 1], [9, 9]]))
    assert not ops.contains(SQUARE, Multipoint([[1, 1], [19, 9]]))


def test_contains_unsupported_shape():
    with pytest.raises(UnsupportedGeometry):
        ops.contains(SQUARE, Envelope(0, 0, 1, 1))


def test_distance_point_to_polyline():
    assert ops.distance(Point(0, 0), Polyline.from_points((0, 2), (2, 2))) == 2
    assert ops.distance(Polyline.from_points((0, 2), (2, 2)), Point(0, 0)) == 2

    # beyond the segment end the distance is to the endpoint
    assert ops.distance(Point(5, 6), Polyline.from_points((0, 2), (2, 2))) == 5


def test_distance_point_to_polygon():
    assert ops.distance(Point(1, 1), DONUT) == 0
    assert ops.distance(Point(5, 5), DONUT) == 3
    assert ops.distance(Point(13, 14), SQUARE) == 5


def test_distance_between_points():
    assert ops.distance(Point(0, 0), Point(3, 4)) == 5
    assert ops.distance(Multipoint([[0, 0], [10, 0]]), Point(10, 2)) == 2
    assert ops.distance(Multipoint([[0, 0]]), Multipoint([[0, 3], [6, 8]])) == 3


def test_distance_between_shapes():
    assert ops.distance(Polyline.from_points((0, 0), (2, 2)), Polyline.from_points((0, 2), (2, 0))) == 0
    assert ops.distance(Polyline.from_points((0, 0), (1, 0)), Polyline.from_points((0, 3), (1, 3))) == 3
    assert ops.distance(SQUARE, Polygon([ISLAND])) == 10
    assert ops.distance(Polyline.from_points((1, 1), (2, 2)), SQUARE) == 0


def test_distance_with_missing_inputs():
    assert ops.distance(None, Point(0, 0)) is None
    assert ops.distance(Point(0, 0), Polyline([])) is None


def test_distance_unsupported_pair():
    with pytest.raises(UnsupportedGeometry):
        ops.distance(Point(0, 0), Envelope(0, 0, 1, 1))


def test_within_distance_is_strict():
    assert not ops.within_distance(Point(0, 0), Point(3, 4), 5)
    assert ops.within_distance(Point(0, 0), Point(3, 4), 5.1)
    assert ops.within_distance(Point(0, 0), Polyline.from_points((0, 2), (2, 2)), 2.5)
    assert not ops.within_distance(Point(0, 0), Polygon([ISLAND]), 5)
    assert not ops.within_distance(None, Point(0, 0), 1)
