from shapely.geometry import LineString, MultiPolygon, Polygon as ShapelyPolygon

from geometry_engine.operations import is_clockwise
from geometry_engine.shapes import Envelope, Multipoint, Point, Polygon, Polyline
from utils.geometry_converters import count_geometry_vertices, from_shapely, to_geojson, to_shapely

OUTER = [[0, 0], [0, 10], [10, 10], [10, 0], [0, 0]]
HOLE = [[2, 2], [8, 2], [8, 8], [2, 8], [2, 2]]
ISLAND = [[20, 0], [20, 5], [25, 5], [25, 0], [20, 0]]


def test_polygon_parts_and_holes():
    shape = to_shapely(Polygon([OUTER, HOLE, ISLAND]))

    assert isinstance(shape, MultiPolygon)
    assert len(shape.geoms) == 2
    assert len(shape.geoms[0].interiors) == 1
    assert shape.area == 100 - 36 + 25


def test_polygon_round_trip():
    polygon = Polygon([OUTER, HOLE], spatial_reference=4326)

    assert from_shapely(to_shapely(polygon), 4326) == polygon


def test_shapely_polygon_is_reoriented():
    # counter-clockwise exterior, as shapely usually writes it
    shape = ShapelyPolygon([(0, 0), (10, 0), (10, 10), (0, 10)])

    polygon = from_shapely(shape)

    assert is_clockwise(polygon.rings[0])


def test_points_and_lines():
    assert to_shapely(Point(1, 2)).x == 1
    assert to_shapely(Point(1, 2, 3)).has_z
    assert from_shapely(to_shapely(Point(1, 2))) == Point(1, 2)
    assert from_shapely(to_shapely(Multipoint([[1, 2], [3, 4]]))) == Multipoint([[1, 2], [3, 4]])
    assert from_shapely(LineString([(0, 0), (1, 1)])) == Polyline([[[0, 0], [1, 1]]])

    line = Polyline([[[0, 0], [1, 1]], [[2, 2], [3, 3]]])
    assert from_shapely(to_shapely(line)) == line


def test_envelope_becomes_box():
    assert to_shapely(Envelope(0, 0, 2, 3)).area == 6


def test_geojson():
    assert to_geojson(Point(-73.9857, 40.7484)) == {'type': 'Point', 'coordinates': (-73.9857, 40.7484)}
    assert to_geojson(None) is None


def test_vertex_count():
    assert count_geometry_vertices(Polygon([OUTER, HOLE])) == 10
    assert count_geometry_vertices(Point(0, 0)) == 1
    assert count_geometry_vertices(None) == 0
