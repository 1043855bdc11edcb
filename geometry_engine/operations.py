"""
Computational geometry over the featurestream value types.

All functions are pure. Polygons follow the ESRI ring convention: the first
ring's winding sets the "outer" polarity for the whole polygon, and any ring
wound the other way is a hole.

Functions:
    length, perimeter, area: running sums over path/ring segments
    distance: minimum Euclidean distance between any two of
        point/multipoint/polyline/polygon
    intersect, intersects: segment-segment intersection of paths and rings
    contains, within: ray-casting containment honouring holes
    extent, buffer, centre: envelope helpers
    within_distance: envelope pre-check followed by exact distance
    is_clockwise, group_rings: ring polarity helpers
"""

import math
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Type

from core.exceptions import UnsupportedGeometry
from geometry_engine.shapes import (
    Coordinate,
    Envelope,
    Geometry,
    Multipoint,
    Path,
    Point,
    Polygon,
    Polyline,
)

Vector = Tuple[float, float]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _segments(paths: Iterable[Path]) -> Iterator[Tuple[Coordinate, Coordinate]]:
    for path in paths:
        for i in range(len(path) - 1):
            yield path[i], path[i + 1]


def _segment_length(p1: Sequence[float], p2: Sequence[float]) -> float:
    return math.hypot(p1[0] - p2[0], p1[1] - p2[1])


def _cross(v1: Vector, v2: Vector) -> float:
    return v1[0] * v2[1] - v1[1] * v2[0]


def _dot(v1: Vector, v2: Vector) -> float:
    return v1[0] * v2[0] + v1[1] * v2[1]


def _point_to_segment(p: Vector, p1: Vector, p2: Vector) -> float:
    """Distance from p to segment p1-p2, clamped to the segment endpoints."""
    d = _segment_length(p1, p2) ** 2

    if d == 0:
        return _segment_length(p, p1)

    t = _dot((p[0] - p1[0], p[1] - p1[1]), (p2[0] - p1[0], p2[1] - p1[1])) / d

    if t < 0:
        return _segment_length(p, p1)
    if t > 1:
        return _segment_length(p, p2)

    projection = (p1[0] + (p2[0] - p1[0]) * t, p1[1] + (p2[1] - p1[1]) * t)
    return _segment_length(p, projection)


def _point_to_paths(p: Sequence[float], paths: List[Path]) -> Optional[float]:
    distances = [_point_to_segment(p, p1, p2) for p1, p2 in _segments(paths)]
    return min(distances) if distances else None


def _paths_to_paths(paths1: List[Path], paths2: List[Path]) -> Optional[float]:
    """Minimum over the vertices of paths1 of the distance to paths2."""
    distances = [_point_to_paths(c, paths2) for path in paths1 for c in path]
    distances = [d for d in distances if d is not None]
    return min(distances) if distances else None


def _coordinates_extent(coordinates: List[Coordinate]) -> Envelope:
    if not coordinates:
        raise UnsupportedGeometry("Cannot compute the extent of an empty geometry.")

    xs = [c[0] for c in coordinates]
    ys = [c[1] for c in coordinates]
    return Envelope(min(xs), min(ys), max(xs), max(ys))


def _segment_intersection(s1: Tuple[Coordinate, Coordinate], s2: Tuple[Coordinate, Coordinate]) -> Optional[Vector]:
    p1 = (s1[0][0], s1[0][1])
    p2 = (s2[0][0], s2[0][1])
    d1 = (s1[1][0] - p1[0], s1[1][1] - p1[1])
    d2 = (s2[1][0] - p2[0], s2[1][1] - p2[1])

    d1xd2 = _cross(d1, d2)

    # Parallel (including collinear) segments never intersect
    if d1xd2 == 0:
        return None

    d = (p2[0] - p1[0], p2[1] - p1[1])

    u = _cross(d, d1) / d1xd2
    if u < 0 or u > 1:
        return None

    t = _cross(d, d2) / d1xd2
    if t < 0 or t > 1:
        return None

    return p1[0] + t * d1[0], p1[1] + t * d1[1]


def _envelopes_intersect(e1: Envelope, e2: Envelope) -> bool:
    return (e1.xmin <= e2.xmax
            and e1.ymin <= e2.ymax
            and e1.xmax >= e2.xmin
            and e1.ymax >= e2.ymin)


def _ring_contains(ring: Path, x: float, y: float) -> bool:
    """Even-odd ray cast of (x, y) against a closed ring."""
    inside = False
    for p1, p2 in _segments([ring]):
        if (p1[1] > y) != (p2[1] > y):
            crossing = (p2[0] - p1[0]) * (y - p1[1]) / (p2[1] - p1[1]) + p1[0]
            if x < crossing:
                inside = not inside
    return inside


def _polygon_contains_coordinates(polygon: Polygon, coordinates: Iterable[Sequence[float]]) -> bool:
    return all(_polygon_contains_xy(polygon, c[0], c[1]) for c in coordinates)


def _polygon_contains_xy(polygon: Polygon, x: float, y: float) -> bool:
    if not polygon.rings:
        return False

    outer = is_clockwise(polygon.rings[0])
    total = 0
    for ring in polygon.rings:
        if _ring_contains(ring, x, y):
            total += 1 if is_clockwise(ring) == outer else -1
    return total > 0


def is_clockwise(ring: Path) -> bool:
    """True when the ring winds clockwise (negative shoelace sum, y axis up)."""
    total = sum(ring[i][0] * ring[i + 1][1] - ring[i + 1][0] * ring[i][1] for i in range(len(ring) - 1))
    return total < 0


def group_rings(polygon: Polygon) -> List[List[Path]]:
    """
    Group polygon rings into parts, each an outer ring followed by its holes.

    The first ring decides which winding counts as outer.
    """
    groups: List[List[Path]] = []

    if polygon is None or not polygon.rings:
        return groups

    outer = is_clockwise(polygon.rings[0])

    for ring in polygon.rings:
        if is_clockwise(ring) == outer:
            groups.append([])
        groups[-1].append(ring)

    return groups


# ---------------------------------------------------------------------------
# Length / Area
# ---------------------------------------------------------------------------

def length(polyline: Polyline) -> float:
    if polyline is None or not polyline.paths:
        return 0.0
    return sum(_segment_length(p1, p2) for p1, p2 in _segments(polyline.paths))


def perimeter(polygon: Polygon) -> float:
    if polygon is None or not polygon.rings:
        return 0.0
    return sum(_segment_length(p1, p2) for p1, p2 in _segments(polygon.rings))


def area(polygon: Polygon) -> float:
    """
    Signed area of a polygon.

    Clockwise rings contribute positively and counter-clockwise rings
    negatively, so an ESRI polygon (clockwise outer rings, counter-clockwise
    holes) yields its net area.
    """
    if polygon is None or not polygon.rings:
        return 0.0
    return sum((p2[0] - p1[0]) * (p1[1] + p2[1]) / 2 for p1, p2 in _segments(polygon.rings))


# ---------------------------------------------------------------------------
# Extent
# ---------------------------------------------------------------------------

def extent(geometry: Geometry) -> Envelope:
    """Componentwise min/max envelope, carrying the geometry's spatial reference."""
    if isinstance(geometry, Point):
        envelope = Envelope(geometry.x, geometry.y, geometry.x, geometry.y)
    elif isinstance(geometry, Multipoint):
        envelope = _coordinates_extent(geometry.points)
    elif isinstance(geometry, Polyline):
        envelope = _coordinates_extent([c for p in geometry.paths for c in p])
    elif isinstance(geometry, Polygon):
        envelope = _coordinates_extent([c for r in geometry.rings for c in r])
    elif isinstance(geometry, Envelope):
        envelope = Envelope(geometry.xmin, geometry.ymin, geometry.xmax, geometry.ymax)
    else:
        raise UnsupportedGeometry(f"Cannot compute the extent of {type(geometry).__name__}.")

    envelope.spatial_reference = geometry.spatial_reference
    return envelope


def buffer(envelope: Envelope, distance: float) -> Envelope:
    """Expand an envelope by distance on every side, collapsing inverted axes to their midpoint."""
    xmin = envelope.xmin - distance
    ymin = envelope.ymin - distance
    xmax = envelope.xmax + distance
    ymax = envelope.ymax + distance

    if xmin > xmax:
        xmin = xmax = (xmin + xmax) / 2

    if ymin > ymax:
        ymin = ymax = (ymin + ymax) / 2

    return Envelope(xmin, ymin, xmax, ymax, envelope.spatial_reference)


def centre(envelope: Envelope) -> Point:
    return Point((envelope.xmin + envelope.xmax) / 2,
                 (envelope.ymin + envelope.ymax) / 2,
                 spatial_reference=envelope.spatial_reference)


# ---------------------------------------------------------------------------
# Intersect / Intersects
# ---------------------------------------------------------------------------

def _boundary(geometry: Geometry) -> Optional[List[Path]]:
    if isinstance(geometry, Polyline):
        return geometry.paths
    if isinstance(geometry, Polygon):
        return geometry.rings
    raise UnsupportedGeometry(f"Intersection is not supported for {type(geometry).__name__}.")


def intersect(polyline1: Polyline, polyline2: Polyline) -> List[Point]:
    """
    Points where the segments of two polylines cross.

    Polygons are accepted too, in which case their rings act as paths.
    """
    if polyline1 is None or polyline2 is None:
        return []

    paths1 = _boundary(polyline1)
    paths2 = _boundary(polyline2)

    if not paths1 or not paths2:
        return []

    if not _envelopes_intersect(extent(polyline1), extent(polyline2)):
        return []

    points = []
    for s1 in _segments(paths1):
        for s2 in _segments(paths2):
            p = _segment_intersection(s1, s2)
            if p is not None:
                points.append(Point(p[0], p[1], spatial_reference=polyline1.spatial_reference))

    return points


def intersects(geometry1: Geometry, geometry2: Geometry) -> bool:
    """True when the boundaries of two polylines/polygons cross."""
    return len(intersect(geometry1, geometry2)) > 0


# ---------------------------------------------------------------------------
# Contains / Within
# ---------------------------------------------------------------------------

def contains(polygon: Polygon, geometry: Geometry) -> bool:
    """
    Whether polygon contains a point, multipoint, polyline or polygon.

    Points use the signed ray-casting rule (outer rings +1, holes -1). Lines
    and polygons must also not cross the container's boundary.
    """
    if polygon is None or geometry is None or not polygon.rings:
        return False

    if isinstance(geometry, Point):
        return _polygon_contains_xy(polygon, geometry.x, geometry.y)

    if isinstance(geometry, Multipoint):
        return bool(geometry.points) and _polygon_contains_coordinates(polygon, geometry.points)

    if isinstance(geometry, Polyline):
        return (bool(geometry.paths)
                and not intersects(polygon, geometry)
                and all(_polygon_contains_coordinates(polygon, p) for p in geometry.paths))

    if isinstance(geometry, Polygon):
        return (bool(geometry.rings)
                and not intersects(polygon, geometry)
                and all(_polygon_contains_coordinates(polygon, r) for r in geometry.rings))

    raise UnsupportedGeometry(f"Containment is not supported for {type(geometry).__name__}.")


def within(geometry: Geometry, polygon: Polygon) -> bool:
    return contains(polygon, geometry)


# ---------------------------------------------------------------------------
# Distance
# ---------------------------------------------------------------------------

def _point_point(a: Point, b: Point) -> float:
    if a == b:
        return 0.0
    return _segment_length((a.x, a.y), (b.x, b.y))


def _point_multipoint(a: Point, b: Multipoint) -> Optional[float]:
    if not b.points:
        return None
    return min(_segment_length((a.x, a.y), p) for p in b.points)


def _point_polyline(a: Point, b: Polyline) -> Optional[float]:
    if not b.paths:
        return None
    return _point_to_paths((a.x, a.y), b.paths)


def _point_polygon(a: Point, b: Polygon) -> Optional[float]:
    if not b.rings:
        return None
    if contains(b, a):
        return 0.0
    return _point_to_paths((a.x, a.y), b.rings)


def _multipoint_multipoint(a: Multipoint, b: Multipoint) -> Optional[float]:
    if not a.points or not b.points:
        return None
    if a == b:
        return 0.0
    return min(_segment_length(p1, p2) for p1 in a.points for p2 in b.points)


def _each_point(a: Multipoint, measure: Callable[[Point], Optional[float]]) -> Optional[float]:
    if not a.points:
        return None
    distances = [measure(Point(p[0], p[1])) for p in a.points]
    distances = [d for d in distances if d is not None]
    return min(distances) if distances else None


def _multipoint_polyline(a: Multipoint, b: Polyline) -> Optional[float]:
    return _each_point(a, lambda p: _point_polyline(p, b))


def _multipoint_polygon(a: Multipoint, b: Polygon) -> Optional[float]:
    return _each_point(a, lambda p: _point_polygon(p, b))


def _both_directions(paths1: List[Path], paths2: List[Path]) -> Optional[float]:
    distances = [d for d in (_paths_to_paths(paths1, paths2), _paths_to_paths(paths2, paths1)) if d is not None]
    return min(distances) if distances else None


def _polyline_polyline(a: Polyline, b: Polyline) -> Optional[float]:
    if not a.paths or not b.paths:
        return None
    if a == b or intersects(a, b):
        return 0.0
    return _both_directions(a.paths, b.paths)


def _polyline_polygon(a: Polyline, b: Polygon) -> Optional[float]:
    if not a.paths or not b.rings:
        return None
    if intersects(a, b) or within(a, b):
        return 0.0
    return _both_directions(a.paths, b.rings)


def _polygon_polygon(a: Polygon, b: Polygon) -> Optional[float]:
    if not a.rings or not b.rings:
        return None
    if a == b or intersects(a, b) or within(a, b) or within(b, a):
        return 0.0
    return _both_directions(a.rings, b.rings)


def _swap(f):
    return lambda a, b: f(b, a)


_DISTANCE: Dict[Tuple[Type[Geometry], Type[Geometry]], Callable] = {
    (Point, Point): _point_point,
    (Point, Multipoint): _point_multipoint,
    (Point, Polyline): _point_polyline,
    (Point, Polygon): _point_polygon,
    (Multipoint, Point): _swap(_point_multipoint),
    (Multipoint, Multipoint): _multipoint_multipoint,
    (Multipoint, Polyline): _multipoint_polyline,
    (Multipoint, Polygon): _multipoint_polygon,
    (Polyline, Point): _swap(_point_polyline),
    (Polyline, Multipoint): _swap(_multipoint_polyline),
    (Polyline, Polyline): _polyline_polyline,
    (Polyline, Polygon): _polyline_polygon,
    (Polygon, Point): _swap(_point_polygon),
    (Polygon, Multipoint): _swap(_multipoint_polygon),
    (Polygon, Polyline): _swap(_polyline_polygon),
    (Polygon, Polygon): _polygon_polygon,
}


def distance(geometry1: Geometry, geometry2: Geometry) -> Optional[float]:
    """
    Minimum Euclidean distance between two geometries.

    Returns None when either input is None or has no coordinates. Distance is
    zero when the shapes intersect or one contains the other.
    """
    if geometry1 is None or geometry2 is None:
        return None

    measure = _DISTANCE.get((type(geometry1), type(geometry2)))

    if measure is None:
        raise UnsupportedGeometry(
            f"Distance between {type(geometry1).__name__} and {type(geometry2).__name__} is not supported."
        )

    return measure(geometry1, geometry2)


def within_distance(geometry1: Geometry, geometry2: Geometry, d: float) -> bool:
    """
    Whether two geometries are strictly closer than d.

    A buffered-envelope overlap check runs first so distant shapes are
    rejected without the full distance computation.
    """
    if geometry1 is None or geometry2 is None:
        return False

    if not (isinstance(geometry1, Point) and isinstance(geometry2, Point)):
        if not _envelopes_intersect(buffer(extent(geometry1), d), extent(geometry2)):
            return False

    result = distance(geometry1, geometry2)
    return result is not None and result < d
