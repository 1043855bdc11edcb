"""
Geometry value types.

The closed set of shapes exchanged with a FeatureServer: Point, Multipoint,
Polyline, Polygon and Envelope. Coordinates follow the ESRI JSON layout
(``[x, y]`` or ``[x, y, z]`` lists), so paths and rings are lists of
coordinate lists. Every shape carries an optional spatial reference, stored as
an integer well-known ID.

Equality is structural: two shapes are equal when their coordinates and
spatial reference match exactly.
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple, Union

Coordinate = List[float]
Path = List[Coordinate]

PointLike = Union['Point', Tuple[float, float], Sequence[float]]


class Geometry:
    """Base class for every geometry value."""

    spatial_reference: Optional[int] = None


def _as_coordinate(point: PointLike) -> Coordinate:
    if isinstance(point, Point):
        return [point.x, point.y] if point.z is None else [point.x, point.y, point.z]
    return [float(c) for c in point]


@dataclass
class Point(Geometry):
    x: float
    y: float
    z: Optional[float] = None
    spatial_reference: Optional[int] = None

    def __iter__(self) -> Iterator[float]:
        """Unpack as ``x, y``."""
        yield self.x
        yield self.y


@dataclass
class Multipoint(Geometry):
    points: List[Coordinate]
    spatial_reference: Optional[int] = None

    @classmethod
    def from_points(cls, *points: PointLike, spatial_reference: Optional[int] = None) -> 'Multipoint':
        return cls([_as_coordinate(p) for p in points], spatial_reference)


@dataclass
class Polyline(Geometry):
    paths: List[Path]
    curve_paths: Optional[list] = None
    spatial_reference: Optional[int] = None

    @classmethod
    def from_points(cls, *points: PointLike, spatial_reference: Optional[int] = None) -> 'Polyline':
        """Single-path polyline through the given points."""
        return cls([[_as_coordinate(p) for p in points]], spatial_reference=spatial_reference)


@dataclass
class Polygon(Geometry):
    rings: List[Path]
    curve_rings: Optional[list] = None
    spatial_reference: Optional[int] = None

    @classmethod
    def from_points(cls, *points: PointLike, spatial_reference: Optional[int] = None) -> 'Polygon':
        """Single-ring polygon; the ring is closed if the last point differs from the first."""
        ring = [_as_coordinate(p) for p in points]
        if ring and ring[0] != ring[-1]:
            ring.append(list(ring[0]))
        return cls([ring], spatial_reference=spatial_reference)


@dataclass
class Envelope(Geometry):
    xmin: float
    ymin: float
    xmax: float
    ymax: float
    spatial_reference: Optional[int] = None

    def __iter__(self) -> Iterator[float]:
        """Unpack as ``xmin, ymin, xmax, ymax``."""
        yield self.xmin
        yield self.ymin
        yield self.xmax
        yield self.ymax
