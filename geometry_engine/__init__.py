"""
Geometry engine for featurestream.

Value types and pure computational geometry for FeatureServer shapes, plus
WKT, ESRI JSON and KML codecs.

Modules:
    shapes: Point, Multipoint, Polyline, Polygon and Envelope value types
    operations: Length, area, distance, intersection, containment, envelopes
    wkt: Well-known text codec
    esri_json: ESRI JSON codec
    kml: KML geometry and style encoding
"""

from geometry_engine.shapes import Envelope, Geometry, Multipoint, Point, Polygon, Polyline
from geometry_engine.operations import (
    area,
    buffer,
    centre,
    contains,
    distance,
    extent,
    group_rings,
    intersect,
    intersects,
    is_clockwise,
    length,
    perimeter,
    within,
    within_distance,
)
from geometry_engine.wkt import from_wkt, to_wkt

__all__ = [
    'Geometry', 'Point', 'Multipoint', 'Polyline', 'Polygon', 'Envelope',
    'area', 'buffer', 'centre', 'contains', 'distance', 'extent', 'group_rings',
    'intersect', 'intersects', 'is_clockwise', 'length', 'perimeter', 'within',
    'within_distance', 'from_wkt', 'to_wkt',
]
