"""
Geometry conversion utilities for featurestream.

This module converts featurestream geometry values to and from Shapely
geometries, so downloaded records can be handed to GeoPandas or any other
Shapely-based tooling, and exports them as GeoJSON geometry dictionaries.

ESRI polygons keep all rings in one list and mark holes by winding direction;
Shapely polygons keep an exterior and its interiors. Conversion groups rings
by polarity on the way out and re-orients them on the way back (exterior
clockwise, holes counter-clockwise).

Functions:
    to_shapely: Convert a featurestream geometry to Shapely
    from_shapely: Convert a Shapely geometry to featurestream
    to_geojson: Convert a featurestream geometry to a GeoJSON geometry dict
    count_geometry_vertices: Count total vertices in a geometry
"""

from typing import Dict, List, Optional

from shapely.geometry import (
    LineString as ShapelyLineString,
    MultiLineString as ShapelyMultiLineString,
    MultiPoint as ShapelyMultiPoint,
    MultiPolygon as ShapelyMultiPolygon,
    Point as ShapelyPoint,
    Polygon as ShapelyPolygon,
    box,
    mapping,
)
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

from core.exceptions import UnsupportedGeometry
from geometry_engine.operations import group_rings
from geometry_engine.shapes import Envelope, Geometry, Multipoint, Point, Polygon, Polyline


def to_shapely(geometry: Optional[Geometry]) -> Optional[BaseGeometry]:
    """
    Convert a featurestream geometry to a Shapely geometry.

    Parameters:
    -----------
    geometry : Optional[Geometry]
        Point, Multipoint, Polyline, Polygon or Envelope

    Returns:
    --------
    Optional[BaseGeometry]
        Point, MultiPoint, MultiLineString, MultiPolygon or box Polygon

    Example:
        >>> to_shapely(Point(1, 2)).wkt
        'POINT (1 2)'
    """
    if geometry is None:
        return None

    if isinstance(geometry, Point):
        if geometry.z is not None:
            return ShapelyPoint(geometry.x, geometry.y, geometry.z)
        return ShapelyPoint(geometry.x, geometry.y)

    if isinstance(geometry, Multipoint):
        return ShapelyMultiPoint([tuple(p) for p in geometry.points])

    if isinstance(geometry, Polyline):
        return ShapelyMultiLineString([[tuple(c) for c in path] for path in geometry.paths])

    if isinstance(geometry, Polygon):
        parts = []
        for group in group_rings(geometry):
            shell = [tuple(c) for c in group[0]]
            holes = [[tuple(c) for c in ring] for ring in group[1:]]
            parts.append((shell, holes))
        return ShapelyMultiPolygon(parts)

    if isinstance(geometry, Envelope):
        return box(geometry.xmin, geometry.ymin, geometry.xmax, geometry.ymax)

    raise UnsupportedGeometry(f"{type(geometry).__name__} cannot be converted to Shapely.")


def _coordinates(coords) -> List[List[float]]:
    return [list(c) for c in coords]


def _polygon_rings(polygon: ShapelyPolygon) -> List[List[List[float]]]:
    oriented = orient(polygon, sign=-1.0)
    rings = [_coordinates(oriented.exterior.coords)]
    rings.extend(_coordinates(interior.coords) for interior in oriented.interiors)
    return rings


def from_shapely(geom: Optional[BaseGeometry], spatial_reference: Optional[int] = None) -> Optional[Geometry]:
    """
    Convert a Shapely geometry to a featurestream geometry.

    Polygon exteriors are oriented clockwise and interiors counter-clockwise
    so the result follows the ESRI ring convention.

    Parameters:
    -----------
    geom : Optional[BaseGeometry]
        Point, MultiPoint, LineString, MultiLineString, Polygon or MultiPolygon
    spatial_reference : Optional[int]
        WKID to attach to the result

    Returns:
    --------
    Optional[Geometry]
        Point, Multipoint, Polyline or Polygon
    """
    if geom is None:
        return None

    geom_type = geom.geom_type

    if geom_type == 'Point':
        if geom.is_empty:
            return None
        return Point(geom.x, geom.y, geom.z if geom.has_z else None, spatial_reference=spatial_reference)

    if geom_type == 'MultiPoint':
        return Multipoint([list(p.coords[0]) for p in geom.geoms], spatial_reference)

    if geom_type == 'LineString':
        paths = [] if geom.is_empty else [_coordinates(geom.coords)]
        return Polyline(paths, spatial_reference=spatial_reference)

    if geom_type == 'MultiLineString':
        return Polyline([_coordinates(line.coords) for line in geom.geoms], spatial_reference=spatial_reference)

    if geom_type == 'Polygon':
        rings = [] if geom.is_empty else _polygon_rings(geom)
        return Polygon(rings, spatial_reference=spatial_reference)

    if geom_type == 'MultiPolygon':
        rings = [r for polygon in geom.geoms for r in _polygon_rings(polygon)]
        return Polygon(rings, spatial_reference=spatial_reference)

    raise UnsupportedGeometry(f"Shapely {geom_type} is not supported.")


def to_geojson(geometry: Optional[Geometry]) -> Optional[Dict]:
    """
    Convert a featurestream geometry to a GeoJSON geometry dictionary.

    Example:
        >>> to_geojson(Point(-73.9857, 40.7484))
        {'type': 'Point', 'coordinates': (-73.9857, 40.7484)}
    """
    shape = to_shapely(geometry)
    return mapping(shape) if shape is not None else None


def count_geometry_vertices(geometry: Optional[Geometry]) -> int:
    """
    Count total vertices in a geometry.

    Parameters:
    -----------
    geometry : Optional[Geometry]
        Any featurestream geometry

    Returns:
    --------
    int
        Total number of coordinates (4 for an envelope, 0 for None)
    """
    if geometry is None:
        return 0

    if isinstance(geometry, Point):
        return 1
    if isinstance(geometry, Multipoint):
        return len(geometry.points)
    if isinstance(geometry, Polyline):
        return sum(len(path) for path in geometry.paths)
    if isinstance(geometry, Polygon):
        return sum(len(ring) for ring in geometry.rings)
    if isinstance(geometry, Envelope):
        return 4

    return 0
