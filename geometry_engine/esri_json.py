"""
ESRI JSON geometry codec.

Converts geometry values to and from the dictionaries used on the
FeatureServer wire ({"x", "y"}, {"points"}, {"paths"}, {"rings"},
{"xmin", ...}), and to and from their JSON text.

Functions:
    to_esri_json: Geometry to ESRI JSON dictionary
    from_esri_json: ESRI JSON dictionary to geometry
    to_json, from_json: Same conversions over JSON text
    geometry_type_of: Wire geometryType name for a geometry or geometry class
"""

import json
from typing import Dict, Optional, Type, Union

from core.exceptions import UnsupportedGeometry
from geometry_engine.shapes import Envelope, Geometry, Multipoint, Point, Polygon, Polyline

WIRE_GEOMETRY_TYPES = {
    Point: 'esriGeometryPoint',
    Multipoint: 'esriGeometryMultipoint',
    Polyline: 'esriGeometryPolyline',
    Polygon: 'esriGeometryPolygon',
    Envelope: 'esriGeometryEnvelope',
}


def geometry_type_of(geometry: Union[Geometry, Type[Geometry]]) -> str:
    """
    Wire geometryType name for a geometry value or class.

    >>> geometry_type_of(Point)
    'esriGeometryPoint'
    """
    cls = geometry if isinstance(geometry, type) else type(geometry)
    try:
        return WIRE_GEOMETRY_TYPES[cls]
    except KeyError:
        raise UnsupportedGeometry(f"{cls.__name__} has no wire geometry type.")


def to_esri_json(geometry: Geometry, include_z: bool = False) -> Optional[Dict]:
    """
    Convert a geometry to its ESRI JSON dictionary.

    Parameters:
    -----------
    geometry : Geometry
        Geometry to convert (None passes through)
    include_z : bool
        Emit a 'z' key on points (possibly None) and 'hasZ' on other shapes,
        for layers whose schema declares Z values

    Returns:
    --------
    Optional[Dict]
        ESRI JSON geometry, with 'spatialReference' when one is set
    """
    if geometry is None:
        return None

    if isinstance(geometry, Point):
        result = {'x': geometry.x, 'y': geometry.y}
        if include_z or geometry.z is not None:
            result['z'] = geometry.z
    elif isinstance(geometry, Multipoint):
        result = {'points': [list(p) for p in geometry.points]}
    elif isinstance(geometry, Polyline):
        result = {'paths': [[list(c) for c in p] for p in geometry.paths]}
        if geometry.curve_paths:
            result['curvePaths'] = geometry.curve_paths
    elif isinstance(geometry, Polygon):
        result = {'rings': [[list(c) for c in r] for r in geometry.rings]}
        if geometry.curve_rings:
            result['curveRings'] = geometry.curve_rings
    elif isinstance(geometry, Envelope):
        result = {'xmin': geometry.xmin, 'ymin': geometry.ymin, 'xmax': geometry.xmax, 'ymax': geometry.ymax}
    else:
        raise UnsupportedGeometry(f"{type(geometry).__name__} cannot be written as ESRI JSON.")

    if include_z and not isinstance(geometry, (Point, Envelope)):
        result['hasZ'] = True

    if geometry.spatial_reference is not None:
        result['spatialReference'] = {'wkid': geometry.spatial_reference}

    return result


def _wkid(data: Dict) -> Optional[int]:
    reference = data.get('spatialReference') or {}
    return reference.get('wkid') or reference.get('latestWkid')


def from_esri_json(data: Optional[Dict], spatial_reference: Optional[int] = None) -> Optional[Geometry]:
    """
    Convert an ESRI JSON dictionary to a geometry value.

    The shape is detected from its keys: x/y first, then points, paths or
    curvePaths, rings or curveRings, then xmin/ymin/xmax/ymax. A point whose
    x is null is an empty point and decodes to None.

    Parameters:
    -----------
    data : Optional[Dict]
        ESRI JSON geometry (None passes through)
    spatial_reference : Optional[int]
        WKID to use when the dictionary carries no spatialReference

    Returns:
    --------
    Optional[Geometry]
        Decoded geometry

    Raises:
    -------
    UnsupportedGeometry
        If the dictionary matches no known shape
    """
    if data is None:
        return None

    wkid = _wkid(data) or spatial_reference

    if 'x' in data and 'y' in data:
        if data['x'] is None or data['x'] == 'NaN':
            return None
        return Point(data['x'], data['y'], data.get('z'), spatial_reference=wkid)

    if 'points' in data:
        return Multipoint(data['points'], wkid)

    if 'paths' in data or 'curvePaths' in data:
        return Polyline(data.get('paths') or [], data.get('curvePaths'), wkid)

    if 'rings' in data or 'curveRings' in data:
        return Polygon(data.get('rings') or [], data.get('curveRings'), wkid)

    if all(k in data for k in ('xmin', 'ymin', 'xmax', 'ymax')):
        return Envelope(data['xmin'], data['ymin'], data['xmax'], data['ymax'], wkid)

    raise UnsupportedGeometry(f"Unrecognised ESRI JSON geometry with keys {sorted(data)}.")


def to_json(geometry: Geometry, include_z: bool = False) -> str:
    return json.dumps(to_esri_json(geometry, include_z))


def from_json(text: str, spatial_reference: Optional[int] = None) -> Optional[Geometry]:
    return from_esri_json(json.loads(text), spatial_reference)
