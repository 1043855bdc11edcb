"""
KML encoding for geometry values and styles.

Builds xml.etree.ElementTree elements in the KML 2.2 namespace. Points become
<Point>; multipoints, polylines and polygons become <MultiGeometry> containers
of <Point>, <LineString> or <Polygon> children. Polygon rings are grouped per
outer ring, and each ring is tagged outerBoundaryIs or innerBoundaryIs by
comparing its winding with the polygon's first ring.

Functions:
    to_kml_element: Geometry to KML element
    style_to_kml: KmlStyle to <Style> element
    to_kml_string: Serialize an element
"""

import copy
import zlib
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from core.exceptions import UnsupportedGeometry
from geometry_engine.operations import group_rings, is_clockwise
from geometry_engine.shapes import Geometry, Multipoint, Point, Polygon, Polyline

KML_NS = 'http://www.opengis.net/kml/2.2'

ET.register_namespace('', KML_NS)

DEFAULT_ICON_URL = 'http://maps.google.com/mapfiles/kml/pushpin/ylw-pushpin.png'
DEFAULT_COLOUR = 'ffffffff'


def kml_tag(name: str) -> str:
    """Qualified tag name in the KML namespace."""
    return f'{{{KML_NS}}}{name}'


def _element(name: str, text=None, children: Iterable[ET.Element] = (), **attributes) -> ET.Element:
    element = ET.Element(kml_tag(name), {k: str(v) for k, v in attributes.items()})
    if text is not None:
        element.text = str(text)
    for child in children:
        if child is not None:
            element.append(child)
    return element


def _number(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith('.0') else text


def _coordinate(c: Sequence[float], z: Optional[float]) -> str:
    height = z if z is not None else (c[2] if len(c) > 2 and c[2] is not None else 0)
    return f"{_number(c[0])},{_number(c[1])},{_number(height)}"


def _coordinates(path: Sequence[Sequence[float]], z: Optional[float]) -> ET.Element:
    return _element('coordinates', ' '.join(_coordinate(c, z) for c in path))


def _copies(extra_elements: Sequence[ET.Element]):
    # An element can only have one parent, so each geometry gets its own copy
    return [copy.deepcopy(e) for e in extra_elements]


def _point(x: float, y: float, point_z: Optional[float], z: Optional[float], extra_elements) -> ET.Element:
    coordinate = (x, y) if point_z is None else (x, y, point_z)
    return _element('Point', children=_copies(extra_elements) + [_element('coordinates', _coordinate(coordinate, z))])


def to_kml_element(
    geometry: Optional[Geometry],
    z: Optional[float] = None,
    extra_elements: Sequence[ET.Element] = ()
) -> Optional[ET.Element]:
    """
    Convert a geometry to a KML element.

    Parameters:
    -----------
    geometry : Optional[Geometry]
        Point, Multipoint, Polyline or Polygon (None passes through)
    z : Optional[float]
        Height used for every coordinate instead of the geometry's own z
    extra_elements : Sequence[ET.Element]
        Elements such as <extrude> or <altitudeMode> added to each
        Point/LineString/Polygon

    Returns:
    --------
    Optional[ET.Element]
        KML geometry element
    """
    if geometry is None:
        return None

    if isinstance(geometry, Point):
        return _point(geometry.x, geometry.y, geometry.z, z, extra_elements)

    if isinstance(geometry, Multipoint):
        return _element('MultiGeometry', children=[
            _point(p[0], p[1], p[2] if len(p) > 2 else None, z, extra_elements)
            for p in geometry.points
        ])

    if isinstance(geometry, Polyline):
        return _element('MultiGeometry', children=[
            _element('LineString', children=_copies(extra_elements) + [_coordinates(path, z)])
            for path in geometry.paths
        ])

    if isinstance(geometry, Polygon):
        outer = is_clockwise(geometry.rings[0]) if geometry.rings else True
        polygons = []
        for group in group_rings(geometry):
            boundaries = [
                _element('outerBoundaryIs' if is_clockwise(ring) == outer else 'innerBoundaryIs',
                         children=[_element('LinearRing', children=[_coordinates(ring, z)])])
                for ring in group
            ]
            polygons.append(_element('Polygon', children=_copies(extra_elements) + boundaries))
        return _element('MultiGeometry', children=polygons)

    raise UnsupportedGeometry(f"{type(geometry).__name__} cannot be written as KML.")


@dataclass(frozen=True)
class KmlStyle:
    """Icon, line and polygon styling shared by KML placemarks."""
    icon_url: str = DEFAULT_ICON_URL
    icon_colour: str = DEFAULT_COLOUR
    icon_scale: float = 1.1
    line_colour: str = DEFAULT_COLOUR
    line_width: float = 1.2
    polygon_colour: str = DEFAULT_COLOUR

    @property
    def id(self) -> str:
        """Stable identifier derived from the style values."""
        key = '|'.join(str(v) for v in (self.icon_url, self.icon_colour, self.icon_scale,
                                         self.line_colour, self.line_width, self.polygon_colour))
        return f"style{zlib.crc32(key.encode('utf-8')):08x}"


def style_to_kml(style: KmlStyle) -> ET.Element:
    return _element('Style', id=style.id, children=[
        _element('IconStyle', children=[
            _element('color', style.icon_colour),
            _element('scale', style.icon_scale),
            _element('Icon', children=[_element('href', style.icon_url)]),
        ]),
        _element('LineStyle', children=[
            _element('color', style.line_colour),
            _element('width', style.line_width),
        ]),
        _element('PolyStyle', children=[
            _element('color', style.polygon_colour),
        ]),
    ])


def to_kml_string(element: ET.Element) -> str:
    return ET.tostring(element, encoding='unicode')
