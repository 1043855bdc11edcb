"""
Well-known text codec.

Encodes Point, Multipoint, Polyline and Polygon values as POINT, MULTIPOINT,
MULTILINESTRING and MULTIPOLYGON text, and decodes the same forms (plus
LINESTRING and POLYGON) back into geometry values.

Polygon rings are written in the reverse vertex order of the ESRI ring
convention, grouped into one polygon part per outer ring. Decoding reverses
every ring again, so outer/hole polarity survives a round trip.

Functions:
    to_wkt: Encode a geometry as WKT
    from_wkt: Decode WKT into a geometry
"""

import re
from typing import List, Optional, Union

from core.exceptions import UnsupportedGeometry
from geometry_engine.operations import group_rings
from geometry_engine.shapes import Geometry, Multipoint, Point, Polygon, Polyline

_TOKEN = re.compile(r'\s*(?:(\()|(\))|(,)|([A-Za-z]+)|([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?))')

Nested = Union[List[float], List['Nested']]


def _number(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith('.0') else text


def _coordinate(c) -> str:
    return ' '.join(_number(v) for v in c)


def _path(path) -> str:
    return '(' + ','.join(_coordinate(c) for c in path) + ')'


def _z_tag(coordinates) -> str:
    return ' Z' if any(len(c) > 2 for c in coordinates) else ''


def to_wkt(geometry: Geometry) -> str:
    """
    Encode a geometry as well-known text.

    Parameters:
    -----------
    geometry : Geometry
        Point, Multipoint, Polyline or Polygon

    Returns:
    --------
    str
        WKT string, using the EMPTY form for shapes without coordinates

    Raises:
    -------
    UnsupportedGeometry
        For envelopes or any other shape
    """
    if isinstance(geometry, Point):
        if geometry.z is not None:
            return f"POINT Z({_number(geometry.x)} {_number(geometry.y)} {_number(geometry.z)})"
        return f"POINT({_number(geometry.x)} {_number(geometry.y)})"

    if isinstance(geometry, Multipoint):
        if not geometry.points:
            return 'MULTIPOINT EMPTY'
        body = ','.join(f"({_coordinate(p)})" for p in geometry.points)
        return f"MULTIPOINT{_z_tag(geometry.points)}({body})"

    if isinstance(geometry, Polyline):
        if not geometry.paths:
            return 'MULTILINESTRING EMPTY'
        body = ','.join(_path(p) for p in geometry.paths)
        return f"MULTILINESTRING{_z_tag([c for p in geometry.paths for c in p])}({body})"

    if isinstance(geometry, Polygon):
        if not geometry.rings:
            return 'MULTIPOLYGON EMPTY'
        parts = []
        for group in group_rings(geometry):
            parts.append('(' + ','.join(_path(list(reversed(r))) for r in group) + ')')
        return f"MULTIPOLYGON{_z_tag([c for r in geometry.rings for c in r])}({','.join(parts)})"

    raise UnsupportedGeometry(f"{type(geometry).__name__} cannot be written as WKT.")


class _Parser:
    """Recursive-descent reader for the parenthesised WKT body."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = []
        position = 0
        stripped = text.rstrip()
        while position < len(stripped):
            match = _TOKEN.match(stripped, position)
            if match is None:
                raise UnsupportedGeometry(f"Invalid WKT near position {position}: {text!r}")
            self.tokens.append(match.group(match.lastindex))
            position = match.end()
        self.index = 0

    def peek(self) -> Optional[str]:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def take(self, expected: Optional[str] = None) -> str:
        token = self.peek()
        if token is None or (expected is not None and token != expected):
            raise UnsupportedGeometry(f"Invalid WKT, expected {expected or 'more input'}: {self.text!r}")
        self.index += 1
        return token

    def at_end(self) -> bool:
        return self.index >= len(self.tokens)

    def keyword(self) -> str:
        token = self.take()
        if not token.isalpha():
            raise UnsupportedGeometry(f"Invalid WKT, expected a geometry keyword: {self.text!r}")
        return token.upper()

    def nested(self) -> Nested:
        self.take('(')
        items = [self.item()]
        while self.peek() == ',':
            self.take(',')
            items.append(self.item())
        self.take(')')
        return items

    def item(self) -> Nested:
        if self.peek() == '(':
            return self.nested()
        coordinate = []
        while self.peek() not in (None, ',', ')', '('):
            token = self.take()
            try:
                coordinate.append(float(token))
            except ValueError:
                raise UnsupportedGeometry(f"Invalid WKT coordinate '{token}': {self.text!r}")
        if not coordinate:
            raise UnsupportedGeometry(f"Invalid WKT, empty coordinate: {self.text!r}")
        return coordinate


def _as_points(items: Nested) -> List[List[float]]:
    # MULTIPOINT((1 2),(3 4)) and MULTIPOINT(1 2,3 4) are both accepted
    return [p[0] if p and isinstance(p[0], list) else p for p in items]


def from_wkt(wkt: str, spatial_reference: Optional[int] = None) -> Geometry:
    """
    Decode well-known text into a geometry value.

    Parameters:
    -----------
    wkt : str
        POINT, MULTIPOINT, LINESTRING, MULTILINESTRING, POLYGON or
        MULTIPOLYGON text, optionally tagged Z, or an EMPTY form
    spatial_reference : Optional[int]
        WKID to attach to the result

    Returns:
    --------
    Geometry
        Point, Multipoint, Polyline or Polygon

    Raises:
    -------
    UnsupportedGeometry
        For other geometry kinds, malformed text, or an empty point
    """
    parser = _Parser(wkt)
    kind = parser.keyword()

    if parser.peek() is not None and parser.peek().upper() in ('Z', 'M', 'ZM'):
        parser.take()

    if parser.peek() is not None and parser.peek().upper() == 'EMPTY':
        parser.take()
        body = None
    else:
        body = parser.nested()

    if not parser.at_end():
        raise UnsupportedGeometry(f"Unexpected trailing WKT content: {wkt!r}")

    if kind == 'POINT':
        if body is None:
            raise UnsupportedGeometry("Empty point is not supported.")
        coordinate = body[0]
        return Point(coordinate[0], coordinate[1], coordinate[2] if len(coordinate) > 2 else None,
                     spatial_reference=spatial_reference)

    if kind == 'MULTIPOINT':
        return Multipoint(_as_points(body) if body else [], spatial_reference)

    if kind == 'LINESTRING':
        return Polyline([body] if body else [], spatial_reference=spatial_reference)

    if kind == 'MULTILINESTRING':
        return Polyline(body or [], spatial_reference=spatial_reference)

    if kind == 'POLYGON':
        rings = body or []
    elif kind == 'MULTIPOLYGON':
        rings = [r for part in (body or []) for r in part]
    else:
        raise UnsupportedGeometry(f"WKT geometry type '{kind}' is not supported.")

    return Polygon([list(reversed(r)) for r in rings], spatial_reference=spatial_reference)
