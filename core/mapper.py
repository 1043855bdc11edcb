"""
Conversion between wire graphics and typed records.

Functions:
    to_feature: Decode a wire graphic into a record
    to_graphic: Serialize a record for an add (full) or update (changes only)
    to_python_value: Decode one wire value to a declared Python type
    to_wire_value: Encode one Python value for the wire
"""

import uuid
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Type

from core.domain import Domain
from core.exceptions import SchemaError
from core.feature import Feature
from core.rest_api import FieldType, GeometryType, Graphic, LayerSchema
from core.token import EPOCH
from geometry_engine.esri_json import from_esri_json, to_esri_json
from geometry_engine.shapes import Multipoint, Polygon, Polyline


def _from_epoch_milliseconds(value) -> datetime:
    return EPOCH + timedelta(milliseconds=float(value))


def _to_epoch_milliseconds(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(round((value - EPOCH).total_seconds() * 1000))


def _domain_code(value: Any) -> Any:
    # JSON numbers can arrive as 1.0 for a domain code declared as 1
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def to_python_value(value: Any, python_type: Optional[type]) -> Any:
    """
    Decode a wire value to a declared Python type.

    Raises:
    -------
    ValueError, TypeError
        When the value cannot be converted
    """
    if value is None or python_type is None:
        return value

    if python_type is datetime:
        return _from_epoch_milliseconds(value)

    if python_type is uuid.UUID:
        return uuid.UUID(str(value))

    if python_type is str:
        return str(value)

    if issubclass(python_type, Domain):
        return python_type.from_code(_domain_code(value))

    if python_type is bool:
        return bool(value)

    return python_type(value)


def _unmapped_value(value: Any, field_type: Optional[FieldType]) -> Any:
    if value is None:
        return None
    if field_type == FieldType.DATE:
        return _from_epoch_milliseconds(value)
    if field_type in (FieldType.GUID, FieldType.GLOBAL_ID):
        return uuid.UUID(str(value))
    if field_type in (FieldType.SMALL_INTEGER, FieldType.INTEGER, FieldType.BIG_INTEGER):
        return int(value)
    if field_type in (FieldType.SINGLE, FieldType.DOUBLE):
        return float(value)
    return value


def to_wire_value(value: Any) -> Any:
    """Encode dates as epoch milliseconds, GUIDs as '{UPPER}', domains as codes."""
    if isinstance(value, datetime):
        return _to_epoch_milliseconds(value)
    if isinstance(value, date):
        return _to_epoch_milliseconds(datetime(value.year, value.month, value.day))
    if isinstance(value, uuid.UUID):
        return '{' + str(value).upper() + '}'
    if isinstance(value, Domain):
        return value.code
    if isinstance(value, Enum):
        return value.value
    return value


def _is_empty(geometry) -> bool:
    if isinstance(geometry, Multipoint):
        return not geometry.points
    if isinstance(geometry, Polyline):
        return not geometry.paths and geometry.curve_paths is None
    if isinstance(geometry, Polygon):
        return not geometry.rings and geometry.curve_rings is None
    return geometry is None


def to_feature(
    graphic: Graphic,
    schema: LayerSchema,
    feature_type: Type[Feature],
    spatial_reference: Optional[int] = None
) -> Feature:
    """
    Decode a wire graphic into a clean record of feature_type.

    Parameters:
    -----------
    graphic : Graphic
        Wire feature
    schema : LayerSchema
        Layer schema (object id field and field types)
    feature_type : Type[Feature]
        Record class to build
    spatial_reference : Optional[int]
        WKID for geometries that carry none

    Returns:
    --------
    Feature
        Record with oid, mapped values, unmapped fields and geometry set

    Raises:
    -------
    SchemaError
        If the object id or a mapped field is missing from the graphic, or a
        value cannot be converted to its declared type
    """
    attributes = graphic.attributes
    oid_field = schema.object_id_field

    if attributes.get(oid_field) is None:
        raise SchemaError(f"Object id field '{oid_field}' is missing from a '{schema.name}' record.")

    feature = feature_type()
    feature.oid = int(attributes[oid_field])

    mappings = feature_type._mappings

    for field_name, mapping in mappings.items():
        if field_name not in attributes:
            raise SchemaError(f"Field '{field_name}' does not exist in '{schema.name}'.")

        value = attributes[field_name]

        if value is None:
            continue

        try:
            feature._values[field_name] = to_python_value(value, mapping.python_type)
        except (TypeError, ValueError) as e:
            raise SchemaError(
                f"'{feature_type.__name__}.{mapping.property_name}' is not defined with the correct type. "
                f"Error trying to convert {value!r} to {mapping.python_type.__name__}."
            ) from e

    for name, value in attributes.items():
        if name != oid_field and name not in mappings:
            descriptor = schema.get_field(name)
            feature.unmapped_fields[name] = _unmapped_value(value, descriptor.type if descriptor else None)

    if feature_type.has_geometry() and graphic.geometry:
        geometry = from_esri_json(graphic.geometry, spatial_reference)
        if not _is_empty(geometry):
            if not isinstance(geometry, feature_type.geometry_type):
                raise SchemaError(f"'{feature_type.__name__}' expects {feature_type.geometry_type.__name__} "
                                  f"geometry but '{schema.name}' returned {type(geometry).__name__}.")
            feature._geometry = geometry

    feature.mark_clean()
    return feature


def _geometry_payload(feature: Feature, schema: LayerSchema) -> Optional[Dict]:
    geometry = feature.geometry

    if geometry is not None:
        return to_esri_json(geometry, include_z=schema.has_z)

    # Placeholder that clears the geometry on the service
    if schema.geometry_type == GeometryType.POINT:
        return {'x': 'NaN', 'y': 'NaN', 'z': 'NaN'} if schema.has_z else {'x': 'NaN', 'y': 'NaN'}
    if schema.geometry_type == GeometryType.MULTIPOINT:
        return {'points': []}
    if schema.geometry_type == GeometryType.POLYLINE:
        return {'paths': []}
    if schema.geometry_type == GeometryType.POLYGON:
        return {'rings': []}
    return None


def to_graphic(feature: Feature, schema: LayerSchema, changes_only: bool) -> Optional[Dict]:
    """
    Serialize a record for applyEdits.

    Parameters:
    -----------
    feature : Feature
        Record to serialize
    schema : LayerSchema
        Layer schema (object id field, geometry type, Z flag)
    changes_only : bool
        False for adds: every writable mapped field, every unmapped field and
        the geometry. True for updates: the object id, the changed fields, and
        the geometry only if it changed.

    Returns:
    --------
    Optional[Dict]
        {'attributes': ..., 'geometry': ...}, or None for an update with no
        changes
    """
    if changes_only and not feature.is_dirty:
        return None

    attributes = {}

    if changes_only:
        attributes[schema.object_id_field] = feature.oid

    for field_name, mapping in type(feature)._mappings.items():
        if mapping.read_only:
            continue
        if changes_only and field_name not in feature.changed_fields:
            continue
        attributes[field_name] = to_wire_value(feature[field_name])

    for name, value in feature.unmapped_fields.items():
        if not changes_only or name in feature.changed_fields:
            attributes[name] = to_wire_value(value)

    graphic = {'attributes': attributes}

    if feature.has_geometry() and (not changes_only or feature.geometry_changed):
        graphic['geometry'] = _geometry_payload(feature, schema)

    return graphic
