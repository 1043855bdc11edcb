"""
FeatureServer REST protocol: wire types, request builders and calls.

This module describes the JSON envelopes exchanged with an ArcGIS-style
FeatureServer (layer schema, feature set, object id set, token, edit results)
and the requests that produce them. Every request carries f=json and, when
available, a token. Read-only queries are POSTed to avoid URI length limits
but are flagged idempotent so the transport retries them like a GET.

Classes:
    FieldType, GeometryType, SpatialRel: Wire enumerations
    LayerSchema, FieldDescriptor, CodedValue: Layer description
    Graphic, FeatureSet, OIDSet, TokenInfo: Query and token envelopes
    ItemResult, EditResultSet, ErrorInfo: Edit envelopes

Functions:
    build_query_parameters: Form fields for a /query request
    get_layer_schema, query_features, query_object_ids: Read calls
    generate_token: Exchange credentials for a token
    apply_edits, delete_features: Edit calls
    remove_null_z: Drop explicit null Z values from point geometries
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union
from urllib.parse import parse_qsl

from core.exceptions import SchemaError
from geometry_engine.esri_json import geometry_type_of, to_esri_json
from geometry_engine.shapes import Geometry
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_WHERE = '1=1'

ExtraParameters = Optional[Union[str, Dict[str, Any]]]


class FieldType(str, Enum):
    SMALL_INTEGER = 'esriFieldTypeSmallInteger'
    INTEGER = 'esriFieldTypeInteger'
    BIG_INTEGER = 'esriFieldTypeBigInteger'
    SINGLE = 'esriFieldTypeSingle'
    DOUBLE = 'esriFieldTypeDouble'
    STRING = 'esriFieldTypeString'
    DATE = 'esriFieldTypeDate'
    OID = 'esriFieldTypeOID'
    GEOMETRY = 'esriFieldTypeGeometry'
    BLOB = 'esriFieldTypeBlob'
    RASTER = 'esriFieldTypeRaster'
    GUID = 'esriFieldTypeGUID'
    GLOBAL_ID = 'esriFieldTypeGlobalID'
    XML = 'esriFieldTypeXML'
    UNKNOWN = 'unknown'

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


class GeometryType(str, Enum):
    POINT = 'esriGeometryPoint'
    MULTIPOINT = 'esriGeometryMultipoint'
    POLYLINE = 'esriGeometryPolyline'
    POLYGON = 'esriGeometryPolygon'
    ENVELOPE = 'esriGeometryEnvelope'


class SpatialRel(str, Enum):
    INTERSECTS = 'esriSpatialRelIntersects'
    ENVELOPE_INTERSECTS = 'esriSpatialRelEnvelopeIntersects'
    INDEX_INTERSECTS = 'esriSpatialRelIndexIntersects'
    TOUCHES = 'esriSpatialRelTouches'
    OVERLAPS = 'esriSpatialRelOverlaps'
    CROSSES = 'esriSpatialRelCrosses'
    WITHIN = 'esriSpatialRelWithin'
    CONTAINS = 'esriSpatialRelContains'
    RELATION = 'esriSpatialRelRelation'


@dataclass
class ErrorInfo:
    code: Optional[int] = None
    message: Optional[str] = None
    details: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional['ErrorInfo']:
        if not data:
            return None
        return cls(data.get('code'), data.get('message') or data.get('description'), data.get('details') or [])


@dataclass
class CodedValue:
    code: Any
    name: str


@dataclass
class FieldDescriptor:
    name: str
    type: FieldType
    alias: Optional[str] = None
    nullable: bool = True
    editable: bool = True
    length: Optional[int] = None
    domain: Optional[List[CodedValue]] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'FieldDescriptor':
        domain = data.get('domain')
        coded_values = None
        if domain and domain.get('type') == 'codedValue':
            coded_values = [CodedValue(c.get('code'), c.get('name')) for c in domain.get('codedValues') or []]

        return cls(
            name=data['name'],
            type=FieldType(data.get('type')),
            alias=data.get('alias'),
            nullable=data.get('nullable', True),
            editable=data.get('editable', True),
            length=data.get('length'),
            domain=coded_values
        )


@dataclass
class LayerSchema:
    """
    Field and capability description of a layer.

    Attributes:
        id: Layer index within the service
        name: Layer name
        type: 'Feature Layer' or 'Table'
        geometry_type: Wire geometry type, None for tables
        fields: Ordered field descriptors
        has_z: Whether geometries carry Z values
        max_record_count: Service page size, None if undeclared
        capabilities: Comma-separated capability list, e.g. 'Create,Query,Update'
    """
    id: int
    name: str
    type: Optional[str] = None
    geometry_type: Optional[GeometryType] = None
    fields: List[FieldDescriptor] = field(default_factory=list)
    has_z: bool = False
    max_record_count: Optional[int] = None
    capabilities: str = ''

    @classmethod
    def from_dict(cls, data: Dict) -> 'LayerSchema':
        geometry_type = data.get('geometryType')
        return cls(
            id=data.get('id', 0),
            name=data.get('name', ''),
            type=data.get('type'),
            geometry_type=GeometryType(geometry_type) if geometry_type else None,
            fields=[FieldDescriptor.from_dict(f) for f in data.get('fields') or []],
            has_z=bool(data.get('hasZ', False)),
            max_record_count=data.get('maxRecordCount'),
            capabilities=data.get('capabilities') or ''
        )

    @property
    def object_id_field(self) -> str:
        """First esriFieldTypeOID field, else a field named OBJECTID (any case)."""
        for f in self.fields:
            if f.type == FieldType.OID:
                return f.name
        for f in self.fields:
            if f.name.upper() == 'OBJECTID':
                return f.name
        raise SchemaError(f"'{self.name}' does not have any field of type esriFieldTypeOID (or a field named 'OBJECTID').")

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def _supports(self, capability: str) -> bool:
        return capability.lower() in (c.strip().lower() for c in self.capabilities.split(','))

    @property
    def supports_create(self) -> bool:
        return self._supports('Create')

    @property
    def supports_update(self) -> bool:
        return self._supports('Update')

    @property
    def supports_delete(self) -> bool:
        return self._supports('Delete')


@dataclass
class Graphic:
    """Wire form of one feature: attribute dictionary plus ESRI JSON geometry."""
    attributes: Dict[str, Any]
    geometry: Optional[Dict] = None
    has_geometry: bool = False

    @classmethod
    def from_dict(cls, data: Dict) -> 'Graphic':
        return cls(data.get('attributes') or {}, data.get('geometry'), 'geometry' in data)

    def to_dict(self) -> Dict:
        if self.has_geometry:
            return {'attributes': self.attributes, 'geometry': self.geometry}
        return {'attributes': self.attributes}


@dataclass
class FeatureSet:
    features: List[Graphic]
    exceeded_transfer_limit: bool = False
    spatial_reference: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'FeatureSet':
        reference = data.get('spatialReference') or {}
        return cls([Graphic.from_dict(f) for f in data.get('features') or []],
                   bool(data.get('exceededTransferLimit', False)),
                   reference.get('wkid') or reference.get('latestWkid'))


@dataclass
class OIDSet:
    object_ids: List[int]
    object_id_field_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'OIDSet':
        return cls(list(data.get('objectIds') or []), data.get('objectIdFieldName'))


@dataclass
class TokenInfo:
    token: str
    expires: int

    @classmethod
    def from_dict(cls, data: Dict) -> 'TokenInfo':
        return cls(data['token'], int(data['expires']))


@dataclass
class ItemResult:
    object_id: Optional[int]
    success: bool
    error: Optional[ErrorInfo] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'ItemResult':
        return cls(data.get('objectId'), bool(data.get('success', False)), ErrorInfo.from_dict(data.get('error')))


@dataclass
class EditResultSet:
    add_results: List[ItemResult] = field(default_factory=list)
    update_results: List[ItemResult] = field(default_factory=list)
    delete_results: List[ItemResult] = field(default_factory=list)
    error: Optional[ErrorInfo] = None

    @classmethod
    def from_dict(cls, data: Dict) -> 'EditResultSet':
        def results(key):
            return [ItemResult.from_dict(r) for r in data.get(key) or []]

        return cls(results('addResults'), results('updateResults'), results('deleteResults'),
                   ErrorInfo.from_dict(data.get('error')))


# ---------------------------------------------------------------------------
# Request builders
# ---------------------------------------------------------------------------

def _with_defaults(params: Dict, token: Optional[str]) -> Dict:
    params = dict(params)
    if token:
        params['token'] = token
    params['f'] = 'json'
    return params


def _flag(value: bool) -> str:
    return 'true' if value else 'false'


def parse_extra_parameters(extra_parameters: ExtraParameters) -> Dict[str, str]:
    """Accept extra query parameters as a dict or as a 'key=value&...' string."""
    if not extra_parameters:
        return {}
    if isinstance(extra_parameters, str):
        return dict(parse_qsl(extra_parameters.lstrip('&'), keep_blank_values=True))
    return {k: v for k, v in extra_parameters.items()}


def build_query_parameters(
    where: Optional[str] = None,
    object_ids: Optional[Sequence[int]] = None,
    extra_parameters: ExtraParameters = None,
    return_geometry: bool = True,
    return_z: bool = False,
    geometry: Optional[Geometry] = None,
    spatial_rel: Optional[SpatialRel] = None,
    ids_only: bool = False
) -> Dict[str, str]:
    """
    Build the form fields for a /query request.

    Parameters:
    -----------
    where : Optional[str]
        Filter clause (blank becomes '1=1')
    object_ids : Optional[Sequence[int]]
        Restrict to these object ids (comma-joined on the wire)
    extra_parameters : Optional[Union[str, Dict]]
        Additional vendor parameters
    return_geometry : bool
        Whether features come back with geometry
    return_z : bool
        Whether geometries include Z values
    geometry : Optional[Geometry]
        Spatial filter geometry
    spatial_rel : Optional[SpatialRel]
        Relation used with the spatial filter (intersects by default)
    ids_only : bool
        Ask only for the matching object ids

    Returns:
    --------
    Dict[str, str]
        Form fields, without f/token
    """
    params = {'where': where if where and where.strip() else DEFAULT_WHERE}
    params.update(parse_extra_parameters(extra_parameters))

    if geometry is not None:
        params['geometry'] = json.dumps(to_esri_json(geometry))
        params['geometryType'] = geometry_type_of(geometry)
        params['spatialRel'] = SpatialRel(spatial_rel or SpatialRel.INTERSECTS).value

    if ids_only:
        params['returnIdsOnly'] = 'true'
        return params

    params['objectIds'] = ','.join(str(i) for i in object_ids) if object_ids is not None else ''
    params['returnGeometry'] = _flag(return_geometry)
    params['returnZ'] = _flag(return_z)
    params['outFields'] = '*'
    return params


def remove_null_z(graphics: Optional[List[Dict]]) -> Optional[List[Dict]]:
    """
    Drop 'z' from point geometries where it is None but x and y are set.

    Some servers reject an explicit null Z, so it is omitted instead.
    """
    if graphics is None:
        return None

    cleaned = []
    for graphic in graphics:
        geometry = graphic.get('geometry')
        if (isinstance(geometry, dict) and 'z' in geometry and geometry['z'] is None
                and geometry.get('x') is not None and geometry.get('y') is not None):
            geometry = {k: v for k, v in geometry.items() if k != 'z'}
            graphic = dict(graphic, geometry=geometry)
        cleaned.append(graphic)
    return cleaned


def _edit_parameters(adds, updates, deletes) -> Dict[str, str]:
    params = {}
    for name, data in (('adds', remove_null_z(adds)), ('updates', remove_null_z(updates)), ('deletes', deletes)):
        if data is not None:
            params[name] = json.dumps(data)
    return params


def _token_parameters(username: str, password: str, expiration: int) -> Dict[str, str]:
    return {
        'username': username,
        'password': password,
        'clientid': 'requestip',
        'expiration': str(expiration)
    }


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------

def get_layer_schema(transport, layer_url: str, token: Optional[str] = None) -> LayerSchema:
    logger.debug(f"Fetching layer schema: {layer_url}")
    return transport.get(layer_url, _with_defaults({}, token), LayerSchema.from_dict)


async def get_layer_schema_async(transport, layer_url: str, token: Optional[str] = None) -> LayerSchema:
    logger.debug(f"Fetching layer schema: {layer_url}")
    return await transport.get(layer_url, _with_defaults({}, token), LayerSchema.from_dict)


def query_features(transport, layer_url: str, token: Optional[str] = None, **query) -> FeatureSet:
    """POST {layer_url}/query; keyword arguments as build_query_parameters."""
    params = _with_defaults(build_query_parameters(**query), token)
    return transport.post(f"{layer_url}/query", params, FeatureSet.from_dict, idempotent=True)


async def query_features_async(transport, layer_url: str, token: Optional[str] = None, **query) -> FeatureSet:
    params = _with_defaults(build_query_parameters(**query), token)
    return await transport.post(f"{layer_url}/query", params, FeatureSet.from_dict, idempotent=True)


def query_object_ids(transport, layer_url: str, token: Optional[str] = None, **query) -> OIDSet:
    """POST {layer_url}/query with returnIdsOnly=true."""
    params = _with_defaults(build_query_parameters(ids_only=True, **query), token)
    return transport.post(f"{layer_url}/query", params, OIDSet.from_dict, idempotent=True)


async def query_object_ids_async(transport, layer_url: str, token: Optional[str] = None, **query) -> OIDSet:
    params = _with_defaults(build_query_parameters(ids_only=True, **query), token)
    return await transport.post(f"{layer_url}/query", params, OIDSet.from_dict, idempotent=True)


def generate_token(transport, token_url: str, username: str, password: str, expiration: int = 60) -> TokenInfo:
    logger.debug(f"Generating token at {token_url} for '{username}'")
    params = _with_defaults(_token_parameters(username, password, expiration), None)
    return transport.post(token_url, params, TokenInfo.from_dict)


async def generate_token_async(transport, token_url: str, username: str, password: str,
                               expiration: int = 60) -> TokenInfo:
    logger.debug(f"Generating token at {token_url} for '{username}'")
    params = _with_defaults(_token_parameters(username, password, expiration), None)
    return await transport.post(token_url, params, TokenInfo.from_dict)


def apply_edits(
    transport,
    layer_url: str,
    token: Optional[str] = None,
    adds: Optional[List[Dict]] = None,
    updates: Optional[List[Dict]] = None,
    deletes: Optional[List[int]] = None
) -> EditResultSet:
    """
    POST {layer_url}/applyEdits.

    Parameters:
    -----------
    adds, updates : Optional[List[Dict]]
        Serialized graphics ({'attributes': ..., 'geometry': ...})
    deletes : Optional[List[int]]
        Object ids to delete

    Returns:
    --------
    EditResultSet
        Per-item results; item failures are returned, not raised
    """
    params = _with_defaults(_edit_parameters(adds, updates, deletes), token)
    return transport.post(f"{layer_url}/applyEdits", params, EditResultSet.from_dict)


def delete_features(transport, layer_url: str, where: str, token: Optional[str] = None) -> EditResultSet:
    params = _with_defaults({'where': where}, token)
    return transport.post(f"{layer_url}/deleteFeatures", params, EditResultSet.from_dict)
