"""
Output generation module for featurestream.

This module turns downloaded records into files and in-memory exports:
delimited text lines, KML placemarks and documents, and GeoDataFrames, and
can save a batch of records as GeoJSON, CSV and KML in one call.

Functions:
    feature_to_text: One record as a delimited text line
    to_delimited_text: Many records as delimited text
    feature_to_kml: One record as a KML Placemark
    features_to_kml: Many records as a KML document with shared styles
    to_geodataframe: Records as a GeoPandas GeoDataFrame
    save_features: Write records to GeoJSON, CSV and KML files
"""

import xml.etree.ElementTree as ET
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import geopandas as gpd

from core.domain import Domain
from core.feature import Feature
from geometry_engine.kml import KmlStyle, kml_tag, style_to_kml, to_kml_element, to_kml_string
from utils.geometry_converters import to_shapely
from utils.logger import get_logger

logger = get_logger(__name__)


def _geometry_of(feature: Feature):
    return feature.geometry if feature.has_geometry() else None


def feature_to_text(
    feature: Feature,
    delimiter: str = ',',
    qualifier: Optional[str] = '"',
    geometry_selector: Optional[Callable[[Any], Any]] = None,
    date_selector: Optional[Callable[[datetime], str]] = None
) -> str:
    """
    Render a record as one delimited text line.

    The object id comes first, then every field value in get_field_names()
    order, then whatever geometry_selector returns for the geometry (a
    string is one value, any other iterable is spread into several).

    Parameters:
    -----------
    feature : Feature
        Record to render
    delimiter : str
        Separator between values (default: ',')
    qualifier : Optional[str]
        Quote placed around every value; embedded qualifiers are doubled.
        None writes values unquoted.
    geometry_selector : Optional[Callable]
        Projection of the geometry into extra columns, e.g.
        lambda g: (g.x, g.y)
    date_selector : Optional[Callable[[datetime], str]]
        Date formatter (default: ISO 8601)

    Returns:
    --------
    str
        Delimited line without a trailing newline

    Raises:
    -------
    ValueError
        If the qualifier occurs inside the delimiter
    """
    if qualifier and qualifier in delimiter:
        raise ValueError("The qualifier is not valid.")

    values = [feature.oid] + [feature[name] for name in feature.get_field_names()]

    if geometry_selector is not None:
        projected = geometry_selector(_geometry_of(feature))
        if isinstance(projected, str) or not isinstance(projected, Iterable):
            values.append(projected)
        else:
            values.extend(projected)

    date_selector = date_selector or (lambda d: d.isoformat())

    cells = []
    for value in values:
        if isinstance(value, datetime):
            value = date_selector(value)
        elif isinstance(value, Domain):
            value = value.code
        text = '' if value is None else str(value)
        if qualifier:
            text = qualifier + text.replace(qualifier, qualifier * 2) + qualifier
        cells.append(text)

    return delimiter.join(cells)


def to_delimited_text(features: Iterable[Feature], **options) -> str:
    """Render records as newline-separated lines (options as feature_to_text)."""
    return '\n'.join(feature_to_text(f, **options) for f in features)


def _data_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Domain):
        return str(value.code)
    return str(value)


def feature_to_kml(
    feature: Feature,
    name: Optional[str] = None,
    z: Optional[float] = None,
    geometry_elements: Sequence[ET.Element] = (),
    placemark_elements: Sequence[ET.Element] = ()
) -> ET.Element:
    """
    Render a record as a KML Placemark.

    The placemark id is the object id, every field becomes an ExtendedData
    Data entry, and the geometry (if the record class declares one) follows.

    Parameters:
    -----------
    feature : Feature
        Record to render
    name : Optional[str]
        Placemark name
    z : Optional[float]
        Height for every coordinate, overriding the geometry's own
    geometry_elements : Sequence[ET.Element]
        Extra children for each KML geometry element (e.g. <extrude>)
    placemark_elements : Sequence[ET.Element]
        Extra children for the Placemark (e.g. <styleUrl>)

    Returns:
    --------
    ET.Element
        <Placemark> element
    """
    placemark = ET.Element(kml_tag('Placemark'), {'id': str(feature.oid)})

    name_element = ET.SubElement(placemark, kml_tag('name'))
    name_element.text = name

    for element in placemark_elements:
        placemark.append(element)

    extended_data = ET.SubElement(placemark, kml_tag('ExtendedData'))
    for field_name in feature.get_field_names():
        data = ET.SubElement(extended_data, kml_tag('Data'), {'name': field_name})
        value = ET.SubElement(data, kml_tag('value'))
        value.text = _data_value(feature[field_name])

    geometry = _geometry_of(feature)
    if geometry is not None:
        placemark.append(to_kml_element(geometry, z, geometry_elements))

    return placemark


def features_to_kml(
    features: Iterable[Feature],
    name: Optional[Callable[[Feature], str]] = None,
    z: Optional[Callable[[Feature], Optional[float]]] = None,
    style: Optional[Callable[[Feature], KmlStyle]] = None,
    placemark_elements: Optional[Callable[[Feature], Sequence[ET.Element]]] = None,
    document_elements: Sequence[ET.Element] = ()
) -> ET.Element:
    """
    Render records as a <kml><Document> of placemarks.

    With a style selector, each distinct style is written once at the top
    of the document and placemarks reference it through <styleUrl>.

    Parameters:
    -----------
    features : Iterable[Feature]
        Records to render
    name, z, style, placemark_elements : Optional[Callable]
        Per-record selectors for the placemark name, height, style and
        extra placemark children
    document_elements : Sequence[ET.Element]
        Extra children for the Document

    Returns:
    --------
    ET.Element
        <kml> root element
    """
    features = list(features)

    root = ET.Element(kml_tag('kml'))
    document = ET.SubElement(root, kml_tag('Document'))

    styles: Dict[int, KmlStyle] = {}
    if style is not None:
        styles = {id(f): style(f) for f in features}
        written = []
        for s in styles.values():
            if s not in written:
                written.append(s)
                document.append(style_to_kml(s))

    for element in document_elements:
        document.append(element)

    for feature in features:
        extra: List[ET.Element] = []
        if style is not None:
            style_url = ET.Element(kml_tag('styleUrl'))
            style_url.text = '#' + styles[id(feature)].id
            extra.append(style_url)
        if placemark_elements is not None:
            extra.extend(placemark_elements(feature))

        document.append(feature_to_kml(
            feature,
            name(feature) if name else None,
            z(feature) if z else None,
            placemark_elements=extra
        ))

    return root


def to_geodataframe(features: Iterable[Feature], crs: Optional[str] = None) -> gpd.GeoDataFrame:
    """
    Convert records to a GeoDataFrame.

    Columns are OID, every field (by wire name) and, when the record class
    declares a geometry, a Shapely geometry column.

    Parameters:
    -----------
    features : Iterable[Feature]
        Records to convert
    crs : Optional[str]
        Coordinate reference system; defaults to EPSG:<wkid> of the first
        geometry that carries a spatial reference

    Returns:
    --------
    gpd.GeoDataFrame
        One row per record
    """
    rows = []
    geometries = []
    wkid = None

    for feature in features:
        row = {'OID': feature.oid}
        for field_name in feature.get_field_names():
            row[field_name] = feature[field_name]
        rows.append(row)

        geometry = _geometry_of(feature)
        if geometry is not None and wkid is None:
            wkid = geometry.spatial_reference
        geometries.append(to_shapely(geometry))

    if crs is None and wkid is not None:
        crs = f"EPSG:{wkid}"

    return gpd.GeoDataFrame(rows, geometry=geometries, crs=crs)


def save_features(
    features: Iterable[Feature],
    output_dir: Path,
    base_name: str = 'features',
    style: Optional[Callable[[Feature], KmlStyle]] = None
) -> Dict[str, Path]:
    """
    Save records as GeoJSON, CSV and KML files.

    Creates output_dir if needed and writes:
    - {base_name}.geojson: GeoDataFrame export
    - {base_name}.csv: Delimited text, one record per line
    - {base_name}.kml: KML document

    Parameters:
    -----------
    features : Iterable[Feature]
        Records to save
    output_dir : Path
        Destination directory
    base_name : str
        File name stem (default: 'features')
    style : Optional[Callable[[Feature], KmlStyle]]
        Per-record KML style

    Returns:
    --------
    Dict[str, Path]
        Written file paths keyed by 'geojson', 'csv' and 'kml'
    """
    features = list(features)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 80)
    logger.info(f"Saving {len(features)} record(s) to {output_dir}")
    logger.info("=" * 80)

    paths = {
        'geojson': output_dir / f'{base_name}.geojson',
        'csv': output_dir / f'{base_name}.csv',
        'kml': output_dir / f'{base_name}.kml',
    }

    gdf = to_geodataframe(features)
    for column in gdf.columns:
        # UUIDs and domain members have no GeoJSON type
        if column != gdf.geometry.name and gdf[column].dtype == object:
            gdf[column] = gdf[column].map(_data_value)
    gdf.to_file(paths['geojson'], driver='GeoJSON')
    logger.info(f"  - GeoJSON: {paths['geojson'].name}")

    with open(paths['csv'], 'w', encoding='utf-8', newline='') as f:
        f.write(to_delimited_text(features))
    logger.info(f"  - CSV: {paths['csv'].name}")

    with open(paths['kml'], 'w', encoding='utf-8') as f:
        f.write(to_kml_string(features_to_kml(features, style=style)))
    logger.info(f"  - KML: {paths['kml'].name}")

    return paths
