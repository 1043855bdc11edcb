import json
from datetime import datetime

import pytest

from core.feature import DynamicFeature
from core.mapper import to_feature
from core.output_generator import (
    feature_to_kml,
    feature_to_text,
    features_to_kml,
    save_features,
    to_delimited_text,
    to_geodataframe,
)
from core.rest_api import Graphic, LayerSchema
from fakes import City, CityTable, city_record, city_schema
from geometry_engine.kml import KML_NS, KmlStyle
from geometry_engine.shapes import Point
from geometry_engine.wkt import to_wkt

NS = {'k': KML_NS}
SCHEMA = LayerSchema.from_dict(city_schema())


def cities(*oids):
    return [to_feature(Graphic.from_dict(city_record(oid)), SCHEMA, City, 4326) for oid in oids]


def table_row():
    row = CityTable(name='A "big" one', pop2000=1.5)
    row.oid = 3
    return row


def test_text_line_qualifies_and_doubles_quotes():
    assert feature_to_text(table_row()) == '"3","A ""big"" one","1.5"'


def test_text_line_without_qualifier():
    assert feature_to_text(table_row(), delimiter='|', qualifier=None) == '3|A "big" one|1.5'


def test_qualifier_inside_delimiter_is_rejected():
    with pytest.raises(ValueError):
        feature_to_text(table_row(), delimiter='";')


def test_dates_domains_and_nulls():
    feature = DynamicFeature()
    feature.oid = 1
    feature['WHEN'] = datetime(2020, 1, 2, 3, 4, 5)
    feature['EMPTY'] = 'x'
    feature['EMPTY'] = None

    assert feature_to_text(feature) == '"1","2020-01-02T03:04:05",""'
    assert feature_to_text(feature, date_selector=lambda d: d.strftime('%Y')) == '"1","2020",""'
    assert feature_to_text(cities(2)[0]).split(',')[4] == '"1"'


def test_geometry_selector():
    feature = DynamicFeature(geometry=Point(1, 2))

    assert feature_to_text(feature, geometry_selector=lambda g: (g.x, g.y)) == '"-1","1","2"'
    assert feature_to_text(feature, geometry_selector=to_wkt) == '"-1","POINT(1 2)"'


def test_delimited_text_is_one_line_per_record():
    assert to_delimited_text(cities(1, 2, 3)).count('\n') == 2


def test_placemark():
    city = cities(5)[0]

    placemark = feature_to_kml(city, name='Five', z=10)

    assert placemark.get('id') == '5'
    assert placemark.find('k:name', NS).text == 'Five'
    data = {d.get('name'): d.find('k:value', NS).text for d in placemark.findall('k:ExtendedData/k:Data', NS)}
    assert data['NAME'] == 'City 5'
    assert data['STATUS'] == '1'
    assert data['NOTES'] is None
    assert placemark.find('k:Point/k:coordinates', NS).text == '5,-5,10'


def test_table_placemark_has_no_geometry():
    assert feature_to_kml(table_row()).find('k:Point', NS) is None


def test_document_writes_each_style_once():
    red, blue = KmlStyle(icon_colour='ff0000ff'), KmlStyle(icon_colour='ffff0000')

    root = features_to_kml(cities(1, 2, 3), name=lambda c: c.name,
                           style=lambda c: red if c.oid % 2 else blue)

    document = root.find('k:Document', NS)
    assert [s.get('id') for s in document.findall('k:Style', NS)] == [red.id, blue.id]
    placemarks = document.findall('k:Placemark', NS)
    assert [p.find('k:styleUrl', NS).text for p in placemarks] == ['#' + red.id, '#' + blue.id, '#' + red.id]
    assert [p.find('k:name', NS).text for p in placemarks] == ['City 1', 'City 2', 'City 3']


def test_geodataframe():
    gdf = to_geodataframe(cities(1, 2))

    assert list(gdf['OID']) == [1, 2]
    assert list(gdf['NAME']) == ['City 1', 'City 2']
    assert gdf.geometry.iloc[1].x == 2.0
    assert gdf.crs.to_epsg() == 4326


def test_save_features(tmp_path):
    paths = save_features(cities(1, 2), tmp_path / 'out', base_name='cities',
                          style=lambda c: KmlStyle())

    assert all(p.exists() for p in paths.values())

    with open(paths['geojson'], encoding='utf-8') as f:
        geojson = json.load(f)
    assert len(geojson['features']) == 2
    assert geojson['features'][0]['properties']['STATUS'] == '1'

    assert paths['csv'].read_text(encoding='utf-8').count('\n') == 1
    assert '<Placemark id="2">' in paths['kml'].read_text(encoding='utf-8')
