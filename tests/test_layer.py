import json
import logging
import threading

from core.layer import FeatureLayer, Layer
from core.rest_api import SpatialRel
from fakes import LAYER_URL, SETTINGS, City, CityTable, FakeFeatureServer, make_transport
from geometry_engine.shapes import Envelope, Point


def layer_for(server, feature_type=City, **kwargs):
    transport, _, _ = make_transport(server)
    return FeatureLayer(LAYER_URL, feature_type, token='secret', transport=transport, settings=SETTINGS, **kwargs)


def oids(features):
    return [f.oid for f in features]


def test_download_is_lazy(server, layer):
    records = layer.download()

    assert server.requests == []

    next(records)
    assert len(server.query_requests()) == 1


def test_first_page_only_by_default(server, layer):
    assert oids(layer.download()) == [1, 2, 3]
    assert oids(layer.download()) == [1, 2, 3]
    assert len(server.query_requests()) == 2


def test_keep_querying_returns_every_record_once(server, layer):
    assert oids(layer.download(keep_querying=True)) == list(range(1, 11))

    batches = [p['objectIds'] for p in server.query_requests()]
    assert batches == ['', '4,5,6', '7,8,9', '10']


def test_service_capped_below_page_size():
    # undeclared maxRecordCount, service returns 4 per response
    server = FakeFeatureServer(range(1, 11), max_record_count=None, cap=4)
    layer = layer_for(server)

    assert oids(layer.download(keep_querying=True)) == list(range(1, 11))
    assert [p['objectIds'] for p in server.query_requests()] == ['', '5,6,7,8', '9,10']


def test_parallel_batches_are_yielded_in_submission_order():
    server = FakeFeatureServer(range(1, 14), max_record_count=3, delays={4: 0.3, 7: 0.1})
    layer = layer_for(server)

    assert oids(layer.download(keep_querying=True, degree_of_parallelism=4)) == list(range(1, 14))


def test_empty_first_page_stops():
    server = FakeFeatureServer([], max_record_count=3)
    layer = layer_for(server)

    assert list(layer.download(keep_querying=True)) == []
    assert len(server.requests) == 2


def test_cancellation_after_first_page(server, layer):
    cancel = threading.Event()
    seen = []

    for city in layer.download(keep_querying=True, cancellation=cancel):
        seen.append(city.oid)
        cancel.set()

    assert seen == [1, 2, 3]
    assert len(server.query_requests()) == 1


def test_cancellation_between_batches(server, layer):
    cancel = threading.Event()
    seen = []

    for city in layer.download(keep_querying=True, cancellation=cancel):
        seen.append(city.oid)
        if city.oid == 4:
            cancel.set()

    assert seen == [1, 2, 3, 4, 5, 6]


def test_download_ids_batches_by_page_size(server, layer):
    assert oids(layer.download_ids([5, 1, 9, 2])) == [1, 5, 9, 2]
    assert [p['objectIds'] for p in server.query_requests()] == ['5,1,9', '2']


def test_download_ids_in_parallel(server, layer):
    assert oids(layer.download_ids(range(1, 11), degree_of_parallelism=3)) == list(range(1, 11))


def test_parallelism_defaults_to_configured_setting(caplog):
    server = FakeFeatureServer(range(1, 11), max_record_count=3)
    transport, _, _ = make_transport(server)
    settings = dict(SETTINGS, pagination=dict(SETTINGS['pagination'], degree_of_parallelism=3))
    layer = FeatureLayer(LAYER_URL, City, transport=transport, settings=settings)

    with caplog.at_level(logging.INFO, logger='featurestream'):
        assert oids(layer.download(keep_querying=True)) == list(range(1, 11))
        assert oids(layer.download_ids([1, 2, 3, 4], degree_of_parallelism=2)) == [1, 2, 3, 4]

    assert 'parallelism 3' in caplog.text
    assert 'parallelism 2' in caplog.text


def test_download_ids_with_nothing_requested(server, layer):
    assert list(layer.download_ids([])) == []
    assert server.query_requests() == []


def test_query_parameters(server, layer):
    list(layer.download(City.state == 'CA'))

    params = server.query_requests()[0]
    assert params['where'] == "(STATE = 'CA')"
    assert params['token'] == 'secret'
    assert params['f'] == 'json'
    assert params['outFields'] == '*'
    assert params['returnGeometry'] == 'true'
    assert params['returnZ'] == 'false'
    assert 'geometry' not in params


def test_spatial_filter_parameters(server, layer):
    list(layer.download(geometry=Point(1, 2), spatial_rel=SpatialRel.WITHIN, keep_querying=True))

    params = server.query_requests()[0]
    assert json.loads(params['geometry']) == {'x': 1, 'y': 2}
    assert params['geometryType'] == 'esriGeometryPoint'
    assert params['spatialRel'] == 'esriSpatialRelWithin'

    id_query = [p for m, u, p in server.requests if p.get('returnIdsOnly') == 'true'][0]
    assert id_query['geometryType'] == 'esriGeometryPoint'
    assert 'returnGeometry' not in id_query


def test_envelope_filter_defaults_to_intersects(server, layer):
    list(layer.download(geometry=Envelope(0, 0, 10, 10)))

    params = server.query_requests()[0]
    assert params['geometryType'] == 'esriGeometryEnvelope'
    assert params['spatialRel'] == 'esriSpatialRelIntersects'


def test_extra_parameters_as_string(server, layer):
    list(layer.download(extra_parameters='&orderByFields=NAME&resultType=standard'))

    params = server.query_requests()[0]
    assert params['orderByFields'] == 'NAME'
    assert params['resultType'] == 'standard'


def test_table_download_asks_for_no_geometry(server):
    layer = layer_for(server, CityTable)

    tables = list(layer.download())

    assert server.query_requests()[0]['returnGeometry'] == 'false'
    assert tables[0].pop2000 == 1000.0


def test_records_carry_response_spatial_reference(layer):
    city = next(layer.download())

    assert city.geometry.spatial_reference == 4326


def test_schema_is_cached(server, layer):
    list(layer.download())
    list(layer.download())

    assert len([u for m, u, p in server.requests if u == LAYER_URL]) == 1

    layer.get_schema(refresh=True)
    assert len([u for m, u, p in server.requests if u == LAYER_URL]) == 2


def test_credentials_generate_token():
    server = FakeFeatureServer(range(1, 4))

    def handler(method, url, payload):
        if url.endswith('/generateToken'):
            return {'token': 'generated', 'expires': 4102444800000}
        return server(method, url, payload)

    transport, session, _ = make_transport(handler)
    layer = Layer(LAYER_URL, City, username='user', password='pw', transport=transport, settings=SETTINGS)

    list(layer.download())

    assert session.calls[0][1].endswith('/generateToken')
    assert server.query_requests()[0]['token'] == 'generated'


def test_transfer_limit_and_id_field_are_logged(caplog):
    server = FakeFeatureServer(range(1, 7), max_record_count=3)

    def handler(method, url, payload):
        result = server(method, url, payload)
        if payload.get('returnIdsOnly') == 'true':
            result['objectIdFieldName'] = 'FID'
        elif url.endswith('/query'):
            result['exceededTransferLimit'] = True
        return result

    transport, _, _ = make_transport(handler)
    layer = Layer(LAYER_URL, City, transport=transport, settings=SETTINGS)

    with caplog.at_level(logging.INFO, logger='featurestream'):
        assert oids(layer.download(keep_querying=True)) == list(range(1, 7))

    assert 'transfer limit exceeded' in caplog.text
    assert "object id field 'FID'" in caplog.text
