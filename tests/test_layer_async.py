import asyncio
import threading
from urllib.parse import parse_qsl

import httpx
import pytest

from core.exceptions import RemoteError, TransportError
from core.layer import Layer
from core.transport import AsyncTransport
from fakes import LAYER_URL, SETTINGS, City, FakeFeatureServer, FakeResponse


def async_transport_for(handler, failures=0):
    """AsyncTransport over httpx.MockTransport, routing requests to handler(method, url, payload)."""
    remaining = [failures]
    delays = []

    def respond(request: httpx.Request) -> httpx.Response:
        if remaining[0] > 0:
            remaining[0] -= 1
            raise httpx.ConnectError('connection reset', request=request)

        url = str(request.url.copy_with(query=None))
        if request.method == 'GET':
            payload = dict(request.url.params)
        else:
            payload = dict(parse_qsl(request.content.decode(), keep_blank_values=True))

        result = handler(request.method, url, payload)
        if isinstance(result, FakeResponse):
            return httpx.Response(result.status_code, json=result.data)
        return httpx.Response(200, json=result)

    async def sleep(seconds):
        delays.append(seconds)

    client = httpx.AsyncClient(transport=httpx.MockTransport(respond))
    return AsyncTransport(SETTINGS, client=client, sleep=sleep), delays


def collect(agen):
    async def run():
        return [f async for f in agen]
    return asyncio.run(run())


def make_layer(server):
    transport, _ = async_transport_for(server)
    return Layer(LAYER_URL, City, token='secret', async_transport=transport, settings=SETTINGS)


def test_download_async_first_page_only():
    server = FakeFeatureServer(range(1, 11), max_record_count=3)

    assert [c.oid for c in collect(make_layer(server).download_async())] == [1, 2, 3]


def test_download_async_keep_querying():
    server = FakeFeatureServer(range(1, 11), max_record_count=3)
    cities = collect(make_layer(server).download_async(City.pop2000 > 0, keep_querying=True))

    assert [c.oid for c in cities] == list(range(1, 11))
    assert cities[0].name == 'City 1'
    assert server.query_requests()[0]['where'] == '(POP2000 > 0)'
    assert server.query_requests()[0]['token'] == 'secret'


def test_download_ids_async():
    server = FakeFeatureServer(range(1, 11), max_record_count=3)

    assert [c.oid for c in collect(make_layer(server).download_ids_async([2, 8, 3, 9]))] == [2, 3, 8, 9]
    assert [p['objectIds'] for p in server.query_requests()] == ['2,8,3', '9']


def test_download_async_cancellation():
    server = FakeFeatureServer(range(1, 11), max_record_count=3)
    cancel = threading.Event()
    layer = make_layer(server)

    async def run():
        seen = []
        async for city in layer.download_async(keep_querying=True, cancellation=cancel):
            seen.append(city.oid)
            if city.oid == 5:
                cancel.set()
        return seen

    assert asyncio.run(run()) == [1, 2, 3, 4, 5, 6]


def test_async_get_retries_with_backoff():
    transport, delays = async_transport_for(lambda m, u, p: {'value': 1}, failures=2)

    assert asyncio.run(transport.get(LAYER_URL)) == {'value': 1}
    assert delays == [1.0, 2.0]


def test_async_post_is_not_retried():
    transport, delays = async_transport_for(lambda m, u, p: {'value': 1}, failures=1)

    with pytest.raises(TransportError):
        asyncio.run(transport.post(LAYER_URL + '/applyEdits', {'adds': '[]'}))

    assert delays == []


def test_async_remote_error():
    error = {'error': {'code': 400, 'message': 'Unable to complete operation.', 'details': ['bad where']}}
    transport, delays = async_transport_for(lambda m, u, p: error)

    with pytest.raises(RemoteError) as excinfo:
        asyncio.run(transport.get(LAYER_URL))

    assert excinfo.value.details == ['bad where']
    assert delays == []


def test_async_transport_as_context_manager():
    transport, _ = async_transport_for(lambda m, u, p: {'value': 1})

    async def run():
        async with transport as t:
            return await t.get(LAYER_URL, {'f': 'json'})

    assert asyncio.run(run()) == {'value': 1}
    assert transport.client.is_closed


def test_layer_closes_the_client_it_created():
    layer = Layer(LAYER_URL, City, settings=SETTINGS)

    async def run():
        async with layer:
            return layer.async_transport.client

    client = asyncio.run(run())

    assert client.is_closed
    assert layer._async_transport is None


def test_layer_leaves_a_supplied_transport_open():
    transport, _ = async_transport_for(lambda m, u, p: {'value': 1})
    layer = Layer(LAYER_URL, City, async_transport=transport, settings=SETTINGS)

    asyncio.run(layer.aclose())

    assert not transport.client.is_closed
    assert layer.async_transport is transport
