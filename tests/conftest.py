import pytest

from core.layer import FeatureLayer
from fakes import LAYER_URL, SETTINGS, City, FakeFeatureServer, make_transport


@pytest.fixture
def server():
    return FakeFeatureServer(range(1, 11), max_record_count=3)


@pytest.fixture
def transport(server):
    transport, _, _ = make_transport(server)
    return transport


@pytest.fixture
def layer(server, transport):
    return FeatureLayer(LAYER_URL, City, token='secret', transport=transport, settings=SETTINGS)
