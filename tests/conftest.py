import pytest

from spp_adaptor.errors import TransportError


CONFIGURATION = {
    "baseUrl": "https://openspp.test",
    "username": "admin",
    "password": "secret",
    "database": "openspp",
}


class FakeTransport:
    """In-memory RegistryTransport recording every call.

    ``responses`` maps a collection name to the records returned for it, or
    to an exception instance to raise.
    """

    def __init__(self, responses=None, auth_error=None):
        self.responses = dict(responses or {})
        self.auth_error = auth_error
        self.authenticate_calls = 0
        self.calls: list[tuple[str, dict]] = []
        self.closed = False

    async def authenticate(self):
        self.authenticate_calls += 1
        if self.auth_error is not None:
            raise self.auth_error

    async def search_read(self, model, options):
        self.calls.append((model, options))
        result = self.responses.get(model, [])
        if isinstance(result, Exception):
            raise result
        return result

    async def aclose(self):
        self.closed = True


class TransportFactory:
    """Transport factory handing out one FakeTransport and counting uses."""

    def __init__(self, transport):
        self.transport = transport
        self.created = 0

    def __call__(self, config):
        self.created += 1
        return self.transport


@pytest.fixture
def configuration():
    return dict(CONFIGURATION)


@pytest.fixture
def initial_state(configuration):
    return {"configuration": configuration}


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def transport_factory(fake_transport):
    return TransportFactory(fake_transport)


@pytest.fixture
def network_error():
    return TransportError("connection reset")
