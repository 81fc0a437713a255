"""Tests for the httpx registry transports.

Tests cover:
- JSON-RPC authenticate / execute_kw payloads (password strategy)
- JSON-2 bearer requests (API key strategy)
- Error classification into AuthenticationError / TransportError
- Transport selection by configuration
"""

import json

import httpx
import pytest

from spp_adaptor.config import AdaptorConfig
from spp_adaptor.errors import AuthenticationError, TransportError
from spp_adaptor.transport import (
    Json2Transport,
    JsonRpcTransport,
    RegistryTransport,
    create_transport,
)


@pytest.fixture
def password_config(configuration):
    return AdaptorConfig.from_mapping(configuration)


@pytest.fixture
def token_config():
    return AdaptorConfig.from_mapping(
        {"endpoint": "https://openspp.test", "accessToken": "k-123", "database": "openspp"}
    )


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _rpc_handler(requests, results):
    """Answer JSON-RPC calls from ``results`` keyed by (service, method)."""
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        params = body["params"]
        result = results[(params["service"], params["method"])]
        if isinstance(result, dict) and "error" in result:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], **result})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})
    return handler


class TestJsonRpcTransport:
    """Password strategy over /jsonrpc."""

    @pytest.mark.asyncio
    async def test_authenticate_then_search_read(self, password_config):
        requests = []
        handler = _rpc_handler(requests, {
            ("common", "authenticate"): 2,
            ("object", "execute_kw"): [{"id": 641, "name": "Santos"}],
        })
        transport = JsonRpcTransport(password_config, _client(handler))

        await transport.authenticate()
        records = await transport.search_read(
            "res.partner",
            {"domain": [["id", "=", 641]], "fields": [], "limit": 1, "order": "id desc"},
        )

        assert records == [{"id": 641, "name": "Santos"}]
        assert transport.uid == 2
        assert requests[0]["params"]["args"] == ["openspp", "admin", "secret", {}]
        assert requests[1]["params"]["args"] == [
            "openspp", 2, "secret", "res.partner", "search_read",
            [[["id", "=", 641]]],
            {"fields": [], "limit": 1, "order": "id desc"},
        ]

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, password_config):
        handler = _rpc_handler([], {("common", "authenticate"): False})
        transport = JsonRpcTransport(password_config, _client(handler))

        with pytest.raises(AuthenticationError, match="admin"):
            await transport.authenticate()

    @pytest.mark.asyncio
    async def test_rpc_error_is_transport_error(self, password_config):
        handler = _rpc_handler([], {
            ("common", "authenticate"): 2,
            ("object", "execute_kw"): {
                "error": {"message": "Odoo Server Error", "data": {"message": "Invalid field 'nope'"}},
            },
        })
        transport = JsonRpcTransport(password_config, _client(handler))
        await transport.authenticate()

        with pytest.raises(TransportError, match="Invalid field 'nope'"):
            await transport.search_read("res.partner", {"domain": [["nope", "=", 1]]})

    @pytest.mark.asyncio
    async def test_false_result_is_empty(self, password_config):
        handler = _rpc_handler([], {("common", "authenticate"): 2, ("object", "execute_kw"): False})
        transport = JsonRpcTransport(password_config, _client(handler))
        await transport.authenticate()

        assert await transport.search_read("res.partner", {"domain": []}) == []

    @pytest.mark.asyncio
    async def test_search_before_authenticate(self, password_config):
        transport = JsonRpcTransport(password_config, _client(lambda request: httpx.Response(500)))
        with pytest.raises(TransportError, match="before authenticate"):
            await transport.search_read("res.partner", {"domain": []})

    @pytest.mark.asyncio
    async def test_http_error(self, password_config):
        transport = JsonRpcTransport(
            password_config, _client(lambda request: httpx.Response(502, text="Bad Gateway"))
        )
        with pytest.raises(TransportError, match="HTTP 502"):
            await transport.authenticate()

    @pytest.mark.asyncio
    async def test_timeout(self, password_config):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        transport = JsonRpcTransport(password_config, _client(handler))
        with pytest.raises(TransportError, match="timed out"):
            await transport.authenticate()

    @pytest.mark.asyncio
    async def test_network_error(self, password_config):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = JsonRpcTransport(password_config, _client(handler))
        with pytest.raises(TransportError, match="connection refused"):
            await transport.authenticate()

    @pytest.mark.asyncio
    async def test_malformed_json(self, password_config):
        transport = JsonRpcTransport(
            password_config, _client(lambda request: httpx.Response(200, text="<html>"))
        )
        with pytest.raises(TransportError, match="Malformed"):
            await transport.authenticate()


class TestJson2Transport:
    """API key strategy over /json/2."""

    @pytest.mark.asyncio
    async def test_bearer_requests(self, token_config):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path == "/json/2/res.users/context_get":
                return httpx.Response(200, json={"lang": "en_US"})
            return httpx.Response(200, json=[{"id": 3}])

        transport = Json2Transport(token_config, _client(handler))
        await transport.authenticate()
        records = await transport.search_read(
            "spp.service.point", {"domain": [["agent_number", "=", "1"]], "limit": 100, "offset": 100}
        )

        assert records == [{"id": 3}]
        assert all(r.headers["Authorization"] == "bearer k-123" for r in seen)
        assert seen[0].headers["X-Odoo-Database"] == "openspp"
        assert seen[1].url.path == "/json/2/spp.service.point/search_read"
        assert json.loads(seen[1].content) == {
            "domain": [["agent_number", "=", "1"]],
            "limit": 100,
            "offset": 100,
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected_key(self, token_config, status):
        transport = Json2Transport(token_config, _client(lambda request: httpx.Response(status)))
        with pytest.raises(AuthenticationError, match="API key rejected"):
            await transport.authenticate()

    @pytest.mark.asyncio
    async def test_server_error_during_handshake(self, token_config):
        transport = Json2Transport(token_config, _client(lambda request: httpx.Response(500)))
        with pytest.raises(TransportError):
            await transport.authenticate()


class TestCreateTransport:
    """create_transport picks by strategy."""

    def test_password(self, password_config):
        transport = create_transport(password_config)
        assert isinstance(transport, JsonRpcTransport)
        assert isinstance(transport, RegistryTransport)

    def test_token(self, token_config):
        assert isinstance(create_transport(token_config), Json2Transport)

    @pytest.mark.asyncio
    async def test_owned_client_closed(self, token_config):
        transport = create_transport(token_config)
        await transport.aclose()
        assert transport._client.is_closed
