"""
Registry transport - IO boundary for talking to the OpenSPP backend.

This module defines the protocol any registry transport must implement,
so that sessions and query execution stay decoupled from the wire format.

Implementations:
- JsonRpcTransport: username/password/database via the /jsonrpc endpoint
- Json2Transport: API key (bearer token) via the /json/2 endpoint

Error classification:
- Rejected credentials during authenticate() -> AuthenticationError
- httpx timeouts and network failures -> TransportError
- Non-2xx responses -> TransportError (401/403 during authenticate -> AuthenticationError)
- JSON-RPC error member / malformed body -> TransportError
"""

import itertools
import logging
from typing import Any, Optional, Protocol, runtime_checkable

import httpx

from spp_adaptor.config import AdaptorConfig, TOKEN_STRATEGY
from spp_adaptor.errors import AuthenticationError, TransportError

logger = logging.getLogger(__name__)

# search_read keyword arguments forwarded from Query Options
_READ_KWARGS = ("fields", "limit", "order", "offset")


@runtime_checkable
class RegistryTransport(Protocol):
    """
    Protocol for registry reads.

    Transports are created unauthenticated; authenticate() performs the
    handshake and must complete before search_read() is called.
    """

    async def authenticate(self) -> None:
        """
        Perform the login handshake.

        Raises:
            AuthenticationError: Credentials were rejected
            TransportError: The backend could not be reached
        """
        ...

    async def search_read(self, model: str, options: dict[str, Any]) -> list[dict[str, Any]]:
        """
        Read records of ``model`` matching ``options["domain"]``.

        Args:
            model: Backend collection name (e.g., "res.partner")
            options: Query Options dict (domain, fields, limit, order?, offset?)

        Returns:
            List of record dicts, empty when nothing matched

        Raises:
            TransportError: The call failed
        """
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        ...


class _HttpTransport:
    """Shared httpx plumbing for both wire formats."""

    def __init__(self, config: AdaptorConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    def _default_headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _post_json(self, url: str, payload: dict[str, Any]) -> Any:
        """POST a JSON body and return the decoded response body."""
        try:
            response = await self._client.post(url, json=payload, headers=self._default_headers())
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TransportError(f"Request to {url} timed out") from e
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"{url} returned HTTP {e.response.status_code}: {_short_body(e.response)}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"Malformed JSON response from {url}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class JsonRpcTransport(_HttpTransport):
    """
    Password-based transport over the backend's JSON-RPC endpoint.

    authenticate() calls common.authenticate and keeps the returned uid;
    search_read() calls object.execute_kw with the stored credentials.
    """

    def __init__(self, config: AdaptorConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config, client)
        self.uid: Optional[int] = None
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        return f"{self.config.endpoint}/jsonrpc"

    async def _call(self, service: str, method: str, args: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": "call",
            "params": {"service": service, "method": method, "args": args},
            "id": next(self._ids),
        }
        body = await self._post_json(self.url, payload)
        if not isinstance(body, dict):
            raise TransportError(f"Unexpected JSON-RPC response from {self.url}")
        if body.get("error"):
            raise TransportError(_rpc_error_message(body["error"]))
        return body.get("result")

    async def authenticate(self) -> None:
        cfg = self.config
        uid = await self._call(
            "common", "authenticate", [cfg.database, cfg.username, cfg.password, {}]
        )
        if not uid:
            raise AuthenticationError(
                f"Credentials rejected for {cfg.username} on database {cfg.database}"
            )
        self.uid = uid
        logger.debug(f"Authenticated {cfg.username} as uid={uid}")

    async def search_read(self, model: str, options: dict[str, Any]) -> list[dict[str, Any]]:
        if self.uid is None:
            raise TransportError("search_read called before authenticate")
        cfg = self.config
        kwargs = {k: options[k] for k in _READ_KWARGS if k in options}
        result = await self._call(
            "object",
            "execute_kw",
            [cfg.database, self.uid, cfg.password, model, "search_read", [options["domain"]], kwargs],
        )
        return _as_records(result)


class Json2Transport(_HttpTransport):
    """
    API-key transport over the backend's JSON-2 endpoint.

    Every request carries ``Authorization: bearer <key>``. authenticate()
    verifies the key with res.users/context_get.
    """

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        headers["Authorization"] = f"bearer {self.config.access_token}"
        if self.config.database:
            headers["X-Odoo-Database"] = self.config.database
        return headers

    def _url(self, model: str, method: str) -> str:
        return f"{self.config.endpoint}/json/2/{model}/{method}"

    async def authenticate(self) -> None:
        try:
            await self._post_json(self._url("res.users", "context_get"), {})
        except TransportError as e:
            cause = e.__cause__
            if isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code in (401, 403):
                raise AuthenticationError(f"API key rejected by {self.config.endpoint}") from e
            raise

    async def search_read(self, model: str, options: dict[str, Any]) -> list[dict[str, Any]]:
        body = {"domain": options["domain"]}
        body.update({k: options[k] for k in _READ_KWARGS if k in options})
        result = await self._post_json(self._url(model, "search_read"), body)
        return _as_records(result)


def create_transport(config: AdaptorConfig) -> RegistryTransport:
    """Pick the transport matching the configured authentication strategy."""
    if config.auth_strategy == TOKEN_STRATEGY:
        return Json2Transport(config)
    return JsonRpcTransport(config)


def _as_records(result: Any) -> list[dict[str, Any]]:
    """Normalize a search_read result; False/None mean no records."""
    if not result:
        return []
    if not isinstance(result, list):
        raise TransportError(f"Expected a list of records, got {type(result).__name__}")
    return result


def _rpc_error_message(error: Any) -> str:
    if not isinstance(error, dict):
        return str(error)
    data = error.get("data") or {}
    detail = data.get("message") if isinstance(data, dict) else None
    return detail or error.get("message") or "Unknown JSON-RPC error"


def _short_body(response: httpx.Response, limit: int = 200) -> str:
    text = response.text
    return text if len(text) <= limit else text[:limit] + "..."
