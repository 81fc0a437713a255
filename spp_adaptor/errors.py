"""
Error classes for spp-adaptor operations.

These error types classify failures at the operation boundary:
- TransportError: The backend call itself failed (network, malformed request).
  Scoped to the operation that raised it.
- AuthenticationError: The session handshake failed. Fatal to the remaining
  composed operations of the invocation.

A query that matches nothing is NOT an error. Operations log a warning and
hand back the prior state unchanged.

Error handling contract:
- Errors are exceptions, not values
- No retries happen in this layer; retry/backoff belongs to the pipeline host
"""


class AdaptorError(Exception):
    """Base exception for spp-adaptor."""
    pass


class TransportError(AdaptorError):
    """
    Transport error - the backend call failed.

    Examples:
    - Network timeout or connection reset
    - Non-2xx HTTP response
    - JSON-RPC error member in the response (malformed domain, unknown model)

    The operation that raised it produces no state transition.
    """
    pass


class AuthenticationError(AdaptorError):
    """
    Authentication error - the session handshake failed.

    Examples:
    - Wrong username/password/database
    - Revoked or invalid API key
    - Backend unreachable during login

    The pipeline host must halt the remaining composed operations.
    """
    pass


class SessionNotReadyError(AdaptorError):
    """A session was used before its handshake completed successfully."""
    pass


class DomainError(AdaptorError, ValueError):
    """A filter clause or domain expression is malformed."""
    pass
