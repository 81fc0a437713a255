"""
Session lifecycle - One authenticated backend session per pipeline invocation.

State machine:

    UNAUTHENTICATED -> AUTHENTICATING -> READY
                                      -> FAILED   (fatal, never retried)

The ConnectionManager owns the only Session of an invocation. It creates it
lazily on the first ensure_session() call, awaits the handshake, and hands
out the same Session afterwards. A Session can only be queried once READY.

Composition of operations is sequential-only. The session slot is guarded
by an asyncio.Lock so overlapping ensure_session() calls still produce a
single handshake, but no other ordering is promised for parallel use.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

from spp_adaptor.config import AdaptorConfig
from spp_adaptor.errors import AuthenticationError, SessionNotReadyError, TransportError
from spp_adaptor.transport import RegistryTransport, create_transport
from spp_adaptor.utils import log_success

logger = logging.getLogger(__name__)

LOGIN_FAILED_MESSAGE = "Can't login to OpenSPP, please check your credentials or network!"

TransportFactory = Callable[[AdaptorConfig], RegistryTransport]


class SessionState(str, Enum):
    """Handshake states of a Session."""
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    FAILED = "failed"


class Session:
    """
    Authenticated handle to one backend account.

    Wraps a RegistryTransport and refuses reads until the handshake has
    succeeded.
    """

    def __init__(self, transport: RegistryTransport):
        self.transport = transport
        self.state = SessionState.UNAUTHENTICATED
        self.error: Optional[BaseException] = None

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    async def authenticate(self) -> None:
        """
        Run the handshake. The session ends FAILED whatever the failure;
        errors other than the ones below are re-raised unchanged.

        Raises:
            AuthenticationError: On any handshake failure, including the
                backend being unreachable.
        """
        if self.state is not SessionState.UNAUTHENTICATED:
            raise SessionNotReadyError(f"Cannot authenticate a session in state {self.state.value}")

        self.state = SessionState.AUTHENTICATING
        try:
            await self.transport.authenticate()
        except (AuthenticationError, TransportError) as e:
            self._fail(e)
            raise AuthenticationError(LOGIN_FAILED_MESSAGE) from e
        except BaseException as e:
            self._fail(e)
            raise

        self.state = SessionState.READY

    def _fail(self, error: BaseException) -> None:
        self.state = SessionState.FAILED
        self.error = error
        logger.error(f"OpenSPP login failed: {error!r}")

    async def search_read(self, collection: str, options: dict[str, Any]) -> list[dict[str, Any]]:
        """Read records through the transport. Requires READY."""
        if not self.is_ready:
            raise SessionNotReadyError(f"Session is {self.state.value}, not ready")
        return await self.transport.search_read(collection, options)

    async def close(self) -> None:
        await self.transport.aclose()


class ConnectionManager:
    """
    Lazily creates and caches the Session of one invocation.

    Args:
        config: Backend settings for this invocation
        transport_factory: Builds the transport for a config (tests inject fakes)
    """

    def __init__(self, config: AdaptorConfig, transport_factory: Optional[TransportFactory] = None):
        self.config = config
        self._transport_factory = transport_factory or create_transport
        self._session: Optional[Session] = None
        self._lock = asyncio.Lock()

    async def ensure_session(self) -> Session:
        """
        Return the READY session, creating and authenticating it on first use.

        Returns:
            The cached Session

        Raises:
            AuthenticationError: If the handshake fails now or failed earlier
                in this invocation.
            SessionNotReadyError: If the session is in any state but READY.
        """
        async with self._lock:
            if self._session is None:
                logger.debug(f"Opening OpenSPP session for {self.config!r}")
                self._session = Session(self._transport_factory(self.config))

            session = self._session
            if session.state is SessionState.FAILED:
                raise AuthenticationError(LOGIN_FAILED_MESSAGE) from session.error

            if session.state is SessionState.UNAUTHENTICATED:
                await session.authenticate()
                log_success(logger, f"Connected to OpenSPP at {self.config.endpoint}")

            if not session.is_ready:
                raise SessionNotReadyError(f"Session is {session.state.value}, not ready")
            return session

    @property
    def session(self) -> Session:
        """
        The current session. Only available once READY.

        Raises:
            SessionNotReadyError: If no session exists or it is not READY.
        """
        if self._session is None:
            raise SessionNotReadyError("No session has been opened")
        if not self._session.is_ready:
            raise SessionNotReadyError(f"Session is {self._session.state.value}, not ready")
        return self._session

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.UNAUTHENTICATED
        return self._session.state

    async def close(self) -> None:
        """Discard the session and release its transport."""
        session, self._session = self._session, None
        if session is not None:
            await session.close()
