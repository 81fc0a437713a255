"""
Execution context - Everything one pipeline invocation owns.

Created at invocation start and passed to every operation. Holds the
ConnectionManager (and thus the only Session), the QueryExecutor and the
StateReducer. Closing it discards the session; a new invocation always
gets a new context and starts unauthenticated.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from spp_adaptor.config import AdaptorConfig
from spp_adaptor.query import QueryExecutor
from spp_adaptor.reducer import StateReducer
from spp_adaptor.session import ConnectionManager, TransportFactory


@dataclass
class ExecutionContext:
    config: AdaptorConfig
    connections: ConnectionManager
    executor: QueryExecutor
    reducer: StateReducer

    @classmethod
    def create(
        cls,
        configuration: Mapping[str, Any],
        transport_factory: Optional[TransportFactory] = None,
    ) -> "ExecutionContext":
        """Build a fresh context from state ``configuration``."""
        config = AdaptorConfig.from_mapping(configuration)
        connections = ConnectionManager(config, transport_factory)
        return cls(
            config=config,
            connections=connections,
            executor=QueryExecutor(connections),
            reducer=StateReducer(),
        )

    async def close(self) -> None:
        await self.connections.close()

    async def __aenter__(self) -> "ExecutionContext":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
