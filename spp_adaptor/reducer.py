"""
State reducer - Turn a query outcome into the next pipeline state.

Rules:
- Empty/absent result: WARNING, prior state returned unchanged
- Non-empty result: INFO, data replaced and previous data referenced
- Continuation supplied: its return value replaces the computed state
- Transport failure: ERROR, no state, the error propagates
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, NoReturn, Optional, Union

from spp_adaptor.errors import TransportError
from spp_adaptor.state import PipelineState, compose_next_state

logger = logging.getLogger(__name__)

Continuation = Callable[[PipelineState], Union[Any, Awaitable[Any]]]


class StateReducer:
    """Merges query outcomes into pipeline state."""

    async def reduce(
        self,
        prior: PipelineState,
        result: Any,
        continuation: Optional[Continuation] = None,
        *,
        label: str,
    ) -> Any:
        """
        Reduce a result into the next state.

        Args:
            prior: State the operation was invoked with
            result: Records (or a single record) returned by the query
            continuation: Optional callback receiving the next state
            label: Human-readable subject used in log messages

        Returns:
            The prior state when nothing matched, otherwise the next state
            or the continuation's return value.
        """
        if not result:
            logger.warning(f"{label} not found!")
            return prior

        logger.info(f"{label} found!")
        next_state = compose_next_state(prior, result)

        if continuation is None:
            return next_state

        value = continuation(next_state)
        if inspect.isawaitable(value):
            value = await value
        return value

    def fail(self, label: str, error: TransportError) -> NoReturn:
        """Log a transport failure for ``label`` and re-raise it."""
        logger.error(f"Fetching {label} failed: {error}")
        raise error
