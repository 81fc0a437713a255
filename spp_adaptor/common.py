"""
Common pipeline helpers - execute, fn, each and state references.

An operation is an async callable ``(context, state) -> value``. execute()
runs a sequence of operations against one fresh ExecutionContext, feeding
each operation's return value to the next one.

Operation arguments may be references: callables taking the current state
(e.g. ``data_value("registrant_id")``) that are resolved right before the
operation runs.
"""

import asyncio
import inspect
from dataclasses import replace
from typing import Any, Awaitable, Callable, Mapping, Optional

from spp_adaptor.context import ExecutionContext
from spp_adaptor.session import TransportFactory
from spp_adaptor.state import PipelineState, coerce_state

Operation = Callable[[ExecutionContext, PipelineState], Awaitable[Any]]


def execute(*operations: Operation, transport_factory: Optional[TransportFactory] = None):
    """
    Compose operations into one invocation.

    Example:
        state = await execute(
            get_household("GRP_1"),
            get_household_members(data_value("registrant_id")),
        )({"configuration": {...}})

    Args:
        *operations: Operations to run, strictly in order
        transport_factory: Override how the backend transport is built

    Returns:
        Async callable taking the initial state and returning the final value.
        AuthenticationError and TransportError propagate and stop the sequence.
    """
    async def runner(state: Any) -> Any:
        current = coerce_state(state)
        context = ExecutionContext.create(current.configuration, transport_factory)
        async with context:
            for operation in operations:
                current = await operation(context, current)
        return current

    return runner


def run(*operations: Operation, state: Any, transport_factory: Optional[TransportFactory] = None) -> Any:
    """Synchronous wrapper around execute() for scripts and the CLI."""
    return asyncio.run(execute(*operations, transport_factory=transport_factory)(state))


def fn(func: Callable[[PipelineState], Any]) -> Operation:
    """Wrap a plain state -> state function (sync or async) as an operation."""
    async def operation(context: ExecutionContext, state: PipelineState) -> Any:
        value = func(state)
        if inspect.isawaitable(value):
            value = await value
        return value

    return operation


def expand_reference(value: Any, state: PipelineState) -> Any:
    """Resolve ``value`` against state when it is a reference callable."""
    if callable(value):
        return value(state)
    return value


def _walk(value: Any, path: str) -> Any:
    """Follow a dotted path through dicts and lists; None when missing."""
    if not path:
        return value
    for part in path.split("."):
        if isinstance(value, dict):
            value = value.get(part)
        elif isinstance(value, (list, tuple)) and part.isdigit():
            index = int(part)
            value = value[index] if index < len(value) else None
        else:
            return None
        if value is None:
            return None
    return value


def data_value(path: str) -> Callable[[PipelineState], Any]:
    """Reference to a value inside ``state.data`` (dotted path)."""
    def reference(state: PipelineState) -> Any:
        return _walk(state.data, path)

    return reference


def last_reference_value(path: str) -> Callable[[PipelineState], Any]:
    """Reference to a value inside the most recent entry of ``state.references``."""
    def reference(state: PipelineState) -> Any:
        if not state.references:
            return None
        return _walk(state.references[-1], path)

    return reference


def source_value(path: str) -> Callable[[PipelineState], Any]:
    """Reference to a value anywhere in state (e.g. ``"references.0.id"``)."""
    def reference(state: PipelineState) -> Any:
        return _walk(coerce_state(state).to_dict(), path)

    return reference


def data_path(path: str) -> str:
    """Turn a path inside ``state.data`` into a path from the state root."""
    return f"data.{path}" if path else "data"


def field(key: str, value: Any) -> tuple[str, Any]:
    """A single ``(key, value)`` pair for fields()."""
    return (key, value)


def fields(*pairs: tuple[str, Any]) -> dict[str, Any]:
    """Build a mapping from field() pairs, e.g. for merge()."""
    return dict(pairs)


def _resolve_source(source: Any, state: PipelineState) -> list[Any]:
    """Items named by ``source``: a state path, a reference, or a value."""
    if isinstance(source, str):
        items = source_value(source)(state)
    else:
        items = expand_reference(source, state)
    if items is None:
        return []
    if isinstance(items, (list, tuple)):
        return list(items)
    return [items]


def merge(source: Any, values: Mapping[str, Any]) -> Callable[[PipelineState], list[Any]]:
    """
    Reference to the items at ``source`` with ``values`` merged into each.

    Values may themselves be references; they are resolved once against
    the state the merge is evaluated on.

    Example:
        each(merge(data_path("members"), fields(field("household", data_value("id")))), ...)
    """
    def reference(state: PipelineState) -> list[Any]:
        current = coerce_state(state)
        extra = {key: expand_reference(value, current) for key, value in values.items()}
        return [{**item, **extra} for item in _resolve_source(source, current)]

    return reference


def each(source: Any, operation: Operation) -> Operation:
    """
    Run ``operation`` once per item found at ``source``.

    Each run sees the running state with ``data`` set to the item and
    ``index`` set to its position; the next run starts from whatever the
    previous one returned. With no items the state is returned unchanged.

    Example:
        execute(
            search_household([["name", "ilike", "San"]]),
            each("data", get_household_members(data_value("registrant_id"))),
        )

    Args:
        source: Dotted state path (see data_path), reference callable or list
        operation: Operation to run per item
    """
    async def runner(context: ExecutionContext, state: PipelineState) -> Any:
        current: Any = coerce_state(state)
        for index, item in enumerate(_resolve_source(source, current)):
            base = coerce_state(current)
            scoped = replace(base, data=item, extra={**base.extra, "index": index})
            current = await operation(context, scoped)
        return current

    return runner
