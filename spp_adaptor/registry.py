"""
Operation registry - Map operation names to operation factories.

Used by job files and the CLI to turn declarative steps like

    {"op": "get_household", "args": ["GRP_1"]}

into operations. The registry is explicit: only names registered here (or
via register_operation) can be used.

A step argument that is itself a step (a mapping with an ``op`` key) is
built into an operation, so ``each`` can run a nested step per item:

    {"op": "each", "args": ["data", {"op": "get_household_members",
                                     "args": [{"$data": "registrant_id"}]}]}
"""

from typing import Any, Callable

from spp_adaptor import operations
from spp_adaptor.common import Operation, data_value, each, last_reference_value, source_value

OperationFactory = Callable[..., Operation]


_OPERATIONS: dict[str, OperationFactory] = {
    "get_household": operations.get_household,
    "get_household_by_id": operations.get_household_by_id,
    "search_household": operations.search_household,
    "get_household_members": operations.get_household_members,
    "get_individual": operations.get_individual,
    "search_individual": operations.search_individual,
    "get_service_points": operations.get_service_points,
    "get_enrolled_programs": operations.get_enrolled_programs,
    "each": each,
}

# Reference markers usable in job arguments
_REFERENCES: dict[str, Callable[[str], Any]] = {
    "$data": data_value,
    "$last_reference": last_reference_value,
    "$source": source_value,
}


def get_operations() -> dict[str, OperationFactory]:
    """Get the operation registry."""
    return _OPERATIONS


def register_operation(name: str, factory: OperationFactory) -> None:
    """
    Register an operation factory by name.

    This is primarily for testing and for hosts adding their own operations.

    Args:
        name: The operation name used in job files
        factory: Callable returning an operation
    """
    _OPERATIONS[name] = factory


def _resolve_argument(value: Any) -> Any:
    """Turn reference markers into state references and nested steps into operations."""
    if isinstance(value, dict) and "op" in value:
        return build_operation(value)
    if isinstance(value, dict) and len(value) == 1:
        (marker, path), = value.items()
        if marker in _REFERENCES:
            return _REFERENCES[marker](path)
    return value


def build_operation(step: dict[str, Any]) -> Operation:
    """
    Build an operation from a declarative step.

    Args:
        step: Dict with ``op`` and optional ``args`` (list) / ``kwargs`` (dict)

    Returns:
        The operation

    Raises:
        ValueError: If the step is malformed, the operation name is unknown, or
            the arguments do not fit the operation
    """
    if not isinstance(step, dict) or "op" not in step:
        raise ValueError(f"Step must be a mapping with an 'op' key: {step!r}")

    name = step["op"]
    factory = _OPERATIONS.get(name)
    if factory is None:
        raise ValueError(f"Unknown operation: {name}. Available: {', '.join(sorted(_OPERATIONS))}")

    args = step.get("args") or []
    kwargs = step.get("kwargs") or {}
    if not isinstance(args, list) or not isinstance(kwargs, dict):
        raise ValueError(f"Step '{name}': 'args' must be a list and 'kwargs' a mapping")

    resolved_args = [_resolve_argument(a) for a in args]
    resolved_kwargs = {k: _resolve_argument(v) for k, v in kwargs.items()}
    try:
        return factory(*resolved_args, **resolved_kwargs)
    except TypeError as e:
        raise ValueError(f"Step '{name}': {e}") from e
