"""
Registry operations - The externally invocable units of the adaptor.

Each factory takes its arguments (plain values or state references) and an
optional continuation, and returns an operation ``(context, state)``. When
run, the operation builds its domain from the caller's clauses plus the
entity's default clauses, reads through the context's QueryExecutor and
reduces the outcome into the next state.

Single-entity lookups put the matched record in ``data``; list lookups put
the list of records.
"""

from typing import Any, Optional

from spp_adaptor.common import Operation, expand_reference
from spp_adaptor.context import ExecutionContext
from spp_adaptor.domain import build_domain
from spp_adaptor.errors import TransportError
from spp_adaptor.query import (
    LIST_LIMIT,
    SINGLE_LIMIT,
    DependentLookup,
    QueryOptions,
    QueryPolicy,
)
from spp_adaptor.reducer import Continuation
from spp_adaptor.state import PipelineState, coerce_state

# Collections
PARTNER = "res.partner"
GROUP_MEMBERSHIP = "g2p.group.membership"
PROGRAM_MEMBERSHIP = "g2p.program_membership"
PROGRAM = "g2p.program"
SERVICE_POINT = "spp.service.point"

# Default clauses per entity kind
GROUP_DEFAULTS = [["is_registrant", "=", True], ["is_group", "=", True]]
INDIVIDUAL_DEFAULTS = [["is_registrant", "=", True], ["is_group", "=", False]]
MEMBERSHIP_DEFAULTS = [["is_ended", "=", False]]
ENROLLMENT_DEFAULTS = [["state", "=", "enrolled"]]

MEMBER_FIELDS = (
    "individual", "kind", "start_date", "ended_date",
    "individual_birthdate", "individual_gender",
)
SERVICE_POINT_FIELDS = (
    "name", "area_id", "service_type_ids", "phone_sanitized", "shop_address",
)
PROGRAM_FIELDS = ("name", "target_type", "state")

# Policies
SINGLE_REGISTRANT = QueryPolicy(limit=SINGLE_LIMIT, order="id desc")
LIST_REGISTRANTS = QueryPolicy(limit=LIST_LIMIT, order="id desc")
LIST_MEMBERS = QueryPolicy(limit=LIST_LIMIT, fields=MEMBER_FIELDS)
LIST_SERVICE_POINTS = QueryPolicy(limit=LIST_LIMIT, fields=SERVICE_POINT_FIELDS)


def _resolve_offset(offset: Any, state: PipelineState) -> int:
    value = expand_reference(offset, state)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"offset must be a non-negative integer, got {value!r}")
    return value


async def _fetch(
    context: ExecutionContext,
    state: PipelineState,
    *,
    label: str,
    collection: str,
    options: QueryOptions,
    single: bool = False,
    callback: Optional[Continuation] = None,
) -> Any:
    """Read one page and reduce it into state."""
    try:
        records = await context.executor.read(collection, options)
    except TransportError as e:
        context.reducer.fail(label, e)

    payload = records[0] if single and records else records
    return await context.reducer.reduce(state, payload, callback, label=label)


def get_household(registrant_id: Any, callback: Optional[Continuation] = None) -> Operation:
    """
    Get a household (group registrant) by its registrant ID.

    Example:
        get_household("GRP_1")
    """
    async def operation(context: ExecutionContext, state: Any) -> Any:
        state = coerce_state(state)
        rid = expand_reference(registrant_id, state)
        domain = build_domain([["registrant_id", "=", rid]], GROUP_DEFAULTS)
        return await _fetch(
            context, state,
            label=f"Household {rid}",
            collection=PARTNER,
            options=SINGLE_REGISTRANT.options(domain),
            single=True,
            callback=callback,
        )

    return operation


def get_household_by_id(household_id: Any, callback: Optional[Continuation] = None) -> Operation:
    """Get a household by its backend record id."""
    async def operation(context: ExecutionContext, state: Any) -> Any:
        state = coerce_state(state)
        hid = expand_reference(household_id, state)
        domain = build_domain([["id", "=", hid]], GROUP_DEFAULTS)
        return await _fetch(
            context, state,
            label=f"Household with id={hid}",
            collection=PARTNER,
            options=SINGLE_REGISTRANT.options(domain),
            single=True,
            callback=callback,
        )

    return operation


def search_household(domain: Any, offset: Any = 0, callback: Optional[Continuation] = None) -> Operation:
    """
    Search households with a caller domain, 100 per page.

    Example:
        search_household([["name", "ilike", "Santos"]], offset=100)
    """
    async def operation(context: ExecutionContext, state: Any) -> Any:
        state = coerce_state(state)
        caller = expand_reference(domain, state)
        merged = build_domain(caller, GROUP_DEFAULTS)
        return await _fetch(
            context, state,
            label=f"Households matching {caller}",
            collection=PARTNER,
            options=LIST_REGISTRANTS.options(merged, _resolve_offset(offset, state)),
            callback=callback,
        )

    return operation


def get_household_members(registrant_id: Any, offset: Any = 0, callback: Optional[Continuation] = None) -> Operation:
    """Get the active members of a household, 100 per page."""
    async def operation(context: ExecutionContext, state: Any) -> Any:
        state = coerce_state(state)
        rid = expand_reference(registrant_id, state)
        domain = build_domain([["group.registrant_id", "=", rid]], MEMBERSHIP_DEFAULTS)
        return await _fetch(
            context, state,
            label=f"Household {rid} members",
            collection=GROUP_MEMBERSHIP,
            options=LIST_MEMBERS.options(domain, _resolve_offset(offset, state)),
            callback=callback,
        )

    return operation


def get_individual(registrant_id: Any, callback: Optional[Continuation] = None) -> Operation:
    """Get an individual registrant by registrant ID."""
    async def operation(context: ExecutionContext, state: Any) -> Any:
        state = coerce_state(state)
        rid = expand_reference(registrant_id, state)
        domain = build_domain([["registrant_id", "=", rid]], INDIVIDUAL_DEFAULTS)
        return await _fetch(
            context, state,
            label=f"Individual {rid}",
            collection=PARTNER,
            options=SINGLE_REGISTRANT.options(domain),
            single=True,
            callback=callback,
        )

    return operation


def search_individual(domain: Any, offset: Any = 0, callback: Optional[Continuation] = None) -> Operation:
    """Search individual registrants with a caller domain, 100 per page."""
    async def operation(context: ExecutionContext, state: Any) -> Any:
        state = coerce_state(state)
        caller = expand_reference(domain, state)
        merged = build_domain(caller, INDIVIDUAL_DEFAULTS)
        return await _fetch(
            context, state,
            label=f"Individuals matching {caller}",
            collection=PARTNER,
            options=LIST_REGISTRANTS.options(merged, _resolve_offset(offset, state)),
            callback=callback,
        )

    return operation


def get_service_points(agent_number: Any, offset: Any = 0, callback: Optional[Continuation] = None) -> Operation:
    """
    Get service points (agents) by agent number, 100 per page.

    Example:
        get_service_points("000117")
    """
    async def operation(context: ExecutionContext, state: Any) -> Any:
        state = coerce_state(state)
        number = expand_reference(agent_number, state)
        domain = build_domain([["agent_number", "=", number]], [])
        return await _fetch(
            context, state,
            label=f"Agent {number}",
            collection=SERVICE_POINT,
            options=LIST_SERVICE_POINTS.options(domain, _resolve_offset(offset, state)),
            callback=callback,
        )

    return operation


def get_enrolled_programs(registrant_id: Any, callback: Optional[Continuation] = None) -> Operation:
    """
    Get the programs a registrant is enrolled in.

    Reads the registrant's enrolled program memberships (up to 500), then the
    programs they point at. No memberships means no program read.
    """
    async def operation(context: ExecutionContext, state: Any) -> Any:
        state = coerce_state(state)
        rid = expand_reference(registrant_id, state)
        label = f"Enrolled programs of {rid}"
        lookup = DependentLookup(
            bridge=PROGRAM_MEMBERSHIP,
            bridge_domain=build_domain([["partner_id.registrant_id", "=", rid]], ENROLLMENT_DEFAULTS),
            key_field="program_id",
            target=PROGRAM,
            target_fields=PROGRAM_FIELDS,
        )
        try:
            programs = await context.executor.read_dependent(lookup)
        except TransportError as e:
            context.reducer.fail(label, e)
        return await context.reducer.reduce(state, programs, callback, label=label)

    return operation


__all__ = [
    "get_enrolled_programs",
    "get_household",
    "get_household_by_id",
    "get_household_members",
    "get_individual",
    "get_service_points",
    "search_household",
    "search_individual",
]
