"""
Query execution - Paginated reads against the session of an invocation.

Query Options are assembled from a per-operation QueryPolicy (limit, fields,
order) overlaid with the built domain. ``offset`` is only included when the
caller asks for a strictly positive one.

Dependent lookups run exactly two reads, in order:
1. Read the bridge collection filtered by the subject and collect the
   distinct foreign keys found in ``key_field``.
2. If any keys were found, read the target collection with
   ``[["id", "in", keys]]`` and ``limit == len(keys)``.
No keys means no second read and an empty result.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from spp_adaptor.session import ConnectionManager

logger = logging.getLogger(__name__)

SINGLE_LIMIT = 1
LIST_LIMIT = 100
BULK_LIMIT = 500


@dataclass(frozen=True)
class QueryOptions:
    """Options for one search_read call."""
    domain: list[Any]
    fields: list[str] = field(default_factory=list)
    limit: int = LIST_LIMIT
    order: Optional[str] = None
    offset: Optional[int] = None

    def __post_init__(self):
        """Validate limit bounds and drop non-positive offsets."""
        if not 1 <= self.limit <= BULK_LIMIT:
            raise ValueError(f"limit must be between 1 and {BULK_LIMIT}, got {self.limit}")
        if self.offset is not None and self.offset <= 0:
            object.__setattr__(self, "offset", None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the dict sent over the wire.

        Returns:
            Dict with domain, fields, limit, and order/offset when set.
        """
        result: dict[str, Any] = {
            "domain": self.domain,
            "fields": list(self.fields),
            "limit": self.limit,
        }
        if self.order:
            result["order"] = self.order
        if self.offset is not None:
            result["offset"] = self.offset
        return result


@dataclass(frozen=True)
class QueryPolicy:
    """Per-operation defaults for limit, fields and order."""
    limit: int
    fields: tuple[str, ...] = ()
    order: Optional[str] = None

    def options(self, domain: list[Any], offset: Optional[int] = 0) -> QueryOptions:
        """Overlay a domain and offset on this policy."""
        return QueryOptions(
            domain=domain,
            fields=list(self.fields),
            limit=self.limit,
            order=self.order,
            offset=offset if offset and offset > 0 else None,
        )


@dataclass(frozen=True)
class DependentLookup:
    """
    A two-step read through a bridge collection.

    Attributes:
        bridge: Collection holding the links (e.g., "g2p.program_membership")
        bridge_domain: Domain selecting the subject's links
        key_field: Field on bridge records holding the foreign key
        target: Collection the keys point at (e.g., "g2p.program")
        target_fields: Fields to read from the target
        target_order: Optional order for the target read
    """
    bridge: str
    bridge_domain: list[Any]
    key_field: str
    target: str
    target_fields: tuple[str, ...] = ()
    target_order: Optional[str] = None


def collect_keys(records: Sequence[dict[str, Any]], key_field: str) -> list[int]:
    """Collect distinct foreign keys from ``key_field``, keeping first-seen order.

    Relational values come back as ``[id, display_name]``; falsy values mean
    the link is empty and are skipped.
    """
    keys: list[int] = []
    seen: set[int] = set()
    for record in records:
        value = record.get(key_field)
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if not value:
            continue
        if value not in seen:
            seen.add(value)
            keys.append(value)
    return keys


class QueryExecutor:
    """
    Issues reads through the invocation's ConnectionManager.

    Every read first awaits ensure_session(), so no query runs before the
    handshake has succeeded.
    """

    def __init__(self, connections: ConnectionManager):
        self.connections = connections

    async def read(self, collection: str, options: QueryOptions) -> list[dict[str, Any]]:
        """
        Read one page of records.

        Raises:
            AuthenticationError: If the session cannot be established
            TransportError: If the read fails
        """
        session = await self.connections.ensure_session()
        logger.debug(
            f"search_read {collection} limit={options.limit} offset={options.offset}",
            extra={"collection": collection},
        )
        return await session.search_read(collection, options.to_dict())

    async def read_dependent(self, lookup: DependentLookup) -> list[dict[str, Any]]:
        """
        Run a two-step dependent lookup.

        Returns:
            Target records, or an empty list if the bridge yielded no keys.
        """
        bridge_options = QueryOptions(
            domain=lookup.bridge_domain,
            fields=[lookup.key_field],
            limit=BULK_LIMIT,
        )
        links = await self.read(lookup.bridge, bridge_options)
        keys = collect_keys(links, lookup.key_field)
        if not keys:
            logger.debug(f"No {lookup.key_field} keys found in {lookup.bridge}, skipping {lookup.target}")
            return []

        target_options = QueryOptions(
            domain=[["id", "in", keys]],
            fields=list(lookup.target_fields),
            limit=len(keys),
            order=lookup.target_order,
        )
        return await self.read(lookup.target, target_options)
