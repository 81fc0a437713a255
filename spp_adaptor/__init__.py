"""
spp-adaptor - OpenSPP registry adaptor for data pipelines

Translates pipeline operations into registry reads and threads the results
back into pipeline state. One authenticated session per invocation.
"""

__version__ = "0.1.0"


__all__ = [
    "AuthenticationError",
    "PipelineState",
    "TransportError",
    "data_path",
    "data_value",
    "each",
    "execute",
    "field",
    "fields",
    "fn",
    "get_enrolled_programs",
    "get_household",
    "get_household_by_id",
    "get_household_members",
    "get_individual",
    "get_service_points",
    "last_reference_value",
    "merge",
    "run",
    "search_household",
    "search_individual",
    "source_value",
]

from .common import (
    data_path,
    data_value,
    each,
    execute,
    field,
    fields,
    fn,
    last_reference_value,
    merge,
    run,
    source_value,
)
from .errors import AuthenticationError, TransportError
from .operations import (
    get_enrolled_programs,
    get_household,
    get_household_by_id,
    get_household_members,
    get_individual,
    get_service_points,
    search_household,
    search_individual,
)
from .state import PipelineState
