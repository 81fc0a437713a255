"""
PipelineState - The record threaded through composed operations.

Schema:
{
  "configuration": { },    // backend credentials/endpoint
  "data": ...,             // most recent fetched payload
  "references": [ ... ]    // prior data values, oldest first
}

Rule: state is never mutated in place. compose_next_state returns a new
value with data replaced and the previous data appended to references.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Mapping


@dataclass(frozen=True)
class PipelineState:
    """
    Immutable pipeline state.

    Attributes:
        configuration: Backend credentials and endpoint
        data: Most recent fetched payload (None before the first fetch)
        references: Append-only history of prior data values
        extra: Any other top-level keys the pipeline host put in state
    """
    configuration: Mapping[str, Any] = field(default_factory=dict)
    data: Any = None
    references: tuple[Any, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, state: Mapping[str, Any]) -> "PipelineState":
        """Build state from a host-supplied mapping.

        Missing ``data`` defaults to None and missing ``references`` to an
        empty history.
        """
        extra = {
            k: v for k, v in state.items()
            if k not in ("configuration", "data", "references")
        }
        return cls(
            configuration=dict(state.get("configuration") or {}),
            data=state.get("data"),
            references=tuple(state.get("references") or ()),
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict (references as a list)."""
        result: dict[str, Any] = dict(self.extra)
        result["configuration"] = dict(self.configuration)
        result["data"] = self.data
        result["references"] = list(self.references)
        return result


def compose_next_state(state: PipelineState, data: Any) -> PipelineState:
    """Return a new state with ``data`` replaced and the old data referenced."""
    return replace(
        state,
        data=data,
        references=state.references + (state.data,),
    )


def coerce_state(state: Any) -> PipelineState:
    """Accept either a PipelineState or a mapping shaped like one."""
    if isinstance(state, PipelineState):
        return state
    if isinstance(state, Mapping):
        return PipelineState.from_mapping(state)
    raise TypeError(f"Expected pipeline state, got {type(state).__name__}")
