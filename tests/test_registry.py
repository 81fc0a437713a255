"""Tests for the operation registry.

Tests cover:
- Every registry operation is registered by name
- Building operations from declarative steps
- Reference markers in arguments
- Unknown and malformed steps
"""

import pytest

from conftest import FakeTransport, TransportFactory
from spp_adaptor.common import execute
from spp_adaptor.registry import build_operation, get_operations, register_operation


class TestGetOperations:
    """Tests for get_operations."""

    def test_all_operations_registered(self):
        assert set(get_operations()) == {
            "get_household",
            "get_household_by_id",
            "search_household",
            "get_household_members",
            "get_individual",
            "search_individual",
            "get_service_points",
            "get_enrolled_programs",
            "each",
        }

    def test_register_operation(self, monkeypatch):
        """Registered factories become buildable."""
        monkeypatch.setitem(get_operations(), "noop", lambda: None)
        register_operation("noop", lambda: "built")

        assert build_operation({"op": "noop"}) == "built"


class TestBuildOperation:
    """Tests for build_operation."""

    @pytest.mark.asyncio
    async def test_args_and_kwargs(self, initial_state):
        transport = FakeTransport({"spp.service.point": [{"id": 3}]})
        operation = build_operation(
            {"op": "get_service_points", "args": ["000117"], "kwargs": {"offset": 100}}
        )

        state = await execute(operation, transport_factory=TransportFactory(transport))(initial_state)

        assert state.data == [{"id": 3}]
        assert transport.calls[0][1]["domain"] == [["agent_number", "=", "000117"]]
        assert transport.calls[0][1]["offset"] == 100

    @pytest.mark.asyncio
    async def test_data_marker(self, initial_state):
        transport = FakeTransport({
            "res.partner": [{"id": 641, "registrant_id": "GRP_1"}],
            "g2p.group.membership": [{"id": 1}],
        })
        operations = [
            build_operation({"op": "get_household", "args": ["GRP_1"]}),
            build_operation({"op": "get_household_members", "args": [{"$data": "registrant_id"}]}),
        ]

        await execute(*operations, transport_factory=TransportFactory(transport))(initial_state)

        assert transport.calls[1][1]["domain"][0] == ["group.registrant_id", "=", "GRP_1"]

    def test_unknown_operation(self):
        with pytest.raises(ValueError, match="Unknown operation: get_everything"):
            build_operation({"op": "get_everything"})

    @pytest.mark.parametrize("step", [None, "get_household", {"args": ["GRP_1"]}])
    def test_malformed_step(self, step):
        with pytest.raises(ValueError, match="'op' key"):
            build_operation(step)

    def test_args_must_be_list(self):
        with pytest.raises(ValueError, match="'args' must be a list"):
            build_operation({"op": "get_household", "args": "GRP_1"})

    def test_unrelated_mapping_passed_through(self):
        """Only single-key reference markers are resolved."""
        operation = build_operation(
            {"op": "search_household", "args": [{"name": "x", "other": "y"}]}
        )
        assert callable(operation)

    def test_wrong_argument_count(self):
        with pytest.raises(ValueError, match="Step 'get_household'"):
            build_operation({"op": "get_household", "args": ["GRP_1", None, "extra"]})

    @pytest.mark.asyncio
    async def test_nested_each_step(self, initial_state):
        transport = FakeTransport({
            "res.partner": [{"id": 1, "registrant_id": "GRP_1"}, {"id": 2, "registrant_id": "GRP_2"}],
            "g2p.group.membership": [{"id": 10}],
        })
        operations = [
            build_operation({"op": "search_household", "args": [[]]}),
            build_operation({
                "op": "each",
                "args": [
                    "data",
                    {"op": "get_household_members", "args": [{"$data": "registrant_id"}]},
                ],
            }),
        ]

        await execute(*operations, transport_factory=TransportFactory(transport))(initial_state)

        member_domains = [opts["domain"][0] for model, opts in transport.calls[1:]]
        assert member_domains == [
            ["group.registrant_id", "=", "GRP_1"],
            ["group.registrant_id", "=", "GRP_2"],
        ]

    @pytest.mark.asyncio
    async def test_source_marker(self, initial_state):
        transport = FakeTransport({"spp.service.point": [{"id": 3}]})
        state = {**initial_state, "agent": "000117"}
        operation = build_operation({"op": "get_service_points", "args": [{"$source": "agent"}]})

        await execute(operation, transport_factory=TransportFactory(transport))(state)

        assert transport.calls[0][1]["domain"] == [["agent_number", "=", "000117"]]
