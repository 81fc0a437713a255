"""Tests for job files.

Tests cover:
- Loading job YAML and its validation errors
- Running a job as one invocation
- Configuration merging (job block wins)
"""

import pytest
import yaml

from conftest import FakeTransport, TransportFactory
from spp_adaptor.errors import AuthenticationError
from spp_adaptor.jobs import Job, load_job, run_job


def _write(path, content):
    path.write_text(yaml.safe_dump(content) if not isinstance(content, str) else content)
    return path


class TestLoadJob:
    """Tests for load_job."""

    def test_load(self, tmp_path):
        path = _write(tmp_path / "household.yaml", {
            "configuration": {"database": "staging"},
            "operations": [
                {"op": "get_household", "args": ["GRP_1"]},
                {"op": "get_household_members", "args": [{"$data": "registrant_id"}]},
            ],
        })

        job = load_job(path)

        assert job.name == "household"
        assert len(job.steps) == 2
        assert job.configuration == {"database": "staging"}

    def test_explicit_name(self, tmp_path):
        path = _write(tmp_path / "a.yaml", {"name": "nightly", "operations": [{"op": "search_household"}]})
        assert load_job(path).name == "nightly"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Job definition not found"):
            load_job(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = _write(tmp_path / "bad.yaml", "operations: [unclosed")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_job(path)

    def test_not_a_mapping(self, tmp_path):
        path = _write(tmp_path / "list.yaml", ["get_household"])
        with pytest.raises(ValueError, match="must be a mapping"):
            load_job(path)

    @pytest.mark.parametrize("operations", [None, [], "get_household"])
    def test_requires_operations(self, tmp_path, operations):
        path = _write(tmp_path / "empty.yaml", {"operations": operations})
        with pytest.raises(ValueError, match="at least one operation"):
            load_job(path)


class TestRunJob:
    """Tests for run_job."""

    @pytest.mark.asyncio
    async def test_runs_steps_in_one_session(self, configuration):
        transport = FakeTransport({
            "res.partner": [{"id": 641, "registrant_id": "GRP_1"}],
            "g2p.group.membership": [{"id": 1}, {"id": 2}],
        })
        factory = TransportFactory(transport)
        job = Job(
            name="household",
            steps=[
                {"op": "get_household", "args": ["GRP_1"]},
                {"op": "get_household_members", "args": [{"$data": "registrant_id"}]},
            ],
        )

        state = await run_job(job, configuration, transport_factory=factory)

        assert state.data == [{"id": 1}, {"id": 2}]
        assert state.references[-1] == {"id": 641, "registrant_id": "GRP_1"}
        assert factory.created == 1
        assert transport.closed is True

    @pytest.mark.asyncio
    async def test_job_configuration_wins(self, configuration):
        factory = TransportFactory(FakeTransport())
        job = Job(
            name="j",
            steps=[{"op": "search_household", "args": [[]]}],
            configuration={"database": "staging"},
        )

        state = await run_job(job, configuration, transport_factory=factory)

        assert state.configuration["database"] == "staging"
        assert state.configuration["username"] == "admin"

    @pytest.mark.asyncio
    async def test_unknown_operation_fails_before_connecting(self, configuration):
        factory = TransportFactory(FakeTransport())
        job = Job(name="j", steps=[{"op": "delete_everything"}])

        with pytest.raises(ValueError, match="Unknown operation"):
            await run_job(job, configuration, transport_factory=factory)

        assert factory.created == 0

    @pytest.mark.asyncio
    async def test_authentication_failure(self, configuration):
        transport = FakeTransport(auth_error=AuthenticationError("bad password"))
        job = Job(name="j", steps=[{"op": "get_household", "args": ["GRP_1"]}])

        with pytest.raises(AuthenticationError):
            await run_job(job, configuration, transport_factory=TransportFactory(transport))
