"""Job files - A YAML list of operations run as one invocation.

Job YAML schema:
    configuration:            # optional, merged over config.yaml's block
      endpoint: https://openspp.example.org
      database: openspp
    operations:
      - op: get_household
        args: [GRP_1]
      - op: get_household_members
        args: [{$data: registrant_id}]
        kwargs: {offset: 0}
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from spp_adaptor.common import execute
from spp_adaptor.registry import build_operation
from spp_adaptor.session import TransportFactory

logger = logging.getLogger(__name__)


@dataclass
class Job:
    """A parsed job file."""
    name: str
    steps: list[dict[str, Any]]
    configuration: dict[str, Any] = field(default_factory=dict)


def load_job(path: Path) -> Job:
    """
    Load a job definition from YAML.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file is not a valid job definition
    """
    if not path.exists():
        raise FileNotFoundError(f"Job definition not found: {path}")

    with open(path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}")

    if not isinstance(raw, dict):
        raise ValueError(f"Job definition must be a mapping: {path}")

    steps = raw.get("operations")
    if not isinstance(steps, list) or not steps:
        raise ValueError(f"Job {path.stem} must list at least one operation")

    configuration = raw.get("configuration") or {}
    if not isinstance(configuration, dict):
        raise ValueError(f"Job {path.stem}: 'configuration' must be a mapping")

    return Job(name=raw.get("name", path.stem), steps=steps, configuration=configuration)


async def run_job(
    job: Job,
    configuration: Optional[Mapping[str, Any]] = None,
    transport_factory: Optional[TransportFactory] = None,
) -> Any:
    """
    Run a job's operations sequentially in one invocation.

    Args:
        job: Parsed job
        configuration: Base configuration (e.g., from config.yaml); the job's
            own configuration block wins on conflicts
        transport_factory: Override the backend transport

    Returns:
        The final state (or the last continuation's value)
    """
    merged = dict(configuration or {})
    merged.update(job.configuration)

    operations = [build_operation(step) for step in job.steps]

    logger.info(f"Running job {job.name} ({len(operations)} operations)")
    start = time.time()
    result = await execute(*operations, transport_factory=transport_factory)(
        {"configuration": merged}
    )
    logger.info(f"Job {job.name} finished in {time.time() - start:.2f}s")
    return result
