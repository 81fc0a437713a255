"""
CLI interface for spp-adaptor.

Provides commands to initialize configuration, list operations, and run
job files (YAML lists of operations) against an OpenSPP registry.
"""

import asyncio
import json
from pathlib import Path

import click

from spp_adaptor import __version__


@click.group()
@click.version_option(version=__version__, prog_name="spp-adaptor")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Path to config.yaml")
@click.pass_context
def main(ctx, config_path: Path | None):
    """
    spp-adaptor - OpenSPP registry adaptor for data pipelines.

    Run jobs defined as YAML lists of registry operations.
    """
    from spp_adaptor.config import load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = load_config(config_path)
    except Exception as e:
        # init works without a config; run reports the error when it needs one
        ctx.obj["config_error"] = str(e)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize spp-adaptor configuration."""
    from spp_adaptor.config import get_adaptor_home
    import yaml

    home = get_adaptor_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = {
        "configuration": {
            "endpoint": "https://openspp.example.org",
            "database": "openspp",
            "username": "admin",
            "password": None,
        },
        "logging": {
            "level": "INFO",
            "format": "pretty",
            "console": True,
            "output": str(home / "logs" / "spp-adaptor-{date}.log"),
        },
    }
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    click.echo(f"Initialized spp-adaptor config at {cfg_path}")
    click.echo("Set SPP_PASSWORD (or SPP_ACCESS_TOKEN) instead of storing secrets in the file.")


@main.command("ops")
def list_ops():
    """List available operations."""
    from spp_adaptor.registry import get_operations

    for name, factory in sorted(get_operations().items()):
        doc = (factory.__doc__ or "").strip().splitlines()
        summary = doc[0] if doc else ""
        click.echo(f"  {name:<24} {summary}")


@main.command("run")
@click.argument("job_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--quiet", is_flag=True, help="Do not print the final state")
@click.pass_context
def run(ctx, job_file: Path, quiet: bool):
    """
    Run a job file.

    JOB_FILE is a YAML file listing operations.

    Examples:

        spp-adaptor run jobs/household.yaml

        spp-adaptor --config ./config.yaml run jobs/household.yaml
    """
    from spp_adaptor.config import ConfigError
    from spp_adaptor.errors import AdaptorError
    from spp_adaptor.jobs import load_job, run_job
    from spp_adaptor.state import PipelineState
    from spp_adaptor.utils import console, setup_logging

    settings = ctx.obj.get("settings")
    if settings is not None:
        setup_logging(
            settings.get_log_file_path(),
            log_level=settings.get_log_level(),
            log_format=settings.get_log_format(),
            console_output=settings.should_log_to_console(),
        )
        base_configuration = settings.configuration
    else:
        setup_logging(None, log_format="pretty")
        base_configuration = {}

    try:
        job = load_job(job_file)
        result = asyncio.run(run_job(job, base_configuration))
    except (AdaptorError, ConfigError, ValueError) as e:
        click.echo(f"✗ {job_file.stem} failed: {e}", err=True)
        if settings is None and "config_error" in ctx.obj:
            click.echo(f"  (config not loaded: {ctx.obj['config_error']})", err=True)
        raise SystemExit(1)

    if not quiet:
        if isinstance(result, PipelineState):
            result = result.to_dict()
            result.pop("configuration", None)
        console.print_json(json.dumps(result, default=str))

    click.echo(f"✓ {job.name} completed")


if __name__ == "__main__":
    main()
