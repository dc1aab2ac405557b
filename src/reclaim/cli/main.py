"""runner-reclaim CLI entry point."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click
from botocore.exceptions import BotoCoreError
from pydantic import ValidationError

from reclaim.core.config import ReclaimConfig
from reclaim.core.errors import ReclaimError

if TYPE_CHECKING:
    from reclaim.engine.scale_down import ScaleDown

config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file with a 'scale_down' section.",
)
json_logs_option = click.option(
    "--json-logs", is_flag=True, default=False, help="Output logs as JSON."
)
log_level_option = click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Log level.",
)
dry_run_option = click.option(
    "--dry-run", is_flag=True, default=False, help="Decide and log, but change nothing."
)
metrics_port_option = click.option(
    "--metrics-port",
    type=int,
    default=0,
    help="Prometheus metrics port (0=disabled).",
)

# Operator-facing failures are echoed and exit 1 instead of a traceback
OPERATOR_ERRORS = (ReclaimError, ValidationError, ValueError, BotoCoreError)


def _fail(exc: Exception) -> NoReturn:
    click.echo(f"Error: {exc}")
    raise SystemExit(1)


def _load(config_path: Path | None, dry_run: bool = False) -> ReclaimConfig:
    from reclaim.core.config import apply_env, load_config

    config = apply_env(load_config(config_path))
    if dry_run:
        config = config.model_copy(update={"dry_run": True})
    return config


def _build_engine(config: ReclaimConfig) -> ScaleDown:
    from reclaim.cloud.ec2 import Ec2Provider
    from reclaim.engine.scale_down import ScaleDown
    from reclaim.github.auth import GitHubAppIssuer
    from reclaim.github.cache import RunnerCache

    provider = Ec2Provider(region=config.aws_region)
    cache = RunnerCache(GitHubAppIssuer.from_config(config))
    return ScaleDown(config, provider, cache)


@click.group()
@click.version_option(package_name="runner-reclaim")
def cli() -> None:
    """runner-reclaim: scale down idle self-hosted GitHub Actions runners."""


@cli.command("scale-down")
@config_option
@dry_run_option
@json_logs_option
@log_level_option
@metrics_port_option
def scale_down(
    config_path: Path | None, dry_run: bool, json_logs: bool, log_level: str, metrics_port: int
) -> None:
    """Run a single scale-down pass."""
    import asyncio

    from reclaim.core.logging import configure_logging

    configure_logging(json_output=json_logs, level=log_level)
    try:
        config = _load(config_path, dry_run)
        engine = _build_engine(config)
    except OPERATOR_ERRORS as exc:
        _fail(exc)

    if metrics_port > 0:
        from reclaim.metrics.server import start_metrics_server

        start_metrics_server(metrics_port)

    async def _run():
        try:
            return await engine.run_pass()
        finally:
            await engine.close()

    try:
        report = asyncio.run(_run())
    except ReclaimError as exc:
        _fail(exc)

    click.echo(f"Instances seen : {report.instances_seen}")
    click.echo(f"Terminated     : {len(report.terminated)}")
    click.echo(f"De-registered  : {len(report.deregistered)}")
    click.echo(f"Skipped        : {len(report.skipped)}")
    if report.aborted:
        click.echo("Pass aborted after a de-registration failure.")
        raise SystemExit(2)


@cli.command()
@config_option
@dry_run_option
@json_logs_option
@log_level_option
@metrics_port_option
@click.option(
    "--interval",
    type=int,
    default=None,
    help="Seconds between passes (defaults to interval_s from config).",
)
def run(
    config_path: Path | None,
    dry_run: bool,
    json_logs: bool,
    log_level: str,
    metrics_port: int,
    interval: int | None,
) -> None:
    """Run scale-down passes on an interval until interrupted."""
    import asyncio
    import logging
    import signal

    from reclaim.core.logging import configure_logging

    configure_logging(json_output=json_logs, level=log_level)
    try:
        config = _load(config_path, dry_run)
        engine = _build_engine(config)
    except OPERATOR_ERRORS as exc:
        _fail(exc)

    if metrics_port > 0:
        from reclaim.metrics.server import start_metrics_server

        start_metrics_server(metrics_port)

    async def _loop() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        logging.getLogger(__name__).info(
            "Scale-down loop started (interval=%ds)", interval or config.interval_s
        )
        await engine.run_forever(stop, interval)

    asyncio.run(_loop())


@cli.command("list-instances")
@config_option
@click.option("--environment", default=None, help="Filter on the Environment tag.")
@click.option("--repo", default=None, help="Filter on the Repo tag.")
@click.option("--org", default=None, help="Filter on the Org tag.")
def list_instances_cmd(
    config_path: Path | None, environment: str | None, repo: str | None, org: str | None
) -> None:
    """List runner instances, newest first."""
    import asyncio

    from reclaim.cloud.ec2 import Ec2Provider
    from reclaim.cloud.inventory import list_instances
    from reclaim.core.models import InstanceFilters
    from reclaim.engine.scale_down import sort_newest_first

    try:
        config = _load(config_path)
        filters = InstanceFilters(
            environment=environment if environment is not None else (config.environment or None),
            repository=repo,
            owner=org,
        )
        provider = Ec2Provider(region=config.aws_region)
        instances = sort_newest_first(asyncio.run(list_instances(provider, filters)))
    except OPERATOR_ERRORS as exc:
        _fail(exc)

    if not instances:
        click.echo("No runner instances found.")
        return
    for inst in instances:
        launched = inst.launch_time.isoformat() if inst.launch_time else "-"
        click.echo(
            f"{inst.instance_id}  {launched}  {inst.runner_class or '-'}"
            f"  org={inst.owner or '-'}  repo={inst.repository or '-'}"
        )
