"""CLI entry point for repo-fleet."""

import asyncio
import signal
import sys
from pathlib import Path

import click
import structlog

from repo_fleet.config.settings import FleetSettings
from repo_fleet.engine.confirmation import ConsolePrompter
from repo_fleet.engine.outcome import RunSummary
from repo_fleet.engine.plan import list_presets, load_plan
from repo_fleet.engine.scheduler import plan_stages
from repo_fleet.engine.workflow import WorkflowEngine
from repo_fleet.exceptions import ConfigurationError, RepoFleetError
from repo_fleet.operations import default_registry
from repo_fleet.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


def parse_variables(values: tuple[str, ...]) -> dict[str, str]:
    """Parse repeated ``--var name=value`` options."""
    variables: dict[str, str] = {}
    for item in values:
        name, separator, value = item.partition("=")
        if not separator or not name.strip():
            raise click.BadParameter(f"expected name=value, got {item!r}", param_hint="--var")
        variables[name.strip()] = value
    return variables


@click.group()
@click.option("--config", default=None, help="Path to configuration file")
@click.option("--log-level", default=None, help="Logging level")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str | None) -> None:
    """repo-fleet: run workflows across a fleet of git repositories."""
    try:
        settings = FleetSettings.from_yaml(config) if config else FleetSettings()
    except ConfigurationError as e:
        configure_logging(log_level or "INFO")
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    configure_logging(log_level or settings.log_level, json_output=settings.json_logs)
    ctx.obj = {"settings": settings}


@cli.command()
@click.argument("plan_source", metavar="PLAN")
@click.option(
    "--root",
    "roots",
    multiple=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory to search for repositories (repeatable)",
)
@click.option("--workers", type=click.IntRange(1, 64), default=None, help="Repositories processed concurrently")
@click.option("--yes", "assume_yes", is_flag=True, default=False, help="Accept every confirmation")
@click.option("--var", "variables", multiple=True, help="Runtime variable name=value (repeatable)")
@click.pass_context
def run(
    ctx: click.Context,
    plan_source: str,
    roots: tuple[Path, ...],
    workers: int | None,
    assume_yes: bool,
    variables: tuple[str, ...],
) -> None:
    """Run a workflow plan file or preset against discovered repositories."""
    settings: FleetSettings = ctx.obj["settings"]
    runtime_variables = parse_variables(variables)

    updates: dict[str, object] = {}
    if workers is not None:
        updates["workers"] = workers
    if assume_yes:
        updates["assume_yes"] = True
    if updates:
        settings = settings.model_copy(update={"execution": settings.execution.model_copy(update=updates)})

    try:
        summary = asyncio.run(_run_workflow(settings, plan_source, list(roots) or None, runtime_variables))
        click.echo(f"Run finished: {summary.format_counts()} ({summary.duration}s)")
        summary.raise_for_failures()
    except RepoFleetError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("run_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error("run_unexpected", exc_info=True)
        sys.exit(1)


async def _run_workflow(
    settings: FleetSettings,
    plan_source: str,
    roots: list[Path] | None,
    variables: dict[str, str],
) -> RunSummary:
    prompter = ConsolePrompter() if sys.stdin.isatty() else None
    engine = WorkflowEngine(settings, prompter=prompter)
    plan = engine.load_plan(plan_source, variables)
    repositories = engine.discover(roots)
    log.info("repositories_discovered", count=len(repositories))

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, engine.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        handler_installed = False

    try:
        return await engine.run(plan, repositories, variables)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


@cli.command()
@click.argument("plan_source", metavar="PLAN")
@click.option("--var", "variables", multiple=True, help="Runtime variable name=value (repeatable)")
def plan(plan_source: str, variables: tuple[str, ...]) -> None:
    """Validate a plan and print its execution stages."""
    try:
        workflow = load_plan(plan_source, parse_variables(variables), default_registry())
        stages = plan_stages(workflow)
    except RepoFleetError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("plan_error", exc_info=True)
        sys.exit(1)

    for stage in stages:
        click.echo(f"Stage {stage.index + 1}:")
        for step in stage.steps:
            after = f" (after {', '.join(step.after)})" if step.after else ""
            click.echo(f"  - {step.name}: {step.command}{after}")


@cli.command()
def presets() -> None:
    """List embedded plan presets."""
    for name in list_presets():
        click.echo(name)


if __name__ == "__main__":
    cli()
