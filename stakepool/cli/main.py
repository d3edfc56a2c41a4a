"""
stakepool CLI - Command Line Interface for the staking pool core

Main entry point for all CLI commands.
"""

import json
from pathlib import Path

import click

from stakepool.utils.logger import get_logger, setup_logging

logger = get_logger("cli")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--env-file", default=None, type=click.Path(dir_okay=False), help="dotenv file with STAKEPOOL_* settings")
@click.option("--log-file", is_flag=True, help="Also write logs to the log directory")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, env_file, log_file):
    """Liquid staking pool accounting core"""
    import logging

    from stakepool.core.config import load_config

    try:
        config = load_config(env_file)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="configuration")

    level = logging.DEBUG if debug else config.level
    setup_logging(
        level=level,
        log_dir=str(config.log_dir),
        log_to_file=log_file or config.log_to_file,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Configuration
# =============================================================================


@cli.command("params")
@click.pass_context
def params(ctx):
    """Show the effective pool parameters"""
    from stakepool.core.math import ONE_UNIT
    from stakepool.core.pool import REWARD_UPDATE_DELAY_MS, VERSION

    config = ctx.obj["config"]
    click.echo("Pool Parameters")
    click.echo("-" * 40)
    for key, value in config.to_dict().items():
        click.echo(f"  {key}: {value}")
    click.echo(f"  one_unit: {ONE_UNIT}")
    click.echo(f"  reward_update_delay_ms: {REWARD_UPDATE_DELAY_MS}")
    click.echo(f"  version: {VERSION}")


# =============================================================================
# Simulation
# =============================================================================


@cli.command("simulate")
@click.argument("scenario", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--events/--no-events", default=True, help="Print emitted events")
@click.option("--json-output", is_flag=True, help="Print the summary as JSON")
@click.pass_context
def simulate(ctx, scenario, events, json_output):
    """Replay a JSON scenario against an in-memory pool"""
    from stakepool.core.errors import StakePoolError
    from stakepool.core.scenario import run_scenario

    try:
        data = json.loads(scenario.read_text())
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in {scenario}: {e}")

    try:
        result = run_scenario(data, ctx.obj["config"])
    except (StakePoolError, ValueError) as e:
        logger.error(f"Scenario failed: {e}")
        raise click.ClickException(f"{type(e).__name__}: {e}")

    if json_output:
        output = result.summary()
        if events:
            output["events"] = result.events()
        click.echo(json.dumps(output, indent=2))
        return

    if events:
        click.echo("Events")
        click.echo("-" * 40)
        for event in result.events():
            name = event.pop("name")
            details = ", ".join(f"{k}={v}" for k, v in event.items())
            click.echo(f"  {name}: {details}")
        click.echo()

    summary = result.summary()
    click.echo("Pool")
    click.echo("-" * 40)
    for key, value in summary["pool"].items():
        click.echo(f"  {key}: {value}")
    click.echo()
    click.echo("Wallets")
    click.echo("-" * 40)
    for sender, wallet in summary["wallets"].items():
        click.echo(
            f"  {sender}: shares={wallet['shares']} "
            f"open_tickets={wallet['open_tickets']} received={wallet['received']}"
        )


if __name__ == "__main__":
    cli()
