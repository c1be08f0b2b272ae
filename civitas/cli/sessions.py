#!/usr/bin/env python3
"""
Civitas Sessions CLI

Inspect session cadence, anti-spam thresholds and the effective
configuration without running an engine.

Usage:
    civitas-sessions schedule [--config FILE] [--at TIME] [--count N]
    civitas-sessions threshold --supply SUPPLY [--config FILE] [--count N ...]
    civitas-sessions config [--config FILE] [--json]
"""

import json
import time
from datetime import datetime, timezone
from typing import Optional, Tuple

import click

from ..constants import CIVITAS_VERSION
from ..exceptions import CivitasException
from ..config import CivitasConfig, load_config
from ..governance.proposals import ProposalRegistry, new_proposal_threshold
from ..governance.rules import SessionRuleConfig
from ..governance.sessions import SessionScheduler


def format_time(t: int) -> str:
    """Format a unix time for display."""
    return datetime.fromtimestamp(t, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _load(config_path: Optional[str]) -> CivitasConfig:
    try:
        config = load_config(config_path)
        config.validate()
        config.logging.apply()
    except CivitasException as e:
        raise click.ClickException(str(e))
    return config


@click.group()
@click.version_option(version=CIVITAS_VERSION, prog_name="civitas-sessions")
def cli():
    """Civitas Voting Sessions

    Inspect governance session schedules and proposal thresholds.
    """
    pass


@cli.command("schedule")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to civitas.toml")
@click.option("--at", "at", type=int, default=None, help="Unix time of the first proposal (default: now)")
@click.option("--count", "-n", type=click.IntRange(1, 100), default=3, help="Sessions to show")
def schedule_cmd(config_path: Optional[str], at: Optional[int], count: int):
    """Show the next sessions as they would be scheduled.

    Each following session is assumed to be opened by a proposal defined as
    soon as the previous one enters its grace period.

    Examples:

        civitas-sessions schedule --count 5

        civitas-sessions schedule --at 1700000000 --config civitas.toml
    """
    config = _load(config_path)
    rules = SessionRuleConfig(config.session_rule.to_rule())
    scheduler = SessionScheduler(rules, ProposalRegistry(rules), retention_count=count)

    t = int(time.time()) if at is None else at
    click.echo(f"Period length: {rules.rule.period_length}s (offset {rules.rule.period_offset}s)")
    for _ in range(count):
        session = scheduler.schedule(t, 0)
        click.echo()
        click.echo(click.style(f"Session #{session.id}", fg="green", bold=True))
        click.echo(f"  Campaign:   {format_time(session.campaign_at)}")
        click.echo(f"  Voting:     {format_time(session.vote_at)}")
        click.echo(f"  Execution:  {format_time(session.execution_at)}")
        click.echo(f"  Grace:      {format_time(session.grace_at)}")
        click.echo(f"  Closed:     {format_time(session.closed_at)}")
        t = session.grace_at


@cli.command("threshold")
@click.option("--supply", "-s", type=click.IntRange(min=0), required=True, help="Token total supply")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to civitas.toml")
@click.option(
    "--count", "-n", "counts",
    type=click.IntRange(min=0),
    multiple=True,
    help="Proposal counts to evaluate (default: 0 to the operator maximum)",
)
def threshold_cmd(supply: int, config_path: Optional[str], counts: Tuple[int, ...]):
    """Show the weight needed to define one more proposal.

    Examples:

        civitas-sessions threshold --supply 8000101

        civitas-sessions threshold -s 8000101 -n 0 -n 12 -n 20
    """
    config = _load(config_path)
    rule = config.session_rule.to_rule()
    if not counts:
        counts = tuple(range(rule.max_proposals_operator + 1))

    click.echo(f"{'Proposals':>10}  {'Threshold':>20}")
    for count in counts:
        click.echo(f"{count:>10}  {new_proposal_threshold(rule, supply, count):>20}")


@cli.command("config")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to civitas.toml")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def config_cmd(config_path: Optional[str], as_json: bool):
    """Show the effective configuration (file plus environment overrides)."""
    config = _load(config_path)
    data = config.to_dict()

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    for section, values in data.items():
        click.echo(click.style(f"[{section}]", fg="cyan"))
        if isinstance(values, list):
            for entry in values:
                click.echo(f"  - {entry}")
            continue
        for key, value in values.items():
            click.echo(f"  {key} = {value}")


if __name__ == "__main__":
    cli()
