#!/usr/bin/env python3
"""
CLI tool for SLB reconciliation
Sweeps orphaned load balancers, runs verification scenarios and inspects
single load balancers.
"""

import asyncio
import json
import logging
import sys

import click
import yaml
from pydantic import ValidationError
from tabulate import tabulate

from client import RemoteCaller
from config import Config, LoggingConfig, get_config
from errors import InvalidSpecError, SlbError
from harness import ScenarioResult, VerificationHarness
from http_client import HttpClusterLookup, HttpNetworkOracle, HttpSlbClient
from ownership import OwnershipClassifier
from scenario import load_scenario
from sweep import SweepEngine, SweeperRegistry, SweepResult

logger = logging.getLogger(__name__)


def setup_logging(logging_config: LoggingConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, logging_config.level, logging.INFO),
        format=logging_config.format,
    )


def _load_config() -> Config:
    try:
        cfg = get_config()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    setup_logging(cfg.logging)
    return cfg


def build_registry(cfg: Config) -> SweeperRegistry:
    """Wire the HTTP clients into a sweeper registry."""
    client = HttpSlbClient(cfg.client)
    classifier = OwnershipClassifier(
        name_prefixes=cfg.sweep.name_prefixes,
        network_oracle=HttpNetworkOracle(cfg.client, cfg.sweep.name_prefixes),
        cluster_lookup=HttpClusterLookup(cfg.client),
        lineage_tag_prefix=cfg.sweep.lineage_tag_prefix,
        caller=RemoteCaller(cfg.reconciler),
    )
    registry = SweeperRegistry()
    registry.register_engine(
        SweepEngine(client, classifier, cfg.sweep, cfg.reconciler)
    )
    return registry


def format_sweep_result(result: SweepResult) -> str:
    rows = [[lb_id, "deleted", ""] for lb_id in result.deleted]
    rows += [[lb_id, "already gone", ""] for lb_id in result.already_gone]
    rows += [[lb_id, "failed", error] for lb_id, error in result.failed.items()]
    summary = (
        f"Region {result.region}: scanned {result.scanned}, "
        f"deleted {len(result.deleted)}, skipped {len(result.skipped)}, "
        f"failed {len(result.failed)}"
    )
    if result.already_gone:
        summary += f", already gone {len(result.already_gone)}"
    if result.dry_run:
        summary += " (dry run)"
    if not rows:
        return summary
    table = tabulate(rows, headers=["SLB", "Result", "Error"], tablefmt="grid")
    return f"{table}\n{summary}"


def scenario_result_to_dict(result: ScenarioResult) -> dict:
    return {
        "passed": result.passed,
        "steps_run": result.steps_run,
        "failed_step": result.failed_step,
        "error": result.error,
        "mismatches": [
            {
                "step": m.step,
                "resource": m.resource,
                "path": m.path,
                "expected": m.expected,
                "actual": m.actual,
            }
            for m in result.mismatches
        ],
        "destroy_errors": list(result.destroy_errors),
    }


@click.group()
def cli():
    """SLB CLI - reconcile, verify and sweep load balancers"""
    pass


@cli.command()
@click.option("--region", "-r", default=None, help="Region to sweep")
@click.option("--dry-run", is_flag=True, help="Only report what would be deleted")
def sweep(region, dry_run):
    """Delete orphaned test load balancers in a region"""
    cfg = _load_config()
    if dry_run:
        cfg.sweep.dry_run = True
    region = region or cfg.client.region

    registry = build_registry(cfg)
    try:
        results = asyncio.run(registry.run(region))
    except SlbError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    failed = False
    for name, result in results.items():
        if isinstance(result, Exception):
            click.echo(f"Sweeper {name} failed: {result}", err=True)
            failed = True
            continue
        click.echo(format_sweep_result(result))
        failed = failed or not result.success
    if failed:
        sys.exit(1)


@cli.command()
@click.argument("filename", type=click.Path(exists=True))
@click.option("--output", "-o", type=click.Choice(["table", "json"]), default="table")
def run(filename, output):
    """Run a verification scenario from a YAML file"""
    try:
        scenario = load_scenario(filename)
    except (ValidationError, InvalidSpecError, yaml.YAMLError) as e:
        click.echo(f"Invalid scenario {filename}: {e}", err=True)
        sys.exit(2)

    cfg = _load_config()
    harness = VerificationHarness(HttpSlbClient(cfg.client), cfg.reconciler)
    result = asyncio.run(harness.run_scenario(scenario.steps, count=scenario.count))

    if output == "json":
        click.echo(json.dumps(scenario_result_to_dict(result), indent=2))
    else:
        if result.mismatches:
            rows = [
                [m.step, m.resource, m.path, m.expected, m.actual]
                for m in result.mismatches
            ]
            headers = ["Step", "SLB", "Attribute", "Expected", "Actual"]
            click.echo(tabulate(rows, headers=headers, tablefmt="grid"))
        if result.error:
            click.echo(f"Error: {result.error}", err=True)
        for error in result.destroy_errors:
            click.echo(f"Destroy check failed: {error}", err=True)
        status = "PASSED" if result.passed else "FAILED"
        click.echo(f"Scenario {scenario.name}: {status} ({result.steps_run} steps)")

    if not result.passed:
        sys.exit(1)


@cli.command()
@click.argument("load_balancer_id")
@click.option("--output", "-o", type=click.Choice(["table", "json"]), default="table")
def get(load_balancer_id, output):
    """Show the flattened attributes of a load balancer"""
    cfg = _load_config()
    client = HttpSlbClient(cfg.client)
    caller = RemoteCaller(cfg.reconciler)
    try:
        record = asyncio.run(
            caller.call(
                "DescribeLoadBalancerAttribute",
                client.describe_load_balancer,
                load_balancer_id,
            )
        )
    except SlbError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    attributes = record.to_attributes()
    if output == "json":
        click.echo(json.dumps(attributes, indent=2, sort_keys=True))
    else:
        rows = [[key, value] for key, value in sorted(attributes.items())]
        click.echo(tabulate(rows, headers=["Attribute", "Value"], tablefmt="grid"))


if __name__ == "__main__":
    cli()
