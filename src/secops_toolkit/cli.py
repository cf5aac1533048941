"""
CLI interface for SecOps Toolkit.

Provides one command per incident-response task. Every command validates
its input, performs a single action and reports the result; fatal errors
exit with status 1.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn

from secops_toolkit import __version__
from secops_toolkit.config import Config, create_default_config
from secops_toolkit.core.collector import ArtifactCollector
from secops_toolkit.core.remote import (
    EXPORT_SUMMARY_NAME,
    DefenderClient,
    GraphSignInClient,
    SentinelClient,
    open_session,
)
from secops_toolkit.core.reporter import ResultReporter, write_csv, write_json
from secops_toolkit.core.validation import ParameterValidator
from secops_toolkit.errors import InvalidArgument, OutputWriteFailed, SecOpsError
from secops_toolkit.models.actions import SIGNIN_COLUMNS, ActionOutcome

# Setup console
console = Console()

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _fail(reporter: ResultReporter, error: SecOpsError) -> None:
    """Report a fatal error and exit with status 1."""
    reporter.error(str(error))
    raise click.Abort()


@click.group()
@click.version_option(version=__version__, prog_name="secops")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("-c", "--config", "config_path", help="Path to a YAML configuration file")
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: Optional[str]) -> None:
    """
    SecOps Toolkit - incident response helpers for cloud security operations.

    Isolate endpoints, collect host triage packages, export SIEM
    analytic rules and review risky sign-ins.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)

    if config_path and not Path(config_path).exists():
        _fail(ResultReporter(console), InvalidArgument("config", f"{config_path} does not exist"))

    try:
        ctx.obj["config"] = Config.load(config_path)
    except (yaml.YAMLError, OSError, ValueError, TypeError) as e:
        _fail(ResultReporter(console), InvalidArgument("config", f"could not load configuration: {e}"))


@main.command()
@click.option("--machine-id", help="EDR machine identifier to isolate")
@click.option(
    "--isolation-type",
    default="Full",
    show_default=True,
    help="Isolation mode: Full or Selective",
)
@click.option("--comment", help="Comment recorded with the isolation request")
@click.option(
    "--token",
    envvar="SECOPS_DEFENDER_TOKEN",
    help="Bearer token for the EDR API (or set SECOPS_DEFENDER_TOKEN)",
)
@click.pass_context
def isolate(
    ctx: click.Context,
    machine_id: Optional[str],
    isolation_type: str,
    comment: Optional[str],
    token: Optional[str],
) -> None:
    """
    Isolate a compromised endpoint.

    Submits one isolation request to the EDR API and reports the
    request id and status it returns.
    """
    config: Config = ctx.obj["config"]
    reporter = ResultReporter(console, config.output.timestamp_format)
    validator = ParameterValidator()

    try:
        request = validator.validate_isolation(machine_id, isolation_type, comment)
        token = validator.token(token, "SECOPS_DEFENDER_TOKEN")

        console.print(f"\n[bold]Isolating machine:[/bold] {request.target_id}\n")

        session = open_session(
            config.endpoints.defender_url,
            token,
            timeout=config.http.timeout,
            user_agent=config.http.user_agent,
        )
        with DefenderClient(session) as client:
            result = client.isolate_device(request)
    except SecOpsError as e:
        _fail(reporter, e)

    reporter.isolation(result)

    if result.outcome == ActionOutcome.FAILED:
        raise click.Abort()


@main.command()
@click.option("-o", "--output-dir", help="Base directory for the triage package")
@click.option(
    "--skip-event-logs",
    is_flag=True,
    help="Skip event-log categories (faster on hosts with large logs)",
)
@click.option("--max-events", help="Maximum entries read from each event log")
@click.option(
    "--no-elevation-check",
    is_flag=True,
    help="Collect even without root/Administrator privileges",
)
@click.pass_context
def collect(
    ctx: click.Context,
    output_dir: Optional[str],
    skip_event_logs: bool,
    max_events: Optional[str],
    no_elevation_check: bool,
) -> None:
    """
    Collect a host triage package.

    Writes one JSON file per artifact category plus a manifest. A category
    that fails is reported and skipped; the others are still collected.
    """
    config: Config = ctx.obj["config"]
    reporter = ResultReporter(console, config.output.timestamp_format)
    validator = ParameterValidator()

    try:
        base_dir, events = validator.validate_collection(
            output_dir or config.collection.output_dir,
            max_events if max_events is not None else config.collection.max_events,
        )

        collector = ArtifactCollector(
            base_dir,
            max_events=events,
            recent_days=config.collection.recent_days,
            recent_paths=config.collection.recent_paths,
            skip_event_logs=skip_event_logs or config.collection.skip_event_logs,
            require_privilege=not no_elevation_check,
        )

        console.print(f"\n[bold]Collecting triage package:[/bold] {collector.host_id}\n")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Collecting artifacts...", total=None)

            def category_progress_callback(name: str) -> None:
                progress.update(task, description=f"Collecting {name}...")

            bundle = collector.collect(progress_callback=category_progress_callback)
            progress.update(task, description="Collection complete!")
    except SecOpsError as e:
        _fail(reporter, e)

    reporter.collection(bundle)


@main.command("export-rules")
@click.option("--subscription-id", help="Subscription containing the workspace")
@click.option("--resource-group", help="Resource group containing the workspace")
@click.option("--workspace", help="SIEM workspace name")
@click.option("-o", "--output-dir", help="Directory for exported rule files")
@click.option(
    "--token",
    envvar="SECOPS_ARM_TOKEN",
    help="Bearer token for the management API (or set SECOPS_ARM_TOKEN)",
)
@click.pass_context
def export_rules(
    ctx: click.Context,
    subscription_id: Optional[str],
    resource_group: Optional[str],
    workspace: Optional[str],
    output_dir: Optional[str],
    token: Optional[str],
) -> None:
    """
    Export SIEM analytic rules.

    Lists every analytic rule in the workspace and writes each one to
    its own JSON file named after the rule.
    """
    config: Config = ctx.obj["config"]
    reporter = ResultReporter(console, config.output.timestamp_format)
    validator = ParameterValidator()

    try:
        token = validator.token(token, "SECOPS_ARM_TOKEN")
        workspace_ref, target_dir = validator.validate_rule_export(
            subscription_id,
            resource_group,
            workspace,
            output_dir or config.output.rules_dir,
        )

        console.print(f"\n[bold]Exporting rules from:[/bold] {workspace_ref.workspace_name}\n")

        session = open_session(
            config.endpoints.management_url,
            token,
            timeout=config.http.timeout,
            user_agent=config.http.user_agent,
        )
        with SentinelClient(session, api_version=config.endpoints.sentinel_api_version) as client:
            result = client.export_rules(workspace_ref, target_dir)

        write_json(target_dir / f"{EXPORT_SUMMARY_NAME}.json", result.to_dict())
    except SecOpsError as e:
        _fail(reporter, e)

    reporter.rule_export(result)


@main.command()
@click.option("--days-back", default="7", show_default=True, help="Days of sign-in history (1-30)")
@click.option(
    "--risk-level",
    default="none",
    show_default=True,
    help="Risk level filter: none, low, medium or high",
)
@click.option("-o", "--output", help="Write matching events to this CSV file")
@click.option(
    "--token",
    envvar="SECOPS_GRAPH_TOKEN",
    help="Bearer token for the directory API (or set SECOPS_GRAPH_TOKEN)",
)
@click.pass_context
def signins(
    ctx: click.Context,
    days_back: str,
    risk_level: str,
    output: Optional[str],
    token: Optional[str],
) -> None:
    """
    Query sign-in logs by risk level.

    Retrieves every sign-in in the time window (optionally restricted to
    one risk level), prints a summary and optionally saves a CSV.
    """
    config: Config = ctx.obj["config"]
    reporter = ResultReporter(console, config.output.timestamp_format)
    validator = ParameterValidator()

    try:
        query = validator.validate_signin_query(
            days_back,
            risk_level,
            output or config.output.signin_output,
        )
        token = validator.token(token, "SECOPS_GRAPH_TOKEN")

        console.print(f"\n[bold]Querying sign-ins:[/bold] last {query.days_back} days\n")

        session = open_session(
            config.endpoints.graph_url,
            token,
            timeout=config.http.timeout,
            user_agent=config.http.user_agent,
        )
        with GraphSignInClient(session) as client:
            result = client.query_signins(query)

        if query.output and result.events:
            write_csv(query.output, [e.to_row() for e in result.events], SIGNIN_COLUMNS)
            result.output_path = query.output
    except SecOpsError as e:
        _fail(reporter, e)

    reporter.signins(result)

    if query.output and not result.events:
        console.print(f"[dim]No events to save; {query.output} was not written[/dim]")


@main.command("init-config")
@click.argument("path", required=False)
@click.option(
    "--current",
    is_flag=True,
    help="Write the effective configuration (file plus environment) instead of the template",
)
@click.pass_context
def init_config(ctx: click.Context, path: Optional[str], current: bool) -> None:
    """
    Write a configuration file.

    Writes the commented default template, or with --current the settings
    in effect. Defaults to ~/.secops/config.yaml.
    """
    target = Path(path) if path else Path.home() / ".secops" / "config.yaml"
    try:
        if current:
            ctx.obj["config"].save(target)
            created = target
        else:
            created = create_default_config(target)
    except OSError as e:
        _fail(ResultReporter(console), OutputWriteFailed(target, e))
    console.print(f"[green]Configuration written to:[/green] {created}")


if __name__ == "__main__":
    main()
