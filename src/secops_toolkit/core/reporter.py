"""
Result presentation and persistence.

Commands hand their structured results to ``ResultReporter`` for console
rendering. File output goes through ``write_json`` / ``write_csv``, which
release the file handle on every path and remove partially written files.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from secops_toolkit.errors import OutputWriteFailed
from secops_toolkit.models.actions import (
    ActionOutcome,
    IsolationResult,
    RuleExportResult,
    SignInQueryResult,
)
from secops_toolkit.models.evidence import CategoryStatus, EvidenceBundle

logger = logging.getLogger(__name__)

UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_filename(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_-]`` with ``_``."""
    return UNSAFE_FILENAME_CHARS.sub("_", name) or "_"


def write_json(path: str | Path, data: Any) -> Path:
    """Write ``data`` as pretty-printed UTF-8 JSON."""
    path = Path(path)
    try:
        text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError) as e:
        raise OutputWriteFailed(path, e) from e

    _write_text(path, lambda f: f.write(text + "\n"))
    return path


def read_json(path: str | Path) -> Any:
    """Read a JSON file written by ``write_json``."""
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_csv(path: str | Path, rows: list[dict[str, Any]], columns: list[str]) -> Path:
    """Write ``rows`` as UTF-8 CSV with a header row in ``columns`` order."""
    path = Path(path)
    df = pd.DataFrame(rows, columns=columns)
    _write_text(path, lambda f: df.to_csv(f, index=False))
    return path


def _write_text(path: Path, write) -> None:
    # Undecodable bytes from host file names surface as lone surrogates
    opened = False
    try:
        with open(path, "w", encoding="utf-8", errors="backslashreplace", newline="") as f:
            opened = True
            write(f)
    except (OSError, ValueError) as e:
        if opened:
            path.unlink(missing_ok=True)
        logger.error(f"Failed to write {path}: {e}")
        raise OutputWriteFailed(path, e) from e


class ResultReporter:
    """Renders command results to the console in a fixed order."""

    def __init__(
        self,
        console: Console | None = None,
        timestamp_format: str = "%Y-%m-%d %H:%M:%S UTC",
    ):
        self.console = console or Console()
        self.timestamp_format = timestamp_format

    def format_time(self, value: datetime) -> str:
        """Render a timestamp in UTC using the configured format."""
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime(self.timestamp_format)

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]Error:[/red] {message}")

    def isolation(self, result: IsolationResult) -> None:
        """Display the outcome of an isolation request."""
        request = result.request
        lines = [
            f"[bold]Machine:[/bold] {request.target_id}",
            f"[bold]Isolation Type:[/bold] {result.isolation_type}",
            f"[bold]Comment:[/bold] {request.comment or '-'}",
        ]
        if result.response:
            lines.append(f"[bold]Request ID:[/bold] {result.response.request_id or '-'}")
            lines.append(f"[bold]Status:[/bold] {result.response.status.value}")

        styles = {
            ActionOutcome.SUCCEEDED: "green",
            ActionOutcome.AMBIGUOUS: "yellow",
            ActionOutcome.FAILED: "red",
        }
        self.console.print(Panel(
            "\n".join(lines),
            title=f"Isolation {result.outcome.value}",
            border_style=styles[result.outcome],
        ))

        if result.warning:
            self.warning(str(result.warning))

    def rule_export(self, result: RuleExportResult) -> None:
        """Display the outcome of an analytic rule export."""
        table = Table(title="Analytic Rule Export")
        table.add_column("Item", style="cyan")
        table.add_column("Value", justify="right", style="green")

        table.add_row("Workspace", result.workspace_id)
        table.add_row("Rules Found", str(result.found))
        table.add_row("Rules Exported", str(result.exported))
        table.add_row("Rules Failed", str(result.failed))
        table.add_row("Output Directory", str(result.output_dir))

        self.console.print(table)

        for failure in result.failures:
            self.warning(f"Rule '{failure.item}' not exported: {failure.cause}")

    def signins(self, result: SignInQueryResult, top: int = 5) -> None:
        """Display a summary of a sign-in query."""
        query = result.query
        self.console.print(f"[bold]Time Window:[/bold] {self.format_time(query.start)} -> {self.format_time(query.end)}")
        self.console.print(f"[bold]Risk Level:[/bold] {query.risk_level.value}")
        self.console.print(f"[bold]Filter:[/bold] {result.filter_expression}")
        self.console.print(f"[bold]Total Events:[/bold] {result.total}")

        if not result.events:
            self.console.print("[yellow]No sign-in events matched the query[/yellow]")
            return

        failed = sum(1 for e in result.events if not e.succeeded)
        self.console.print(f"[bold]Failed Sign-ins:[/bold] {failed}")

        for title, attribute in (
            ("By Risk Level", "risk_level"),
            ("By Application", "app_display_name"),
            ("Top Users", "user_principal_name"),
        ):
            table = Table(title=title)
            table.add_column("Value", style="cyan")
            table.add_column("Events", justify="right", style="green")
            for value, count in list(result.count_by(attribute).items())[:top]:
                table.add_row(value, str(count))
            self.console.print(table)

        if result.output_path:
            self.console.print(f"\n[green]Saved {result.total} events to:[/green] {result.output_path}")

    def collection(self, bundle: EvidenceBundle) -> None:
        """Display the outcome of a host artifact collection."""
        table = Table(title=f"Triage Collection: {bundle.host_id}")
        table.add_column("Category", style="cyan")
        table.add_column("Status")
        table.add_column("Rows", justify="right", style="green")
        table.add_column("File")

        styles = {
            CategoryStatus.COLLECTED: "green",
            CategoryStatus.FAILED: "red",
            CategoryStatus.SKIPPED: "dim",
        }
        for r in bundle.results:
            style = styles[r.status]
            table.add_row(
                r.category,
                f"[{style}]{r.status.value}[/{style}]",
                str(r.row_count) if r.status == CategoryStatus.COLLECTED else "-",
                r.output_file.name if r.output_file else "-",
            )

        self.console.print(table)
        self.console.print(f"[bold]Collection Time:[/bold] {self.format_time(bundle.collected_at)}")
        self.console.print(
            f"[bold]Categories:[/bold] {len(bundle.attempted)} attempted, "
            f"{len(bundle.collected)} collected, {len(bundle.failed)} failed, "
            f"{len(bundle.skipped)} skipped"
        )

        for failure in bundle.failures:
            self.warning(f"Category '{failure.item}' not collected: {failure.cause}")

        if bundle.manifest_path:
            self.console.print(f"\n[green]Manifest written to:[/green] {bundle.manifest_path}")
