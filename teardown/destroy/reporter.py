"""Run reporting.

Writes the JSON result report, prints the console summary and persists the
lazy-delete list. Reporting never fails the run: I/O errors are logged.
"""

from __future__ import annotations

import json
import logging
import shutil
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..models.destruction_summary import DestructionSummary, RunStatus
from ..models.lazy_delete import LazyDeleteEntry, LazyDeleteStatus
from ..models.outcome import OutcomeStatus
from ..models.resource import ResourceDescriptor
from ..models.validation import ValidationReport
from .errors import TrackingFileError
from .lazy_delete import LazyDeleteStore

logger = logging.getLogger(__name__)

LATEST_REPORT = "destroy-report.json"

# Estimated monthly cost (USD) of one resource left running
MONTHLY_COST_RATES: Dict[str, float] = {
    "s3": 5.0,
    "cloudtrail_buckets": 5.0,
    "cloudfront": 10.0,
    "dynamodb": 5.0,
    "kms": 1.0,
}

STATUS_STYLES = {
    RunStatus.COMPLETED: "green",
    RunStatus.PLANNED: "cyan",
    RunStatus.PARTIAL: "yellow",
    RunStatus.INTERRUPTED: "yellow",
    RunStatus.FAILED: "red",
}


def cost_estimate(summary: DestructionSummary) -> float:
    """Monthly cost no longer incurred by destroyed or lazily deleted resources."""
    total = 0.0
    for outcome in summary.outcomes:
        removed = outcome.status == OutcomeStatus.DESTROYED or (
            outcome.status == OutcomeStatus.DEFERRED and outcome.lazy_delete is not None
        )
        if removed:
            total += MONTHLY_COST_RATES.get(outcome.resource.service_type, 0.0)
    return total


class Reporter:
    """Single writer of the run report and the lazy-delete tracking file.

    Attributes:
        console: Rich console used for the summary
        output_dir: Directory receiving report, log and tracking files
        store: Lazy-delete tracking store
    """

    def __init__(self, console: Optional[Console] = None, output_dir: Union[str, Path] = ".") -> None:
        self.console = console or Console()
        self.output_dir = Path(output_dir)
        self.store = LazyDeleteStore.in_dir(self.output_dir)

    def report_path(self, summary: DestructionSummary) -> Path:
        return self.output_dir / f"destroy-report-{summary.run_id}.json"

    def to_dict(self, summary: DestructionSummary) -> dict:
        data = summary.to_dict()
        data["estimated_monthly_savings_usd"] = cost_estimate(summary)
        return data

    def write_report(self, summary: DestructionSummary) -> Optional[Path]:
        """Write the JSON report and refresh the latest-report copy.

        Returns:
            Path of the report, None if it could not be written
        """
        path = self.report_path(summary)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                json.dump(self.to_dict(summary), f, indent=2, default=str)
            shutil.copyfile(path, self.output_dir / LATEST_REPORT)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Could not write report {path}: {e}")
            return None
        logger.info(f"Report written to {path}")
        return path

    def persist_lazy_deletes(self, entries: Iterable[LazyDeleteEntry]) -> List[LazyDeleteEntry]:
        """Merge entries into the tracking file.

        Returns:
            The merged list, or the given entries if the file could not be updated
        """
        entries = list(entries)
        try:
            return self.store.merge(entries)
        except (OSError, TrackingFileError, yaml.YAMLError) as e:
            logger.error(f"Could not update lazy-delete tracking file {self.store.path}: {e}")
            return entries

    def finalize(self, summary: DestructionSummary) -> Optional[Path]:
        """Persist everything a finished run produced.

        The JSON report is written whatever happens to the tracking file.
        """
        try:
            if summary.lazy_deletes and not summary.dry_run:
                self.persist_lazy_deletes(summary.lazy_deletes)
        finally:
            report_path = self.write_report(summary)
        return report_path

    def display(self, summary: DestructionSummary, report_path: Optional[Path] = None) -> None:
        """Print the run summary, naming every resource that was not destroyed."""
        style = STATUS_STYLES.get(summary.status, "white")
        duration = summary.duration_seconds
        self.console.print()
        self.console.print(
            Panel(
                f"[bold]Teardown {'Plan' if summary.dry_run else 'Result'}[/bold]\n"
                f"Run: {summary.run_id}\n"
                f"Scope: {summary.scope}\n"
                f"Status: [{style}]{summary.status.value.upper()}[/{style}]"
                + (f"\nDuration: {duration:.1f}s" if duration is not None else ""),
                style="cyan",
            )
        )

        if summary.dry_run:
            self.display_plan(summary.planned)
        else:
            self._display_counts(summary)
            for status, title in (
                (OutcomeStatus.FAILED, "Failed"),
                (OutcomeStatus.DEFERRED, "Deferred (re-run required)"),
                (OutcomeStatus.SKIPPED, "Skipped"),
            ):
                self._display_outcomes(summary, status, title)

        if summary.error:
            self.console.print(f"[bold red]Run halted:[/bold red] {summary.error}")

        if summary.validation is not None:
            self.display_validation(summary.validation)

        if summary.lazy_deletes:
            self.display_lazy_deletes(summary.lazy_deletes)

        if not summary.dry_run:
            self.console.print(f"Estimated monthly savings: ${cost_estimate(summary):.2f}")
        if report_path is not None:
            self.console.print(f"Report: {report_path}", style="dim")

    def display_plan(self, planned: List[ResourceDescriptor]) -> None:
        if not planned:
            self.console.print("[green]✓ No matching resources found[/green]")
            return

        grouped: Dict[str, List[ResourceDescriptor]] = defaultdict(list)
        for resource in planned:
            grouped[resource.resource_class or resource.service_type].append(resource)

        table = Table(title=f"Resources that would be destroyed ({len(planned)})", show_header=True)
        table.add_column("Class", style="cyan")
        table.add_column("Name")
        table.add_column("Account", style="dim")
        table.add_column("Region", style="dim")
        for resource_class in sorted(grouped):
            for resource in grouped[resource_class]:
                table.add_row(resource_class, resource.display_name, resource.account_id, resource.region)
        self.console.print(table)

    def _display_counts(self, summary: DestructionSummary) -> None:
        table = Table(title="Summary", show_header=True, header_style="bold magenta")
        table.add_column("Outcome", style="cyan", width=12)
        table.add_column("Count", justify="right", style="yellow", width=8)
        table.add_row("Destroyed", f"[green]{summary.destroyed_count}[/green]")
        table.add_row("Failed", f"[red]{summary.failed_count}[/red]")
        table.add_row("Deferred", f"[yellow]{summary.deferred_count}[/yellow]")
        table.add_row("Skipped", str(summary.skipped_count))
        self.console.print(table)

    def _display_outcomes(self, summary: DestructionSummary, status: OutcomeStatus, title: str) -> None:
        outcomes = summary.by_status(status)
        if not outcomes:
            return
        table = Table(title=f"{title} ({len(outcomes)})", show_header=True)
        table.add_column("Phase", style="dim")
        table.add_column("Class", style="cyan")
        table.add_column("Name")
        table.add_column("Account", style="dim")
        table.add_column("Region", style="dim")
        table.add_column("Reason")
        for outcome in outcomes:
            resource = outcome.resource
            name = resource.display_name if resource.identifier != "*" else "(all)"
            table.add_row(
                outcome.phase or "",
                resource.resource_class or resource.service_type,
                name,
                resource.account_id,
                resource.region,
                outcome.error or "",
            )
        self.console.print(table)

    def display_validation(self, report: ValidationReport) -> None:
        if report.passed:
            self.console.print(
                f"[green]✓ Validation passed[/green] ({len(report.accounts_checked)} account(s), "
                f"{len(report.regions_checked)} region(s))"
            )
        else:
            table = Table(title=f"Remaining resources ({len(report.stragglers)})", show_header=True)
            table.add_column("Class", style="cyan")
            table.add_column("Name")
            table.add_column("Account", style="dim")
            table.add_column("Region", style="dim")
            for resource in report.stragglers:
                table.add_row(resource.resource_class, resource.display_name, resource.account_id, resource.region)
            self.console.print(table)
            self.console.print(
                "[yellow]⚠ Validation found remaining project resources. "
                "Re-run the destroy command, or remove them manually.[/yellow]"
            )
        for error in report.errors:
            self.console.print(f"  [dim]scan error: {error}[/dim]")

    def display_lazy_deletes(self, entries: List[LazyDeleteEntry]) -> None:
        table = Table(title="Lazy delete", show_header=True)
        table.add_column("Bucket", style="cyan")
        table.add_column("Account", style="dim")
        table.add_column("Region", style="dim")
        table.add_column("Status")
        table.add_column("Expected by")
        table.add_column("Reason")
        for entry in entries:
            status = entry.status.value
            if entry.is_overdue():
                status = "[red]overdue[/red]"
            elif entry.status == LazyDeleteStatus.COMPLETED:
                status = f"[green]{status}[/green]"
            table.add_row(
                entry.resource_id,
                entry.account_id,
                entry.region,
                status,
                entry.expected_by.strftime("%Y-%m-%d %H:%M UTC"),
                entry.reason,
            )
        self.console.print(table)
