"""Main CLI entry point using Typer."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import boto3
import typer
from rich.console import Console
from rich.panel import Panel

from ..aws.credentials import CredentialValidationError, validate_credentials
from ..aws.session import SessionManager
from ..destroy.cancellation import interrupt_cancels
from ..destroy.engine import DestructionEngine
from ..destroy.errors import ConfirmationCancelled
from ..destroy.reporter import Reporter
from ..models.destruction_summary import DestructionSummary, RunStatus
from ..models.execution_context import ExecutionContext, Scope
from ..models.target import ENVIRONMENTS
from ..utils.logging import add_file_handler, run_log_path, setup_logging
from .config import Config, ConfigError

logger = logging.getLogger(__name__)

# Create Typer app
app = typer.Typer(
    name="teardown",
    help="Teardown - dependency-safe destruction of project AWS resources across accounts",
    add_completion=False,
)

# Create Rich console for output
console = Console()

# Global config
config: Optional[Config] = None


@app.callback()
def main(
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="AWS profile name"),
    config_file: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (default: ./teardown.yaml or $TEARDOWN_CONFIG)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output except errors"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
):
    """Teardown - dependency-safe destruction of project AWS resources."""
    global config

    # Setup logging first so config errors are visible
    log_level = "ERROR" if quiet else ("DEBUG" if verbose else "INFO")
    setup_logging(level=log_level, verbose=verbose)

    try:
        config = Config.load(config_file)
    except ConfigError as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=1)

    if profile:
        config.aws_profile = profile

    if not quiet and not verbose and config.log_level != "INFO":
        setup_logging(level=config.log_level, verbose=verbose)

    # Disable colors if requested
    if no_color:
        console.no_color = True


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    console.print(f"teardown version {__version__}")
    console.print(f"Python {sys.version.split()[0]}")
    console.print(f"boto3 {boto3.__version__}")


def parse_account_filter(value: Optional[str]) -> frozenset:
    """Parse comma or space separated account IDs."""
    if not value:
        return frozenset()
    accounts = [a.strip() for a in value.replace(",", " ").split() if a.strip()]
    for account in accounts:
        if not (len(account) == 12 and account.isdigit()):
            console.print(f"✗ Invalid account ID in --account-filter: {account}", style="bold red")
            raise typer.Exit(code=1)
    return frozenset(accounts)


def build_context(
    dry_run: bool = False,
    force: bool = False,
    account_filter: Optional[str] = None,
    regions: Optional[List[str]] = None,
    no_cross_account: bool = False,
    no_terraform_cleanup: bool = False,
    s3_timeout: float = 180.0,
    close_accounts: bool = False,
    scope: str = "full",
    environment: Optional[str] = None,
    max_workers: int = 4,
) -> ExecutionContext:
    """Turn CLI options into an ExecutionContext, exiting with code 1 on bad input."""
    try:
        scope_value = Scope(scope.lower())
    except ValueError:
        console.print(f"✗ Invalid scope: {scope}. Must be 'full' or 'environment'", style="bold red")
        raise typer.Exit(code=1)

    environment = (environment or "").lower()
    if environment and environment not in ENVIRONMENTS:
        console.print(
            f"✗ Invalid environment: {environment}. Must be one of {', '.join(ENVIRONMENTS)}", style="bold red"
        )
        raise typer.Exit(code=1)
    if scope_value == Scope.ENVIRONMENT and not environment:
        console.print("✗ --scope environment requires --environment", style="bold red")
        raise typer.Exit(code=1)

    try:
        return ExecutionContext(
            dry_run=dry_run,
            force=force,
            account_filter=parse_account_filter(account_filter),
            cross_account_enabled=not no_cross_account,
            per_operation_timeout=s3_timeout,
            close_member_accounts=close_accounts,
            terraform_cleanup=not no_terraform_cleanup,
            regions=tuple(regions or config.regions),
            scope=scope_value,
            environment=environment,
            max_workers=max_workers,
            terraform_dir=config.terraform_dir,
        )
    except ValueError as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=1)


def build_engine(ctx: ExecutionContext, output_dir: Path) -> DestructionEngine:
    """Wire sessions, patterns and reporter for a run."""
    try:
        patterns = config.ownership_patterns()
    except ConfigError as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=1)

    base_session = boto3.Session(profile_name=config.aws_profile) if config.aws_profile else boto3.Session()
    sessions = SessionManager(
        base_session=base_session,
        role_name=config.role_name,
        external_id=config.resolved_external_id(),
    )
    return DestructionEngine(
        ctx,
        patterns,
        config.account_map(),
        sessions=sessions,
        reporter=Reporter(console=console, output_dir=output_dir),
        validation_region_prefix=config.validation_region_prefix,
    )


def confirm_destruction(ctx: ExecutionContext, account_ids: List[str]):
    """Build the confirmation callback for a destructive run."""

    def _confirm(resource_classes: List[str]) -> bool:
        console.print()
        console.print(
            Panel(
                "[bold red]FINAL WARNING[/bold red]\n"
                f"Scope: {ctx.scope.value}"
                + (f" ({ctx.environment})" if ctx.environment else "")
                + f"\nAccounts: {', '.join(account_ids) or 'current account'}\n"
                f"Regions: {', '.join(ctx.regions)}\n\n"
                "The following resource classes will be PERMANENTLY destroyed:\n"
                + "\n".join(f"  • {resource_class}" for resource_class in resource_classes),
                border_style="red",
            )
        )
        phrase = ctx.confirmation_phrase
        answer = typer.prompt(f"Type '{phrase}' to confirm", default="", show_default=False)
        if answer.strip() != phrase:
            return False
        return typer.confirm("Are you REALLY sure? This cannot be undone!", default=False)

    return _confirm


def exit_code_for(summary: DestructionSummary) -> int:
    """0 when the run completed (stragglers included), 1 when it halted."""
    if summary.status in (RunStatus.FAILED, RunStatus.INTERRUPTED):
        return 1
    return 0


@app.command()
def destroy(
    dry_run: bool = typer.Option(False, "--dry-run", help="Enumerate and match only, destroy nothing"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip the confirmation prompt"),
    account_filter: Optional[str] = typer.Option(
        None, "--account-filter", help="Comma-separated account IDs to process (default: all configured)"
    ),
    region: Optional[List[str]] = typer.Option(
        None, "--region", "-r", help="Region to process (repeatable, first is the home region)"
    ),
    no_cross_account: bool = typer.Option(False, "--no-cross-account", help="Do not assume roles in member accounts"),
    no_terraform_cleanup: bool = typer.Option(
        False, "--no-terraform-cleanup", help="Leave cross-account Terraform state entries alone"
    ),
    s3_timeout: float = typer.Option(180.0, "--s3-timeout", help="Seconds allowed to empty one bucket"),
    close_accounts: bool = typer.Option(False, "--close-accounts", help="Close member accounts (organization phase)"),
    scope: str = typer.Option("full", "--scope", help="full or environment"),
    environment: Optional[str] = typer.Option(
        None, "--environment", "-e", help="Environment (dev, staging, prod) for --scope environment"
    ),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o", help="Directory for report and log files"),
    max_workers: int = typer.Option(4, "--max-workers", help="Parallel delete calls while emptying a bucket"),
):
    """Destroy every project resource in dependency-safe phases.

    WARNING: This permanently deletes data. Run with --dry-run first.
    """
    try:
        ctx = build_context(
            dry_run=dry_run,
            force=force,
            account_filter=account_filter,
            regions=region,
            no_cross_account=no_cross_account,
            no_terraform_cleanup=no_terraform_cleanup,
            s3_timeout=s3_timeout,
            close_accounts=close_accounts,
            scope=scope,
            environment=environment,
            max_workers=max_workers,
        )
        out = Path(output_dir or config.output_dir)
        log_file = run_log_path(out, datetime.now())
        add_file_handler(log_file)
        logger.info(f"Log file: {log_file}")

        engine = build_engine(ctx, out)

        if dry_run:
            console.print("🔍 Dry run: no resources will be destroyed", style="cyan")
        else:
            console.print("⚠️  Destroy mode: matching resources will be permanently deleted", style="bold red")

        with interrupt_cancels(engine.cancellation):
            if dry_run:
                summary = engine.plan()
            else:
                summary = engine.execute(
                    confirm=confirm_destruction(ctx, sorted(ctx.account_filter) or engine.account_map.all_accounts())
                )

        report_path = engine.reporter.finalize(summary)
        engine.reporter.display(summary, report_path)
        console.print(f"Log: {log_file}", style="dim")

        if dry_run:
            console.print("\nTo perform the destruction, run again without --dry-run", style="cyan")

        code = exit_code_for(summary)
        if code:
            raise typer.Exit(code=code)

    except ConfirmationCancelled:
        console.print("Cancelled.", style="yellow")
        logger.warning("Destruction cancelled at the confirmation prompt")
        raise typer.Exit(code=2)
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"✗ Error during destroy: {e}", style="bold red")
        logger.exception("Error in destroy command")
        raise typer.Exit(code=1)


@app.command()
def validate(
    account_filter: Optional[str] = typer.Option(None, "--account-filter", help="Comma-separated account IDs"),
    scope: str = typer.Option("full", "--scope", help="full or environment"),
    environment: Optional[str] = typer.Option(None, "--environment", "-e", help="Environment for --scope environment"),
    no_cross_account: bool = typer.Option(False, "--no-cross-account", help="Only check the current account"),
):
    """Scan every supported region for remaining project resources."""
    try:
        ctx = build_context(
            dry_run=True,
            account_filter=account_filter,
            no_cross_account=no_cross_account,
            scope=scope,
            environment=environment,
        )
        engine = build_engine(ctx, Path(config.output_dir))
        engine.reporter.display_validation(engine.validate())
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"✗ Error during validation: {e}", style="bold red")
        logger.exception("Error in validate command")
        raise typer.Exit(code=1)


# Lazy delete commands group
lazy_app = typer.Typer(help="Lazy-delete tracking commands")
app.add_typer(lazy_app, name="lazy-delete")


@lazy_app.command("list")
def lazy_list(
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o", help="Directory holding lazy-delete.yaml"),
    pending_only: bool = typer.Option(False, "--pending", help="Only show pending entries"),
):
    """List buckets handed to lazy delete by earlier runs."""
    try:
        reporter = Reporter(console=console, output_dir=output_dir or config.output_dir)
        entries = reporter.store.pending() if pending_only else reporter.store.load()
        if not entries:
            console.print("No lazy-delete entries.", style="green")
            return
        reporter.display_lazy_deletes(entries)
    except Exception as e:
        console.print(f"✗ Error reading lazy-delete entries: {e}", style="bold red")
        logger.exception("Error in lazy-delete list command")
        raise typer.Exit(code=1)


@lazy_app.command("recheck")
def lazy_recheck(
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o", help="Directory holding lazy-delete.yaml"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only check existence, delete nothing"),
    account_filter: Optional[str] = typer.Option(None, "--account-filter", help="Comma-separated account IDs"),
    no_cross_account: bool = typer.Option(False, "--no-cross-account", help="Only re-check the current account"),
):
    """Re-check pending lazy deletes and remove buckets that are now empty."""
    try:
        ctx = build_context(
            dry_run=dry_run,
            force=True,
            account_filter=account_filter,
            no_cross_account=no_cross_account,
        )
        engine = build_engine(ctx, Path(output_dir or config.output_dir))
        summary = engine.recheck_lazy_deletes()
        if not summary.lazy_deletes:
            console.print("No pending lazy-delete entries.", style="green")
            return
        engine.reporter.display_lazy_deletes(summary.lazy_deletes)
        console.print(
            f"✓ {summary.destroyed_count} deleted, {summary.deferred_count} still pending, "
            f"{summary.failed_count} failed",
            style="green" if not summary.failed_count else "yellow",
        )
    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"✗ Error re-checking lazy deletes: {e}", style="bold red")
        logger.exception("Error in lazy-delete recheck command")
        raise typer.Exit(code=1)


@app.command()
def whoami():
    """Show the identity of the base credentials."""
    try:
        identity = validate_credentials(config.aws_profile)
    except CredentialValidationError as e:
        console.print(f"✗ {e}", style="bold red")
        raise typer.Exit(code=1)
    console.print(f"Account: {identity['account_id']}")
    console.print(f"ARN: {identity['arn']}")


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    cli_main()
