"""Shared CLI helpers: console, logger, mailbox lookup and pretty printers."""

import typer
from rich.console import Console
from rich.table import Table

from meetwatch.db.models.mailbox import Mailbox
from meetwatch.db.repositories import mailbox_repo
from meetwatch.models.sync import LeaseSweepReport, SyncResult
from meetwatch.utils.logger import get_logger

console = Console()
logger = get_logger("meetwatch.cli")


def resolve_mailbox(mailbox: str) -> Mailbox:
    """Accept a mailbox id or email address; exit 1 when it is not connected."""
    row = mailbox_repo.get_mailbox(int(mailbox)) if mailbox.isdigit() else mailbox_repo.find_by_address(mailbox)
    if row is None:
        console.print(f"[red]Unknown mailbox: {mailbox}[/red]")
        logger.warning("cli.unknown_mailbox", mailbox=mailbox)
        raise typer.Exit(1)
    return row


def print_sync_result(result: SyncResult) -> None:
    colour = "green" if result.success else "red"
    console.print(f"\n[bold {colour}]Sync {result.sync_type} (mailbox {result.mailbox_id})[/bold {colour}]")
    console.print(
        f"  Processed: {result.messages_processed}  Skipped: {result.messages_skipped}  "
        f"Failed: {result.messages_failed}"
    )
    console.print(f"  Conversations updated: {result.conversations_updated}")
    console.print(f"  Extraction jobs: {result.extraction_jobs}")
    console.print(f"  Cursor: {result.cursor or '-'}")
    if result.error:
        console.print(f"  [red]Error: {result.error}[/red]")


def print_lease_report(report: LeaseSweepReport) -> None:
    table = Table(title="Watch leases")
    table.add_column("Mailbox", style="cyan")
    table.add_column("Status")
    table.add_column("Expires")
    table.add_column("Error", style="red")
    for r in report.results:
        table.add_row(
            r.email,
            "[green]renewed[/green]" if r.success else "[red]failed[/red]",
            r.new_expiration.isoformat() if r.new_expiration else "-",
            r.error or "",
        )
    console.print(table)
    console.print(f"Renewed {report.renewed}/{report.total}, failed {report.failed}.")
