"""Mailbox mode: connect a mailbox, run a sync pass, renew watch leases, purge the ledger."""

import asyncio
from typing import Optional

import typer

from meetwatch.db import init_db
from meetwatch.meetings import CalendarParser, MeetingExtractor
from meetwatch.inference import InferenceClient
from meetwatch.models.meeting import ExtractionJob
from meetwatch.sync import SyncEngine
from meetwatch.utils.logger import log_context
from meetwatch.webhook.dedup_store import NotificationLedger
from meetwatch.webhook.server import default_provider_factory
from meetwatch.webhook.subscription import LeaseManager

from .shared import console, logger, print_lease_report, print_sync_result, resolve_mailbox


async def _close(factory) -> None:
    close = getattr(factory, "aclose", None)
    if close is not None:
        await close()


def connect(
    email: str = typer.Argument(..., help="Mailbox address"),
    name: Optional[str] = typer.Option(None, "--name", help="Display name"),
    tz: Optional[str] = typer.Option(None, "--timezone", help="IANA timezone, e.g. Europe/Berlin"),
) -> None:
    """Register a mailbox and start its Gmail watch."""
    init_db()
    log = logger.bind(command="connect", email=email)
    factory = default_provider_factory()

    async def run():
        try:
            return await LeaseManager(factory).connect_mailbox(email, display_name=name, timezone_name=tz)
        finally:
            await _close(factory)

    mailbox, result = asyncio.run(run())
    if result.success:
        console.print(f"[green]Connected {mailbox.email_address} (id {mailbox.id}), watch until {result.new_expiration}[/green]")
        log.info("connect.ok", mailbox_id=mailbox.id)
    else:
        console.print(f"[yellow]Mailbox {mailbox.id} saved but the watch failed: {result.error}[/yellow]")
        log.warning("connect.watch_failed", mailbox_id=mailbox.id, error=result.error)
        raise typer.Exit(1)


def sync(
    mailbox: str = typer.Argument(..., help="Mailbox id or address"),
    extract: bool = typer.Option(True, "--extract/--no-extract", help="Run meeting extraction on the new threads"),
) -> None:
    """Run one sync pass for a mailbox, then extract meetings from the affected threads."""
    init_db()
    row = resolve_mailbox(mailbox)
    log = logger.bind(command="sync", mailbox_id=row.id)
    factory = default_provider_factory()
    jobs: list[ExtractionJob] = []

    async def collect(job: ExtractionJob) -> None:
        jobs.append(job)

    async def run():
        try:
            result = await SyncEngine(factory, enqueue_extraction=collect).sync_mailbox(row.id)
            report = None
            if extract and jobs:
                report = await MeetingExtractor(CalendarParser(InferenceClient())).extract_many(jobs)
            return result, report
        finally:
            await _close(factory)

    with log_context(command="sync", mailbox_id=row.id):
        result, report = asyncio.run(run())

    print_sync_result(result)
    if report is not None:
        console.print(
            f"\n[bold]Extraction[/bold]: {report.extracted} new suggestions, "
            f"{report.skipped} skipped, {report.failed} failed (of {report.total})"
        )
    log.info("sync.complete", success=result.success, jobs=len(jobs))
    if not result.success:
        raise typer.Exit(1)


def renew_leases(
    every: Optional[int] = typer.Option(None, "--every", help="Repeat every N minutes until interrupted"),
) -> None:
    """Renew every watch lease that expires within the renewal window."""
    init_db()
    factory = default_provider_factory()
    manager = LeaseManager(factory)

    async def run():
        try:
            while True:
                print_lease_report(await manager.renew_due_leases())
                if not every:
                    return
                await asyncio.sleep(every * 60)
        finally:
            await _close(factory)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


def purge_notifications() -> None:
    """Delete notification ids older than the retention window."""
    init_db()
    report = NotificationLedger().purge()
    console.print(f"Deleted {report.deleted} notifications received before {report.cutoff_time.isoformat()}.")
    logger.info("purge_notifications.complete", deleted=report.deleted)
