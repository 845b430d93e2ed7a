"""Meetings mode: pre-filter and parser dry runs, plus suggestion review from the terminal."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from pydantic import TypeAdapter, ValidationError
from rich.table import Table

from meetwatch.calendar_provider import CalendarProviderError
from meetwatch.db import init_db
from meetwatch.db.repositories import suggestion_repo
from meetwatch.db.repositories.suggestion_repo import (
    STATUS_DISMISSED,
    SuggestionNotFoundError,
    SuggestionStateError,
)
from meetwatch.inference import InferenceClient
from meetwatch.meetings import CalendarParser, SuggestionNeedsTimeError, SuggestionService, detect as detect_meeting
from meetwatch.models.email import ThreadMessage
from meetwatch.models.meeting import ThreadParseInput
from meetwatch.webhook.server import default_calendar_provider

from .shared import console, logger


def detect(
    subject: str = typer.Option("", "--subject", "-s", help="Message subject"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Message body (reads --file when omitted)"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Text file holding the body"),
) -> None:
    """Run the keyword pre-filter on one message."""
    if body is None:
        if file is None:
            console.print("[red]Pass --body or --file.[/red]")
            raise typer.Exit(1)
        body = file.read_text(encoding="utf-8")
    result = detect_meeting(subject, body)
    colour = "green" if result.has_potential_meeting else "yellow"
    console.print(f"[{colour}]Potential meeting: {result.has_potential_meeting}[/{colour}] ({result.confidence_tier}, score {result.score})")
    console.print(f"  Patterns: {', '.join(result.matched_patterns) or '-'}")
    logger.debug("detect.result", **result.model_dump())


def parse_thread(
    thread_file: Path = typer.Argument(..., help="JSON list of messages (direction, sender, subject, body_text, received_at)"),
    user_email: str = typer.Option(..., "--user", "-u", help="Address of the mailbox owner"),
    tz: Optional[str] = typer.Option(None, "--timezone", help="User timezone"),
) -> None:
    """Run the calendar parser on a thread stored as JSON and print the outcome."""
    log = logger.bind(command="parse-thread", path=str(thread_file))
    try:
        thread = TypeAdapter(list[ThreadMessage]).validate_json(thread_file.read_bytes())
    except (OSError, ValidationError) as e:
        console.print(f"[red]Cannot read thread: {e}[/red]")
        log.error("parse_thread.bad_input", error=str(e))
        raise typer.Exit(1) from e
    if not thread:
        console.print("[yellow]Thread is empty.[/yellow]")
        raise typer.Exit(1)

    request = ThreadParseInput(
        message_id=thread[-1].message_id or "last",
        thread_id="cli",
        thread=thread,
        user_email=user_email,
        user_timezone=tz,
    )
    outcome = asyncio.run(CalendarParser(InferenceClient()).parse_thread(request))
    console.print_json(json.dumps(outcome.model_dump(mode="json", exclude_none=True)))
    log.info("parse_thread.complete", success=outcome.success, confirmed=outcome.is_confirmed)
    if not outcome.success:
        raise typer.Exit(1)


def suggestions(
    mailbox_id: Optional[int] = typer.Option(None, "--mailbox", "-m", help="Filter by mailbox id"),
    status: Optional[str] = typer.Option("PENDING", "--status", help="PENDING, ACCEPTED or DISMISSED (empty for all)"),
) -> None:
    """List meeting suggestions."""
    init_db()
    rows = suggestion_repo.list_suggestions(mailbox_id=mailbox_id, status=status.upper() if status else None)
    table = Table(title="Meeting suggestions")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Mailbox", justify="right")
    table.add_column("Status")
    table.add_column("Title", style="green")
    table.add_column("Start")
    table.add_column("Confidence", justify="right")
    for row in rows:
        data = row.extracted_data or {}
        table.add_row(
            str(row.id),
            str(row.mailbox_id),
            row.status,
            data.get("title") or data.get("source_subject") or "-",
            data.get("start_time") or "(needs time)",
            f"{row.confidence:.2f}",
        )
    console.print(table)


def accept(suggestion_id: int = typer.Argument(..., help="Suggestion id")) -> None:
    """Create the calendar event for a pending suggestion."""
    init_db()
    calendar = default_calendar_provider()

    async def run():
        try:
            return await SuggestionService(calendar).accept(suggestion_id)
        finally:
            close = getattr(calendar, "aclose", None)
            if close is not None:
                await close()

    try:
        row = asyncio.run(run())
    except (SuggestionNotFoundError, SuggestionStateError, SuggestionNeedsTimeError, CalendarProviderError) as e:
        console.print(f"[red]{e}[/red]")
        logger.warning("accept.failed", suggestion_id=suggestion_id, error=str(e))
        raise typer.Exit(1) from e
    console.print(f"[green]Accepted {row.id}: calendar event {row.calendar_event_id}[/green]")


def dismiss(suggestion_id: int = typer.Argument(..., help="Suggestion id")) -> None:
    """Dismiss a pending suggestion."""
    init_db()
    try:
        row = suggestion_repo.transition(suggestion_id, STATUS_DISMISSED)
    except (SuggestionNotFoundError, SuggestionStateError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e
    console.print(f"[green]Dismissed {row.id}[/green]")
