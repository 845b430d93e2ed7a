"""Serve mode: run the FastAPI app (Pub/Sub webhook, cron endpoints, suggestion API)."""

import sys

import typer
import uvicorn

from meetwatch.config import CRON_SECRET, WEBHOOK_PORT, WEBHOOK_TOKEN
from meetwatch.webhook.server import create_app

from .shared import console, logger


def serve(
    port: int = typer.Option(WEBHOOK_PORT, "--port", "-p", help="Port for the server"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind host"),
) -> None:
    """Start the webhook listener and suggestion API."""
    log = logger.bind(command="serve", port=port)
    log.info("serve.start")

    if not WEBHOOK_TOKEN:
        console.print("[yellow]WEBHOOK_TOKEN is not set: every push notification will be rejected.[/yellow]")
        log.warning("serve.missing_webhook_token")
    if not CRON_SECRET:
        console.print("[yellow]CRON_SECRET is not set: cron endpoints will answer 500.[/yellow]")
        log.warning("serve.missing_cron_secret")

    app = create_app()
    console.print(f"[green]Starting server on http://{host}:{port}[/green]")
    console.print(
        "[dim]Endpoints: POST /webhooks/mail, /cron/renew-leases, /cron/purge-notifications, "
        "/suggestions, GET /health[/dim]"
    )
    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
            timeout_graceful_shutdown=15,
        )
    except KeyboardInterrupt:
        console.print("\n[dim]Shutting down...[/dim]")
        sys.exit(0)
