"""CLI commands: one module per mode (serve, mailbox, meetings)."""

from typer import Typer

from meetwatch.cli import mailbox_mode, meetings_mode, serve_mode
from meetwatch.utils.tracing import init_tracing

init_tracing()

app = Typer(help="Meeting suggestions from Gmail threads")


def register_commands() -> None:
    """Register all CLI commands on the global app."""
    app.command()(serve_mode.serve)
    app.command()(mailbox_mode.connect)
    app.command()(mailbox_mode.sync)
    app.command(name="renew-leases")(mailbox_mode.renew_leases)
    app.command(name="purge-notifications")(mailbox_mode.purge_notifications)
    app.command()(meetings_mode.detect)
    app.command(name="parse-thread")(meetings_mode.parse_thread)
    app.command()(meetings_mode.suggestions)
    app.command()(meetings_mode.accept)
    app.command()(meetings_mode.dismiss)


register_commands()
