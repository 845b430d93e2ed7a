"""Mail provider protocol (the Gmail-shaped surface the sync engine and lease manager use)."""

from datetime import datetime
from typing import Awaitable, Callable, Protocol

from meetwatch.db.models.mailbox import Mailbox
from meetwatch.mail_provider.gmail_models import ChangePage, GmailMessage, MessagePage, WatchLease


class MailProvider(Protocol):
    """Per-mailbox client. Implementations raise MailProviderError (CursorExpiredError for stale cursors)."""

    async def get_changes_since(self, cursor: str, page_token: str | None = None) -> ChangePage:
        """Messages added since cursor, one page at a time."""
        ...

    async def get_message(self, message_id: str) -> GmailMessage | None:
        """Full message, or None if it no longer exists."""
        ...

    async def list_messages_since(self, after: datetime, page_token: str | None = None) -> MessagePage:
        """Message ids received after the given instant (used for full resync)."""
        ...

    async def get_current_cursor(self) -> str:
        """The mailbox's current history position."""
        ...

    async def subscribe(self, topic: str) -> WatchLease:
        """Start or renew the push watch on topic."""
        ...

    async def aclose(self) -> None:
        ...


# Builds (or returns a cached) provider for a mailbox
ProviderFactory = Callable[[Mailbox], Awaitable[MailProvider]]
