"""In-memory mail provider with Gmail-style history ids. Loadable from a JSON file."""

import base64
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from meetwatch.mail_provider.errors import CursorExpiredError, MailProviderError
from meetwatch.mail_provider.gmail_models import (
    ChangePage,
    GmailMessage,
    MessagePage,
    MessagePart,
    MessagePartBody,
    MessagePartHeader,
    WatchLease,
)
from meetwatch.utils.logger import get_logger

logger = get_logger("meetwatch.mail_provider")

LEASE_DURATION = timedelta(days=7)


def build_gmail_message(
    message_id: str,
    thread_id: str,
    sender: str,
    to: str | list[str],
    subject: str,
    body: str,
    received_at: datetime | None = None,
    html: bool = False,
) -> GmailMessage:
    """Build a full-format Gmail message with a single text (or html) body part."""
    received_at = received_at or datetime.now(timezone.utc)
    if received_at.tzinfo is None:
        received_at = received_at.replace(tzinfo=timezone.utc)
    recipients = to if isinstance(to, str) else ", ".join(to)
    data = base64.urlsafe_b64encode(body.encode("utf-8")).decode("ascii").rstrip("=")
    return GmailMessage(
        id=message_id,
        thread_id=thread_id,
        label_ids=["INBOX"],
        snippet=body[:100],
        internal_date=str(int(received_at.timestamp() * 1000)),
        payload=MessagePart(
            mime_type="text/html" if html else "text/plain",
            headers=[
                MessagePartHeader(name="From", value=sender),
                MessagePartHeader(name="To", value=recipients),
                MessagePartHeader(name="Subject", value=subject),
            ],
            body=MessagePartBody(size=len(body), data=data),
        ),
    )


class MockMailProvider:
    """Mock provider: every add_message() writes one history record.

    Failure hooks for tests: fail_message() makes get_message raise, remove_message()
    makes it return None, expire_cursor() makes every older cursor stale.
    """

    def __init__(self, start_history_id: int = 1000, page_size: int = 100):
        self._messages: dict[str, GmailMessage] = {}
        self._history: list[tuple[int, str]] = []
        self._history_id = start_history_id
        self._oldest_valid = start_history_id
        self._failures: dict[str, MailProviderError] = {}
        self._page_size = page_size
        self.subscribe_error: MailProviderError | None = None
        self.lease_expiration: datetime | None = None
        self.subscribe_calls: list[str] = []
        self.fetch_calls: list[str] = []

    @classmethod
    def from_json(cls, path: Path) -> "MockMailProvider":
        """Load messages from a JSON list (Gmail resources, or simple {id, threadId, from, to, subject, body, date})."""
        provider = cls()
        if not path.exists():
            logger.warning("mail_provider.mock_file_missing", path=str(path))
            return provider
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        items = data if isinstance(data, list) else data.get("messages", [])
        for item in items:
            provider.add_message(cls._item_to_message(item))
        logger.info("mail_provider.mock_loaded", message_count=len(items), path=str(path))
        return provider

    @staticmethod
    def _item_to_message(item: dict[str, Any]) -> GmailMessage:
        if "payload" in item:
            return GmailMessage.model_validate(item)
        received_at = None
        if item.get("date"):
            received_at = datetime.fromisoformat(item["date"].replace("Z", "+00:00"))
        return build_gmail_message(
            message_id=item["id"],
            thread_id=item.get("threadId") or item["id"],
            sender=item.get("from", ""),
            to=item.get("to", ""),
            subject=item.get("subject", ""),
            body=item.get("body", ""),
            received_at=received_at,
            html=item.get("html", False),
        )

    # -- test hooks --------------------------------------------------------

    def add_message(self, message: GmailMessage) -> str:
        self._history_id += 1
        message = message.model_copy(update={"history_id": str(self._history_id)})
        self._messages[message.id] = message
        self._history.append((self._history_id, message.id))
        return str(self._history_id)

    def remove_message(self, message_id: str) -> None:
        self._messages.pop(message_id, None)

    def fail_message(self, message_id: str, status_code: int | None = 503) -> None:
        self._failures[message_id] = MailProviderError(f"injected failure for {message_id}", status_code=status_code)

    def clear_failures(self) -> None:
        self._failures.clear()

    def expire_cursor(self) -> None:
        self._oldest_valid = self._history_id

    # -- MailProvider --------------------------------------------------------

    async def get_changes_since(self, cursor: str, page_token: str | None = None) -> ChangePage:
        start = int(cursor)
        if start < self._oldest_valid:
            raise CursorExpiredError(f"Requested entity was not found (startHistoryId={cursor})", status_code=404)
        records = [(hid, mid) for hid, mid in self._history if hid > start]
        offset = int(page_token or 0)
        page = records[offset:offset + self._page_size]
        has_more = offset + self._page_size < len(records)
        return ChangePage(
            message_ids=[mid for _, mid in page],
            page_cursor=str(page[-1][0]) if page else None,
            next_page_token=str(offset + self._page_size) if has_more else None,
            cursor=str(self._history_id),
        )

    async def get_message(self, message_id: str) -> GmailMessage | None:
        self.fetch_calls.append(message_id)
        if message_id in self._failures:
            raise self._failures[message_id]
        return self._messages.get(message_id)

    async def list_messages_since(self, after: datetime, page_token: str | None = None) -> MessagePage:
        after_ms = int(after.timestamp() * 1000)
        # Newest first, like Gmail
        ids = [
            m.id
            for m in sorted(self._messages.values(), key=lambda m: int(m.internal_date or 0), reverse=True)
            if int(m.internal_date or 0) >= after_ms
        ]
        offset = int(page_token or 0)
        has_more = offset + self._page_size < len(ids)
        return MessagePage(
            message_ids=ids[offset:offset + self._page_size],
            next_page_token=str(offset + self._page_size) if has_more else None,
        )

    async def get_current_cursor(self) -> str:
        return str(self._history_id)

    async def subscribe(self, topic: str) -> WatchLease:
        self.subscribe_calls.append(topic)
        if self.subscribe_error is not None:
            raise self.subscribe_error
        expires = self.lease_expiration or datetime.now(timezone.utc) + LEASE_DURATION
        return WatchLease(cursor=str(self._history_id), lease_expires_at=expires)

    async def aclose(self) -> None:
        return None
