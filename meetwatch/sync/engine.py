"""Mailbox sync engine: incremental history sync with bounded full-resync fallback.

Cursor rule: the stored cursor only moves past a page once every message in it was applied
(stored, or permanently unfetchable). A transient failure freezes the cursor for the rest of
the run, so the next trigger replays from the last confirmed position. Replays are safe because
message upserts are idempotent.
"""

from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from opentelemetry.trace import SpanKind
from sqlalchemy.exc import SQLAlchemyError

from meetwatch.config import FULL_SYNC_DAYS, FULL_SYNC_MAX_MESSAGES
from meetwatch.db.models.mailbox import Mailbox
from meetwatch.db.models.message import DIRECTION_RECEIVED, DIRECTION_SENT
from meetwatch.db.repositories import mailbox_repo, message_repo, sync_state_repo
from meetwatch.mail_provider.errors import CursorExpiredError, MailProviderError
from meetwatch.mail_provider.mapping import MessageMappingError, gmail_message_to_mail_message
from meetwatch.mail_provider.protocol import MailProvider, ProviderFactory
from meetwatch.models.meeting import ExtractionJob
from meetwatch.models.sync import SyncResult
from meetwatch.utils.logger import get_logger
from meetwatch.utils.observability import set_span_output, span_attributes
from meetwatch.utils.tracing import get_tracer

logger = get_logger("meetwatch.sync")

EnqueueExtraction = Callable[[ExtractionJob], Awaitable[None]]


class _Batch:
    """Per-run counters plus the newest RECEIVED message per thread (extraction candidates)."""

    def __init__(self) -> None:
        self.processed = 0
        self.skipped = 0
        self.failed = 0
        self.threads: set[str] = set()
        self.received: dict[str, tuple[datetime, str]] = {}


class SyncEngine:
    def __init__(
        self,
        provider_factory: ProviderFactory,
        enqueue_extraction: Optional[EnqueueExtraction] = None,
        full_sync_days: int = FULL_SYNC_DAYS,
        full_sync_max_messages: int = FULL_SYNC_MAX_MESSAGES,
    ):
        self.provider_factory = provider_factory
        self.enqueue_extraction = enqueue_extraction
        self.full_sync_days = full_sync_days
        self.full_sync_max_messages = full_sync_max_messages

    async def sync_mailbox(self, mailbox_id: int) -> SyncResult:
        mailbox = mailbox_repo.get_mailbox(mailbox_id)
        if mailbox is None:
            logger.warning("sync.mailbox.unknown", mailbox_id=mailbox_id)
            return SyncResult(mailbox_id=mailbox_id, success=False, error="Unknown mailbox")

        tracer = get_tracer()
        attrs = span_attributes("CHAIN", input_summary={"mailbox_id": mailbox_id})
        with tracer.start_as_current_span("sync_mailbox", kind=SpanKind.INTERNAL, attributes=attrs) as span:
            result = await self._sync(mailbox)
            set_span_output(span, result.model_dump(exclude_none=True))
        return result

    async def _sync(self, mailbox: Mailbox) -> SyncResult:
        cursor = sync_state_repo.get_cursor(mailbox.id)
        batch = _Batch()
        sync_type = "incremental" if cursor else "full"
        try:
            provider = await self.provider_factory(mailbox)
            if cursor:
                try:
                    complete = await self._incremental(provider, mailbox, cursor, batch)
                except CursorExpiredError:
                    logger.warning("sync.cursor.expired", mailbox_id=mailbox.id, cursor=cursor)
                    sync_type = "full"
                    complete = await self._full(provider, mailbox, batch)
            else:
                complete = await self._full(provider, mailbox, batch)
        except MailProviderError as e:
            # Listing changes failed; nothing past the last advanced cursor was confirmed
            logger.error(
                "sync.mailbox.provider_error",
                mailbox_id=mailbox.id,
                status_code=e.status_code,
                error=e.message,
            )
            jobs = await self._enqueue(mailbox, batch)
            new_cursor = sync_state_repo.get_cursor(mailbox.id)
            return self._result(
                mailbox,
                batch,
                sync_type,
                jobs,
                new_cursor,
                success=False,
                error=e.message,
                cursor_advanced=new_cursor != cursor,
            )

        jobs = await self._enqueue(mailbox, batch)
        if complete:
            sync_state_repo.mark_synced(mailbox.id)
        new_cursor = sync_state_repo.get_cursor(mailbox.id)
        result = self._result(
            mailbox,
            batch,
            sync_type,
            jobs,
            new_cursor,
            success=complete,
            error=None if complete else f"{batch.failed} message(s) failed transiently; cursor held",
            cursor_advanced=new_cursor != cursor,
        )
        logger.info(
            "sync.mailbox.completed",
            mailbox_id=mailbox.id,
            sync_type=sync_type,
            processed=batch.processed,
            skipped=batch.skipped,
            failed=batch.failed,
            extraction_jobs=jobs,
            cursor=new_cursor,
            complete=complete,
        )
        return result

    def _result(self, mailbox, batch, sync_type, jobs, cursor, success, error=None, cursor_advanced=False) -> SyncResult:
        return SyncResult(
            mailbox_id=mailbox.id,
            success=success,
            sync_type=sync_type,
            messages_processed=batch.processed,
            messages_skipped=batch.skipped,
            messages_failed=batch.failed,
            conversations_updated=len(batch.threads),
            extraction_jobs=jobs,
            cursor=cursor,
            cursor_advanced=cursor_advanced,
            error=error,
        )

    async def _incremental(self, provider: MailProvider, mailbox: Mailbox, cursor: str, batch: _Batch) -> bool:
        """Page through history. Returns True when every page was fully applied."""
        page_token = None
        complete = True
        while True:
            page = await provider.get_changes_since(cursor, page_token)
            page_ok = True
            for message_id in page.message_ids:
                if not await self._apply_message(provider, mailbox, message_id, batch):
                    page_ok = False
            if not page_ok:
                complete = False
            if complete:
                if page.next_page_token:
                    if page.page_cursor:
                        self._advance(mailbox.id, page.page_cursor)
                elif page.cursor or page.page_cursor:
                    self._advance(mailbox.id, page.cursor or page.page_cursor)
            if not page.next_page_token:
                return complete
            page_token = page.next_page_token

    async def _full(self, provider: MailProvider, mailbox: Mailbox, batch: _Batch) -> bool:
        """Bounded resync of recent mail. The cursor is read first so nothing arriving meanwhile is lost."""
        fresh_cursor = await provider.get_current_cursor()
        after = datetime.now(timezone.utc) - timedelta(days=self.full_sync_days)
        message_ids: list[str] = []
        page_token = None
        while len(message_ids) < self.full_sync_max_messages:
            page = await provider.list_messages_since(after, page_token)
            message_ids.extend(page.message_ids)
            if not page.next_page_token:
                break
            page_token = page.next_page_token
        message_ids = message_ids[: self.full_sync_max_messages]
        logger.info("sync.full.listed", mailbox_id=mailbox.id, count=len(message_ids), days=self.full_sync_days)

        complete = True
        # Oldest first so conversations aggregate in arrival order
        for message_id in reversed(message_ids):
            if not await self._apply_message(provider, mailbox, message_id, batch):
                complete = False
        if complete:
            self._advance(mailbox.id, fresh_cursor)
        return complete

    def _advance(self, mailbox_id: int, token: str) -> None:
        if sync_state_repo.advance_cursor(mailbox_id, token):
            logger.debug("sync.cursor.advanced", mailbox_id=mailbox_id, cursor=token)
        else:
            logger.debug("sync.cursor.not_newer", mailbox_id=mailbox_id, cursor=token)

    async def _apply_message(self, provider: MailProvider, mailbox: Mailbox, message_id: str, batch: _Batch) -> bool:
        """Fetch, map and store one message. Returns False only for transient failures.

        Database errors are transient. Any other unexpected error is permanent for this
        message: it is logged and skipped so the rest of the page still lands.
        """
        try:
            return await self._store_message(provider, mailbox, message_id, batch)
        except SQLAlchemyError:
            batch.failed += 1
            logger.exception("sync.message.db_error", mailbox_id=mailbox.id, message_id=message_id)
            return False
        except Exception:
            batch.skipped += 1
            logger.exception("sync.message.failed", mailbox_id=mailbox.id, message_id=message_id)
            return True

    async def _store_message(self, provider: MailProvider, mailbox: Mailbox, message_id: str, batch: _Batch) -> bool:
        try:
            raw = await provider.get_message(message_id)
        except MailProviderError as e:
            if e.transient:
                batch.failed += 1
                logger.warning("sync.message.transient_error", mailbox_id=mailbox.id, message_id=message_id, error=e.message)
                return False
            batch.skipped += 1
            logger.warning("sync.message.fetch_failed", mailbox_id=mailbox.id, message_id=message_id, error=e.message)
            return True
        if raw is None:
            batch.skipped += 1
            logger.debug("sync.message.gone", mailbox_id=mailbox.id, message_id=message_id)
            return True

        try:
            message = gmail_message_to_mail_message(raw)
        except MessageMappingError as e:
            batch.skipped += 1
            logger.warning("sync.message.unmappable", mailbox_id=mailbox.id, message_id=message_id, error=str(e))
            return True

        direction = DIRECTION_SENT if message.sender == mailbox.email_address else DIRECTION_RECEIVED
        send_record_id = message_repo.find_send_record_id(message.message_id) if direction == DIRECTION_SENT else None
        outcome = message_repo.upsert_message(mailbox.id, message, direction, send_record_id=send_record_id)
        if not outcome.created:
            batch.skipped += 1
            return True

        batch.processed += 1
        batch.threads.add(message.thread_id)
        if direction == DIRECTION_RECEIVED:
            latest = batch.received.get(message.thread_id)
            if latest is None or message.received_at >= latest[0]:
                batch.received[message.thread_id] = (message.received_at, message.message_id)
        return True

    async def _enqueue(self, mailbox: Mailbox, batch: _Batch) -> int:
        """One extraction job per system-initiated thread, triggered by its newest new RECEIVED message."""
        jobs = 0
        for thread_id, (_, message_id) in batch.received.items():
            if not message_repo.is_system_thread(mailbox.id, thread_id):
                continue
            jobs += 1
            if self.enqueue_extraction is not None:
                await self.enqueue_extraction(
                    ExtractionJob(mailbox_id=mailbox.id, thread_id=thread_id, message_id=message_id)
                )
        return jobs
