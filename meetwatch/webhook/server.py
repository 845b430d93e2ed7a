"""FastAPI server: Pub/Sub mail webhook, cron sweeps and the suggestion review API."""

import asyncio
import hmac
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import ValidationError

from meetwatch.calendar_provider import (
    CalendarProvider,
    CalendarProviderError,
    GoogleCalendarProvider,
    MockCalendarProvider,
)
from meetwatch.config import (
    API_TOKEN,
    CALENDAR_PROVIDER,
    CRON_SECRET,
    MAIL_PROVIDER,
    MOCK_MAILBOX_PATH,
    WEBHOOK_TOKEN,
)
from meetwatch.db import init_db
from meetwatch.db.repositories import mailbox_repo, message_repo, suggestion_repo
from meetwatch.db.repositories.suggestion_repo import SuggestionNotFoundError, SuggestionStateError
from meetwatch.inference import InferenceClient
from meetwatch.mail_provider import GmailProviderFactory, MockMailProvider, ProviderFactory, static_provider_factory
from meetwatch.meetings import (
    CalendarParser,
    ExtractionWorkerPool,
    MeetingExtractor,
    SuggestionNeedsTimeError,
    SuggestionService,
)
from meetwatch.models.sync import LeaseSweepReport, PurgeReport
from meetwatch.sync import SyncCoordinator, SyncEngine
from meetwatch.utils.logger import get_logger, log_context
from meetwatch.webhook.dedup_store import NotificationLedger
from meetwatch.webhook.models import (
    MalformedNotificationError,
    PushEnvelope,
    SendRecordRequest,
    SendRecordView,
    SuggestionView,
)
from meetwatch.webhook.subscription import LeaseManager

logger = get_logger("meetwatch.webhook.server")

SHUTDOWN_TIMEOUT_SECONDS = 10.0


def default_provider_factory() -> ProviderFactory:
    if MAIL_PROVIDER == "mock":
        return static_provider_factory(MockMailProvider.from_json(MOCK_MAILBOX_PATH))
    return GmailProviderFactory()


def default_calendar_provider() -> CalendarProvider:
    if CALENDAR_PROVIDER == "mock":
        return MockCalendarProvider()
    return GoogleCalendarProvider()


def _bearer_matches(request: Request, expected: str) -> bool:
    """Constant-time check of Authorization: Bearer <expected>. An unset secret never matches."""
    if not expected:
        return False
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return hmac.compare_digest(token.strip().encode(), expected.encode())


async def _run_sync(app: FastAPI, mailbox_id: int) -> None:
    """Background sync for one mailbox. Errors end up in the log only."""
    with log_context(mailbox_id=mailbox_id, trigger="push"):
        try:
            result = await app.state.coordinator.request_sync(mailbox_id)
            if result is not None and not result.success:
                logger.warning("webhook.sync.incomplete", error=result.error)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("webhook.sync.failed")


def _spawn(app: FastAPI, coro, name: str) -> asyncio.Task[Any]:
    task = asyncio.create_task(coro, name=name)
    tasks: set[asyncio.Task[Any]] = app.state.background_tasks
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    return task


async def _shutdown_tasks(app: FastAPI) -> None:
    """Cancel the extraction workers and in-flight syncs, then close provider clients."""
    all_tasks: list[asyncio.Task[Any]] = []

    pool: ExtractionWorkerPool | None = getattr(app.state, "extraction_pool", None)
    if pool is not None:
        for t in pool.tasks:
            t.cancel()
        all_tasks.extend(pool.tasks)

    tasks = getattr(app.state, "background_tasks", None)
    if tasks:
        for t in list(tasks):
            t.cancel()
        all_tasks.extend(tasks)

    if all_tasks:
        try:
            await asyncio.wait_for(
                asyncio.gather(*all_tasks, return_exceptions=True),
                timeout=SHUTDOWN_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            pending = sum(1 for t in all_tasks if not t.done())
            logger.warning("webhook.lifespan.shutdown_timeout", timeout=SHUTDOWN_TIMEOUT_SECONDS, pending=pending)

    for handle in (app.state.provider_factory, app.state.calendar):
        close = getattr(handle, "aclose", None)
        if close is not None:
            try:
                await close()
            except Exception as e:
                logger.debug("webhook.lifespan.close_error", error=str(e))


@asynccontextmanager
async def _lifespan(app: FastAPI):
    init_db()
    app.state.extraction_pool.start()
    logger.info("webhook.lifespan.started")
    yield
    await _shutdown_tasks(app)
    logger.info("webhook.lifespan.stopped")


def create_app(
    provider_factory: Optional[ProviderFactory] = None,
    inference: Optional[InferenceClient] = None,
    calendar: Optional[CalendarProvider] = None,
    coordinator: Optional[SyncCoordinator] = None,
    lease_manager: Optional[LeaseManager] = None,
    ledger: Optional[NotificationLedger] = None,
    webhook_token: str = WEBHOOK_TOKEN,
    cron_secret: str = CRON_SECRET,
    api_token: str = API_TOKEN,
) -> FastAPI:
    """Build the app and its service handles. Anything passed in replaces the default."""
    app = FastAPI(title="meetwatch", version="0.1.0", lifespan=_lifespan)

    provider_factory = provider_factory or default_provider_factory()
    inference = inference or InferenceClient()
    extractor = MeetingExtractor(CalendarParser(inference))
    pool = ExtractionWorkerPool(extractor)

    app.state.provider_factory = provider_factory
    app.state.inference = inference
    app.state.extractor = extractor
    app.state.extraction_pool = pool
    app.state.coordinator = coordinator or SyncCoordinator(
        SyncEngine(provider_factory, enqueue_extraction=pool.submit)
    )
    app.state.lease_manager = lease_manager or LeaseManager(provider_factory)
    app.state.ledger = ledger or NotificationLedger()
    app.state.calendar = calendar or default_calendar_provider()
    app.state.suggestions = SuggestionService(app.state.calendar)
    app.state.background_tasks = set()

    def require_cron(request: Request) -> None:
        if not cron_secret:
            raise HTTPException(status_code=500, detail="CRON_SECRET not configured")
        if not _bearer_matches(request, cron_secret):
            raise HTTPException(status_code=401, detail="Unauthorized")

    def require_api(request: Request) -> None:
        if not _bearer_matches(request, api_token):
            raise HTTPException(status_code=401, detail="Unauthorized")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/webhooks/mail")
    async def mail_webhook(request: Request) -> dict[str, Any]:
        if not _bearer_matches(request, webhook_token):
            logger.warning("webhook.mail.unauthorized")
            raise HTTPException(status_code=401, detail="Unauthorized")

        try:
            envelope = PushEnvelope.model_validate(await request.json())
            notification = envelope.decode()
        except (ValueError, ValidationError, MalformedNotificationError) as e:
            logger.warning("webhook.mail.malformed", error=str(e)[:300])
            raise HTTPException(status_code=400, detail="Malformed notification") from e

        mailbox = mailbox_repo.find_by_address(notification.email_address)
        if mailbox is None:
            logger.warning("webhook.mail.unknown_mailbox", email=notification.email_address)
            return {"status": "ignored"}

        notification_id = envelope.notification_id(notification)
        if not app.state.ledger.record_if_new(notification_id, mailbox.email_address):
            return {"status": "duplicate"}

        _spawn(app, _run_sync(app, mailbox.id), name=f"sync-{mailbox.id}")
        logger.info(
            "webhook.mail.accepted",
            mailbox_id=mailbox.id,
            history_id=notification.history_id,
            notification_id=notification_id,
        )
        return {"status": "accepted", "mailbox_id": mailbox.id}

    @app.api_route("/cron/renew-leases", methods=["GET", "POST"])
    async def renew_leases(request: Request) -> LeaseSweepReport:
        require_cron(request)
        return await app.state.lease_manager.renew_due_leases()

    @app.api_route("/cron/purge-notifications", methods=["GET", "POST"])
    async def purge_notifications(request: Request) -> PurgeReport:
        require_cron(request)
        return app.state.ledger.purge()

    @app.post("/sends")
    async def record_send(body: SendRecordRequest, request: Request) -> SendRecordView:
        """Register a system-sent message so replies in its thread get scanned for meetings."""
        require_api(request)
        mailbox = mailbox_repo.find_by_address(body.mailbox_address)
        if mailbox is None:
            raise HTTPException(status_code=404, detail="Unknown mailbox")
        row = message_repo.record_send(
            mailbox.id,
            body.provider_message_id,
            thread_id=body.thread_id,
            recipient=body.recipient,
            subject=body.subject,
            sent_at=body.sent_at,
        )
        logger.info("webhook.sends.recorded", mailbox_id=mailbox.id, thread_id=row.thread_id)
        return SendRecordView.model_validate(row)

    @app.get("/suggestions")
    async def list_suggestions(
        request: Request,
        mailbox_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> list[SuggestionView]:
        require_api(request)
        rows = suggestion_repo.list_suggestions(mailbox_id=mailbox_id, status=status.upper() if status else None)
        return [SuggestionView.model_validate(row) for row in rows]

    @app.post("/suggestions/{suggestion_id}/accept")
    async def accept_suggestion(suggestion_id: int, request: Request) -> SuggestionView:
        require_api(request)
        try:
            row = await app.state.suggestions.accept(suggestion_id)
        except SuggestionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except SuggestionStateError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        except SuggestionNeedsTimeError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        except CalendarProviderError as e:
            logger.error("webhook.suggestions.calendar_error", suggestion_id=suggestion_id, error=e.message)
            raise HTTPException(status_code=502, detail=f"Calendar error: {e.message}") from e
        return SuggestionView.model_validate(row)

    @app.post("/suggestions/{suggestion_id}/dismiss")
    async def dismiss_suggestion(suggestion_id: int, request: Request) -> SuggestionView:
        require_api(request)
        try:
            row = app.state.suggestions.dismiss(suggestion_id)
        except SuggestionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except SuggestionStateError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        return SuggestionView.model_validate(row)

    return app
