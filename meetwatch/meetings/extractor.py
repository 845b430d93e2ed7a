"""Meeting extraction pipeline: thread -> calendar parser -> suggestion store.

MeetingExtractor.extract() turns one ExtractionJob into an ExtractionResult and never raises.
ExtractionWorkerPool drains a bounded queue of jobs inside the server process.
"""

import asyncio
from typing import Any

from opentelemetry.trace import SpanKind

from meetwatch.config import (
    EXTRACTION_CONCURRENCY,
    EXTRACTION_QUEUE_MAX,
    EXTRACTION_WORKER_COUNT,
    MIN_SUGGESTION_CONFIDENCE,
)
from meetwatch.db.repositories import mailbox_repo, message_repo, suggestion_repo
from meetwatch.mail_provider.mapping import stored_messages_to_thread
from meetwatch.meetings.parser import CalendarParser
from meetwatch.models.meeting import (
    BatchExtractionReport,
    ExtractionJob,
    ExtractionResult,
    ThreadParseInput,
)
from meetwatch.utils.logger import get_logger
from meetwatch.utils.observability import set_span_output, span_attributes
from meetwatch.utils.tracing import get_tracer

logger = get_logger("meetwatch.extractor")


class MeetingExtractor:
    def __init__(self, parser: CalendarParser, min_confidence: float = MIN_SUGGESTION_CONFIDENCE):
        self.parser = parser
        self.min_confidence = min_confidence

    async def extract(self, job: ExtractionJob) -> ExtractionResult:
        tracer = get_tracer()
        attrs = span_attributes("CHAIN", input_summary=job.model_dump())
        with tracer.start_as_current_span("extract_meeting", kind=SpanKind.INTERNAL, attributes=attrs) as span:
            try:
                result = await self._extract(job)
            except Exception as e:
                logger.exception("extractor.failed", thread_id=job.thread_id, message_id=job.message_id)
                result = ExtractionResult(extracted=False, thread_id=job.thread_id, error=str(e) or type(e).__name__)
            set_span_output(span, result.model_dump(exclude_none=True))
        return result

    async def _extract(self, job: ExtractionJob) -> ExtractionResult:
        def skipped(reason: str) -> ExtractionResult:
            logger.info("extractor.skipped", thread_id=job.thread_id, reason=reason)
            return ExtractionResult(extracted=False, thread_id=job.thread_id, skipped_reason=reason)

        if suggestion_repo.get_for_thread(job.mailbox_id, job.thread_id) is not None:
            return skipped("already_exists")

        mailbox = mailbox_repo.get_mailbox(job.mailbox_id)
        if mailbox is None:
            return ExtractionResult(extracted=False, thread_id=job.thread_id, error=f"Unknown mailbox {job.mailbox_id}")

        thread = stored_messages_to_thread(message_repo.get_thread_messages(job.mailbox_id, job.thread_id))
        if not thread:
            return skipped("empty_thread")

        outcome = await self.parser.parse_thread(
            ThreadParseInput(
                message_id=job.message_id,
                thread_id=job.thread_id,
                thread=thread,
                user_email=mailbox.email_address,
                user_timezone=mailbox.timezone,
            )
        )
        if not outcome.success:
            return ExtractionResult(extracted=False, thread_id=job.thread_id, error=outcome.error)
        if outcome.skipped:
            return skipped("prefilter_negative")
        if not outcome.is_confirmed or outcome.data is None:
            return skipped("not_confirmed")
        if outcome.data.confidence < self.min_confidence:
            result = skipped("low_confidence")
            result.confidence = outcome.data.confidence
            return result

        row, created = suggestion_repo.create_if_absent(job.mailbox_id, job.thread_id, job.message_id, outcome.data)
        if not created:
            return skipped("already_exists")
        logger.info(
            "extractor.suggestion_created",
            suggestion_id=row.id,
            thread_id=job.thread_id,
            confidence=row.confidence,
            needs_time_confirmation=outcome.data.needs_time_confirmation,
        )
        return ExtractionResult(
            extracted=True,
            thread_id=job.thread_id,
            suggestion_id=row.id,
            confidence=row.confidence,
        )

    async def extract_many(self, jobs: list[ExtractionJob], concurrency: int = EXTRACTION_CONCURRENCY) -> BatchExtractionReport:
        """Run jobs with at most `concurrency` in flight; results keep the input order."""
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def run(job: ExtractionJob) -> ExtractionResult:
            async with semaphore:
                return await self.extract(job)

        results = await asyncio.gather(*(run(job) for job in jobs))
        report = BatchExtractionReport(total=len(results), results=list(results))
        for result in results:
            if result.extracted:
                report.extracted += 1
            elif result.error:
                report.failed += 1
            else:
                report.skipped += 1
        return report


class ExtractionWorkerPool:
    """Bounded asyncio.Queue of ExtractionJob drained by a fixed number of worker tasks."""

    def __init__(
        self,
        extractor: MeetingExtractor,
        worker_count: int = EXTRACTION_WORKER_COUNT,
        queue_max: int = EXTRACTION_QUEUE_MAX,
    ):
        self.extractor = extractor
        self.worker_count = max(1, min(worker_count, 64))
        self.queue: asyncio.Queue[ExtractionJob] = asyncio.Queue(maxsize=queue_max)
        self._tasks: list[asyncio.Task[Any]] = []

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [asyncio.create_task(self._worker(i)) for i in range(self.worker_count)]
        logger.info("extractor.pool.started", worker_count=self.worker_count, queue_max=self.queue.maxsize)

    async def submit(self, job: ExtractionJob) -> None:
        """Enqueue a job; waits when the queue is full."""
        await self.queue.put(job)
        logger.debug("extractor.pool.enqueued", thread_id=job.thread_id, queue_size=self.queue.qsize())

    async def join(self) -> None:
        await self.queue.join()

    async def _worker(self, worker_id: int) -> None:
        logger.info("extractor.worker.started", worker_id=worker_id)
        try:
            while True:
                job = await self.queue.get()
                try:
                    await self.extractor.extract(job)
                finally:
                    self.queue.task_done()
        except asyncio.CancelledError:
            logger.info("extractor.worker.stopped", worker_id=worker_id)
            raise

    @property
    def tasks(self) -> list[asyncio.Task[Any]]:
        return list(self._tasks)

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
