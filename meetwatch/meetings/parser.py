"""Thread-aware calendar parser: decides whether a meeting was mutually confirmed and extracts it."""

import time
from datetime import timedelta

from opentelemetry.trace import SpanKind

from meetwatch.config import THREAD_MAX_BODY_CHARS, THREAD_MAX_MESSAGES
from meetwatch.inference import InferenceClient, InferenceError, InferenceParseError
from meetwatch.meetings.dates import resolve_datetime
from meetwatch.meetings.detector import detect
from meetwatch.models.email import ThreadMessage
from meetwatch.models.meeting import ExtractedMeetingData, ThreadAnalysis, ThreadParseInput, ThreadParseOutcome
from meetwatch.utils.body_sanitizer import PROMPT_PIPELINE, sanitize_email_body, truncate_body
from meetwatch.utils.logger import get_logger
from meetwatch.utils.observability import set_span_output, span_attributes
from meetwatch.utils.tracing import get_tracer

logger = get_logger("meetwatch.calendar_parser")

PLATFORMS = {"zoom", "google-meet", "teams", "skype", "webex", "phone", "in-person", "other"}

THREAD_SYSTEM_PROMPT = """You are analyzing an email conversation thread to determine if a meeting has been CONFIRMED between the parties.

A meeting is CONFIRMED only when BOTH conditions are met:
1. One party proposes a specific meeting time/date
2. The other party explicitly AGREES to that specific time

A meeting is NOT confirmed when:
- A meeting is proposed but there is no response yet
- The response is ambiguous ("Maybe", "Let me check my calendar", "I'll get back to you")
- The response declines, or suggests a different time that nobody has agreed to
- Only one party has spoken about meeting

Examples of CONFIRMED meetings:
- "How about Tuesday at 2pm?" -> "Yes, that works!"
- "Let's meet Friday at 10am" -> "Sounds good, see you then"
- "Can we do 3pm?" -> "Perfect, 3pm it is"

Examples of NOT confirmed:
- "Want to grab coffee sometime?" -> "Sure, let me know when" (no specific time agreed)
- "How about Tuesday?" -> (no response)
- "Can we meet at 2pm?" -> "I'm busy then, how about 3pm?" (counter-proposal, not agreed)
- "Let's chat soon" -> "Definitely!" (no specific time)

Look at the FINAL state of the conversation. If the time was changed, use the LAST agreed-upon time.

Respond with a single JSON object and nothing else: no markdown, no code fences, no commentary."""

OUTPUT_SCHEMA = """{
  "isConfirmed": boolean (true ONLY if both parties agreed to a specific meeting time),
  "hasMeeting": boolean (same as isConfirmed),
  "reasoning": string (brief explanation of why the meeting is or isn't confirmed),
  "title": string or null (meeting purpose, inferred from context if not explicit),
  "description": string or null,
  "startTime": string or null (the AGREED time, natural language or ISO 8601),
  "endTime": string or null,
  "duration": number or null (minutes),
  "isAllDay": boolean,
  "location": string or null,
  "meetingLink": string or null,
  "meetingPlatform": "zoom" | "google-meet" | "teams" | "skype" | "webex" | "phone" | "in-person" | "other" | null,
  "organizer": string or null,
  "attendees": [{"name": string, "email": string}],
  "confidence": number (0-1),
  "extractedFields": [names of fields you extracted],
  "ambiguities": [anything unclear]
}"""


def _render_body(message: ThreadMessage, max_chars: int) -> str:
    body = sanitize_email_body(message.body_text or "", pipeline=PROMPT_PIPELINE)
    if not body:
        return "(No body)"
    return truncate_body(body, max_chars)


def build_thread_prompt(
    thread: list[ThreadMessage],
    user_email: str,
    user_timezone: str | None = None,
    max_body_chars: int = THREAD_MAX_BODY_CHARS,
) -> str:
    """User prompt: context block, numbered conversation (oldest first), output schema."""
    rendered = []
    for index, message in enumerate(thread, start=1):
        role = "USER" if message.direction == "SENT" else "CONTACT"
        rendered.append(
            f"[{index}] {role} ({message.sender}) - {message.received_at.isoformat()}\n"
            f"Subject: {message.subject or '(No subject)'}\n"
            f"{_render_body(message, max_body_chars)}"
        )
    context = "\n".join([
        f"Reference date: {thread[-1].received_at.isoformat()}",
        f"User timezone: {user_timezone or 'Not specified'}",
        f"User email: {user_email}",
        f"Total messages in thread: {len(thread)}",
    ])
    conversation = "\n\n---\n\n".join(rendered)
    return (
        "Analyze this email conversation to determine if a meeting has been CONFIRMED.\n\n"
        f"CONTEXT:\n{context}\n\n"
        f"CONVERSATION (oldest to newest):\n{conversation}\n\n"
        "Based on this conversation, determine:\n"
        "1. Has a meeting been CONFIRMED (both parties agreed to a specific time)?\n"
        "2. If confirmed, what are the meeting details?\n\n"
        f"Return JSON with this exact structure:\n{OUTPUT_SCHEMA}"
    )


class CalendarParser:
    """Pre-filter gate, bounded thread context, one inference call, date resolution.

    parse_thread never raises: inference and parse failures come back as success=False.
    """

    def __init__(
        self,
        inference: InferenceClient,
        max_messages: int = THREAD_MAX_MESSAGES,
        max_body_chars: int = THREAD_MAX_BODY_CHARS,
    ):
        self.inference = inference
        self.max_messages = max_messages
        self.max_body_chars = max_body_chars

    def _trigger(self, request: ThreadParseInput) -> ThreadMessage:
        for message in reversed(request.thread):
            if message.message_id == request.message_id:
                return message
        return request.thread[-1]

    async def parse_thread(self, request: ThreadParseInput) -> ThreadParseOutcome:
        if not request.thread:
            return ThreadParseOutcome(success=True, is_confirmed=False, reasoning="Empty thread")

        trigger = self._trigger(request)
        detection = detect(trigger.subject, trigger.body_text)
        if not detection.has_potential_meeting:
            logger.debug(
                "calendar_parser.prefilter.skip",
                thread_id=request.thread_id,
                message_id=request.message_id,
                patterns=detection.matched_patterns,
            )
            return ThreadParseOutcome(success=True, skipped=True, detection=detection)

        window = request.thread[-self.max_messages:]
        if len(window) < 2:
            return ThreadParseOutcome(
                success=True,
                detection=detection,
                reasoning="Need at least 2 messages for a confirmed meeting",
            )

        tracer = get_tracer()
        attrs = span_attributes(
            "CHAIN",
            input_summary={"thread_id": request.thread_id, "messages": len(window), "tier": detection.confidence_tier},
        )
        with tracer.start_as_current_span("parse_thread", kind=SpanKind.INTERNAL, attributes=attrs) as span:
            outcome = await self._analyze(request, window, detection)
            set_span_output(span, {"success": outcome.success, "is_confirmed": outcome.is_confirmed})
        return outcome

    async def _analyze(self, request: ThreadParseInput, window: list[ThreadMessage], detection) -> ThreadParseOutcome:
        started = time.monotonic()
        prompt = build_thread_prompt(window, request.user_email, request.user_timezone, self.max_body_chars)
        try:
            analysis = await self.inference.complete_json(prompt, ThreadAnalysis, system_prompt=THREAD_SYSTEM_PROMPT)
        except InferenceParseError as e:
            logger.warning("calendar_parser.parse_error", thread_id=request.thread_id, error=e.message[:300])
            return ThreadParseOutcome(success=False, detection=detection, error=e.message)
        except InferenceError as e:
            logger.warning("calendar_parser.inference_error", thread_id=request.thread_id, error=e.message)
            return ThreadParseOutcome(success=False, detection=detection, error=f"Inference error: {e.message}")
        except Exception as e:
            logger.exception("calendar_parser.unexpected_error", thread_id=request.thread_id)
            return ThreadParseOutcome(success=False, detection=detection, error=str(e) or type(e).__name__)

        processing_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "calendar_parser.analyzed",
            thread_id=request.thread_id,
            is_confirmed=analysis.is_confirmed,
            confidence=analysis.confidence,
            processing_time_ms=processing_ms,
        )
        if not analysis.is_confirmed:
            return ThreadParseOutcome(success=True, detection=detection, reasoning=analysis.reasoning)

        data = self._to_extracted(analysis, window, request.user_timezone, processing_ms)
        return ThreadParseOutcome(
            success=True,
            is_confirmed=True,
            data=data,
            detection=detection,
            reasoning=analysis.reasoning,
        )

    def _to_extracted(
        self,
        analysis: ThreadAnalysis,
        window: list[ThreadMessage],
        tz: str | None,
        processing_ms: int,
    ) -> ExtractedMeetingData:
        reference = window[-1].received_at
        start = resolve_datetime(analysis.start_time, reference, tz)
        end = resolve_datetime(analysis.end_time, reference, tz)

        end_time = end.value
        if start.value is not None and end_time is None:
            if analysis.duration:
                end_time = start.value + timedelta(minutes=analysis.duration)
            elif not analysis.is_all_day:
                end_time = start.value + timedelta(hours=1)

        ambiguities = list(analysis.ambiguities)
        if start.error:
            ambiguities.append(start.error)

        platform = (analysis.meeting_platform or "").strip().lower() or None
        if platform is not None and platform not in PLATFORMS:
            platform = "other"

        contact = next((m for m in window if m.direction == "RECEIVED"), None)
        return ExtractedMeetingData(
            title=analysis.title,
            description=analysis.description,
            start_time=start.value,
            end_time=end_time,
            raw_start_time=analysis.start_time,
            raw_end_time=analysis.end_time,
            duration=analysis.duration,
            is_all_day=analysis.is_all_day,
            location=analysis.location,
            meeting_link=analysis.meeting_link,
            meeting_platform=platform,
            organizer=analysis.organizer,
            attendees=analysis.attendees,
            suggested_by=contact.sender if contact else None,
            source_subject=window[0].subject,
            confidence=analysis.confidence,
            needs_time_confirmation=start.needs_confirmation or start.value is None,
            extracted_fields=analysis.extracted_fields,
            ambiguities=ambiguities,
            reasoning=analysis.reasoning,
            llm_model=self.inference.model,
            processing_time_ms=processing_ms,
        )
