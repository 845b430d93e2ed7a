"""Meeting detection, thread analysis and extraction models."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from meetwatch.models.email import ThreadMessage

ConfidenceTier = Literal["low", "medium", "high"]
MeetingPlatform = Literal["zoom", "google-meet", "teams", "skype", "webex", "phone", "in-person", "other"]


class MeetingDetectionResult(BaseModel):
    """Pre-filter verdict (never persisted)."""

    has_potential_meeting: bool
    confidence_tier: ConfidenceTier
    score: float = 0.0
    matched_patterns: list[str] = Field(default_factory=list)


class Attendee(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class ThreadAnalysis(BaseModel):
    """Structured output expected from the model for a thread (camelCase JSON keys)."""

    is_confirmed: bool = Field(..., alias="isConfirmed")
    has_meeting: bool = Field(False, alias="hasMeeting")
    reasoning: str = ""
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[str] = Field(None, alias="startTime")
    end_time: Optional[str] = Field(None, alias="endTime")
    duration: Optional[int] = None
    is_all_day: bool = Field(False, alias="isAllDay")
    location: Optional[str] = None
    meeting_link: Optional[str] = Field(None, alias="meetingLink")
    meeting_platform: Optional[str] = Field(None, alias="meetingPlatform")
    organizer: Optional[str] = None
    attendees: list[Attendee] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    extracted_fields: list[str] = Field(default_factory=list, alias="extractedFields")
    ambiguities: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class ExtractedMeetingData(BaseModel):
    """Resolved meeting details stored on a suggestion."""

    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    raw_start_time: Optional[str] = None
    raw_end_time: Optional[str] = None
    duration: Optional[int] = None
    is_all_day: bool = False
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    meeting_platform: Optional[MeetingPlatform] = None
    organizer: Optional[str] = None
    attendees: list[Attendee] = Field(default_factory=list)
    suggested_by: Optional[str] = None
    source_subject: Optional[str] = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    needs_time_confirmation: bool = False
    extracted_fields: list[str] = Field(default_factory=list)
    ambiguities: list[str] = Field(default_factory=list)
    reasoning: Optional[str] = None
    llm_model: Optional[str] = None
    processing_time_ms: int = 0


class ThreadParseInput(BaseModel):
    """Everything the calendar parser needs about one thread."""

    message_id: str
    thread_id: str
    thread: list[ThreadMessage]
    user_email: str
    user_timezone: Optional[str] = None


class ThreadParseOutcome(BaseModel):
    success: bool
    is_confirmed: bool = False
    skipped: bool = False
    data: Optional[ExtractedMeetingData] = None
    detection: Optional[MeetingDetectionResult] = None
    reasoning: Optional[str] = None
    error: Optional[str] = None


class ExtractionJob(BaseModel):
    """A RECEIVED message in a system-initiated thread, queued for meeting extraction."""

    mailbox_id: int
    thread_id: str
    message_id: str


class ExtractionResult(BaseModel):
    extracted: bool
    thread_id: str
    suggestion_id: Optional[int] = None
    confidence: Optional[float] = None
    skipped_reason: Optional[str] = None
    error: Optional[str] = None


class BatchExtractionReport(BaseModel):
    total: int = 0
    extracted: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[ExtractionResult] = Field(default_factory=list)
