"""Pydantic models for mailbox sync and meeting extraction."""

from meetwatch.models.email import MailMessage, ThreadMessage
from meetwatch.models.meeting import (
    Attendee,
    BatchExtractionReport,
    ExtractedMeetingData,
    ExtractionJob,
    ExtractionResult,
    MeetingDetectionResult,
    ThreadAnalysis,
    ThreadParseInput,
    ThreadParseOutcome,
)
from meetwatch.models.sync import (
    LeaseRenewalResult,
    LeaseSweepReport,
    PurgeReport,
    SyncResult,
)

__all__ = [
    "MailMessage",
    "ThreadMessage",
    "Attendee",
    "MeetingDetectionResult",
    "ThreadAnalysis",
    "ExtractedMeetingData",
    "ThreadParseInput",
    "ThreadParseOutcome",
    "ExtractionJob",
    "ExtractionResult",
    "BatchExtractionReport",
    "SyncResult",
    "LeaseRenewalResult",
    "LeaseSweepReport",
    "PurgeReport",
]
