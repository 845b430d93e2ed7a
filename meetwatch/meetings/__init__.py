"""Meeting detection pipeline: pre-filter, calendar parser, extractor, suggestion actions."""

from meetwatch.meetings.dates import DateResolution, resolve_datetime
from meetwatch.meetings.detector import detect
from meetwatch.meetings.extractor import ExtractionWorkerPool, MeetingExtractor
from meetwatch.meetings.parser import THREAD_SYSTEM_PROMPT, CalendarParser, build_thread_prompt
from meetwatch.meetings.suggestions import SuggestionNeedsTimeError, SuggestionService

__all__ = [
    "THREAD_SYSTEM_PROMPT",
    "CalendarParser",
    "DateResolution",
    "ExtractionWorkerPool",
    "MeetingExtractor",
    "SuggestionNeedsTimeError",
    "SuggestionService",
    "build_thread_prompt",
    "detect",
    "resolve_datetime",
]
