"""Calendar provider: protocol, Google Calendar implementation and mock."""

from meetwatch.calendar_provider.errors import CalendarProviderError
from meetwatch.calendar_provider.google import GoogleCalendarProvider, event_body
from meetwatch.calendar_provider.mock import MockCalendarProvider
from meetwatch.calendar_provider.protocol import CalendarProvider

__all__ = [
    "CalendarProvider",
    "CalendarProviderError",
    "GoogleCalendarProvider",
    "MockCalendarProvider",
    "event_body",
]
