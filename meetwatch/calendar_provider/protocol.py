"""Calendar provider protocol: turn an accepted suggestion into a calendar event."""

from typing import Protocol

from meetwatch.db.models.mailbox import Mailbox
from meetwatch.models.meeting import ExtractedMeetingData


class CalendarProvider(Protocol):
    async def create_event(self, mailbox: Mailbox, data: ExtractedMeetingData) -> str:
        """Create the event and return its provider id. Raises CalendarProviderError."""
        ...
