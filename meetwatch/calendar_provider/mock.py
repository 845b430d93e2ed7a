"""Mock calendar provider: records events in memory."""

from meetwatch.calendar_provider.errors import CalendarProviderError
from meetwatch.db.models.mailbox import Mailbox
from meetwatch.models.meeting import ExtractedMeetingData
from meetwatch.utils.logger import get_logger

logger = get_logger("meetwatch.calendar_provider")


class MockCalendarProvider:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: list[tuple[int, ExtractedMeetingData]] = []

    async def create_event(self, mailbox: Mailbox, data: ExtractedMeetingData) -> str:
        if self.fail:
            raise CalendarProviderError("mock calendar failure", status_code=503)
        self.events.append((mailbox.id, data))
        event_id = f"evt_{len(self.events)}"
        logger.info("calendar_provider.mock_event", mailbox_id=mailbox.id, event_id=event_id, title=data.title)
        return event_id
