"""Accept / dismiss flow for meeting suggestions."""

from meetwatch.calendar_provider import CalendarProvider
from meetwatch.db.models.meeting_suggestion import MeetingSuggestion
from meetwatch.db.repositories import mailbox_repo, suggestion_repo
from meetwatch.db.repositories.suggestion_repo import (
    STATUS_ACCEPTED,
    STATUS_DISMISSED,
    STATUS_PENDING,
    SuggestionNotFoundError,
    SuggestionStateError,
)
from meetwatch.models.meeting import ExtractedMeetingData
from meetwatch.utils.logger import get_logger

logger = get_logger("meetwatch.suggestions")


class SuggestionNeedsTimeError(Exception):
    """Suggestion has no resolved start time; the user has to pick one before accepting."""


class SuggestionService:
    def __init__(self, calendar: CalendarProvider):
        self.calendar = calendar

    def _pending(self, suggestion_id: int) -> MeetingSuggestion:
        row = suggestion_repo.get_suggestion(suggestion_id)
        if row is None:
            raise SuggestionNotFoundError(f"Suggestion {suggestion_id} not found")
        if row.status != STATUS_PENDING:
            raise SuggestionStateError(suggestion_id, row.status)
        return row

    async def accept(self, suggestion_id: int) -> MeetingSuggestion:
        """Create the calendar event, then mark ACCEPTED. A calendar failure leaves the row PENDING."""
        row = self._pending(suggestion_id)
        data = ExtractedMeetingData.model_validate(row.extracted_data)
        if data.start_time is None:
            raise SuggestionNeedsTimeError(f"Suggestion {suggestion_id} needs a start time before it can be accepted")
        mailbox = mailbox_repo.get_mailbox(row.mailbox_id)
        if mailbox is None:
            raise SuggestionNotFoundError(f"Mailbox {row.mailbox_id} for suggestion {suggestion_id} not found")

        event_id = await self.calendar.create_event(mailbox, data)
        accepted = suggestion_repo.transition(suggestion_id, STATUS_ACCEPTED, calendar_event_id=event_id)
        logger.info("suggestions.accepted", suggestion_id=suggestion_id, event_id=event_id)
        return accepted

    def dismiss(self, suggestion_id: int) -> MeetingSuggestion:
        row = suggestion_repo.transition(suggestion_id, STATUS_DISMISSED)
        logger.info("suggestions.dismissed", suggestion_id=suggestion_id)
        return row
