"""Google Calendar v3 provider over httpx."""

from datetime import timedelta

import httpx

from meetwatch.calendar_provider.errors import CalendarProviderError
from meetwatch.config import CALENDAR_ID, GMAIL_HTTP_TIMEOUT_SECONDS
from meetwatch.db.models.mailbox import Mailbox
from meetwatch.mail_provider.factory import EnvTokenSource, TokenSource
from meetwatch.models.meeting import ExtractedMeetingData
from meetwatch.utils.logger import get_logger

logger = get_logger("meetwatch.calendar_provider")


def event_body(data: ExtractedMeetingData, timezone_name: str | None = None) -> dict:
    """Calendar v3 event resource for the extracted meeting."""
    if data.start_time is None:
        raise CalendarProviderError("Meeting has no start time")
    description = "\n\n".join(
        part for part in (data.description, data.meeting_link, f"Suggested by {data.suggested_by}" if data.suggested_by else None) if part
    )
    body: dict = {
        "summary": data.title or data.source_subject or "Meeting",
        "description": description or None,
        "location": data.location or data.meeting_link,
        "attendees": [{"email": a.email, "displayName": a.name} for a in data.attendees if a.email],
    }
    if data.is_all_day:
        end_day = (data.end_time or data.start_time + timedelta(days=1)).date()
        if end_day <= data.start_time.date():
            end_day = data.start_time.date() + timedelta(days=1)
        body["start"] = {"date": data.start_time.date().isoformat()}
        body["end"] = {"date": end_day.isoformat()}
    else:
        end = data.end_time or data.start_time + timedelta(hours=1)
        body["start"] = {"dateTime": data.start_time.isoformat()}
        body["end"] = {"dateTime": end.isoformat()}
        if timezone_name:
            body["start"]["timeZone"] = timezone_name
            body["end"]["timeZone"] = timezone_name
    return {k: v for k, v in body.items() if v not in (None, [])}


class GoogleCalendarProvider:
    BASE_URL = "https://www.googleapis.com/calendar/v3"

    def __init__(
        self,
        token_source: TokenSource | None = None,
        calendar_id: str = CALENDAR_ID,
        client: httpx.AsyncClient | None = None,
    ):
        self._tokens = token_source or EnvTokenSource()
        self._calendar_id = calendar_id
        self._client = client or httpx.AsyncClient(timeout=GMAIL_HTTP_TIMEOUT_SECONDS)

    async def create_event(self, mailbox: Mailbox, data: ExtractedMeetingData) -> str:
        token = await self._tokens.get_access_token(mailbox)
        url = f"{self.BASE_URL}/calendars/{self._calendar_id}/events"
        try:
            response = await self._client.post(
                url,
                json=event_body(data, mailbox.timezone),
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise CalendarProviderError(f"{type(e).__name__}: {e}") from e
        if response.status_code >= 400:
            raise CalendarProviderError(response.text[:500], status_code=response.status_code)
        event_id = response.json().get("id")
        if not event_id:
            raise CalendarProviderError("Calendar API returned no event id", status_code=response.status_code)
        logger.info("calendar_provider.event_created", mailbox_id=mailbox.id, event_id=event_id)
        return event_id

    async def aclose(self) -> None:
        await self._client.aclose()
