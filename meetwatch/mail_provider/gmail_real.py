"""Gmail REST v1 mail provider (async, httpx)."""

import asyncio
from datetime import datetime, timezone

import httpx

from meetwatch.config import GMAIL_HTTP_TIMEOUT_SECONDS, SYNC_PAGE_SIZE
from meetwatch.mail_provider.errors import CursorExpiredError, MailProviderError
from meetwatch.mail_provider.gmail_models import ChangePage, GmailMessage, MessagePage, WatchLease
from meetwatch.utils.logger import get_logger

logger = get_logger("meetwatch.gmail_provider")

MAX_ATTEMPTS = 3


def _ms_to_datetime(value) -> datetime:
    return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)


class GmailProvider:
    """Gmail provider for one mailbox, authenticated with a bearer access token.

    Transient failures (network, 429, 5xx) are retried a couple of times with a short
    linear backoff before surfacing as MailProviderError.
    """

    BASE_URL = "https://gmail.googleapis.com/gmail/v1"

    def __init__(
        self,
        access_token: str,
        user_id: str = "me",
        client: httpx.AsyncClient | None = None,
        retry_delay: float = 0.5,
    ):
        self.user_id = user_id
        self._retry_delay = retry_delay
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=GMAIL_HTTP_TIMEOUT_SECONDS)
        self._headers = {"Authorization": f"Bearer {access_token}"}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json: dict | None = None,
    ) -> dict:
        url = f"{self.BASE_URL}/users/{self.user_id}/{path}"
        for attempt in range(MAX_ATTEMPTS):
            try:
                response = await self._client.request(method, url, params=params, json=json, headers=self._headers)
                if response.status_code >= 400:
                    raise self._api_error(response)
                return response.json() if response.content else {}
            except (httpx.TimeoutException, httpx.TransportError) as e:
                error = MailProviderError(f"{type(e).__name__}: {e}")
            except MailProviderError as e:
                error = e
            if attempt < MAX_ATTEMPTS - 1 and error.transient:
                logger.debug(
                    "gmail_provider.request.retry",
                    path=path,
                    attempt=attempt + 1,
                    status_code=error.status_code,
                )
                await asyncio.sleep(self._retry_delay * (attempt + 1))
                continue
            raise error
        raise MailProviderError("unreachable")

    @staticmethod
    def _api_error(response: httpx.Response) -> MailProviderError:
        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}
        info = payload.get("error", {}) if isinstance(payload, dict) else {}
        if isinstance(info, dict) and info:
            message = str(info.get("message", response.text))
            reason = str(info.get("status") or info.get("code") or "")
        else:
            message, reason = response.text, None
        return MailProviderError(message, status_code=response.status_code, error_code=reason)

    async def get_changes_since(self, cursor: str, page_token: str | None = None) -> ChangePage:
        params = {
            "startHistoryId": cursor,
            "historyTypes": "messageAdded",
            "maxResults": str(SYNC_PAGE_SIZE),
        }
        if page_token:
            params["pageToken"] = page_token
        try:
            data = await self._request("GET", "history", params=params)
        except MailProviderError as e:
            if e.status_code in (404, 410):
                raise CursorExpiredError(e.message, status_code=e.status_code, error_code=e.error_code) from e
            raise

        message_ids: list[str] = []
        page_cursor = None
        for record in data.get("history", []) or []:
            record_id = record.get("id")
            if record_id and (page_cursor is None or int(record_id) > int(page_cursor)):
                page_cursor = str(record_id)
            for added in record.get("messagesAdded", []) or []:
                message_id = (added.get("message") or {}).get("id")
                if message_id and message_id not in message_ids:
                    message_ids.append(message_id)

        return ChangePage(
            message_ids=message_ids,
            page_cursor=page_cursor,
            next_page_token=data.get("nextPageToken"),
            cursor=str(data["historyId"]) if data.get("historyId") else None,
        )

    async def get_message(self, message_id: str) -> GmailMessage | None:
        try:
            data = await self._request("GET", f"messages/{message_id}", params={"format": "full"})
        except MailProviderError as e:
            if e.status_code == 404:
                logger.debug("gmail_provider.get_message.not_found", message_id=message_id)
                return None
            raise
        return GmailMessage.model_validate(data)

    async def list_messages_since(self, after: datetime, page_token: str | None = None) -> MessagePage:
        params = {"q": f"after:{after:%Y/%m/%d}", "maxResults": str(SYNC_PAGE_SIZE)}
        if page_token:
            params["pageToken"] = page_token
        data = await self._request("GET", "messages", params=params)
        return MessagePage(
            message_ids=[m["id"] for m in data.get("messages", []) or [] if m.get("id")],
            next_page_token=data.get("nextPageToken"),
        )

    async def get_current_cursor(self) -> str:
        data = await self._request("GET", "profile")
        return str(data["historyId"])

    async def subscribe(self, topic: str) -> WatchLease:
        data = await self._request("POST", "watch", json={"topicName": topic, "labelIds": []})
        if not data.get("expiration"):
            raise MailProviderError("No expiration returned from watch")
        lease = WatchLease(
            cursor=str(data["historyId"]) if data.get("historyId") else None,
            lease_expires_at=_ms_to_datetime(data["expiration"]),
        )
        logger.info("gmail_provider.watch.ok", expires_at=lease.lease_expires_at.isoformat())
        return lease
