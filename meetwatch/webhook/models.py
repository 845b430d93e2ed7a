"""Pydantic models for Pub/Sub push envelopes carrying Gmail mailbox notifications."""

import base64
import binascii
import json
from datetime import datetime

from pydantic import BaseModel, Field, ValidationError, model_validator


class MalformedNotificationError(ValueError):
    pass


class MailboxNotification(BaseModel):
    """Decoded message.data: which mailbox changed and its new history id."""

    email_address: str = Field(..., alias="emailAddress", min_length=3)
    history_id: str = Field(..., alias="historyId")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def _accept_aliases(cls, data):
        if isinstance(data, dict):
            data = dict(data)
            if "emailAddress" not in data and "mailboxAddress" in data:
                data["emailAddress"] = data["mailboxAddress"]
            if isinstance(data.get("historyId"), int):
                data["historyId"] = str(data["historyId"])
        return data


class PushMessage(BaseModel):
    data: str
    message_id: str | None = Field(None, alias="messageId")
    publish_time: str | None = Field(None, alias="publishTime")
    attributes: dict[str, str] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class PushEnvelope(BaseModel):
    """Request body of a Pub/Sub push: {message: {data, messageId}, subscription}."""

    message: PushMessage
    subscription: str | None = None

    model_config = {"extra": "ignore"}

    def decode(self) -> MailboxNotification:
        """Decode message.data (standard or URL-safe base64 of JSON). Raises MalformedNotificationError."""
        raw = self.message.data.strip()
        padded = raw + "=" * (-len(raw) % 4)
        try:
            if "-" in raw or "_" in raw:
                decoded = base64.urlsafe_b64decode(padded)
            else:
                decoded = base64.b64decode(padded, validate=True)
            payload = json.loads(decoded.decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeDecodeError) as e:
            raise MalformedNotificationError(f"Undecodable message.data: {e}") from e
        if not isinstance(payload, dict):
            raise MalformedNotificationError("message.data is not a JSON object")
        try:
            return MailboxNotification.model_validate(payload)
        except ValidationError as e:
            raise MalformedNotificationError(f"Invalid notification payload: {e.errors()[0]['msg']}") from e

    def notification_id(self, notification: MailboxNotification) -> str:
        return self.message.message_id or f"{notification.email_address.lower()}:{notification.history_id}"


class SuggestionView(BaseModel):
    """API representation of a meeting suggestion row."""

    id: int
    mailbox_id: int
    thread_id: str
    message_id: str
    status: str
    confidence: float
    calendar_event_id: str | None = None
    extracted_data: dict
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SendRecordRequest(BaseModel):
    """Reported by the outbound send path after Gmail accepted a message the system sent."""

    mailbox_address: str = Field(..., min_length=3)
    provider_message_id: str = Field(..., min_length=1)
    thread_id: str | None = None
    recipient: str | None = None
    subject: str | None = None
    sent_at: datetime | None = None


class SendRecordView(BaseModel):
    id: int
    mailbox_id: int
    provider_message_id: str
    thread_id: str | None = None
    recipient: str | None = None
    subject: str | None = None
    sent_at: datetime | None = None

    model_config = {"from_attributes": True}
