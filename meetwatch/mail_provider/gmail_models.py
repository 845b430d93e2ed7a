"""Pydantic models for the Gmail API shapes we consume, plus provider-neutral page types."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class MessagePartHeader(BaseModel):
    name: str
    value: str = ""


class MessagePartBody(BaseModel):
    size: int = 0
    data: Optional[str] = None  # base64url
    attachment_id: Optional[str] = Field(None, alias="attachmentId")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class MessagePart(BaseModel):
    part_id: Optional[str] = Field(None, alias="partId")
    mime_type: str = Field("", alias="mimeType")
    filename: Optional[str] = None
    headers: list[MessagePartHeader] = Field(default_factory=list)
    body: MessagePartBody = Field(default_factory=MessagePartBody)
    parts: list["MessagePart"] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class GmailMessage(BaseModel):
    """users.messages resource (format=full), the subset we read."""

    id: str
    thread_id: str = Field("", alias="threadId")
    label_ids: list[str] = Field(default_factory=list, alias="labelIds")
    snippet: str = ""
    history_id: Optional[str] = Field(None, alias="historyId")
    internal_date: Optional[str] = Field(None, alias="internalDate")  # ms since epoch, as string
    payload: MessagePart = Field(default_factory=MessagePart)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class ChangePage(BaseModel):
    """One page of changes since a cursor.

    page_cursor is the highest history record id in this page (safe to store once the
    page is applied); cursor is the mailbox's current position, meaningful on the last page.
    """

    message_ids: list[str] = Field(default_factory=list)
    page_cursor: Optional[str] = None
    next_page_token: Optional[str] = None
    cursor: Optional[str] = None


class MessagePage(BaseModel):
    message_ids: list[str] = Field(default_factory=list)
    next_page_token: Optional[str] = None


class WatchLease(BaseModel):
    """Result of (re)subscribing to push notifications."""

    cursor: Optional[str] = None
    lease_expires_at: datetime
