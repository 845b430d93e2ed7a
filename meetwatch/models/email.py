"""Thread message model (one stored message as seen by the calendar parser)."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

Direction = Literal["SENT", "RECEIVED"]


class ThreadMessage(BaseModel):
    """Single message in a conversation thread (oldest to newest)."""

    direction: Direction
    sender: str
    subject: Optional[str] = None
    body_text: Optional[str] = None
    received_at: datetime
    message_id: Optional[str] = None


class MailMessage(BaseModel):
    """Provider message mapped to the fields we store (body already converted to text)."""

    message_id: str
    thread_id: str
    sender: str
    sender_name: Optional[str] = None
    recipients: list[str] = []
    subject: Optional[str] = None
    body_text: Optional[str] = None
    body_html: Optional[str] = None
    received_at: datetime
    history_id: Optional[str] = None
    label_ids: list[str] = []
