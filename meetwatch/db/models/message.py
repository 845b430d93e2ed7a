"""ORM models for synced messages, their conversation aggregate, and outbound send records."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from meetwatch.db.base import Base, TimestampMixin

DIRECTION_SENT = "SENT"
DIRECTION_RECEIVED = "RECEIVED"


class OutboundSend(Base, TimestampMixin):
    """An email the system sent on the user's behalf. Marks its thread as system-initiated."""

    __tablename__ = "outbound_sends"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    mailbox_id: Mapped[int] = mapped_column(ForeignKey("mailboxes.id"), nullable=False, index=True)
    provider_message_id: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)
    thread_id: Mapped[Optional[str]] = mapped_column(String(256), nullable=True, index=True)
    recipient: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)


class Conversation(Base, TimestampMixin):
    """Per-thread aggregate; only touched when a genuinely new message is stored."""

    __tablename__ = "conversations"
    __table_args__ = (UniqueConstraint("mailbox_id", "thread_id", name="uq_conversation_thread"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    mailbox_id: Mapped[int] = mapped_column(ForeignKey("mailboxes.id"), nullable=False, index=True)
    thread_id: Mapped[str] = mapped_column(String(256), nullable=False)
    subject: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    last_message_at: Mapped[datetime] = mapped_column(nullable=False)
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Message(Base, TimestampMixin):
    """A provider message. Immutable once stored except for the send_record_id backfill."""

    __tablename__ = "messages"
    __table_args__ = (
        UniqueConstraint("mailbox_id", "message_id", name="uq_message_provider_id"),
        CheckConstraint("direction IN ('SENT', 'RECEIVED')", name="ck_message_direction"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    mailbox_id: Mapped[int] = mapped_column(ForeignKey("mailboxes.id"), nullable=False, index=True)
    message_id: Mapped[str] = mapped_column(String(256), nullable=False)
    thread_id: Mapped[str] = mapped_column(String(256), nullable=False, index=True)
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    sender: Mapped[str] = mapped_column(String(320), nullable=False)
    recipient_list: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    subject: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    body_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    received_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    send_record_id: Mapped[Optional[int]] = mapped_column(ForeignKey("outbound_sends.id"), nullable=True)
