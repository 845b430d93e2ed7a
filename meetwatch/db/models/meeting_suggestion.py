"""ORM model for meeting suggestions extracted from confirmed threads."""

from typing import Optional

from sqlalchemy import JSON, Float, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from meetwatch.db.base import Base, TimestampMixin


class MeetingSuggestion(Base, TimestampMixin):
    """At most one row per thread. PENDING moves once to ACCEPTED or DISMISSED."""

    __tablename__ = "meeting_suggestions"
    __table_args__ = (UniqueConstraint("mailbox_id", "thread_id", name="uq_suggestion_thread"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    mailbox_id: Mapped[int] = mapped_column(ForeignKey("mailboxes.id"), nullable=False, index=True)
    thread_id: Mapped[str] = mapped_column(String(256), nullable=False)
    message_id: Mapped[str] = mapped_column(String(256), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    extracted_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    calendar_event_id: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
