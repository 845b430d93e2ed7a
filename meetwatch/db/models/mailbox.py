"""ORM models for connected mailboxes and their per-mailbox sync cursor / watch lease."""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from meetwatch.db.base import Base, TimestampMixin


class Mailbox(Base, TimestampMixin):
    """A connected mail account. email_address is the primary owner lookup for push notifications."""

    __tablename__ = "mailboxes"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email_address: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)


class SyncState(Base, TimestampMixin):
    """Durable sync position (history cursor) and watch lease for one mailbox."""

    __tablename__ = "sync_states"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    mailbox_id: Mapped[int] = mapped_column(ForeignKey("mailboxes.id"), unique=True, nullable=False)
    # Fallback owner lookup when the mailbox row was created under another address
    email_address: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    cursor_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    lease_expires_at: Mapped[Optional[datetime]] = mapped_column(nullable=True, index=True)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
