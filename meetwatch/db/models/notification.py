"""ORM model for the push notification dedup ledger."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from meetwatch.db.base import Base, utcnow


class NotificationRecord(Base):
    """One row per accepted push notification; purged after the redelivery window."""

    __tablename__ = "processed_notifications"

    notification_id: Mapped[str] = mapped_column(String(256), primary_key=True)
    mailbox_address: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    received_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, index=True)
