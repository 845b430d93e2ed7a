"""Notification ledger repository: record-if-new and purge for at-least-once push delivery."""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError

from meetwatch.db import get_session
from meetwatch.db.models.notification import NotificationRecord


def record_if_new(notification_id: str, mailbox_address: Optional[str] = None) -> bool:
    """Insert the notification id. Returns False if it was already recorded."""
    try:
        with get_session() as session:
            session.add(NotificationRecord(notification_id=notification_id, mailbox_address=mailbox_address))
    except IntegrityError:
        return False
    return True


def purge_older_than(cutoff: datetime) -> int:
    """Delete ledger entries received before cutoff. Returns the number of rows removed."""
    with get_session() as session:
        result = session.execute(delete(NotificationRecord).where(NotificationRecord.received_at < cutoff))
        return result.rowcount or 0
