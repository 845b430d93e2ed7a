"""Notification dedup ledger for at-least-once push delivery.

Backed by the processed_notifications table: the primary key on notification_id makes
record_if_new an atomic insert-or-conflict across processes.
"""

from datetime import datetime, timedelta, timezone

from meetwatch.config import NOTIFICATION_RETENTION_HOURS
from meetwatch.db.repositories import notification_repo
from meetwatch.models.sync import PurgeReport
from meetwatch.utils.logger import get_logger

logger = get_logger("meetwatch.webhook.dedup_store")


class NotificationLedger:
    def __init__(self, retention_hours: int = NOTIFICATION_RETENTION_HOURS):
        self.retention = timedelta(hours=retention_hours)

    def record_if_new(self, notification_id: str, mailbox_address: str | None = None) -> bool:
        """True the first time an id is seen, False for redeliveries."""
        created = notification_repo.record_if_new(notification_id, mailbox_address)
        if not created:
            logger.info("dedup_store.duplicate", notification_id=notification_id)
        return created

    def purge(self, now: datetime | None = None) -> PurgeReport:
        """Delete entries older than the redelivery window."""
        cutoff = (now or datetime.now(timezone.utc)) - self.retention
        deleted = notification_repo.purge_older_than(cutoff)
        logger.info("dedup_store.purged", deleted=deleted, cutoff=cutoff.isoformat())
        return PurgeReport(deleted=deleted, cutoff_time=cutoff)
