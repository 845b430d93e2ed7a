"""Watch lease manager: keeps each mailbox's push subscription alive.

Gmail watches expire after about seven days; the sweep renews anything expiring within the
renewal window and seeds the sync cursor for mailboxes that never synced.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from meetwatch.config import LEASE_RENEWAL_WINDOW_HOURS, PUBSUB_TOPIC
from meetwatch.db.models.mailbox import Mailbox
from meetwatch.db.repositories import mailbox_repo, sync_state_repo
from meetwatch.mail_provider.protocol import ProviderFactory
from meetwatch.models.sync import LeaseRenewalResult, LeaseSweepReport
from meetwatch.utils.logger import get_logger

logger = get_logger("meetwatch.webhook.subscription")


class LeaseManager:
    def __init__(
        self,
        provider_factory: ProviderFactory,
        topic: str = PUBSUB_TOPIC,
        renewal_window_hours: int = LEASE_RENEWAL_WINDOW_HOURS,
    ):
        self.provider_factory = provider_factory
        self.topic = topic
        self.renewal_window = timedelta(hours=renewal_window_hours)

    async def renew(self, mailbox: Mailbox) -> LeaseRenewalResult:
        """Re-subscribe one mailbox. Failures come back in the result, never raised."""
        try:
            if not self.topic:
                raise ValueError("PUBSUB_TOPIC is not configured")
            provider = await self.provider_factory(mailbox)
            lease = await provider.subscribe(self.topic)
            if not sync_state_repo.apply_lease(mailbox.id, lease.lease_expires_at, lease.cursor):
                raise ValueError(f"New lease expiry {lease.lease_expires_at.isoformat()} does not extend the current one")
        except Exception as e:
            logger.error("lease.renew.failed", mailbox_id=mailbox.id, email=mailbox.email_address, error=str(e))
            return LeaseRenewalResult(
                mailbox_id=mailbox.id,
                email=mailbox.email_address,
                success=False,
                error=str(e) or type(e).__name__,
            )
        logger.info(
            "lease.renew.ok",
            mailbox_id=mailbox.id,
            expires_at=lease.lease_expires_at.isoformat(),
        )
        return LeaseRenewalResult(
            mailbox_id=mailbox.id,
            email=mailbox.email_address,
            success=True,
            new_expiration=lease.lease_expires_at,
        )

    async def renew_due_leases(self, now: Optional[datetime] = None) -> LeaseSweepReport:
        """Renew every lease missing or expiring before now + window. One failure never blocks the others."""
        now = now or datetime.now(timezone.utc)
        due = sync_state_repo.list_due_leases(now + self.renewal_window)
        report = LeaseSweepReport(total=len(due))
        for state in due:
            mailbox = mailbox_repo.get_mailbox(state.mailbox_id)
            if mailbox is None:
                report.failed += 1
                report.results.append(
                    LeaseRenewalResult(
                        mailbox_id=state.mailbox_id,
                        email=state.email_address or "",
                        success=False,
                        error="Mailbox not found",
                    )
                )
                continue
            result = await self.renew(mailbox)
            report.results.append(result)
            if result.success:
                report.renewed += 1
            else:
                report.failed += 1
        logger.info("lease.sweep.completed", renewed=report.renewed, failed=report.failed, total=report.total)
        return report

    async def connect_mailbox(
        self,
        email_address: str,
        display_name: Optional[str] = None,
        timezone_name: Optional[str] = None,
    ) -> tuple[Mailbox, LeaseRenewalResult]:
        """Create the mailbox (and its sync state) if missing, then start its watch."""
        mailbox = mailbox_repo.ensure_mailbox(email_address, display_name=display_name, timezone=timezone_name)
        result = await self.renew(mailbox)
        return mailbox, result
