"""Tests for LeaseManager: watch renewal, cursor seeding, per-mailbox isolation."""

import asyncio
import os
import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

os.environ["DATABASE_URL"] = "sqlite://"
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from meetwatch.db import configure_db
from meetwatch.db.repositories import mailbox_repo, sync_state_repo
from meetwatch.mail_provider import MailProviderError, MockMailProvider
from meetwatch.webhook.subscription import LeaseManager

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class PerMailboxFactory:
    """Provider factory handing each mailbox its own mock."""

    def __init__(self):
        self.providers = {}

    def provider_for(self, address):
        return self.providers.setdefault(address, MockMailProvider(start_history_id=5000))

    async def __call__(self, mailbox):
        return self.provider_for(mailbox.email_address)


class TestLeaseManager(unittest.TestCase):
    def setUp(self):
        configure_db("sqlite://")
        self.factory = PerMailboxFactory()
        self.manager = LeaseManager(self.factory, topic="projects/p/topics/mail", renewal_window_hours=24)

    def test_connect_seeds_cursor_and_lease(self):
        expires = NOW + timedelta(days=7)
        self.factory.provider_for("user@example.com").lease_expiration = expires
        mailbox, result = asyncio.run(self.manager.connect_mailbox("User@example.com", timezone_name="Europe/Berlin"))
        self.assertTrue(result.success)
        self.assertEqual(result.new_expiration, expires)
        self.assertEqual(mailbox.timezone, "Europe/Berlin")
        state = sync_state_repo.get_sync_state(mailbox.id)
        self.assertEqual(state.cursor_token, "5000")
        self.assertEqual(state.lease_expires_at, expires)
        self.assertEqual(self.factory.provider_for("user@example.com").subscribe_calls, ["projects/p/topics/mail"])

    def test_sweep_renews_only_due_leases(self):
        due = mailbox_repo.ensure_mailbox("due@example.com")
        fresh = mailbox_repo.ensure_mailbox("fresh@example.com")
        sync_state_repo.apply_lease(due.id, NOW + timedelta(hours=3), None)
        sync_state_repo.apply_lease(fresh.id, NOW + timedelta(days=5), None)
        self.factory.provider_for("due@example.com").lease_expiration = NOW + timedelta(days=7)

        report = asyncio.run(self.manager.renew_due_leases(now=NOW))
        self.assertEqual((report.total, report.renewed, report.failed), (1, 1, 0))
        self.assertEqual(report.results[0].email, "due@example.com")
        self.assertEqual(self.factory.provider_for("fresh@example.com").subscribe_calls, [])

    def test_one_failure_does_not_block_others(self):
        bad = mailbox_repo.ensure_mailbox("bad@example.com")
        good = mailbox_repo.ensure_mailbox("good@example.com")
        self.factory.provider_for("bad@example.com").subscribe_error = MailProviderError("forbidden", status_code=403)
        self.factory.provider_for("good@example.com").lease_expiration = NOW + timedelta(days=7)

        report = asyncio.run(self.manager.renew_due_leases(now=NOW))
        self.assertEqual((report.total, report.renewed, report.failed), (2, 1, 1))
        by_email = {r.email: r for r in report.results}
        self.assertFalse(by_email["bad@example.com"].success)
        self.assertIn("forbidden", by_email["bad@example.com"].error)
        self.assertIsNone(sync_state_repo.get_sync_state(bad.id).lease_expires_at)
        self.assertEqual(sync_state_repo.get_sync_state(good.id).lease_expires_at, NOW + timedelta(days=7))

    def test_lease_that_does_not_extend_is_a_failure(self):
        mailbox = mailbox_repo.ensure_mailbox("user@example.com")
        sync_state_repo.apply_lease(mailbox.id, NOW + timedelta(hours=5), "10")
        self.factory.provider_for("user@example.com").lease_expiration = NOW + timedelta(hours=4)
        result = asyncio.run(self.manager.renew(mailbox))
        self.assertFalse(result.success)
        self.assertEqual(sync_state_repo.get_sync_state(mailbox.id).lease_expires_at, NOW + timedelta(hours=5))

    def test_missing_topic(self):
        mailbox = mailbox_repo.ensure_mailbox("user@example.com")
        result = asyncio.run(LeaseManager(self.factory, topic="").renew(mailbox))
        self.assertFalse(result.success)
        self.assertIn("PUBSUB_TOPIC", result.error)


if __name__ == "__main__":
    unittest.main()
