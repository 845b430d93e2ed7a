"""Tests for SyncEngine (cursor rules, idempotent replays, full-sync fallback) and SyncCoordinator."""

import asyncio
import os
import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

os.environ["DATABASE_URL"] = "sqlite://"
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy.exc import OperationalError

from meetwatch.db import configure_db
from meetwatch.db.repositories import mailbox_repo, message_repo, sync_state_repo
from meetwatch.mail_provider import (
    MailProviderError,
    MockMailProvider,
    build_gmail_message,
    static_provider_factory,
)
from meetwatch.models.sync import SyncResult
from meetwatch.sync import SyncCoordinator, SyncEngine

USER = "user@example.com"


def gmail(message_id, thread_id="t1", sender="alice@client.com", minutes_ago=60, body="Hello"):
    return build_gmail_message(
        message_id=message_id,
        thread_id=thread_id,
        sender=sender,
        to=USER if sender != USER else "alice@client.com",
        subject="Project",
        body=body,
        received_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )


class BrokenHistoryProvider(MockMailProvider):
    async def get_changes_since(self, cursor, page_token=None):
        raise MailProviderError("backend error", status_code=500)


class PoisonedMessageProvider(MockMailProvider):
    """Raises a non-provider error (as a garbled 200 body would) for one message id."""

    def __init__(self, bad_id, **kwargs):
        super().__init__(**kwargs)
        self.bad_id = bad_id

    async def get_message(self, message_id):
        if message_id == self.bad_id:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return await super().get_message(message_id)


class SyncTestCase(unittest.TestCase):
    def setUp(self):
        configure_db("sqlite://")
        self.mailbox = mailbox_repo.ensure_mailbox(USER)
        self.provider = MockMailProvider(start_history_id=1000, page_size=100)
        self.jobs = []
        self.engine = SyncEngine(static_provider_factory(self.provider), enqueue_extraction=self._collect)

    async def _collect(self, job):
        self.jobs.append(job)

    def sync(self):
        return asyncio.run(self.engine.sync_mailbox(self.mailbox.id))

    def cursor(self):
        return sync_state_repo.get_cursor(self.mailbox.id)


class TestSyncEngine(SyncTestCase):
    def test_first_sync_is_full_and_seeds_cursor(self):
        self.provider.add_message(gmail("m1", minutes_ago=120))
        self.provider.add_message(gmail("m2", minutes_ago=60))
        result = self.sync()
        self.assertTrue(result.success)
        self.assertEqual(result.sync_type, "full")
        self.assertEqual(result.messages_processed, 2)
        self.assertEqual(self.cursor(), "1002")
        self.assertTrue(result.cursor_advanced)
        self.assertIsNotNone(sync_state_repo.get_sync_state(self.mailbox.id).last_synced_at)

    def test_full_sync_ignores_old_mail(self):
        self.provider.add_message(gmail("old", minutes_ago=60 * 24 * 30))
        self.provider.add_message(gmail("new", minutes_ago=10))
        result = self.sync()
        self.assertEqual(result.messages_processed, 1)
        self.assertIsNone(message_repo.get_message(self.mailbox.id, "old"))

    def test_incremental_after_full(self):
        self.provider.add_message(gmail("m1"))
        self.sync()
        self.provider.add_message(gmail("m2", minutes_ago=5))
        result = self.sync()
        self.assertEqual(result.sync_type, "incremental")
        self.assertEqual(result.messages_processed, 1)
        self.assertEqual(self.cursor(), "1002")

    def test_nothing_new_is_a_clean_no_op(self):
        self.provider.add_message(gmail("m1"))
        self.sync()
        result = self.sync()
        self.assertTrue(result.success)
        self.assertEqual(result.messages_processed, 0)
        self.assertFalse(result.cursor_advanced)
        self.assertEqual(message_repo.count_messages(self.mailbox.id), 1)

    def test_replayed_history_is_idempotent(self):
        sync_state_repo.advance_cursor(self.mailbox.id, "1000")
        message = gmail("m1")
        self.provider.add_message(message)
        self.provider.add_message(message)
        result = self.sync()
        self.assertEqual(result.messages_processed, 1)
        self.assertEqual(result.messages_skipped, 1)
        self.assertEqual(message_repo.get_conversation(self.mailbox.id, "t1").message_count, 1)

    def test_transient_failure_holds_cursor(self):
        sync_state_repo.advance_cursor(self.mailbox.id, "1000")
        self.provider.add_message(gmail("m1"))
        self.provider.add_message(gmail("m2"))
        self.provider.fail_message("m2", status_code=503)

        result = self.sync()
        self.assertFalse(result.success)
        self.assertEqual(result.messages_failed, 1)
        self.assertEqual(result.messages_processed, 1)
        self.assertEqual(self.cursor(), "1000")
        self.assertFalse(result.cursor_advanced)

        self.provider.clear_failures()
        retry = self.sync()
        self.assertTrue(retry.success)
        self.assertEqual(retry.messages_processed, 1)
        self.assertEqual(retry.messages_skipped, 1)
        self.assertEqual(self.cursor(), "1002")

    def test_unexpected_message_error_is_skipped(self):
        self.provider = PoisonedMessageProvider("m2", start_history_id=1000, page_size=100)
        self.engine = SyncEngine(static_provider_factory(self.provider))
        sync_state_repo.advance_cursor(self.mailbox.id, "1000")
        for message_id in ("m1", "m2", "m3"):
            self.provider.add_message(gmail(message_id))

        result = self.sync()
        self.assertTrue(result.success)
        self.assertEqual(result.messages_processed, 2)
        self.assertEqual(result.messages_skipped, 1)
        self.assertIsNotNone(message_repo.get_message(self.mailbox.id, "m3"))
        self.assertIsNone(message_repo.get_message(self.mailbox.id, "m2"))
        self.assertEqual(self.cursor(), "1003")

    def test_database_error_holds_cursor(self):
        sync_state_repo.advance_cursor(self.mailbox.id, "1000")
        self.provider.add_message(gmail("m1"))
        self.provider.add_message(gmail("m2"))
        real_upsert = message_repo.upsert_message

        def flaky_upsert(mailbox_id, message, direction, send_record_id=None):
            if message.message_id == "m2":
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return real_upsert(mailbox_id, message, direction, send_record_id=send_record_id)

        with patch.object(message_repo, "upsert_message", flaky_upsert):
            result = self.sync()
        self.assertFalse(result.success)
        self.assertEqual(result.messages_failed, 1)
        self.assertEqual(result.messages_processed, 1)
        self.assertEqual(self.cursor(), "1000")

        retry = self.sync()
        self.assertTrue(retry.success)
        self.assertEqual(self.cursor(), "1002")

    def test_cursor_advances_per_fully_applied_page(self):
        self.provider = MockMailProvider(start_history_id=1000, page_size=2)
        self.engine = SyncEngine(static_provider_factory(self.provider))
        sync_state_repo.advance_cursor(self.mailbox.id, "1000")
        for i in range(1, 6):
            self.provider.add_message(gmail(f"m{i}"))
        self.provider.fail_message("m4", status_code=None)

        result = self.sync()
        self.assertFalse(result.success)
        self.assertEqual(result.messages_processed, 4)
        self.assertEqual(self.cursor(), "1002")
        self.assertTrue(result.cursor_advanced)

    def test_gone_and_forbidden_messages_are_skipped(self):
        sync_state_repo.advance_cursor(self.mailbox.id, "1000")
        self.provider.add_message(gmail("m1"))
        self.provider.add_message(gmail("m2"))
        self.provider.add_message(gmail("m3"))
        self.provider.remove_message("m2")
        self.provider.fail_message("m3", status_code=403)
        result = self.sync()
        self.assertTrue(result.success)
        self.assertEqual(result.messages_processed, 1)
        self.assertEqual(result.messages_skipped, 2)
        self.assertEqual(self.cursor(), "1003")

    def test_expired_cursor_falls_back_to_full_sync(self):
        sync_state_repo.advance_cursor(self.mailbox.id, "1000")
        self.provider.add_message(gmail("m1"))
        self.provider.add_message(gmail("m2"))
        self.provider.expire_cursor()
        result = self.sync()
        self.assertTrue(result.success)
        self.assertEqual(result.sync_type, "full")
        self.assertEqual(result.messages_processed, 2)
        self.assertEqual(self.cursor(), "1002")

    def test_history_error_reports_failure(self):
        sync_state_repo.advance_cursor(self.mailbox.id, "1000")
        engine = SyncEngine(static_provider_factory(BrokenHistoryProvider()))
        result = asyncio.run(engine.sync_mailbox(self.mailbox.id))
        self.assertFalse(result.success)
        self.assertEqual(result.error, "backend error")
        self.assertEqual(self.cursor(), "1000")

    def test_provider_factory_error_reports_failure(self):
        async def no_token(mailbox):
            raise MailProviderError("No access token", status_code=401)

        result = asyncio.run(SyncEngine(no_token).sync_mailbox(self.mailbox.id))
        self.assertFalse(result.success)
        self.assertEqual(result.error, "No access token")

    def test_unknown_mailbox(self):
        result = asyncio.run(self.engine.sync_mailbox(999))
        self.assertFalse(result.success)
        self.assertEqual(result.error, "Unknown mailbox")


class TestExtractionJobs(SyncTestCase):
    def test_jobs_only_for_system_threads(self):
        sync_state_repo.advance_cursor(self.mailbox.id, "1000")
        # t1: system send recorded up front, two replies; newest reply triggers
        message_repo.record_send(self.mailbox.id, "s1", thread_id="t1")
        self.provider.add_message(gmail("r1", thread_id="t1", minutes_ago=30))
        self.provider.add_message(gmail("r2", thread_id="t1", minutes_ago=10))
        # t2: inbound only
        self.provider.add_message(gmail("r3", thread_id="t2", minutes_ago=10))
        # t3: the system's own message arrives through sync and links to its send record
        message_repo.record_send(self.mailbox.id, "s3")
        self.provider.add_message(gmail("s3", thread_id="t3", sender=USER, minutes_ago=20))
        self.provider.add_message(gmail("r4", thread_id="t3", minutes_ago=5))

        result = self.sync()
        self.assertTrue(result.success)
        self.assertEqual(result.extraction_jobs, 2)
        self.assertEqual({(j.thread_id, j.message_id) for j in self.jobs}, {("t1", "r2"), ("t3", "r4")})
        self.assertEqual(message_repo.get_message(self.mailbox.id, "s3").direction, "SENT")

    def test_replayed_messages_do_not_enqueue(self):
        message_repo.record_send(self.mailbox.id, "s1", thread_id="t1")
        self.provider.add_message(gmail("r1", thread_id="t1"))
        self.sync()
        self.assertEqual(len(self.jobs), 1)
        self.sync()
        self.assertEqual(len(self.jobs), 1)


class CountingEngine:
    def __init__(self):
        self.calls = []

    async def sync_mailbox(self, mailbox_id):
        self.calls.append(mailbox_id)
        await asyncio.sleep(0.01)
        return SyncResult(mailbox_id=mailbox_id, success=True)


class TestSyncCoordinator(unittest.TestCase):
    def test_burst_coalesces_into_one_rerun(self):
        engine = CountingEngine()
        coordinator = SyncCoordinator(engine)

        async def run():
            first = asyncio.create_task(coordinator.request_sync(1))
            await asyncio.sleep(0)
            self.assertTrue(coordinator.is_running(1))
            coalesced = [await coordinator.request_sync(1) for _ in range(3)]
            other = await coordinator.request_sync(2)
            result = await first
            return coalesced, other, result

        coalesced, other, result = asyncio.run(run())
        self.assertEqual(coalesced, [None, None, None])
        self.assertTrue(other.success)
        self.assertTrue(result.success)
        self.assertEqual(engine.calls.count(1), 2)
        self.assertEqual(engine.calls.count(2), 1)
        self.assertFalse(coordinator.is_running(1))

    def test_sequential_requests_each_run(self):
        engine = CountingEngine()
        coordinator = SyncCoordinator(engine)

        async def run():
            await coordinator.request_sync(1)
            await coordinator.request_sync(1)

        asyncio.run(run())
        self.assertEqual(engine.calls, [1, 1])


if __name__ == "__main__":
    unittest.main()
