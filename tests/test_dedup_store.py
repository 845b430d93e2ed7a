"""Tests for the notification ledger and Pub/Sub envelope decoding."""

import base64
import json
import os
import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

os.environ["DATABASE_URL"] = "sqlite://"
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from meetwatch.db import configure_db
from meetwatch.webhook.dedup_store import NotificationLedger
from meetwatch.webhook.models import MalformedNotificationError, PushEnvelope


def envelope(payload, message_id="pubsub-1", urlsafe=False):
    raw = json.dumps(payload).encode("utf-8")
    data = (base64.urlsafe_b64encode(raw) if urlsafe else base64.b64encode(raw)).decode("ascii")
    return PushEnvelope.model_validate({"message": {"data": data, "messageId": message_id}, "subscription": "s"})


class TestNotificationLedger(unittest.TestCase):
    def setUp(self):
        configure_db("sqlite://")

    def test_record_if_new(self):
        ledger = NotificationLedger(retention_hours=24)
        self.assertTrue(ledger.record_if_new("n1", "user@example.com"))
        self.assertFalse(ledger.record_if_new("n1", "user@example.com"))
        self.assertTrue(ledger.record_if_new("n2"))

    def test_purge_respects_retention(self):
        ledger = NotificationLedger(retention_hours=24)
        ledger.record_if_new("n1")
        kept = ledger.purge()
        self.assertEqual(kept.deleted, 0)
        later = datetime.now(timezone.utc) + timedelta(hours=25)
        report = ledger.purge(now=later)
        self.assertEqual(report.deleted, 1)
        self.assertEqual(report.cutoff_time, later - timedelta(hours=24))
        self.assertTrue(ledger.record_if_new("n1"))


class TestPushEnvelope(unittest.TestCase):
    def test_decode(self):
        env = envelope({"emailAddress": "user@example.com", "historyId": 12345})
        notification = env.decode()
        self.assertEqual(notification.email_address, "user@example.com")
        self.assertEqual(notification.history_id, "12345")
        self.assertEqual(env.notification_id(notification), "pubsub-1")

    def test_urlsafe_and_alias(self):
        env = envelope({"mailboxAddress": "user@example.com", "historyId": "9" * 40}, urlsafe=True)
        self.assertEqual(env.decode().email_address, "user@example.com")

    def test_fallback_notification_id(self):
        env = envelope({"emailAddress": "User@Example.com", "historyId": "77"}, message_id=None)
        self.assertEqual(env.notification_id(env.decode()), "user@example.com:77")

    def test_malformed(self):
        bad_base64 = PushEnvelope.model_validate({"message": {"data": "!!!not-base64!!!"}})
        with self.assertRaises(MalformedNotificationError):
            bad_base64.decode()
        with self.assertRaises(MalformedNotificationError):
            envelope(["not", "an", "object"]).decode()
        with self.assertRaises(MalformedNotificationError):
            envelope({"historyId": "1"}).decode()
        not_json = PushEnvelope.model_validate({"message": {"data": base64.b64encode(b"hello").decode()}})
        with self.assertRaises(MalformedNotificationError):
            not_json.decode()


if __name__ == "__main__":
    unittest.main()
