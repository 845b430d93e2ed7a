"""Tests for mapping Gmail resources to stored messages, and for the body sanitizer."""

import base64
import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from meetwatch.mail_provider import GmailMessage, MessageMappingError, build_gmail_message, gmail_message_to_mail_message
from meetwatch.utils.body_sanitizer import PROMPT_PIPELINE, sanitize_email_body, truncate_body


def b64(text):
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


class TestGmailMapping(unittest.TestCase):
    def test_multipart_prefers_plain_text(self):
        msg = GmailMessage.model_validate({
            "id": "m1",
            "threadId": "t1",
            "internalDate": "1705312800000",
            "historyId": "99",
            "labelIds": ["INBOX"],
            "payload": {
                "mimeType": "multipart/mixed",
                "headers": [
                    {"name": "From", "value": "Alice Smith <Alice@Client.com>"},
                    {"name": "To", "value": "User <user@example.com>, bob@example.com"},
                    {"name": "Cc", "value": "carol@example.com"},
                    {"name": "Subject", "value": "Tuesday?"},
                ],
                "parts": [
                    {
                        "mimeType": "multipart/alternative",
                        "parts": [
                            {"mimeType": "text/plain", "body": {"data": b64("Does Tuesday work?")}},
                            {"mimeType": "text/html", "body": {"data": b64("<p>Does <b>Tuesday</b> work?</p>")}},
                        ],
                    },
                    {"mimeType": "text/plain", "filename": "notes.txt", "body": {"attachmentId": "att1"}},
                ],
            },
        })
        mapped = gmail_message_to_mail_message(msg)
        self.assertEqual(mapped.sender, "alice@client.com")
        self.assertEqual(mapped.sender_name, "Alice Smith")
        self.assertEqual(mapped.recipients, ["user@example.com", "bob@example.com", "carol@example.com"])
        self.assertEqual(mapped.body_text, "Does Tuesday work?")
        self.assertIn("<b>Tuesday</b>", mapped.body_html)
        self.assertEqual(mapped.received_at, datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc))
        self.assertEqual(mapped.history_id, "99")

    def test_html_only_body_is_rendered(self):
        msg = build_gmail_message(
            "m2", "t1", "alice@client.com", "user@example.com", "Hi",
            "<div>See you <b>Friday</b>&nbsp;at 3pm</div><script>x()</script>", html=True,
        )
        mapped = gmail_message_to_mail_message(msg)
        self.assertEqual(mapped.body_text, "See you Friday at 3pm")

    def test_missing_thread_or_sender(self):
        msg = build_gmail_message("m3", "t1", "", "user@example.com", "Hi", "body")
        with self.assertRaises(MessageMappingError):
            gmail_message_to_mail_message(msg)
        no_thread = build_gmail_message("m4", "t1", "a@b.com", "user@example.com", "Hi", "body")
        no_thread = no_thread.model_copy(update={"thread_id": ""})
        with self.assertRaises(MessageMappingError):
            gmail_message_to_mail_message(no_thread)


class TestBodySanitizer(unittest.TestCase):
    def test_storage_pipeline_keeps_quotes(self):
        text = "Hi there “friend”\r\n\r\n\r\n> quoted"
        self.assertEqual(sanitize_email_body(text), 'Hi there "friend"\n\n> quoted')

    def test_prompt_pipeline_strips_history_and_signature(self):
        text = (
            "CAUTION: This email originated from outside the organization.\n"
            "Tuesday at 2pm works for me.\n\n"
            "Best regards,\nAlice\n\n"
            "On Mon, Jan 15, 2024 at 9:00 AM User <user@example.com>\nwrote:\n"
            "> Can we meet Tuesday?"
        )
        self.assertEqual(sanitize_email_body(text, pipeline=PROMPT_PIPELINE), "Tuesday at 2pm works for me.")

    def test_truncate(self):
        self.assertEqual(truncate_body("abc", 5), "abc")
        self.assertEqual(truncate_body("abcdef", 3), "abc\n[truncated]")

    def test_empty(self):
        self.assertEqual(sanitize_email_body(""), "")


if __name__ == "__main__":
    unittest.main()
