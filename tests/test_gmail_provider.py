"""Tests for GmailProvider against a mocked Gmail REST API (httpx.MockTransport)."""

import asyncio
import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import httpx

from meetwatch.mail_provider import CursorExpiredError, GmailProvider, MailProviderError


def provider_for(handler):
    calls = []

    def record(request):
        calls.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(record))
    return GmailProvider("token-1", client=client, retry_delay=0), calls


class TestGmailProvider(unittest.TestCase):
    def test_history_page(self):
        def handler(request):
            self.assertEqual(request.url.path, "/gmail/v1/users/me/history")
            self.assertEqual(request.url.params["startHistoryId"], "100")
            self.assertEqual(request.headers["authorization"], "Bearer token-1")
            return httpx.Response(200, json={
                "history": [
                    {"id": "101", "messagesAdded": [{"message": {"id": "a"}}]},
                    {"id": "103", "messagesAdded": [{"message": {"id": "b"}}, {"message": {"id": "a"}}]},
                ],
                "nextPageToken": "p2",
                "historyId": "110",
            })

        provider, _ = provider_for(handler)
        page = asyncio.run(provider.get_changes_since("100"))
        self.assertEqual(page.message_ids, ["a", "b"])
        self.assertEqual(page.page_cursor, "103")
        self.assertEqual(page.next_page_token, "p2")
        self.assertEqual(page.cursor, "110")

    def test_expired_cursor(self):
        provider, _ = provider_for(lambda r: httpx.Response(404, json={"error": {"code": 404, "message": "Requested entity was not found."}}))
        with self.assertRaises(CursorExpiredError) as ctx:
            asyncio.run(provider.get_changes_since("1"))
        self.assertEqual(ctx.exception.status_code, 404)

    def test_transient_errors_are_retried(self):
        responses = [httpx.Response(503, text="busy"), httpx.Response(200, json={"emailAddress": "u@x.com", "historyId": "42"})]
        provider, calls = provider_for(lambda r: responses.pop(0))
        self.assertEqual(asyncio.run(provider.get_current_cursor()), "42")
        self.assertEqual(len(calls), 2)

    def test_permanent_errors_are_not_retried(self):
        provider, calls = provider_for(
            lambda r: httpx.Response(403, json={"error": {"message": "Insufficient Permission", "status": "PERMISSION_DENIED"}})
        )
        with self.assertRaises(MailProviderError) as ctx:
            asyncio.run(provider.get_current_cursor())
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(ctx.exception.error_code, "PERMISSION_DENIED")
        self.assertFalse(ctx.exception.transient)
        self.assertEqual(len(calls), 1)

    def test_missing_message_is_none(self):
        provider, _ = provider_for(lambda r: httpx.Response(404, json={"error": {"message": "Not Found"}}))
        self.assertIsNone(asyncio.run(provider.get_message("gone")))

    def test_list_messages_since(self):
        def handler(request):
            self.assertEqual(request.url.params["q"], "after:2024/01/08")
            return httpx.Response(200, json={"messages": [{"id": "m2", "threadId": "t"}, {"id": "m1", "threadId": "t"}]})

        provider, _ = provider_for(handler)
        page = asyncio.run(provider.list_messages_since(datetime(2024, 1, 8, tzinfo=timezone.utc)))
        self.assertEqual(page.message_ids, ["m2", "m1"])
        self.assertIsNone(page.next_page_token)

    def test_watch(self):
        def handler(request):
            self.assertEqual(request.method, "POST")
            self.assertEqual(request.url.path, "/gmail/v1/users/me/watch")
            return httpx.Response(200, json={"historyId": "500", "expiration": "1705924800000"})

        provider, _ = provider_for(handler)
        lease = asyncio.run(provider.subscribe("projects/p/topics/t"))
        self.assertEqual(lease.cursor, "500")
        self.assertEqual(lease.lease_expires_at, datetime(2024, 1, 22, 12, 0, tzinfo=timezone.utc))


if __name__ == "__main__":
    unittest.main()
