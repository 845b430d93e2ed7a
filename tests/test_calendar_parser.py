"""Tests for CalendarParser on realistic threads with a scripted model."""

import asyncio
import json
import sys
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from meetwatch.inference import InferenceApiError, InferenceClient
from meetwatch.meetings.parser import CalendarParser, build_thread_prompt
from meetwatch.models.email import ThreadMessage
from meetwatch.models.meeting import ThreadParseInput

USER = "user@example.com"
CONTACT = "alice@client.com"
T0 = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


class ScriptedAgent:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.prompts = []

    async def run(self, prompt):
        self.prompts.append(prompt)
        item = self.outcomes.pop(0)
        if isinstance(item, BaseException):
            raise item
        return SimpleNamespace(output=item)


def msg(direction, body, minutes=0, subject="Proposal review", message_id=None):
    return ThreadMessage(
        direction=direction,
        sender=USER if direction == "SENT" else CONTACT,
        subject=subject,
        body_text=body,
        received_at=T0 + timedelta(minutes=minutes),
        message_id=message_id,
    )


def request(thread, message_id="m-last"):
    return ThreadParseInput(message_id=message_id, thread_id="t1", thread=thread, user_email=USER)


def make_parser(outcomes, **kwargs):
    async def no_sleep(_):
        return None

    agent = ScriptedAgent(outcomes)
    client = InferenceClient(model="test:model", max_retries=0, agent=agent, sleep=no_sleep)
    return CalendarParser(client, **kwargs), agent


CONFIRMED = json.dumps({
    "isConfirmed": True,
    "hasMeeting": True,
    "reasoning": "User proposed Tuesday 2pm and the contact agreed.",
    "title": "Proposal review",
    "startTime": "Tuesday 2pm",
    "duration": 30,
    "meetingPlatform": "zoom",
    "confidence": 0.9,
    "extractedFields": ["title", "startTime", "duration"],
})


class TestCalendarParser(unittest.TestCase):
    def test_confirmed_short_reply(self):
        thread = [
            msg("SENT", "Can we meet Tuesday at 2pm to go over the proposal?"),
            msg("RECEIVED", "Sounds good!", minutes=60, subject="Re: Proposal review"),
        ]
        parser, agent = make_parser([CONFIRMED])
        outcome = asyncio.run(parser.parse_thread(request(thread)))

        self.assertTrue(outcome.success)
        self.assertTrue(outcome.is_confirmed)
        data = outcome.data
        self.assertEqual(data.start_time, datetime(2024, 1, 16, 14, 0, tzinfo=timezone.utc))
        self.assertEqual(data.end_time, datetime(2024, 1, 16, 14, 30, tzinfo=timezone.utc))
        self.assertFalse(data.needs_time_confirmation)
        self.assertEqual(data.suggested_by, CONTACT)
        self.assertEqual(data.source_subject, "Proposal review")
        self.assertEqual(data.meeting_platform, "zoom")
        self.assertEqual(data.llm_model, "test:model")
        self.assertEqual(data.raw_start_time, "Tuesday 2pm")

        prompt = agent.prompts[0]
        self.assertIn(f"[1] USER ({USER})", prompt)
        self.assertIn(f"[2] CONTACT ({CONTACT})", prompt)
        self.assertIn("Reference date: 2024-01-15T10:00:00+00:00", prompt)
        self.assertIn("Sounds good!", prompt)

    def test_counter_proposal_then_acceptance(self):
        thread = [
            msg("SENT", "Would Tuesday at 2pm work for a call?"),
            msg("RECEIVED", "Tuesday is busy, how about Wednesday at 3pm?", minutes=30),
            msg("SENT", "Yes, Wednesday 3pm works. See you then.", minutes=45),
        ]
        analysis = json.dumps({
            "isConfirmed": True,
            "title": "Call",
            "startTime": "Wednesday at 3pm",
            "confidence": 0.85,
            "meetingPlatform": "hangouts",
        })
        parser, _ = make_parser([analysis])
        outcome = asyncio.run(parser.parse_thread(request(thread)))
        self.assertTrue(outcome.is_confirmed)
        self.assertEqual(outcome.data.start_time, datetime(2024, 1, 17, 15, 0, tzinfo=timezone.utc))
        # No duration: default one hour
        self.assertEqual(outcome.data.end_time, datetime(2024, 1, 17, 16, 0, tzinfo=timezone.utc))
        self.assertEqual(outcome.data.meeting_platform, "other")
        self.assertEqual(outcome.data.suggested_by, CONTACT)

    def test_single_message_is_never_confirmed(self):
        parser, agent = make_parser([CONFIRMED])
        outcome = asyncio.run(parser.parse_thread(request([msg("RECEIVED", "Can we meet Tuesday at 2pm?")])))
        self.assertTrue(outcome.success)
        self.assertFalse(outcome.is_confirmed)
        self.assertEqual(agent.prompts, [])

    def test_empty_thread(self):
        parser, agent = make_parser([])
        outcome = asyncio.run(parser.parse_thread(request([])))
        self.assertTrue(outcome.success)
        self.assertFalse(outcome.is_confirmed)

    def test_prefilter_negative_skips_inference(self):
        thread = [
            msg("SENT", "Can we meet Tuesday at 2pm?"),
            msg("RECEIVED", "Thanks for meeting with me, here are my notes.", minutes=60),
        ]
        parser, agent = make_parser([CONFIRMED])
        outcome = asyncio.run(parser.parse_thread(request(thread)))
        self.assertTrue(outcome.success)
        self.assertTrue(outcome.skipped)
        self.assertEqual(outcome.detection.matched_patterns, ["negative_signal"])
        self.assertEqual(agent.prompts, [])

    def test_trigger_is_the_requested_message(self):
        thread = [
            msg("SENT", "Can we meet Tuesday at 2pm?", message_id="m1"),
            msg("RECEIVED", "Sounds good!", minutes=60, message_id="m2"),
            msg("RECEIVED", "Attached the slides.", minutes=90, message_id="m3"),
        ]
        parser, agent = make_parser([CONFIRMED])
        outcome = asyncio.run(parser.parse_thread(request(thread, message_id="m2")))
        self.assertFalse(outcome.skipped)
        self.assertEqual(len(agent.prompts), 1)

    def test_not_confirmed(self):
        thread = [
            msg("SENT", "Are you free next week for a call?"),
            msg("RECEIVED", "Let me check my calendar and get back to you.", minutes=60),
        ]
        parser, _ = make_parser([json.dumps({"isConfirmed": False, "reasoning": "No time agreed yet."})])
        outcome = asyncio.run(parser.parse_thread(request(thread)))
        self.assertTrue(outcome.success)
        self.assertFalse(outcome.is_confirmed)
        self.assertIsNone(outcome.data)
        self.assertEqual(outcome.reasoning, "No time agreed yet.")

    def test_unparseable_output_is_a_failure(self):
        thread = [msg("SENT", "Can we meet Tuesday at 2pm?"), msg("RECEIVED", "Sounds good!", minutes=60)]
        parser, _ = make_parser(["I think they agreed to meet."])
        outcome = asyncio.run(parser.parse_thread(request(thread)))
        self.assertFalse(outcome.success)
        self.assertIn("Failed to parse model output", outcome.error)

    def test_inference_error_is_a_failure(self):
        thread = [msg("SENT", "Can we meet Tuesday at 2pm?"), msg("RECEIVED", "Sounds good!", minutes=60)]
        parser, _ = make_parser([InferenceApiError("invalid api key", status_code=401)])
        outcome = asyncio.run(parser.parse_thread(request(thread)))
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.error, "Inference error: invalid api key")

    def test_unresolvable_start_needs_confirmation(self):
        thread = [msg("SENT", "Can we meet Tuesday at 2pm?"), msg("RECEIVED", "Sounds good!", minutes=60)]
        analysis = json.dumps({"isConfirmed": True, "startTime": "sometime soon", "confidence": 0.6})
        parser, _ = make_parser([analysis])
        outcome = asyncio.run(parser.parse_thread(request(thread)))
        self.assertTrue(outcome.is_confirmed)
        self.assertIsNone(outcome.data.start_time)
        self.assertIsNone(outcome.data.end_time)
        self.assertTrue(outcome.data.needs_time_confirmation)
        self.assertTrue(any("sometime soon" in a for a in outcome.data.ambiguities))

    def test_window_keeps_latest_messages(self):
        thread = [
            msg("SENT", "First message about the budget.", minutes=0),
            msg("SENT", "Can we meet Tuesday at 2pm?", minutes=10),
            msg("RECEIVED", "Sounds good!", minutes=20),
        ]
        parser, agent = make_parser([CONFIRMED], max_messages=2)
        asyncio.run(parser.parse_thread(request(thread)))
        self.assertIn("Total messages in thread: 2", agent.prompts[0])
        self.assertNotIn("budget", agent.prompts[0])


class TestBuildThreadPrompt(unittest.TestCase):
    def test_quoted_history_and_truncation(self):
        body = "Works for me.\n\nOn Mon, Jan 15, 2024 at 9:00 AM User <user@example.com> wrote:\n> Can we meet?"
        thread = [msg("SENT", "x" * 50), msg("RECEIVED", body, minutes=5)]
        prompt = build_thread_prompt(thread, USER, "Europe/Berlin", max_body_chars=20)
        self.assertIn("Works for me.", prompt)
        self.assertNotIn("> Can we meet?", prompt)
        self.assertIn("[truncated]", prompt)
        self.assertIn("User timezone: Europe/Berlin", prompt)


if __name__ == "__main__":
    unittest.main()
