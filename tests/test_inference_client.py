"""Tests for InferenceClient: retry/backoff policy, error classification, strict JSON parsing."""

import asyncio
import sys
import unittest
from pathlib import Path
from types import SimpleNamespace

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import httpx
from pydantic_ai.exceptions import ModelHTTPError

from meetwatch.inference import (
    InferenceApiError,
    InferenceClient,
    InferenceError,
    InferenceParseError,
    InferenceRateLimitError,
    InferenceTimeoutError,
    ParsedValue,
    ParseFailure,
    classify_error,
    parse_json_output,
)
from meetwatch.models.meeting import ThreadAnalysis


class ScriptedAgent:
    """Stands in for a pydantic-ai Agent: each run() pops the next output or raises it."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.prompts = []

    async def run(self, prompt):
        self.prompts.append(prompt)
        item = self.outcomes.pop(0)
        if isinstance(item, BaseException):
            raise item
        return SimpleNamespace(output=item)


def make_client(outcomes, max_retries=3):
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    agent = ScriptedAgent(outcomes)
    client = InferenceClient(model="test:model", max_retries=max_retries, base_delay=1.0, agent=agent, sleep=sleep)
    return client, agent, delays


class TestRetryPolicy(unittest.TestCase):
    def test_backoff_doubles(self):
        client, agent, delays = make_client([
            InferenceApiError("upstream", status_code=503),
            InferenceRateLimitError(),
            InferenceTimeoutError(),
            "ok",
        ])
        out = asyncio.run(client.complete("hi"))
        self.assertEqual(out, "ok")
        self.assertEqual(delays, [1.0, 2.0, 4.0])
        self.assertEqual(len(agent.prompts), 4)

    def test_gives_up_after_max_retries(self):
        client, agent, delays = make_client([InferenceApiError("down", status_code=500)] * 4)
        with self.assertRaises(InferenceApiError) as ctx:
            asyncio.run(client.complete("hi"))
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(len(agent.prompts), 4)
        self.assertEqual(delays, [1.0, 2.0, 4.0])

    def test_last_error_surfaces_as_is(self):
        last = InferenceRateLimitError("slow down")
        client, agent, delays = make_client([InferenceTimeoutError()] * 3 + [last])
        with self.assertRaises(InferenceRateLimitError) as ctx:
            asyncio.run(client.complete("hi"))
        self.assertIs(ctx.exception, last)
        self.assertEqual(delays, [1.0, 2.0, 4.0])

    def test_exhausted_provider_error_keeps_cause(self):
        last = ModelHTTPError(status_code=503, model_name="test:model")
        client, agent, delays = make_client([ModelHTTPError(status_code=503, model_name="test:model")] * 3 + [last])
        with self.assertRaises(InferenceApiError) as ctx:
            asyncio.run(client.complete("hi"))
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertIs(ctx.exception.__cause__, last)
        self.assertEqual(len(agent.prompts), 4)

    def test_client_error_fails_fast(self):
        client, agent, delays = make_client([InferenceApiError("bad request", status_code=400), "unused"])
        with self.assertRaises(InferenceApiError):
            asyncio.run(client.complete("hi"))
        self.assertEqual(len(agent.prompts), 1)
        self.assertEqual(delays, [])

    def test_unknown_exception_is_wrapped_and_not_retried(self):
        client, agent, delays = make_client([KeyError("boom"), "unused"])
        with self.assertRaises(InferenceError) as ctx:
            asyncio.run(client.complete("hi"))
        self.assertFalse(ctx.exception.retryable)
        self.assertIsInstance(ctx.exception.__cause__, KeyError)
        self.assertEqual(delays, [])

    def test_model_http_error_is_classified(self):
        client, agent, delays = make_client([ModelHTTPError(status_code=429, model_name="test:model"), "ok"])
        self.assertEqual(asyncio.run(client.complete("hi")), "ok")
        self.assertEqual(delays, [1.0])


class TestClassifyError(unittest.TestCase):
    def test_mapping(self):
        self.assertIsInstance(classify_error(asyncio.TimeoutError()), InferenceTimeoutError)
        self.assertIsInstance(classify_error(httpx.ReadTimeout("slow")), InferenceTimeoutError)
        self.assertIsInstance(
            classify_error(ModelHTTPError(status_code=429, model_name="m")), InferenceRateLimitError
        )
        server = classify_error(ModelHTTPError(status_code=502, model_name="m"))
        self.assertIsInstance(server, InferenceApiError)
        self.assertTrue(server.retryable)
        self.assertFalse(classify_error(ModelHTTPError(status_code=401, model_name="m")).retryable)
        self.assertTrue(classify_error(httpx.ConnectError("refused")).retryable)
        self.assertFalse(classify_error(ValueError("x")).retryable)


class TestJsonOutput(unittest.TestCase):
    def test_parse_json_output(self):
        parsed = parse_json_output('  {"isConfirmed": false, "reasoning": "no time"}\n', ThreadAnalysis)
        self.assertIsInstance(parsed, ParsedValue)
        self.assertFalse(parsed.value.is_confirmed)
        self.assertEqual(parsed.value.reasoning, "no time")

    def test_prose_is_a_failure(self):
        failed = parse_json_output('Sure! {"isConfirmed": true}', ThreadAnalysis)
        self.assertIsInstance(failed, ParseFailure)
        self.assertEqual(failed.raw_text, 'Sure! {"isConfirmed": true}')
        self.assertIsInstance(parse_json_output("", ThreadAnalysis), ParseFailure)

    def test_complete_json_raises_parse_error_with_raw_text(self):
        client, agent, delays = make_client(["not json at all"])
        with self.assertRaises(InferenceParseError) as ctx:
            asyncio.run(client.complete_json("hi", ThreadAnalysis))
        self.assertEqual(ctx.exception.raw_text, "not json at all")
        self.assertFalse(ctx.exception.retryable)
        self.assertEqual(len(agent.prompts), 1)

    def test_complete_json_validates(self):
        client, _, _ = make_client(['{"isConfirmed": true, "startTime": "Tuesday 2pm", "confidence": 0.8}'])
        analysis = asyncio.run(client.complete_json("hi", ThreadAnalysis))
        self.assertTrue(analysis.is_confirmed)
        self.assertEqual(analysis.start_time, "Tuesday 2pm")


if __name__ == "__main__":
    unittest.main()
