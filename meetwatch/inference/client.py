"""Async inference client over pydantic-ai with timeout, error classification and exponential backoff."""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from pydantic_ai import Agent
from pydantic_ai.exceptions import ModelHTTPError

from meetwatch.config import (
    INFERENCE_MAX_RETRIES,
    INFERENCE_MAX_TOKENS,
    INFERENCE_MODEL,
    INFERENCE_RETRY_BASE_DELAY,
    INFERENCE_TEMPERATURE,
    INFERENCE_TIMEOUT_SECONDS,
)
from meetwatch.inference.errors import (
    InferenceApiError,
    InferenceError,
    InferenceParseError,
    InferenceRateLimitError,
    InferenceTimeoutError,
)
from meetwatch.inference.result import ParseFailure, parse_json_output
from meetwatch.utils.logger import get_logger

logger = get_logger("meetwatch.inference")

T = TypeVar("T")


def classify_error(exc: BaseException) -> InferenceError:
    """Map provider/transport exceptions onto the InferenceError taxonomy."""
    if isinstance(exc, InferenceError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return InferenceTimeoutError(f"Inference request timed out: {exc}")
    if isinstance(exc, ModelHTTPError):
        if exc.status_code == 429:
            return InferenceRateLimitError(str(exc))
        return InferenceApiError(str(exc), status_code=exc.status_code)
    if isinstance(exc, httpx.TransportError):
        return InferenceApiError(f"{type(exc).__name__}: {exc}")
    return InferenceError(f"{type(exc).__name__}: {exc}", retryable=False)


class InferenceClient:
    """One per process; agents are built lazily and cached per system prompt.

    Pass agent= to run every call through a ready-made agent (anything with an async
    run(prompt) whose result has .output). sleep is injectable so backoff can be observed.
    """

    def __init__(
        self,
        model: str = INFERENCE_MODEL,
        temperature: float = INFERENCE_TEMPERATURE,
        max_tokens: int = INFERENCE_MAX_TOKENS,
        timeout: float = INFERENCE_TIMEOUT_SECONDS,
        max_retries: int = INFERENCE_MAX_RETRIES,
        base_delay: float = INFERENCE_RETRY_BASE_DELAY,
        agent: Any = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._agent = agent
        self._agents: dict[str | None, Agent] = {}
        self._sleep = sleep

    def _get_agent(self, system_prompt: str | None):
        if self._agent is not None:
            return self._agent
        if system_prompt not in self._agents:
            self._agents[system_prompt] = Agent(
                self.model,
                output_type=str,
                system_prompt=system_prompt or (),
                retries=0,
                model_settings={"temperature": self.temperature, "max_tokens": self.max_tokens},
                defer_model_check=True,
            )
        return self._agents[system_prompt]

    async def _run_once(self, prompt: str, system_prompt: str | None) -> str:
        agent = self._get_agent(system_prompt)
        result = await asyncio.wait_for(agent.run(prompt), timeout=self.timeout)
        output = result.output
        return output if isinstance(output, str) else str(output)

    async def complete(self, prompt: str, system_prompt: str | None = None) -> str:
        """Run the prompt, retrying retryable failures with delays base*2**attempt (1s, 2s, 4s)."""
        for attempt in range(self.max_retries + 1):
            try:
                return await self._run_once(prompt, system_prompt)
            except Exception as exc:
                error = classify_error(exc)
                if not error.retryable or attempt >= self.max_retries:
                    logger.error(
                        "inference.request.failed",
                        model=self.model,
                        attempts=attempt + 1,
                        error=error.message,
                        status_code=error.status_code,
                    )
                    if error is exc:
                        raise
                    raise error from exc
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    "inference.request.retry",
                    model=self.model,
                    attempt=attempt + 1,
                    max_attempts=self.max_retries + 1,
                    delay=delay,
                    error_type=type(error).__name__,
                )
                await self._sleep(delay)
        raise InferenceError("retry loop exited without a result")

    async def complete_json(self, prompt: str, output_type: type[T], system_prompt: str | None = None) -> T:
        """complete() then strict JSON validation. Raises InferenceParseError with the raw text."""
        raw = await self.complete(prompt, system_prompt=system_prompt)
        parsed = parse_json_output(raw, output_type)
        if isinstance(parsed, ParseFailure):
            logger.warning("inference.parse.failed", model=self.model, error=parsed.error[:300])
            raise InferenceParseError(parsed.raw_text, message=f"Failed to parse model output: {parsed.error}")
        return parsed.value
