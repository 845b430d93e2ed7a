"""Inference client, error taxonomy and tagged parse results."""

from meetwatch.inference.client import InferenceClient, classify_error
from meetwatch.inference.errors import (
    InferenceApiError,
    InferenceError,
    InferenceParseError,
    InferenceRateLimitError,
    InferenceTimeoutError,
)
from meetwatch.inference.result import ParsedValue, ParseFailure, parse_json_output

__all__ = [
    "InferenceApiError",
    "InferenceClient",
    "InferenceError",
    "InferenceParseError",
    "InferenceRateLimitError",
    "InferenceTimeoutError",
    "ParseFailure",
    "ParsedValue",
    "classify_error",
    "parse_json_output",
]
