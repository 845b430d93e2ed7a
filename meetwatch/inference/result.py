"""Tagged result of parsing model output: ParsedValue or ParseFailure, never an exception."""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from pydantic import TypeAdapter, ValidationError

T = TypeVar("T")


@dataclass(frozen=True)
class ParsedValue(Generic[T]):
    value: T


@dataclass(frozen=True)
class ParseFailure:
    error: str
    raw_text: str


ParseResult = Union[ParsedValue[T], ParseFailure]


def parse_json_output(raw: str | None, output_type: type[T]) -> "ParsedValue[T] | ParseFailure":
    """Strictly parse raw model text as JSON and validate it against output_type.

    No markdown or prose stripping: the model is asked for a bare JSON object, anything
    else is a failure the caller must handle.
    """
    if raw is None or not raw.strip():
        return ParseFailure(error="empty output", raw_text=raw or "")
    try:
        value = TypeAdapter(output_type).validate_json(raw.strip())
    except ValidationError as e:
        return ParseFailure(error=str(e), raw_text=raw)
    return ParsedValue(value=value)
