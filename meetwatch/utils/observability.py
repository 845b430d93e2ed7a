"""Span attribute helpers: OpenInference kind plus small JSON input/output summaries.

Keep summaries PII-free (ids, counts, verdicts); message bodies never go on spans.
"""

import json
from typing import Any

from openinference.semconv.trace import OpenInferenceSpanKindValues, SpanAttributes


def _as_json(summary: dict[str, Any] | str) -> str:
    return summary if isinstance(summary, str) else json.dumps(summary, default=str)


def span_attributes(
    kind: str,
    input_summary: dict[str, Any] | str | None = None,
    output_summary: dict[str, Any] | str | None = None,
) -> dict[str, Any]:
    """Attributes for start_as_current_span(attributes=...).

    kind is an OpenInferenceSpanKindValues name (CHAIN, TOOL, LLM, ...); unknown names pass through.
    """
    kind_value = getattr(OpenInferenceSpanKindValues, kind, None)
    attrs: dict[str, Any] = {
        SpanAttributes.OPENINFERENCE_SPAN_KIND: kind_value.value if kind_value is not None else kind,
    }
    if input_summary is not None:
        attrs[SpanAttributes.INPUT_VALUE] = _as_json(input_summary)
        attrs[SpanAttributes.INPUT_MIME_TYPE] = "application/json"
    if output_summary is not None:
        attrs[SpanAttributes.OUTPUT_VALUE] = _as_json(output_summary)
        attrs[SpanAttributes.OUTPUT_MIME_TYPE] = "application/json"
    return attrs


def set_span_output(span: Any, output_summary: dict[str, Any] | str) -> None:
    """Attach the output summary to a span that is already open."""
    span.set_attribute(SpanAttributes.OUTPUT_VALUE, _as_json(output_summary))
    span.set_attribute(SpanAttributes.OUTPUT_MIME_TYPE, "application/json")
