"""OpenTelemetry tracing setup with OTLP export and OpenInference Pydantic AI spans."""

from meetwatch.config import (
    DEPLOYMENT_ENVIRONMENT,
    OTLP_API_KEY,
    OTLP_TRACES_ENDPOINT,
    SERVICE_NAME,
    TRACING_ENABLED,
)
from meetwatch.utils.logger import get_logger

logger = get_logger("meetwatch.tracing")
_initialized = False
_tracer_provider = None


def _resolve_endpoint() -> str:
    """Ensure the HTTP endpoint includes the /v1/traces path as OTLP/HTTP expects."""
    endpoint = OTLP_TRACES_ENDPOINT.rstrip("/")
    if not endpoint.endswith("/v1/traces"):
        endpoint = f"{endpoint}/v1/traces"
    return endpoint


def _build_resource():
    from opentelemetry.sdk.resources import Resource

    return Resource.create(
        {
            "service.name": SERVICE_NAME,
            "service.version": "0.1.0",
            "deployment.environment": DEPLOYMENT_ENVIRONMENT,
        }
    )


def _build_pipeline():
    """TracerProvider whose OpenInference processor runs before the OTLP batch exporter.

    Only pydantic-ai spans get OpenInference attributes; sync and extraction spans set
    theirs through utils.observability.
    """
    from openinference.instrumentation.pydantic_ai import (
        OpenInferenceSpanProcessor,
        is_openinference_span,
    )
    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    headers = None
    if OTLP_API_KEY:
        headers = {"authorization": f"Bearer {OTLP_API_KEY}"}

    provider = TracerProvider(resource=_build_resource())
    provider.add_span_processor(OpenInferenceSpanProcessor(span_filter=is_openinference_span))
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=_resolve_endpoint(), headers=headers))
    )
    trace.set_tracer_provider(provider)
    return provider


def init_tracing() -> None:
    """Initialize OTLP tracing (call once at startup). No-op unless TRACING_ENABLED."""
    global _initialized, _tracer_provider
    if _initialized or not TRACING_ENABLED:
        return

    _tracer_provider = _build_pipeline()

    from pydantic_ai import Agent

    # Agents pick up the global provider set above
    Agent.instrument_all()
    _initialized = True
    logger.info("tracing.enabled", endpoint=_resolve_endpoint(), service=SERVICE_NAME)


def get_tracer():
    """Return the OpenTelemetry tracer (a no-op tracer until init_tracing has run)."""
    from opentelemetry import trace

    return trace.get_tracer("meetwatch", "0.1.0")


def get_tracer_provider():
    """Return the global tracer provider (for shutdown)."""
    from opentelemetry import trace

    return _tracer_provider if _tracer_provider is not None else trace.get_tracer_provider()


def shutdown_tracing() -> None:
    """Flush and shutdown the tracer provider so spans are exported before process exit."""
    from opentelemetry.sdk.trace import TracerProvider

    provider = get_tracer_provider()
    if isinstance(provider, TracerProvider):
        provider.force_flush(timeout_millis=5000)
        provider.shutdown()
