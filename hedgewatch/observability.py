"""
Service observability — OpenTelemetry tracing + Prometheus metrics.

Provides:
- Tracer setup (OTLP collector when configured, console exporter otherwise)
- Counters/histograms for round queries, reconstruction, the live stream
  and the market metadata resolver
- Prometheus scraping utilities
"""

import os

import structlog
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

logger = structlog.get_logger(__name__)

# ── OpenTelemetry Setup ──────────────────────────────────────────────

_tracer: trace.Tracer | None = None


def setup_tracing(
    service_name: str | None = None,
    otlp_endpoint: str | None = None,
) -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Exporter choice:
      1. OTLP endpoint provided (or ``OTEL_EXPORTER_OTLP_ENDPOINT``) → OTLPSpanExporter
      2. ``OTEL_CONSOLE_EXPORT=1`` → ConsoleSpanExporter (local debugging)
      3. Otherwise spans are recorded but not exported

    Args:
        service_name: Name of the service (appears in traces). Defaults to APP_NAME.
        otlp_endpoint: OTLP collector endpoint.
    """
    global _tracer

    from hedgewatch.version import APP_NAME, VERSION

    service_name = service_name or APP_NAME.lower()
    otlp_endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

    resource = Resource.create(
        {"service.name": service_name, "service.version": VERSION}
    )
    provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                OTLPSpanExporter,
            )

            provider.add_span_processor(
                BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint))
            )
            logger.info("otel_otlp_configured", endpoint=otlp_endpoint)
        except ImportError:
            logger.warning("otel_otlp_exporter_not_installed", endpoint=otlp_endpoint)
    elif os.getenv("OTEL_CONSOLE_EXPORT") == "1":
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(__name__)
    logger.info("otel_tracing_initialized", service=service_name)
    return _tracer


def get_tracer() -> trace.Tracer:
    """Get or initialize the tracer."""
    global _tracer
    if _tracer is None:
        _tracer = setup_tracing()
    return _tracer


# ── Service Metrics ──────────────────────────────────────────────────

ROUND_QUERIES = Counter(
    "round_queries_total",
    "Round reconstructions served",
    ["mode"],
    namespace="hedgewatch",
)

RECONSTRUCT_LATENCY = Histogram(
    "reconstruct_latency_seconds",
    "Time spent in reconstruct() per round query",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1],
    namespace="hedgewatch",
)

STREAM_EVENTS_SENT = Counter(
    "stream_events_sent_total",
    "Records pushed to live stream clients",
    namespace="hedgewatch",
)

MARKET_INFO_REQUESTS = Counter(
    "market_info_requests_total",
    "Market metadata lookups by result",
    ["status"],
    namespace="hedgewatch",
)


# ── Prometheus Scraping ──────────────────────────────────────────────


def get_metrics() -> bytes:
    """Generate Prometheus metrics for scraping."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Content type for Prometheus metrics response."""
    return CONTENT_TYPE_LATEST
