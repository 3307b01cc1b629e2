import os

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

log = structlog.get_logger(__name__)


def init_tracer(app_name: str = "cryptopay"):
    """Initialize OpenTelemetry tracer with OTLP exporter"""
    provider = TracerProvider(resource=Resource.create({"service.name": app_name}))

    # DISABLE_TRACING swaps in the console exporter so tests never try to
    # reach a collector from the background export thread.
    if os.getenv("DISABLE_TRACING", "").lower() in {"1", "true", "yes"}:
        exporter = ConsoleSpanExporter()
    else:
        try:
            exporter = OTLPSpanExporter()
        except Exception as exc:  # pragma: no cover – only hit when collector absent
            log.warning("OTLP exporter unavailable, tracing disabled", error=str(exc))
            exporter = ConsoleSpanExporter()

    provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)