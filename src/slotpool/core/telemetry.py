"""OpenTelemetry initialization and span helpers for availability queries."""

from __future__ import annotations

import logging
import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger(__name__)

_TRACER_NAME = "slotpool"

# Guard flag: True once the global TracerProvider has been installed.
# Prevents "Overriding of current TracerProvider is not allowed" warnings
# when init_telemetry() is called more than once in the same process.
_tracer_provider_installed: bool = False


def init_telemetry(service_name: str) -> trace.Tracer:
    """Initialize OpenTelemetry tracing for the process.

    When OTEL_EXPORTER_OTLP_ENDPOINT is set, configures a real TracerProvider
    with OTLP gRPC exporter on the first call.  Without it, the returned
    tracer is a no-op.

    Args:
        service_name: Service name recorded on the tracer (e.g. "slotpool-cli")

    Returns:
        A Tracer instance (real or no-op depending on config)
    """
    global _tracer_provider_installed

    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set, using no-op tracer")
        return trace.get_tracer(service_name)

    if _tracer_provider_installed:
        logger.debug(
            "TracerProvider already initialized; reusing existing provider for service=%s",
            service_name,
        )
        return trace.get_tracer(service_name)

    # Import exporter only when needed
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))

    trace.set_tracer_provider(provider)
    _tracer_provider_installed = True
    logger.info("Telemetry initialized: endpoint=%s", endpoint)

    return trace.get_tracer(service_name)


def get_tracer() -> trace.Tracer:
    """Get the slotpool tracer from the current provider."""
    return trace.get_tracer(_TRACER_NAME)


def record_span_error(span: trace.Span, exc: BaseException) -> None:
    """Mark *span* as failed and attach the exception with its stack trace."""
    span.set_status(trace.StatusCode.ERROR, str(exc))
    span.record_exception(exc)
