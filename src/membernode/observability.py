"""OpenTelemetry tracing configuration for the Member Node.

Environment Variables:
    MEMBERNODE_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    MEMBERNODE_OTEL_SERVICE_NAME: Service name for spans (default: "membernode")
    MEMBERNODE_OTEL_TEST_CAPTURE: Set to "1" to keep spans in memory (tests)

Spans are exported to the console unless test capture is enabled.
"""

from __future__ import annotations

import logging
import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from membernode.repository.tracing import is_otel_enabled

logger = logging.getLogger(__name__)

MEMBERNODE_OTEL_SERVICE_NAME_ENV = "MEMBERNODE_OTEL_SERVICE_NAME"
MEMBERNODE_OTEL_TEST_CAPTURE_ENV = "MEMBERNODE_OTEL_TEST_CAPTURE"

_tracer_provider: TracerProvider | None = None
_test_exporter: InMemorySpanExporter | None = None


def configure_tracing() -> bool:
    """Install a tracer provider when tracing is enabled.

    Idempotent: later calls reuse the provider installed by the first one.

    Returns:
        True if tracing is enabled and configured, False otherwise.
    """
    global _tracer_provider, _test_exporter

    if not is_otel_enabled():
        logger.debug("OpenTelemetry tracing disabled")
        return False
    if _tracer_provider is not None:
        return True

    service_name = os.environ.get(MEMBERNODE_OTEL_SERVICE_NAME_ENV, "").strip() or "membernode"
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if os.environ.get(MEMBERNODE_OTEL_TEST_CAPTURE_ENV, "").strip() == "1":
        _test_exporter = InMemorySpanExporter()
        provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        exporter_name = "in-memory"
    else:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        exporter_name = "console"

    trace.set_tracer_provider(provider)
    _tracer_provider = provider
    logger.info(
        "OpenTelemetry tracing configured: service=%s, exporter=%s", service_name, exporter_name
    )
    return True


def get_finished_spans() -> list[ReadableSpan]:
    """Spans captured in memory (test capture mode only)."""
    if _test_exporter is None:
        return []
    return list(_test_exporter.get_finished_spans())


def clear_finished_spans() -> None:
    if _test_exporter is not None:
        _test_exporter.clear()
