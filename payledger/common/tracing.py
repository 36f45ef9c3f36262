"""OpenTelemetry wiring.

`tracer` is safe to use before `setup_tracing` runs (and when tracing is
disabled): the API hands out no-op spans until a provider is registered.
"""

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from payledger.common.config import settings
from payledger.common.logging import logger

tracer = trace.get_tracer("payledger")


def setup_tracing(service_name: str) -> TracerProvider | None:
    if not settings.tracing_enabled:
        logger.info("tracing_disabled service=%s", service_name)
        return None
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
    trace.set_tracer_provider(provider)
    logger.info("tracing_enabled service=%s endpoint=%s", service_name, settings.otel_exporter_otlp_endpoint)
    return provider


def instrument_app(app: FastAPI) -> None:
    """Request spans for every route except the scrape and health endpoints."""

    if settings.tracing_enabled:
        FastAPIInstrumentor.instrument_app(app, excluded_urls="metrics,health")
