"""OpenTelemetry tracing for the console.

The tracer provider is process-wide and configured once; every app built
by ``create_app`` is instrumented against it. Spans are exported to
``OTEL_EXPORTER_OTLP_ENDPOINT``; ``none`` keeps them in-process (tests,
local runs without a collector).

Canary and validation handlers open their spans through ``operation_span``
so deployment ids and config names land on the span as ``trading_ops.*``
attributes.
"""
import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from fastapi import FastAPI, HTTPException
from loguru import logger
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode

from src.trading_ops.core.config import settings

ATTRIBUTE_PREFIX = "trading_ops."

_provider: Optional[TracerProvider] = None

tracer = trace.get_tracer("src.trading_ops", settings.VERSION)


def configure_tracer_provider() -> TracerProvider:
    global _provider
    if _provider is not None:
        return _provider

    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    _provider = TracerProvider(resource=Resource.create({
        "service.name": settings.PROJECT_NAME,
        "service.version": settings.VERSION,
        "deployment.environment": settings.ENV,
    }))

    if endpoint.lower() == "none":
        logger.info("Tracing enabled without an exporter")
    else:
        _provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
        logger.info(f"✅ Tracing spans exported to {endpoint}")

    trace.set_tracer_provider(_provider)
    return _provider


def setup_tracing(app: FastAPI) -> None:
    """Configure the provider (first call only) and instrument ``app``."""
    FastAPIInstrumentor.instrument_app(app, tracer_provider=configure_tracer_provider())


def get_current_span() -> Span:
    return trace.get_current_span()


def set_span_attributes(span, **attributes: Any) -> None:
    """Set ``trading_ops.<name>`` attributes, skipping None values."""
    if span and span.is_recording():
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(ATTRIBUTE_PREFIX + key, value)


def record_exception(span, exception: Exception) -> None:
    if span and span.is_recording():
        span.record_exception(exception)
        span.set_status(Status(StatusCode.ERROR, str(exception)))


@contextmanager
def operation_span(name: str, **attributes: Any) -> Iterator[Span]:
    """Span for one console operation.

    Client errors (``HTTPException`` below 500) leave the span status
    unset; anything else escaping the block marks it as an error.
    """
    with tracer.start_as_current_span(name, record_exception=False, set_status_on_exception=False) as span:
        set_span_attributes(span, **attributes)
        try:
            yield span
        except HTTPException as e:
            set_span_attributes(span, status_code=e.status_code)
            if e.status_code >= 500:
                record_exception(span, e)
            raise
        except Exception as e:
            record_exception(span, e)
            raise
