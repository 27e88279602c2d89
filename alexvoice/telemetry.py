"""OpenTelemetry setup and stage timing.

Instruments the FastAPI app and provides helpers for wrapping each
upstream call (transcription, chat completion, speech, skills) in its
own span.

Traces are exported via OTLP (gRPC) when OTEL_EXPORTER_OTLP_ENDPOINT
is set; otherwise spans are recorded locally and never leave the process.
"""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from typing import Any, Generator

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger(__name__)

_tracer: trace.Tracer | None = None


def _init_tracer() -> trace.Tracer:
    """Install a tracer provider, exporting over OTLP if an endpoint is set."""
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")

    resource = Resource.create({
        "service.name": "alexvoice",
        "service.version": "0.1.0",
    })
    provider = TracerProvider(resource=resource)

    if endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        logger.info("OpenTelemetry: OTLP exporter -> %s", endpoint)
    else:
        logger.info("OpenTelemetry: local spans only (no OTEL_EXPORTER_OTLP_ENDPOINT)")

    trace.set_tracer_provider(provider)
    return trace.get_tracer("alexvoice")


def get_tracer() -> trace.Tracer:
    """Get the global tracer (lazy-initialized)."""
    global _tracer
    if _tracer is None:
        _tracer = _init_tracer()
    return _tracer


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[Any, None, None]:
    """Create a traced span with optional attributes.

    Usage:
        with trace_span("upstream.chat", {"chat.model": "llama3-8b-8192"}) as span:
            text = await chat.complete(messages)
            span.set_attribute("chat.chars", len(text))
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            raise


@contextmanager
def timed_stage(stage: str, request_id: str | None = None) -> Generator[None, None, None]:
    """Log how long a pipeline stage took, tagged with the request id."""
    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = round((time.perf_counter() - start) * 1000, 1)
        logger.info(
            "%s took %.1fms", stage, duration_ms,
            extra={"request_id": request_id, "stage": stage, "duration_ms": duration_ms},
        )


def instrument_fastapi(app: Any) -> None:
    """Instrument a FastAPI app with automatic request tracing."""
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

    get_tracer()
    FastAPIInstrumentor.instrument_app(app)
    logger.info("OpenTelemetry: FastAPI auto-instrumentation enabled")
