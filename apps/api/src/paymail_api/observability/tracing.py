from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.semconv.resource import ResourceAttributes
from opentelemetry.trace import Span, Status, StatusCode

_CONFIGURED = False
_TRACER_NAME = "paymail_api.notifications"


def _parse_headers(raw: str | None) -> Dict[str, str] | None:
    if not raw:
        return None
    headers: Dict[str, str] = {}
    for pair in raw.split(","):
        if "=" not in pair:
            continue
        key, value = pair.split("=", 1)
        headers[key.strip()] = value.strip()
    return headers or None


def _build_exporter() -> SpanExporter | None:
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        return None
    return OTLPSpanExporter(endpoint=endpoint, headers=_parse_headers(os.getenv("OTEL_EXPORTER_OTLP_HEADERS")))


def configure_tracing(
    app: FastAPI,
    *,
    service_name: str,
    service_version: str,
    environment: str,
) -> None:
    """Install a tracer provider and instrument the FastAPI app.

    Spans are only exported when ``OTEL_EXPORTER_OTLP_ENDPOINT`` is set; without it
    the provider still hands out trace ids for log correlation.
    """

    global _CONFIGURED

    if not _CONFIGURED:
        resource = Resource.create(
            {
                ResourceAttributes.SERVICE_NAME: service_name,
                ResourceAttributes.SERVICE_VERSION: service_version,
                ResourceAttributes.DEPLOYMENT_ENVIRONMENT: environment,
            }
        )
        tracer_provider = TracerProvider(resource=resource)
        exporter = _build_exporter()
        if exporter is not None:
            tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(tracer_provider)
        _CONFIGURED = True
    else:
        tracer_provider = trace.get_tracer_provider()

    FastAPIInstrumentor.instrument_app(app, tracer_provider=tracer_provider)


@contextmanager
def pipeline_span(name: str, **attributes: Any) -> Iterator[Span]:
    """Open a span for one notification pipeline stage."""

    tracer = trace.get_tracer(_TRACER_NAME)
    clean = {f"paymail.{key}": value for key, value in attributes.items() if value is not None}
    with tracer.start_as_current_span(name, attributes=clean, record_exception=False) as span:
        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise


__all__ = ["configure_tracing", "pipeline_span"]
