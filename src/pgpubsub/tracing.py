"""OpenTelemetry tracing helpers for publishers and subscribers.

Until ``start_tracing`` is called the global tracer provider is the no-op
default, so library code can always open spans. The CLI enables console
export with ``--trace``.
"""

from __future__ import annotations

from opentelemetry import trace  # type: ignore
from opentelemetry.sdk.resources import Resource  # type: ignore
from opentelemetry.sdk.trace import TracerProvider  # type: ignore
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor  # type: ignore
from opentelemetry.trace import Tracer  # type: ignore

SERVICE_NAME = "pgpubsub"


def start_tracing(service_name: str = SERVICE_NAME) -> Tracer:
    """Install a TracerProvider that prints finished spans to the console."""
    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    return trace.get_tracer(service_name)


def get_tracer(service_name: str = SERVICE_NAME) -> Tracer:
    return trace.get_tracer(service_name)
