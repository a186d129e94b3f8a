# contract_tester/observability/tracing.py
"""
Minimal OpenTelemetry tracing bootstrap for the tester.
- Initializes a TracerProvider with a Console exporter when tracing is enabled.
- Idempotent: safe to call multiple times.
- When tracing is disabled the API's no-op tracer is used, so spans opened by
  the Dispatcher cost nothing.
"""
from __future__ import annotations

import typing as _t

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor

_OTEL_INITIALIZED = False


def init_tracing(settings: _t.Any | None = None) -> bool:
    """// initialize otel tracer (idempotent)

    Returns True if a provider is installed after the call.
    """
    global _OTEL_INITIALIZED

    if _OTEL_INITIALIZED:
        return True
    if not getattr(settings, "TRACING_ENABLED", False):
        return False

    # Resource: service.name is important for trace grouping
    service_name = getattr(settings, "SERVICE_NAME", None) or "contract-tester"

    resource = Resource.create({"service.name": service_name})
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)

    _OTEL_INITIALIZED = True
    return True


def get_tracer(name: str) -> trace.Tracer:
    return trace.get_tracer(name)
