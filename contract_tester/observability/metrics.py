# contract_tester/observability/metrics.py
# minimal prometheus instrumentation for one test run

from __future__ import annotations

from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    write_to_textfile,
)


class RunMetrics:
    """// request/verdict counters on a dedicated registry

    A fresh registry per run keeps repeated runs (and tests) from colliding
    on the global default registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.requests = Counter(
            "contract_requests",
            "HTTP requests sent to the service under test",
            labelnames=("method", "result"),
            registry=self.registry,
        )
        self.latency = Histogram(
            "contract_request_latency_seconds",
            "Latency of HTTP requests to the service under test",
            labelnames=("method",),
            registry=self.registry,
        )
        self.in_progress = Gauge(
            "contract_requests_in_progress",
            "Requests currently in flight",
            registry=self.registry,
        )
        self.retries = Counter(
            "contract_request_retries",
            "Retried request attempts",
            labelnames=("method",),
            registry=self.registry,
        )
        self.verdicts = Counter(
            "contract_verdicts",
            "Verdicts by outcome",
            labelnames=("outcome",),
            registry=self.registry,
        )

    def observe_request(self, method: str, result: str, seconds: Optional[float] = None) -> None:
        self.requests.labels(method, result).inc()
        if seconds is not None:
            self.latency.labels(method).observe(seconds)

    def observe_retry(self, method: str) -> None:
        self.retries.labels(method).inc()

    def observe_verdict(self, outcome: str) -> None:
        self.verdicts.labels(outcome).inc()

    def value(self, name: str, labels: Optional[dict[str, str]] = None) -> float:
        """Current sample value, 0.0 if it was never observed."""
        result = self.registry.get_sample_value(name, labels or {})
        return result if result is not None else 0.0

    def write(self, path: str) -> None:
        """// dump in node-exporter textfile format"""
        write_to_textfile(path, self.registry)
