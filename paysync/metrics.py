"""
Prometheus Metrics Module

Exposes metrics for monitoring connector syncs and webhook ingestion.

Metrics:
- Counters: HTTP requests, fetch runs, records fetched, webhooks
- Histograms: HTTP request duration
- Gauges: active fetch runs

Usage:
    from paysync.metrics import metrics

    # Record HTTP request
    metrics.record_http_request(
        connector="acme", endpoint="/payments", operation="list_payments",
        status=200, duration=0.5,
    )

    # Start metrics server
    metrics.start_server(port=9090)
"""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

from paysync.config import settings

logger = logging.getLogger(__name__)


@dataclass
class SimpleMetrics:
    """In-memory counters kept alongside Prometheus for status output."""

    http_requests: int = 0
    http_errors: int = 0
    http_total_duration: float = 0.0
    records_fetched: dict[str, int] = field(default_factory=dict)
    fetch_runs: int = 0
    fetch_errors: int = 0
    active_runs: int = 0
    webhooks: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "http_requests_total": self.http_requests,
            "http_errors_total": self.http_errors,
            "http_avg_duration_seconds": (
                self.http_total_duration / max(self.http_requests, 1)
            ),
            "records_fetched_total": sum(self.records_fetched.values()),
            "records_by_stream": self.records_fetched,
            "fetch_runs_total": self.fetch_runs,
            "fetch_errors_total": self.fetch_errors,
            "active_runs": self.active_runs,
            "webhooks_by_outcome": self.webhooks,
        }


class MetricsCollector:
    """
    Prometheus metrics collector for paysync.

    Every collector owns its own CollectorRegistry, so tests can create
    isolated instances without clashing on metric names.
    """

    def __init__(self, enabled: bool = True) -> None:
        """
        Initialize metrics collector.

        Args:
            enabled: Whether to collect metrics
        """
        self.enabled = enabled
        self.simple = SimpleMetrics()
        self.registry = CollectorRegistry()

        # HTTP Request metrics
        self.http_requests_total = Counter(
            "paysync_http_requests_total",
            "Total HTTP requests made to providers",
            ["connector", "endpoint", "operation", "status"],
            registry=self.registry,
        )

        self.http_request_duration = Histogram(
            "paysync_http_request_duration_seconds",
            "Provider HTTP request duration in seconds",
            ["connector", "endpoint", "operation"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self.registry,
        )

        # Fetch run metrics
        self.fetch_runs_total = Counter(
            "paysync_fetch_runs_total",
            "Total stream fetch runs",
            ["connector", "stream", "status"],
            registry=self.registry,
        )

        self.records_fetched_total = Counter(
            "paysync_records_fetched_total",
            "Total records fetched from providers",
            ["connector", "stream"],
            registry=self.registry,
        )

        self.active_runs = Gauge(
            "paysync_active_fetch_runs",
            "Number of stream fetch runs in flight",
            registry=self.registry,
        )

        # Webhook metrics
        self.webhooks_total = Counter(
            "paysync_webhooks_total",
            "Total inbound webhooks by outcome",
            ["connector", "event", "outcome"],
            registry=self.registry,
        )

    # ========== HTTP Metrics ==========

    def record_http_request(
        self,
        connector: str,
        endpoint: str,
        operation: str,
        status: int,
        duration: float,
    ) -> None:
        """Record a provider HTTP request (status 0 means no response)."""
        if not self.enabled:
            return

        self.simple.http_requests += 1
        self.simple.http_total_duration += duration
        if status == 0 or status >= 400:
            self.simple.http_errors += 1

        self.http_requests_total.labels(
            connector=connector,
            endpoint=endpoint,
            operation=operation,
            status=str(status),
        ).inc()
        self.http_request_duration.labels(
            connector=connector,
            endpoint=endpoint,
            operation=operation,
        ).observe(duration)

    # ========== Fetch Metrics ==========

    def record_records_fetched(self, connector: str, stream: str, count: int) -> None:
        """Record records returned by one fetch-next page."""
        if not self.enabled or count <= 0:
            return

        self.simple.records_fetched[stream] = (
            self.simple.records_fetched.get(stream, 0) + count
        )
        self.records_fetched_total.labels(connector=connector, stream=stream).inc(count)

    @contextmanager
    def track_run(self, connector: str, stream: str) -> Iterator[None]:
        """
        Context manager to track a stream run and its outcome.

        Usage:
            with metrics.track_run("acme", "payments"):
                runner.run(...)
        """
        if not self.enabled:
            yield
            return

        self.simple.active_runs += 1
        self.simple.fetch_runs += 1
        self.active_runs.inc()

        try:
            yield
            status = "success"
        except Exception:
            status = "error"
            self.simple.fetch_errors += 1
            raise
        finally:
            self.simple.active_runs -= 1
            self.active_runs.dec()
            self.fetch_runs_total.labels(
                connector=connector, stream=stream, status=status
            ).inc()

    # ========== Webhook Metrics ==========

    def record_webhook(self, connector: str, event: str, outcome: str) -> None:
        """Record an inbound webhook (accepted, duplicate, rejected, ...)."""
        if not self.enabled:
            return

        self.simple.webhooks[outcome] = self.simple.webhooks.get(outcome, 0) + 1
        self.webhooks_total.labels(connector=connector, event=event, outcome=outcome).inc()

    # ========== Metrics Server ==========

    def start_server(self, port: int = 9090) -> None:
        """
        Start a background HTTP server exposing /metrics.

        Args:
            port: Port to listen on (default 9090)
        """
        if not self.enabled:
            logger.warning("Metrics disabled, not starting metrics server")
            return

        start_http_server(port, registry=self.registry)
        logger.info("Metrics server started on port %d", port)

    def export(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def get_simple_metrics(self) -> dict[str, Any]:
        """Get in-memory counters as dictionary."""
        return self.simple.to_dict()


# Global metrics instance
metrics = MetricsCollector(enabled=settings.metrics_enabled)
