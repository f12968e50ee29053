"""
Prometheus metrics for vector search and schema lifecycle operations.

Defines and exposes metrics for:
- Vector search latency and outcomes (CLIP and face searches)
- Advisory lock wait time and current holders
- Schema lifecycle operations (dimension changes, extension swaps)

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

# Lock waits can span a whole migration
LOCK_WAIT_BUCKETS = (0.001, 0.01, 0.1, 1.0, 5.0, 30.0, 120.0, 600.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the vector search subsystem.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_search("clip", latency=0.04)
        metrics.record_lock_wait("CLIP_DIM_SIZE", 0.2)
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize Prometheus metrics.

        Args:
            registry: Registry to register metrics in. Tests pass a fresh
                CollectorRegistry to avoid duplicate registration errors.
        """
        self._registry = registry or REGISTRY

        self.search_latency = Histogram(
            "vector_search_latency_seconds",
            "Time to run a vector similarity search transaction",
            ["kind"],  # clip, face, assets
            buckets=LATENCY_BUCKETS,
            registry=self._registry,
        )

        self.searches = Counter(
            "vector_search_total",
            "Total number of searches executed",
            ["kind", "status"],  # status: success, error
            registry=self._registry,
        )

        self.lock_wait = Histogram(
            "advisory_lock_wait_seconds",
            "Time spent waiting for a lifecycle lock",
            ["lock"],
            buckets=LOCK_WAIT_BUCKETS,
            registry=self._registry,
        )

        self.lock_held = Gauge(
            "advisory_lock_held",
            "Whether this process currently holds a lifecycle lock",
            ["lock"],
            registry=self._registry,
        )

        self.schema_operations = Counter(
            "schema_migrations_total",
            "Schema lifecycle operations by outcome",
            ["operation", "status"],  # status: applied, skipped, error
            registry=self._registry,
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (defaults to settings.metrics_port)
        """
        port = port or get_settings().metrics_port
        start_http_server(port, registry=self._registry)
        logger.info(f"Metrics server started on port {port}")

    def record_search(self, kind: str, latency: float, success: bool = True) -> None:
        """
        Record a completed search.

        Args:
            kind: Search kind (clip, face, assets)
            latency: Wall time in seconds
            success: Whether the search completed without error
        """
        self.search_latency.labels(kind=kind).observe(latency)
        self.searches.labels(kind=kind, status="success" if success else "error").inc()

    def record_lock_wait(self, lock: str, latency: float) -> None:
        """Record time spent acquiring a lock."""
        self.lock_wait.labels(lock=lock).observe(latency)

    def set_lock_held(self, lock: str, held: bool) -> None:
        self.lock_held.labels(lock=lock).set(1 if held else 0)

    def record_schema_operation(self, operation: str, status: str) -> None:
        """
        Record a lifecycle operation outcome.

        Args:
            operation: dimension_change, extension_swap, migrations
            status: applied, skipped, error
        """
        self.schema_operations.labels(operation=operation, status=status).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
