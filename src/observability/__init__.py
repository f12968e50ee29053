"""Observability layer - logging and metrics."""

from src.observability.logging import bind_context, clear_context, get_logger, setup_logging
from src.observability.metrics import MetricsCollector, get_metrics

__all__ = [
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "MetricsCollector",
    "get_metrics",
]
