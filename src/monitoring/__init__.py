"""
Monitoring and metrics infrastructure for RevLedger.

This package provides:
- Application metrics collection (counters, gauges, histograms)
- Structured logging with JSON output
- Request timing middleware

Usage:
    from monitoring import metrics, get_logger

    metrics.increment("distributions_total")
    with metrics.timer("distribution_duration_ms"):
        ...

    logger = get_logger(__name__)
    logger.info("Payment distributed", extra={"collection_id": "genesis"})
"""

from monitoring.logging import configure_logging, get_logger
from monitoring.metrics import MetricsCollector, metrics
from monitoring.middleware import setup_request_logging, timed

__all__ = [
    "MetricsCollector",
    "metrics",
    "get_logger",
    "configure_logging",
    "setup_request_logging",
    "timed",
]
