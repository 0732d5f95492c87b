"""
Metrics collection for RevLedger.

Thread-safe in-process metrics:
- Counters: distributions, failures, batch transfers, HTTP requests
- Gauges: point-in-time values (active requests)
- Histograms: latency distributions (distribution and request duration)

Metrics are exported as JSON and in the Prometheus text format.
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

METRIC_NAMESPACE = "revledger"

# Default latency buckets in milliseconds
DEFAULT_BUCKETS = (5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000)


@dataclass
class HistogramBucket:
    """A cumulative histogram bucket."""

    le: float  # Less than or equal to
    count: int = 0


@dataclass
class Histogram:
    """Distribution of observed values."""

    name: str
    buckets: list[HistogramBucket] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0

    def __post_init__(self):
        if not self.buckets:
            self.buckets = [HistogramBucket(le=b) for b in DEFAULT_BUCKETS]
            self.buckets.append(HistogramBucket(le=float("inf")))

    def observe(self, value: float) -> None:
        self.sum += value
        self.count += 1
        for bucket in self.buckets:
            if value <= bucket.le:
                bucket.count += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "sum": self.sum,
            "avg": self.sum / self.count if self.count > 0 else 0,
            "buckets": {str(b.le): b.count for b in self.buckets},
        }


class MetricsCollector:
    """
    Thread-safe metrics collector.

    Collects counters, gauges, and histograms with optional labels.
    """

    def __init__(self, namespace: str = METRIC_NAMESPACE):
        self.namespace = namespace
        self._lock = threading.RLock()
        self._counters: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._gauges: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
        self._histograms: dict[str, dict[str, Histogram]] = defaultdict(dict)
        self._start_time = time.time()

    @staticmethod
    def _labels_key(labels: dict[str, str] | None) -> str:
        if not labels:
            return ""
        return ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))

    # Counter operations

    def increment(self, name: str, value: int = 1, labels: dict[str, str] | None = None) -> None:
        """Increment a counter."""
        with self._lock:
            self._counters[name][self._labels_key(labels)] += value

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        """Current counter value for one label set."""
        with self._lock:
            return self._counters[name].get(self._labels_key(labels), 0)

    def get_counter_total(self, name: str) -> int:
        """Counter value summed over every label set."""
        with self._lock:
            return sum(self._counters[name].values())

    # Gauge operations

    def set_gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._gauges[name][self._labels_key(labels)] = value

    def increment_gauge(self, name: str, value: float = 1.0, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._gauges[name][self._labels_key(labels)] += value

    def decrement_gauge(self, name: str, value: float = 1.0, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._gauges[name][self._labels_key(labels)] -= value

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._gauges[name].get(self._labels_key(labels), 0.0)

    # Histogram operations

    def timing(self, name: str, value_ms: float, labels: dict[str, str] | None = None) -> None:
        """Record a timing observation in milliseconds."""
        with self._lock:
            key = self._labels_key(labels)
            if key not in self._histograms[name]:
                self._histograms[name][key] = Histogram(name=name)
            self._histograms[name][key].observe(value_ms)

    @contextmanager
    def timer(self, name: str, labels: dict[str, str] | None = None):
        """Context manager for timing code blocks."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timing(name, (time.perf_counter() - start) * 1000, labels)

    # Export methods

    def get_all(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""

        def flatten(values: dict[str, Any]) -> Any:
            if len(values) == 1 and "" in values:
                return values[""]
            return dict(values)

        with self._lock:
            return {
                "uptime_seconds": time.time() - self._start_time,
                "counters": {name: flatten(v) for name, v in self._counters.items()},
                "gauges": {name: flatten(v) for name, v in self._gauges.items()},
                "histograms": {
                    name: {(key or "_total"): hist.to_dict() for key, hist in hists.items()}
                    for name, hists in self._histograms.items()
                },
            }

    def _sample_lines(self, metric_name: str, kind: str, values: dict[str, Any]) -> list[str]:
        lines = [f"# TYPE {metric_name} {kind}"]
        for key, value in values.items():
            lines.append(f"{metric_name}{{{key}}} {value}" if key else f"{metric_name} {value}")
        lines.append("")
        return lines

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        prefix = self.namespace
        lines = [
            f"# HELP {prefix}_uptime_seconds Time since application start",
            f"# TYPE {prefix}_uptime_seconds gauge",
        ]

        with self._lock:
            lines.append(f"{prefix}_uptime_seconds {time.time() - self._start_time:.2f}")
            lines.append("")

            for name, values in self._counters.items():
                lines.extend(self._sample_lines(f"{prefix}_{name}", "counter", values))

            for name, values in self._gauges.items():
                lines.extend(self._sample_lines(f"{prefix}_{name}", "gauge", values))

            for name, histograms in self._histograms.items():
                metric_name = f"{prefix}_{name}"
                lines.append(f"# TYPE {metric_name} histogram")
                for key, hist in histograms.items():
                    label_prefix = f"{key}," if key else ""
                    for bucket in hist.buckets:
                        le_val = "+Inf" if bucket.le == float("inf") else bucket.le
                        lines.append(f'{metric_name}_bucket{{{label_prefix}le="{le_val}"}} {bucket.count}')
                    suffix = f"{{{key}}}" if key else ""
                    lines.append(f"{metric_name}_sum{suffix} {hist.sum:.2f}")
                    lines.append(f"{metric_name}_count{suffix} {hist.count}")
                lines.append("")

        return "\n".join(lines)

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._start_time = time.time()


# Global metrics instance
metrics = MetricsCollector()
