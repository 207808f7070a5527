"""
Metrics Collection

Prometheus-compatible metrics for monitoring the engine.

Design decisions:
- Counter, Gauge, Histogram types
- Label support
- Prometheus text export
- Thread-safe updates

The `ann_orphaned_vectors` and `ann_missing_vectors` gauges report index
entries without a relational row and rows without an index entry (see
VectorStore.orphaned_vector_count and VectorStore.missing_vector_count).
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _label_key(labels: dict[str, str]) -> tuple:
    return tuple(sorted(labels.items()))


@dataclass
class MetricValue:
    """A single metric observation."""

    value: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    labels: dict[str, str] = field(default_factory=dict)


class Metric(ABC):
    """Base class for metrics."""

    metric_type = "untyped"

    def __init__(
        self,
        name: str,
        description: str = "",
        labels: list[str] | None = None,
    ):
        self.name = name
        self.description = description
        self.label_names = labels or []
        self._lock = threading.Lock()

    @abstractmethod
    def collect(self) -> list[MetricValue]:
        """Collect current metric values."""
        pass


class Counter(Metric):
    """
    A counter that only goes up.

    Use for: documents ingested, embedding requests, errors.
    """

    metric_type = "counter"

    def __init__(
        self,
        name: str,
        description: str = "",
        labels: list[str] | None = None,
    ):
        super().__init__(name, description, labels)
        self._values: dict[tuple, float] = {}

    def inc(self, value: float = 1.0, **labels: str) -> None:
        if value < 0:
            raise ValueError("Counters can only increase")
        key = _label_key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value

    def get(self, **labels: str) -> float:
        with self._lock:
            return self._values.get(_label_key(labels), 0.0)

    def collect(self) -> list[MetricValue]:
        with self._lock:
            return [MetricValue(value=v, labels=dict(k)) for k, v in self._values.items()]


class Gauge(Metric):
    """
    A gauge that can go up and down.

    Use for: indexed vectors, orphaned vectors.
    """

    metric_type = "gauge"

    def __init__(
        self,
        name: str,
        description: str = "",
        labels: list[str] | None = None,
    ):
        super().__init__(name, description, labels)
        self._values: dict[tuple, float] = {}

    def set(self, value: float, **labels: str) -> None:
        with self._lock:
            self._values[_label_key(labels)] = value

    def inc(self, value: float = 1.0, **labels: str) -> None:
        key = _label_key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value

    def dec(self, value: float = 1.0, **labels: str) -> None:
        self.inc(-value, **labels)

    def get(self, **labels: str) -> float:
        with self._lock:
            return self._values.get(_label_key(labels), 0.0)

    def collect(self) -> list[MetricValue]:
        with self._lock:
            return [MetricValue(value=v, labels=dict(k)) for k, v in self._values.items()]


class Histogram(Metric):
    """
    A histogram for measuring distributions.

    Use for: embedding latency, chunk sizes.
    """

    metric_type = "histogram"

    DEFAULT_BUCKETS = (
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
        float("inf"),
    )

    def __init__(
        self,
        name: str,
        description: str = "",
        labels: list[str] | None = None,
        buckets: tuple[float, ...] | None = None,
    ):
        super().__init__(name, description, labels)
        self.buckets = buckets or self.DEFAULT_BUCKETS
        if self.buckets[-1] != float("inf"):
            self.buckets = (*self.buckets, float("inf"))

        # Per-label-set, non-cumulative bucket counts
        self._counts: dict[tuple, list[int]] = {}
        self._sums: dict[tuple, float] = {}

    def observe(self, value: float, **labels: str) -> None:
        key = _label_key(labels)

        with self._lock:
            if key not in self._counts:
                self._counts[key] = [0] * len(self.buckets)
                self._sums[key] = 0.0

            self._sums[key] += value
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    self._counts[key][i] += 1
                    break

    def get_count(self, **labels: str) -> int:
        with self._lock:
            return sum(self._counts.get(_label_key(labels), []))

    def get_sum(self, **labels: str) -> float:
        with self._lock:
            return self._sums.get(_label_key(labels), 0.0)

    def collect(self) -> list[MetricValue]:
        values = []

        with self._lock:
            for key, counts in self._counts.items():
                labels = dict(key)

                cumulative = 0
                for bound, count in zip(self.buckets, counts):
                    cumulative += count
                    le = "+Inf" if bound == float("inf") else str(bound)
                    values.append(MetricValue(value=cumulative, labels={**labels, "le": le}))

                values.append(MetricValue(value=self._sums[key], labels={**labels, "type": "sum"}))
                values.append(MetricValue(value=cumulative, labels={**labels, "type": "count"}))

        return values


class Timer:
    """Context manager for timing operations."""

    def __init__(self, histogram: Histogram, **labels: str):
        self._histogram = histogram
        self._labels = labels
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        self.elapsed = time.perf_counter() - self._start
        self._histogram.observe(self.elapsed, **self._labels)


class MetricsCollector:
    """
    Central metrics registry and collector.

    Manages all metrics and provides export functionality.
    """

    def __init__(self, prefix: str = "ragengine"):
        self._prefix = prefix
        self._metrics: dict[str, Metric] = {}
        self._lock = threading.Lock()

        self._setup_default_metrics()

    def _setup_default_metrics(self) -> None:
        """Setup default engine metrics."""
        # Ingestion
        self.register(
            Counter(
                "documents_processed_total",
                "Documents run through the ingestion pipeline",
                labels=["strategy", "status"],
            )
        )
        self.register(
            Counter(
                "chunks_created_total",
                "Chunks produced by chunking strategies",
                labels=["strategy"],
            )
        )

        # Embeddings
        self.register(
            Counter(
                "embedding_requests_total",
                "Embedding provider calls",
                labels=["provider", "status"],
            )
        )
        self.register(
            Histogram(
                "embedding_latency_seconds",
                "Embedding provider latency",
                labels=["provider"],
            )
        )

        # Storage
        self.register(
            Counter(
                "vector_store_writes_total",
                "Chunk rows written to the relational store",
            )
        )
        self.register(
            Counter(
                "vector_store_compensations_total",
                "Write-path rollbacks applied to keep both stores consistent",
                labels=["stage"],
            )
        )
        self.register(
            Gauge(
                "ann_vectors",
                "Vectors currently held by the ANN index",
            )
        )
        self.register(
            Gauge(
                "ann_orphaned_vectors",
                "ANN vectors without a relational chunk row",
            )
        )
        self.register(
            Gauge(
                "ann_missing_vectors",
                "Relational chunk rows whose vector is absent from the ANN index",
            )
        )
        self.register(
            Counter(
                "ann_index_save_failures_total",
                "Index file writes that failed after rows were committed",
            )
        )

        # Retrieval
        self.register(
            Counter(
                "search_requests_total",
                "Similarity searches served",
                labels=["status"],
            )
        )
        self.register(
            Histogram(
                "search_results",
                "Result count per search",
                buckets=(0, 1, 2, 5, 10, 20, 50, 100, float("inf")),
            )
        )

    def register(self, metric: Metric) -> Metric:
        """Register a metric under the collector prefix."""
        full_name = f"{self._prefix}_{metric.name}"
        metric.name = full_name

        with self._lock:
            self._metrics[full_name] = metric

        return metric

    def get(self, name: str) -> Metric | None:
        return self._metrics.get(f"{self._prefix}_{name}")

    def counter(self, name: str) -> Counter:
        metric = self.get(name)
        if not isinstance(metric, Counter):
            raise KeyError(f"No counter named {name!r}")
        return metric

    def gauge(self, name: str) -> Gauge:
        metric = self.get(name)
        if not isinstance(metric, Gauge):
            raise KeyError(f"No gauge named {name!r}")
        return metric

    def histogram(self, name: str) -> Histogram:
        metric = self.get(name)
        if not isinstance(metric, Histogram):
            raise KeyError(f"No histogram named {name!r}")
        return metric

    def collect_all(self) -> dict[str, list[MetricValue]]:
        with self._lock:
            metrics = dict(self._metrics)
        return {name: metric.collect() for name, metric in metrics.items()}

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []

        for name, values in self.collect_all().items():
            metric = self._metrics[name]
            lines.append(f"# HELP {name} {metric.description}")
            lines.append(f"# TYPE {name} {metric.metric_type}")

            for mv in values:
                label_str = ""
                if mv.labels:
                    label_pairs = [f'{k}="{v}"' for k, v in mv.labels.items()]
                    label_str = "{" + ",".join(label_pairs) + "}"
                lines.append(f"{name}{label_str} {mv.value}")

        return "\n".join(lines)


_collector: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get or create the global metrics collector."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
