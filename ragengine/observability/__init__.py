"""
Observability Module

Structured logging and metrics for the engine.
"""

from ragengine.observability.logging import (
    BufferHandler,
    ConsoleHandler,
    FileHandler,
    LogLevel,
    StructuredLogger,
    configure_logging,
    get_logger,
)
from ragengine.observability.metrics import (
    Counter,
    Gauge,
    Histogram,
    MetricsCollector,
    Timer,
    get_metrics_collector,
)

__all__ = [
    # Logging
    "BufferHandler",
    "ConsoleHandler",
    "FileHandler",
    "LogLevel",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    # Metrics
    "Counter",
    "Gauge",
    "Histogram",
    "MetricsCollector",
    "Timer",
    "get_metrics_collector",
]
