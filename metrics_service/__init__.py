"""In-process metrics registry with Prometheus, JSON and console export."""

from metrics_service.contracts import (
    CounterSample,
    GaugeSample,
    HistogramSample,
    MetricsSnapshot,
    QuantileSummary,
    TimerConfig,
    TimerSample,
    UnknownSample,
)
from metrics_service.decorators import instrument, timed
from metrics_service.engine import Counter, Gauge, StatsEngine, Summary
from metrics_service.exporters import MetricsExporter
from metrics_service.registry import MetricsRegistry, Timer, get_registry
from metrics_service.reporter import ConsoleReporter

__all__ = [
    "ConsoleReporter",
    "Counter",
    "CounterSample",
    "Gauge",
    "GaugeSample",
    "HistogramSample",
    "MetricsExporter",
    "MetricsRegistry",
    "MetricsSnapshot",
    "QuantileSummary",
    "StatsEngine",
    "Summary",
    "Timer",
    "TimerConfig",
    "TimerSample",
    "UnknownSample",
    "get_registry",
    "instrument",
    "timed",
]
