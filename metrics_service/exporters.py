"""Exporters rendering a registry as Prometheus text, JSON or a console report."""

from __future__ import annotations

import json
from typing import Any, cast

from metrics_service.contracts import (
    CounterSample,
    GaugeSample,
    HistogramSample,
    MetricSample,
    MetricsSnapshot,
    QuantileSummary,
    TimerSample,
    UnknownSample,
)
from metrics_service.engine import Counter, Gauge, Summary
from metrics_service.registry import (
    COUNTER_PREFIX,
    GAUGE_PREFIX,
    HISTOGRAM_PREFIX,
    KIND_PREFIXES,
    TIMER_PREFIX,
    MetricsRegistry,
    is_numeric,
)

CONSOLE_HEADER = "****** METRICS ******"
VALUE_WIDTH = 12

_METADATA_PREFIXES = ("# HELP ", "# TYPE ")


def strip_kind_prefix(line: str) -> str:
    """Remove a leading kind prefix from a sample or metadata line."""
    for marker in _METADATA_PREFIXES:
        if line.startswith(marker):
            return marker + strip_kind_prefix(line[len(marker) :])
    for prefix in KIND_PREFIXES:
        if line.startswith(prefix):
            return line[len(prefix) :]
    return line


def format_number(value: float) -> str:
    """Group thousands with commas and keep at most three decimals."""
    if isinstance(value, int):
        return f"{value:,}"
    return f"{value:,.3f}".rstrip("0").rstrip(".")


class MetricsExporter:
    """Renders the current state of a ``MetricsRegistry``.

    Every export flushes deferred gauges first, so collector failures surface
    to the caller.
    """

    def __init__(self, registry: MetricsRegistry) -> None:
        self.registry = registry

    def to_prometheus(self) -> str:
        """Render the Prometheus text exposition with kind prefixes stripped."""
        self.registry.flush_gauges()
        text = self.registry.engine.render()
        return "\n".join(strip_kind_prefix(line) for line in text.split("\n"))

    def snapshot(self) -> MetricsSnapshot:
        collected = self.registry.flush_gauges()
        engine = self.registry.engine

        samples: list[MetricSample] = []
        # Non-numeric collector results without a previous numeric value are reported as-is
        for key, value in collected.items():
            if value is None or is_numeric(value):
                continue
            if engine.get_single_metric(f"{GAUGE_PREFIX}{key}") is None:
                samples.append(GaugeSample(key, str(value)))

        for name in engine.metric_names():
            metric = engine.get_single_metric(name)
            if name.startswith(COUNTER_PREFIX):
                samples.append(
                    CounterSample(name[len(COUNTER_PREFIX) :], cast(Counter, metric).get())
                )
            elif name.startswith(GAUGE_PREFIX):
                samples.append(GaugeSample(name[len(GAUGE_PREFIX) :], cast(Gauge, metric).get()))
            elif name.startswith(TIMER_PREFIX):
                summary = QuantileSummary.from_engine(cast(Summary, metric).get())
                samples.append(TimerSample(name[len(TIMER_PREFIX) :], summary))
            elif name.startswith(HISTOGRAM_PREFIX):
                summary = QuantileSummary.from_engine(cast(Summary, metric).get())
                samples.append(HistogramSample(name[len(HISTOGRAM_PREFIX) :], summary))
            else:
                samples.append(UnknownSample(name, engine.render_metric(name)))

        samples.sort(key=lambda sample: sample.name)
        return MetricsSnapshot(samples=tuple(samples), labels=self.registry.labels)

    def to_json(self) -> dict[str, Any]:
        return self.snapshot().to_dict()

    def to_console(self) -> str:
        """Render a column-aligned human readable report."""
        metrics = self.to_json()
        sections: list[tuple[str, dict[str, Any]]] = [
            ("Labels:", metrics["labels"]),
            ("Counters:", metrics["counters"]),
            ("Gauges:", metrics["gauges"]),
            ("Timers:", metrics["timers"]),
            ("Histograms:", metrics["histograms"]),
        ]

        keys = [key for _, entries in sections for key in entries]
        width = max((len(key) for key in keys), default=0) + 3

        msg = CONSOLE_HEADER + "\n"
        for title, entries in sections:
            if not entries:
                continue
            msg += title.ljust(width) + "\n"
            for name, value in entries.items():
                msg += f"  {(name + ':').ljust(width)}{self._format_entry(title, value)}\n"

        return msg.rstrip()

    def _format_entry(self, title: str, value: Any) -> str:
        if title == "Labels:":
            return json.dumps(value)
        if title in ("Timers:", "Histograms:"):
            return json.dumps(value, separators=(",", ":"))
        if is_numeric(value):
            return format_number(value).rjust(VALUE_WIDTH)
        return str(value)
