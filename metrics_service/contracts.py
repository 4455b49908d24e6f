"""Contracts for metric configuration and export snapshots.

Snapshots are modelled as a tagged union: each exported metric is one of
``CounterSample``, ``GaugeSample``, ``TimerSample``, ``HistogramSample`` or
``UnknownSample``. ``MetricsSnapshot`` groups them and renders the JSON shape
consumed by dashboards and the console report.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Literal

MetricKind = Literal["counter", "gauge", "timer", "histogram", "unknown"]

DEFAULT_QUANTILES: tuple[float, ...] = (0.5, 0.9, 0.95, 0.99)

DEFAULT_MAX_AGE_SECONDS = 600.0
DEFAULT_AGE_BUCKETS = 5


@dataclass(frozen=True)
class TimerConfig:
    """Aging configuration for timers and histograms.

    Attributes:
        max_age_seconds: Observations older than this are dropped from quantiles
        age_buckets: Number of rolling buckets the window is split into
        prune_aged_buckets: Emit no samples once every bucket has aged out

    Raises:
        ValueError: If max_age_seconds <= 0 or age_buckets < 1
    """

    max_age_seconds: float | None = None
    age_buckets: int | None = None
    prune_aged_buckets: bool = False

    def __post_init__(self) -> None:
        if self.max_age_seconds is not None and self.max_age_seconds <= 0:
            raise ValueError(f"max_age_seconds must be > 0, got {self.max_age_seconds}")
        if self.age_buckets is not None and self.age_buckets < 1:
            raise ValueError(f"age_buckets must be >= 1, got {self.age_buckets}")

    @property
    def is_windowed(self) -> bool:
        return self.max_age_seconds is not None or self.age_buckets is not None

    def window(self) -> tuple[float, int] | None:
        """Resolve (max_age_seconds, age_buckets), or None when nothing ages out."""
        if not self.is_windowed:
            return None
        max_age = (
            self.max_age_seconds if self.max_age_seconds is not None else DEFAULT_MAX_AGE_SECONDS
        )
        buckets = self.age_buckets if self.age_buckets is not None else DEFAULT_AGE_BUCKETS
        return max_age, buckets


@dataclass(frozen=True)
class QuantileSummary:
    """Quantile summary of a timer or histogram.

    A quantile is None when the current window holds no observations.
    """

    p50: float | None
    p90: float | None
    p95: float | None
    p99: float | None
    count: int

    @classmethod
    def from_engine(cls, data: Mapping[str, Any]) -> QuantileSummary:
        """Build from ``Summary.get()`` output, looking quantiles up by value."""
        quantiles: Mapping[float, float | None] = data.get("quantiles", {})
        return cls(
            p50=quantiles.get(0.5),
            p90=quantiles.get(0.9),
            p95=quantiles.get(0.95),
            p99=quantiles.get(0.99),
            count=int(data.get("count", 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "50": self.p50,
            "90": self.p90,
            "95": self.p95,
            "99": self.p99,
            "count": self.count,
        }


@dataclass(frozen=True)
class CounterSample:
    name: str
    value: float
    kind: ClassVar[MetricKind] = "counter"


@dataclass(frozen=True)
class GaugeSample:
    name: str
    value: float | str
    kind: ClassVar[MetricKind] = "gauge"


@dataclass(frozen=True)
class TimerSample:
    name: str
    summary: QuantileSummary
    kind: ClassVar[MetricKind] = "timer"


@dataclass(frozen=True)
class HistogramSample:
    name: str
    summary: QuantileSummary
    kind: ClassVar[MetricKind] = "histogram"


@dataclass(frozen=True)
class UnknownSample:
    name: str
    text: str
    kind: ClassVar[MetricKind] = "unknown"


MetricSample = CounterSample | GaugeSample | TimerSample | HistogramSample | UnknownSample


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time export of a registry.

    Attributes:
        samples: Exported metrics, in export order
        labels: Static labels attached to every exported sample
    """

    samples: tuple[MetricSample, ...] = ()
    labels: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "samples", tuple(self.samples))
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))

    def of_kind(self, kind: MetricKind) -> list[MetricSample]:
        return [sample for sample in self.samples if sample.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        """Render the JSON summary grouped by metric kind."""
        result: dict[str, Any] = {
            "counters": {},
            "gauges": {},
            "timers": {},
            "histograms": {},
            "labels": dict(self.labels),
            "unknown": {},
        }
        for sample in self.samples:
            if isinstance(sample, CounterSample):
                result["counters"][sample.name] = sample.value
            elif isinstance(sample, GaugeSample):
                result["gauges"][sample.name] = sample.value
            elif isinstance(sample, TimerSample):
                result["timers"][sample.name] = sample.summary.to_dict()
            elif isinstance(sample, HistogramSample):
                result["histograms"][sample.name] = sample.summary.to_dict()
            else:
                result["unknown"][sample.name] = sample.text
        return result
