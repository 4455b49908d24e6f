"""Statistics engine: metric objects and Prometheus text rendering."""

from __future__ import annotations

import math
import re
import time
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import numpy as np

from metrics_service.contracts import DEFAULT_QUANTILES, TimerConfig

DEFAULT_MAX_SAMPLES = 4096

_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
_INVALID_LABEL_CHARS_RE = re.compile(r"[^a-zA-Z0-9_]")


def validate_metric_name(name: str) -> str:
    if not _METRIC_NAME_RE.match(name):
        raise ValueError(f"Invalid metric name: {name!r}")
    return name


def is_valid_label_name(name: str) -> bool:
    return bool(_LABEL_NAME_RE.match(name)) and not name.startswith("__")


def validate_label_name(name: str) -> str:
    if not is_valid_label_name(name):
        raise ValueError(f"Invalid label name: {name!r}")
    return name


def sanitize_label_name(name: str) -> str | None:
    """Map an arbitrary key to a valid label name ("app-name" -> "app_name").

    Returns None when nothing usable remains.
    """
    candidate = _INVALID_LABEL_CHARS_RE.sub("_", name).lstrip("_")
    if candidate and candidate[0].isdigit():
        candidate = f"_{candidate}"
    return candidate if candidate and is_valid_label_name(candidate) else None


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _format_value(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return str(value)


def _quantiles(values: list[float], quantiles: tuple[float, ...]) -> dict[float, float | None]:
    """Linear-interpolated quantiles; None for every quantile of an empty window."""
    if not values or not quantiles:
        return {q: None for q in quantiles}
    computed = np.quantile(np.asarray(values, dtype=float), quantiles)
    return {q: float(value) for q, value in zip(quantiles, computed, strict=True)}


class Counter:
    """Counter metric (monotonically increasing)."""

    kind = "counter"

    def __init__(self, name: str, help_text: str) -> None:
        self.name = validate_metric_name(name)
        self.help_text = help_text
        self._value = 0.0

    def inc(self, amount: float = 1.0) -> None:
        """Increment counter.

        Args:
            amount: Amount to increment by (must be >= 0)

        Raises:
            ValueError: If amount < 0
        """
        if amount < 0:
            raise ValueError(f"Counter can only increase, got negative amount: {amount}")
        self._value += amount

    def get(self) -> float:
        return self._value

    def reset(self) -> None:
        self._value = 0.0

    def collect(self) -> list[tuple[dict[str, str], float]]:
        return [({}, self._value)]


class Gauge:
    """Gauge metric (can go up and down)."""

    kind = "gauge"

    def __init__(self, name: str, help_text: str) -> None:
        self.name = validate_metric_name(name)
        self.help_text = help_text
        self._value = 0.0

    def set(self, value: float) -> None:
        self._value = float(value)

    def inc(self, amount: float = 1.0) -> None:
        self._value += amount

    def dec(self, amount: float = 1.0) -> None:
        self._value -= amount

    def get(self) -> float:
        return self._value

    def collect(self) -> list[tuple[dict[str, str], float]]:
        return [({}, self._value)]


class _AgeWindow:
    """Rolling window of observations split into age buckets.

    The newest bucket receives observations; every ``max_age / buckets`` seconds
    a fresh bucket is pushed and the oldest one drops out. Each bucket keeps at
    most ``max_samples // buckets`` of its most recent observations.
    """

    def __init__(
        self,
        max_age_seconds: float,
        age_buckets: int,
        clock: Callable[[], float],
        max_samples: int = DEFAULT_MAX_SAMPLES,
    ):
        self._clock = clock
        self._rotate_every = max_age_seconds / age_buckets
        self._per_bucket = max(1, max_samples // age_buckets)
        self._buckets: deque[deque[float]] = deque(
            (deque(maxlen=self._per_bucket) for _ in range(age_buckets)), maxlen=age_buckets
        )
        self._last_rotation = clock()

    def _rotate(self) -> None:
        elapsed = self._clock() - self._last_rotation
        steps = int(elapsed // self._rotate_every)
        if steps <= 0:
            return
        for _ in range(min(steps, self._buckets.maxlen or 1)):
            self._buckets.append(deque(maxlen=self._per_bucket))
        self._last_rotation += steps * self._rotate_every

    def add(self, value: float) -> None:
        self._rotate()
        self._buckets[-1].append(value)

    def values(self) -> list[float]:
        self._rotate()
        return [value for bucket in self._buckets for value in bucket]


class _Recent:
    """Most recent ``max_samples`` observations, for summaries that never age out."""

    def __init__(self, max_samples: int = DEFAULT_MAX_SAMPLES) -> None:
        self._values: deque[float] = deque(maxlen=max_samples)

    def add(self, value: float) -> None:
        self._values.append(value)

    def values(self) -> list[float]:
        return list(self._values)


class Summary:
    """Summary metric: quantiles over a window plus cumulative sum and count."""

    kind = "summary"

    def __init__(
        self,
        name: str,
        help_text: str,
        quantiles: Iterable[float] = DEFAULT_QUANTILES,
        config: TimerConfig | None = None,
        clock: Callable[[], float] = time.perf_counter,
        max_samples: int = DEFAULT_MAX_SAMPLES,
    ) -> None:
        """Initialize summary.

        Args:
            name: Metric name
            help_text: Help text for metric
            quantiles: Quantiles to report (each in [0, 1])
            config: Aging configuration (no aging if None)
            clock: Monotonic clock used for aging and timing
            max_samples: Upper bound on observations retained for quantiles

        Raises:
            ValueError: If a quantile falls outside [0, 1] or max_samples < 1
        """
        if max_samples < 1:
            raise ValueError(f"max_samples must be >= 1, got {max_samples}")
        self.name = validate_metric_name(name)
        self.help_text = help_text
        self.quantiles = tuple(sorted(quantiles))
        for q in self.quantiles:
            if not 0.0 <= q <= 1.0:
                raise ValueError(f"quantiles must be within [0, 1], got {q}")
        self.config = config or TimerConfig()
        self._clock = clock
        window = self.config.window()
        self._window: _AgeWindow | _Recent = (
            _AgeWindow(window[0], window[1], clock, max_samples)
            if window
            else _Recent(max_samples)
        )
        self._sum = 0.0
        self._count = 0

    def observe(self, value: float) -> None:
        self._window.add(value)
        self._sum += value
        self._count += 1

    def start_timer(self) -> Callable[[], float]:
        """Start timing; the returned callable observes and returns elapsed seconds."""
        started = self._clock()

        def stop() -> float:
            elapsed = self._clock() - started
            self.observe(elapsed)
            return elapsed

        return stop

    def get(self) -> dict[str, Any]:
        """Get summary data.

        Returns:
            Dictionary with quantiles (quantile -> value or None), sum, count
        """
        values = self._window.values()
        return {
            "quantiles": _quantiles(values, self.quantiles),
            "sum": self._sum,
            "count": self._count,
            "window_size": len(values),
        }

    def collect(self) -> list[tuple[dict[str, str], dict[float, float | None], float, int]]:
        """Collect samples; empty once the window ages out with pruning enabled."""
        data = self.get()
        if self.config.prune_aged_buckets and data["window_size"] == 0:
            return []
        return [({}, data["quantiles"], data["sum"], data["count"])]


Metric = Counter | Gauge | Summary


class StatsEngine:
    """Store of named metrics with text exposition rendering."""

    def __init__(self) -> None:
        self._metrics: dict[str, Metric] = {}
        self._default_labels: dict[str, str] = {}

    def register(self, metric: Metric) -> Metric:
        """Register a metric.

        Raises:
            ValueError: If a metric with the same name is already registered
        """
        if metric.name in self._metrics:
            raise ValueError(f"Metric {metric.name} already registered")
        self._metrics[metric.name] = metric
        return metric

    def get_single_metric(self, name: str) -> Metric | None:
        return self._metrics.get(name)

    def metric_names(self) -> list[str]:
        return list(self._metrics)

    def __len__(self) -> int:
        return len(self._metrics)

    @property
    def default_labels(self) -> dict[str, str]:
        return dict(self._default_labels)

    def set_default_labels(self, labels: Mapping[str, str]) -> None:
        """Replace labels merged into every rendered sample."""
        for name in labels:
            validate_label_name(name)
        self._default_labels = {name: str(value) for name, value in labels.items()}

    def clear(self) -> None:
        self._metrics.clear()
        self._default_labels = {}

    def render(self) -> str:
        """Render all metrics in Prometheus text exposition format."""
        blocks = [self._render(metric) for metric in self._metrics.values()]
        return "\n".join(blocks) + "\n" if blocks else ""

    def render_metric(self, name: str) -> str:
        metric = self._metrics.get(name)
        if metric is None:
            raise KeyError(name)
        return self._render(metric)

    def _render(self, metric: Metric) -> str:
        name = metric.name
        lines = [f"# HELP {name} {metric.help_text}", f"# TYPE {name} {metric.kind}"]

        if isinstance(metric, Summary):
            for _, quantiles, sum_val, count_val in metric.collect():
                for quantile, value in quantiles.items():
                    if value is None:
                        continue
                    label_str = self._format_labels({"quantile": str(quantile)})
                    lines.append(f"{name}{label_str} {_format_value(value)}")
                base_label_str = self._format_labels({})
                lines.append(f"{name}_sum{base_label_str} {_format_value(sum_val)}")
                lines.append(f"{name}_count{base_label_str} {count_val}")
        else:
            for labels_dict, value in metric.collect():
                label_str = self._format_labels(labels_dict)
                lines.append(f"{name}{label_str} {_format_value(value)}")

        return "\n".join(lines)

    def _format_labels(self, labels: dict[str, str]) -> str:
        """Format sample labels merged with default labels (e.g. '{k1="v1",k2="v2"}')."""
        merged = {**self._default_labels, **labels}
        if not merged:
            return ""

        # Sort labels for deterministic output
        label_parts = [
            f'{key}="{_escape_label_value(value)}"' for key, value in sorted(merged.items())
        ]
        return "{" + ",".join(label_parts) + "}"
