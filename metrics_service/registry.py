"""Metric registry: prefixed get-or-create accessors and deferred gauges."""

from __future__ import annotations

import asyncio
import inspect
import math
import numbers
from collections.abc import Awaitable, Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, TypeVar, cast

import structlog

from metrics_service.contracts import TimerConfig
from metrics_service.engine import Counter, Gauge, StatsEngine, Summary, sanitize_label_name

if TYPE_CHECKING:
    from core.config import MetricsCfg

T = TypeVar("T")

GaugeValueCollector = Callable[[], Any]

COUNTER_PREFIX = "counter_"
GAUGE_PREFIX = "gauge_"
HISTOGRAM_PREFIX = "histogram_"
TIMER_PREFIX = "timer_"

KIND_PREFIXES: tuple[str, ...] = (TIMER_PREFIX, COUNTER_PREFIX, HISTOGRAM_PREFIX, GAUGE_PREFIX)


def is_numeric(value: Any) -> bool:
    """True for real numbers other than NaN."""
    return isinstance(value, numbers.Real) and not math.isnan(value)


class Timer:
    """Timing facade over a summary metric."""

    def __init__(self, summary: Summary) -> None:
        self._summary = summary

    @property
    def name(self) -> str:
        return self._summary.name

    @property
    def summary(self) -> Summary:
        return self._summary

    def time(self, body: Callable[[], T]) -> T:
        """Time ``body()`` and return its result.

        Synchronous results stop the timer right away, as do exceptions.
        Awaitable results stop it only once they settle: futures through a done
        callback, other awaitables by returning a coroutine that awaits them.
        """
        stop = self._summary.start_timer()
        try:
            result = body()
        except BaseException:
            stop()
            raise

        if isinstance(result, asyncio.Future):
            result.add_done_callback(lambda _: stop())
            return cast(T, result)
        if inspect.isawaitable(result):
            return cast(T, self._settle(result, stop))

        stop()
        return result

    async def _settle(self, awaitable: Awaitable[Any], stop: Callable[[], float]) -> Any:
        try:
            return await awaitable
        finally:
            stop()

    def start(self) -> Callable[[], float]:
        """Start now, stop later; the returned callable records the elapsed seconds."""
        return self._summary.start_timer()

    @contextmanager
    def timing(self) -> Iterator[None]:
        """Time the enclosed block (sync or async code inside a coroutine)."""
        stop = self._summary.start_timer()
        try:
            yield
        finally:
            stop()

    def observe(self, seconds: float) -> None:
        self._summary.observe(seconds)


class MetricsRegistry:
    """Registry of named metrics sharing one statistics engine.

    Metric names are composed as ``<kind>_<project>_<name>``. The kind prefix
    keeps the four metric families apart inside a single engine and is stripped
    again on export.
    """

    def __init__(
        self,
        engine: StatsEngine | None = None,
        default_timer_config: TimerConfig | None = None,
    ) -> None:
        """Initialize registry.

        Args:
            engine: Statistics engine (creates new if None)
            default_timer_config: Aging used by timers/histograms created without one
        """
        self.engine = engine or StatsEngine()
        self.default_timer_config = default_timer_config
        self._labels: dict[str, str] = {}
        self._gauges: dict[str, GaugeValueCollector] = {}
        self._prefix = ""
        self._log = structlog.get_logger("metrics_service.registry")

    @classmethod
    def from_config(cls, cfg: MetricsCfg) -> MetricsRegistry:
        registry = cls(default_timer_config=cfg.timers.to_timer_config())
        if cfg.project_name:
            registry.set_project_name(cfg.project_name)
        if cfg.static_labels:
            registry.set_static_labels(cfg.static_labels)
        return registry

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def labels(self) -> dict[str, str]:
        return dict(self._labels)

    @property
    def gauge_names(self) -> list[str]:
        return list(self._gauges)

    def set_project_name(self, project_name: str) -> None:
        """Prefix metrics created from now on with ``<project_name>_``."""
        self._prefix = f"{project_name}_"

    def set_static_labels(self, labels: Mapping[str, str]) -> None:
        """Replace the labels attached to every exported sample.

        Args:
            labels: Name/value pairs, e.g. {"service": "api", "region": "eu"}
        """
        self._labels = {name: str(value) for name, value in labels.items()}
        self._push_labels()

    def label(self, name: str, value: str) -> None:
        self._labels[name] = str(value)
        self._push_labels()

    def _push_labels(self) -> None:
        """Hand the labels to the engine under exposition-safe names.

        Keys are reported verbatim in JSON; in text output invalid characters
        become underscores and keys with nothing usable left are omitted.
        """
        exposed: dict[str, str] = {}
        for name, value in self._labels.items():
            exposed_name = sanitize_label_name(name)
            if exposed_name is None:
                self._log.debug("metrics.label_dropped", label_name=name)
                continue
            if exposed_name != name:
                self._log.debug("metrics.label_renamed", label_name=name, exposed=exposed_name)
            exposed[exposed_name] = value
        self.engine.set_default_labels(exposed)

    def clear(self) -> None:
        """Drop labels, gauge collectors, metrics and the project prefix."""
        self._labels.clear()
        self._gauges.clear()
        self.engine.clear()
        self._prefix = ""
        self._log.debug("metrics.cleared")

    def counter(self, name: str) -> Counter:
        metric_name = f"{COUNTER_PREFIX}{self._prefix}{name}"
        existing = self.engine.get_single_metric(metric_name)
        if existing is None:
            existing = self.engine.register(Counter(metric_name, f"{self._prefix}{name}"))
            self._log.debug("metrics.created", metric_name=metric_name, metric_type="counter")
        return cast(Counter, existing)

    def histogram(self, name: str, config: TimerConfig | None = None) -> Summary:
        return self._summary(f"{HISTOGRAM_PREFIX}{self._prefix}{name}", config)

    def timer(self, name: str, config: TimerConfig | None = None) -> Timer:
        return Timer(self._summary(f"{TIMER_PREFIX}{self._prefix}{name}", config))

    def _summary(self, metric_name: str, config: TimerConfig | None) -> Summary:
        existing = self.engine.get_single_metric(metric_name)
        if existing is None:
            help_text = metric_name.split("_", 1)[1]
            existing = self.engine.register(
                Summary(metric_name, help_text, config=config or self.default_timer_config)
            )
            self._log.debug("metrics.created", metric_name=metric_name, metric_type="summary")
        return cast(Summary, existing)

    def gauge(self, name: str, collector: GaugeValueCollector) -> None:
        """Register a collector evaluated on every export; the first one wins."""
        gauge_name = f"{self._prefix}{name}"
        if gauge_name in self._gauges:
            return
        self._gauges[gauge_name] = collector
        self._log.debug("metrics.gauge_registered", gauge_name=gauge_name)

    def flush_gauges(self) -> dict[str, Any]:
        """Evaluate every gauge collector and push numeric results to the engine.

        Returns:
            Collected values keyed by gauge name, numeric or not

        Raises:
            Exception: Whatever a collector raises is propagated unchanged
        """
        collected: dict[str, Any] = {}
        for key, collector in self._gauges.items():
            value = collector()
            collected[key] = value
            if not is_numeric(value):
                self._log.debug("metrics.gauge_skipped", gauge_name=key, value=repr(value))
                continue

            metric_name = f"{GAUGE_PREFIX}{key}"
            existing = self.engine.get_single_metric(metric_name)
            if existing is None:
                existing = self.engine.register(Gauge(metric_name, key))
            cast(Gauge, existing).set(value)
        return collected


_default_registry: MetricsRegistry | None = None


def get_registry() -> MetricsRegistry:
    """Get the process-wide default registry."""
    global _default_registry
    if _default_registry is None:
        _default_registry = MetricsRegistry()
    return _default_registry
