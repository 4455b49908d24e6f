from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest
import structlog

from metrics_service.exporters import MetricsExporter
from metrics_service.registry import MetricsRegistry


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingLogger:
    """Minimal structlog-like logger recording calls."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict[str, Any]]] = []

    def info(self, event: str, **kw: Any) -> None:
        self.events.append(("info", event, kw))

    def exception(self, event: str, **kw: Any) -> None:
        self.events.append(("exception", event, kw))

    def names(self) -> list[str]:
        return [event for _, event, _ in self.events]


@pytest.fixture
def registry() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def exporter(registry: MetricsRegistry) -> MetricsExporter:
    return MetricsExporter(registry)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()
