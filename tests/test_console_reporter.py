"""Tests for the periodic console reporter."""

from __future__ import annotations

import asyncio

import pytest

from metrics_service.exporters import MetricsExporter
from metrics_service.registry import MetricsRegistry
from metrics_service.reporter import ConsoleReporter


class TestConsoleReporter:
    """Tests for ConsoleReporter."""

    def test_report_once_logs_console_text(
        self, registry: MetricsRegistry, exporter: MetricsExporter, recording_logger
    ) -> None:
        """Test one report is logged with the console rendering."""
        registry.counter("requests").inc()
        reporter = ConsoleReporter(exporter, logger=recording_logger)

        report = reporter.report_once()

        assert report == exporter.to_console()
        level, event, fields = recording_logger.events[0]
        assert (level, event) == ("info", "metrics.report")
        assert "requests:" in fields["report"]

    def test_report_once_survives_collector_failure(
        self, registry: MetricsRegistry, exporter: MetricsExporter, recording_logger
    ) -> None:
        """Test a failing gauge collector is logged instead of raised."""

        def broken() -> float:
            raise RuntimeError("collector broke")

        registry.gauge("depth", broken)
        reporter = ConsoleReporter(exporter, logger=recording_logger)

        assert reporter.report_once() is None
        assert recording_logger.names() == ["metrics.report_failed"]

    def test_rejects_non_positive_interval(self, exporter: MetricsExporter) -> None:
        with pytest.raises(ValueError, match="interval_sec must be > 0"):
            ConsoleReporter(exporter, interval_sec=0)

    @pytest.mark.asyncio
    async def test_periodic_reports(
        self, registry: MetricsRegistry, exporter: MetricsExporter, recording_logger
    ) -> None:
        """Test the background loop keeps reporting after a failure."""
        calls = {"n": 0}

        def flaky() -> float:
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("first call fails")
            return float(calls["n"])

        registry.gauge("depth", flaky)
        reporter = ConsoleReporter(exporter, interval_sec=0.01, logger=recording_logger)

        await reporter.start()
        assert reporter.running
        for _ in range(100):
            if "metrics.report" in recording_logger.names():
                break
            await asyncio.sleep(0.01)
        await reporter.stop()

        names = recording_logger.names()
        assert names[0] == "metrics.report_failed"
        assert "metrics.report" in names
        assert not reporter.running

    @pytest.mark.asyncio
    async def test_stop_without_start(self, exporter: MetricsExporter) -> None:
        reporter = ConsoleReporter(exporter)

        await reporter.stop()

        assert not reporter.running
