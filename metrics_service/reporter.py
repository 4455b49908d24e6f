"""Periodic console reporting of registry metrics."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Any

import structlog

from metrics_service.exporters import MetricsExporter


class ConsoleReporter:
    """Background task logging the console report at a fixed interval.

    Export failures (for example a gauge collector raising) are logged and the
    loop keeps running.
    """

    def __init__(
        self,
        exporter: MetricsExporter,
        interval_sec: float = 60.0,
        logger: Any | None = None,
    ) -> None:
        if interval_sec <= 0:
            raise ValueError(f"interval_sec must be > 0, got {interval_sec}")
        self.exporter = exporter
        self.interval_sec = interval_sec
        self._log = logger or structlog.get_logger("metrics_service.reporter")
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return

        task = self._task
        self._task = None
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    def report_once(self) -> str | None:
        """Log one report; returns it, or None if the export failed."""
        try:
            report = self.exporter.to_console()
        except Exception:
            self._log.exception("metrics.report_failed")
            return None
        self._log.info("metrics.report", report=report)
        return report

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            self.report_once()
