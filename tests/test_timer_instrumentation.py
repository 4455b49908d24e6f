"""Tests for Timer handles and timing decorators."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from metrics_service.contracts import TimerConfig
from metrics_service.decorators import instrument, metric_name_for, timed
from metrics_service.registry import MetricsRegistry


class Worker:
    def process(self, value: int) -> int:
        return value * 2


def timer_count(registry: MetricsRegistry, name: str) -> int:
    return int(registry.timer(name).summary.get()["count"])


class TestTimer:
    """Tests for Timer.time() and manual splits."""

    def test_time_returns_sync_result(self, registry: MetricsRegistry) -> None:
        """Test a synchronous body returns its value and records one sample."""
        result = registry.timer("op").time(lambda: 42)

        assert result == 42
        assert timer_count(registry, "op") == 1

    def test_time_records_on_exception(self, registry: MetricsRegistry) -> None:
        """Test the timer stops when the body raises."""

        def boom() -> None:
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            registry.timer("op").time(boom)

        assert timer_count(registry, "op") == 1

    @pytest.mark.asyncio
    async def test_time_waits_for_coroutine(self, registry: MetricsRegistry) -> None:
        """Test an awaitable result records only once it settles."""

        async def work() -> str:
            await asyncio.sleep(0)
            return "done"

        pending = registry.timer("op").time(work)
        assert timer_count(registry, "op") == 0

        assert await pending == "done"
        assert timer_count(registry, "op") == 1

    @pytest.mark.asyncio
    async def test_time_records_failed_coroutine(self, registry: MetricsRegistry) -> None:
        async def work() -> None:
            raise RuntimeError("failed")

        with pytest.raises(RuntimeError, match="failed"):
            await registry.timer("op").time(work)

        assert timer_count(registry, "op") == 1

    @pytest.mark.asyncio
    async def test_time_waits_for_future(self, registry: MetricsRegistry) -> None:
        """Test futures are returned untouched and recorded on completion."""
        future: asyncio.Future[int] = asyncio.get_running_loop().create_future()

        returned = registry.timer("op").time(lambda: future)
        assert returned is future
        assert timer_count(registry, "op") == 0

        future.set_result(7)
        assert await returned == 7
        await asyncio.sleep(0)

        assert timer_count(registry, "op") == 1

    def test_start_and_stop_later(self, registry: MetricsRegistry) -> None:
        """Test manual split records the elapsed time once stopped."""
        stop = registry.timer("op").start()
        assert timer_count(registry, "op") == 0

        elapsed = stop()

        assert elapsed >= 0.0
        assert timer_count(registry, "op") == 1

    def test_timing_block(self, registry: MetricsRegistry) -> None:
        with pytest.raises(KeyError):
            with registry.timer("op").timing():
                raise KeyError("inside")

        with registry.timer("op").timing():
            pass

        assert timer_count(registry, "op") == 2


class TestInstrument:
    """Tests for instrument() and @timed."""

    def test_instrument_sync_function(self, registry: MetricsRegistry) -> None:
        """Test each call is timed under the explicit name."""
        wrapped = instrument(Worker().process, registry, "Worker_process")

        assert wrapped(2) == 4
        assert wrapped(3) == 6
        assert timer_count(registry, "Worker_process") == 2

    @pytest.mark.asyncio
    async def test_instrument_async_function(self, registry: MetricsRegistry) -> None:
        """Test coroutine functions are timed until the awaited call settles."""

        async def fetch(url: str) -> str:
            await asyncio.sleep(0)
            return url.upper()

        wrapped = instrument(fetch, registry, "fetch")
        pending = wrapped("x")
        assert timer_count(registry, "fetch") == 0

        assert await pending == "X"
        assert timer_count(registry, "fetch") == 1

    @pytest.mark.asyncio
    async def test_instrument_async_failure(self, registry: MetricsRegistry) -> None:
        async def fetch() -> None:
            raise ConnectionError("down")

        wrapped = instrument(fetch, registry, "fetch")

        with pytest.raises(ConnectionError):
            await wrapped()

        assert timer_count(registry, "fetch") == 1

    def test_instrument_preserves_metadata(self, registry: MetricsRegistry) -> None:
        def handler() -> None:
            """Handle things."""

        wrapped = instrument(handler, registry, "handler")

        assert wrapped.__name__ == "handler"
        assert wrapped.__doc__ == "Handle things."

    def test_instrument_rejects_non_callable(self, registry: MetricsRegistry) -> None:
        with pytest.raises(TypeError, match="can only wrap callable"):
            instrument(42, registry, "nope")  # type: ignore[arg-type]

    def test_timed_derives_name_from_qualname(self, registry: MetricsRegistry) -> None:
        """Test methods are timed as <Class>_<method>."""
        timed_process = timed(registry)(Worker.process)

        assert timed_process(Worker(), 5) == 10
        assert registry.engine.get_single_metric("timer_Worker_process") is not None

    def test_timed_explicit_name_and_config(self, registry: MetricsRegistry) -> None:
        """Test explicit name and aging config are honoured."""
        config = TimerConfig(max_age_seconds=30.0, age_buckets=3)

        class Service:
            @timed(registry, "handle", config)
            def handle(self) -> str:
                return "ok"

        assert Service().handle() == "ok"
        timer = registry.timer("handle")
        assert timer.summary.config == config
        assert timer.summary.get()["count"] == 1

    def test_timed_uses_project_prefix(self, registry: MetricsRegistry) -> None:
        registry.set_project_name("svc")

        @timed(registry, "job")
        def job() -> Any:
            return None

        job()

        assert registry.engine.get_single_metric("timer_svc_job") is not None


def test_metric_name_for() -> None:
    def outer() -> Any:
        def inner() -> None:
            return None

        return inner

    assert metric_name_for(Worker.process) == "Worker_process"
    assert metric_name_for(outer()) == "test_metric_name_for_outer_inner"
