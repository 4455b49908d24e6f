"""Decorators for automatic timing instrumentation."""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable
from typing import Any, TypeVar, cast

from metrics_service.contracts import TimerConfig
from metrics_service.registry import MetricsRegistry

F = TypeVar("F", bound=Callable[..., Any])


def metric_name_for(func: Callable[..., Any]) -> str:
    """Derive a metric name from a function's qualified name.

    Methods map to ``<Class>_<method>``; ``<locals>`` scopes are dropped.
    """
    qualname = getattr(func, "__qualname__", None) or func.__name__
    parts = [part for part in qualname.split(".") if part != "<locals>"]
    return "_".join(parts)


def instrument(
    func: F,
    registry: MetricsRegistry,
    name: str,
    config: TimerConfig | None = None,
) -> F:
    """Wrap ``func`` so every call is timed under ``registry.timer(name)``.

    Args:
        func: Callable to wrap (sync or async)
        registry: Registry owning the timer
        name: Logical timer name
        config: Optional aging configuration

    Returns:
        Wrapped callable with the same signature

    Example:
        fetch = instrument(client.fetch, registry, "Client_fetch")
        await fetch(url)
    """
    if not callable(func):
        raise TypeError(f"instrument can only wrap callable, got {type(func)}")

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            stop = registry.timer(name, config).start()
            try:
                return await func(*args, **kwargs)
            finally:
                stop()

        return cast(F, async_wrapper)

    @functools.wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        # Awaitables returned by plain functions stop the timer when they settle
        return registry.timer(name, config).time(lambda: func(*args, **kwargs))

    return cast(F, sync_wrapper)


def timed(
    registry: MetricsRegistry,
    name: str | None = None,
    config: TimerConfig | None = None,
) -> Callable[[F], F]:
    """Decorator to time every call of a function.

    Args:
        registry: Registry owning the timer
        name: Timer name (derived from the qualified name if None)
        config: Optional aging configuration

    Returns:
        Decorator function

    Example:
        class OrderService:
            @timed(registry)
            async def place(self, order: Order) -> None:  # timer "OrderService_place"
                ...
    """

    def decorator(func: F) -> F:
        if not callable(func):
            raise TypeError(f"timed can only decorate callable, got {type(func)}")
        return instrument(func, registry, name or metric_name_for(func), config)

    return decorator
