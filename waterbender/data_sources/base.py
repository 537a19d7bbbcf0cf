"""Interfaces and helpers for water-level data sources."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, List, Protocol

from waterbender.data_sources.models import (
    ForecastReading,
    HourlyReading,
    LatestReading,
    MonthlyReading,
    PeriodAverage,
)
from waterbender.params import RequestParams


class WaterDataSource(Protocol):
    """Anything that can provide the five dashboard datasets asynchronously."""

    async def fetch_latest(self) -> LatestReading:
        """Return the most recent sensor reading."""
        ...

    async def fetch_average(self, params: RequestParams) -> PeriodAverage:
        """Return the average surface level for the requested date range."""
        ...

    async def fetch_daily(self) -> List[HourlyReading]:
        """Return today's hourly readings."""
        ...

    async def fetch_monthly(self, year: str) -> List[MonthlyReading]:
        """Return monthly aggregates for `year`."""
        ...

    async def fetch_forecast(self) -> List[ForecastReading]:
        """Return hourly forecast predictions."""
        ...


async def _invoke(fn: Callable[..., Any], *args) -> Any:
    """Await coroutine functions directly; push blocking callables onto a worker thread."""
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    result = await asyncio.to_thread(fn, *args)
    if inspect.isawaitable(result):
        return await result
    return result


@dataclass
class CallableWaterDataSource(WaterDataSource):
    """Wrap five callables (sync or async) so backends can be swapped freely."""

    latest: Callable[..., Any]
    average: Callable[..., Any]
    daily: Callable[..., Any]
    monthly: Callable[..., Any]
    forecast: Callable[..., Any]

    async def fetch_latest(self) -> LatestReading:
        return await _invoke(self.latest)

    async def fetch_average(self, params: RequestParams) -> PeriodAverage:
        return await _invoke(self.average, params)

    async def fetch_daily(self) -> List[HourlyReading]:
        return await _invoke(self.daily)

    async def fetch_monthly(self, year: str) -> List[MonthlyReading]:
        return await _invoke(self.monthly, year)

    async def fetch_forecast(self) -> List[ForecastReading]:
        return await _invoke(self.forecast)
