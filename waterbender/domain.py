"""Core dashboard types: datasets, date ranges, loading flags and cache metadata."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Hashable, Mapping, Optional, Union


class DatasetName(str, Enum):
    """The five remote-backed values shown on the dashboard."""
    LATEST = "latest"
    AVERAGE = "average"
    DAILY = "daily"
    MONTHLY = "monthly"
    FORECAST = "forecast"


# Order in which an orchestration round issues its fetches.
FETCH_ORDER = (
    DatasetName.AVERAGE,
    DatasetName.LATEST,
    DatasetName.MONTHLY,
    DatasetName.DAILY,
    DatasetName.FORECAST,
)

CacheKey = Optional[Hashable]


@dataclass(frozen=True)
class DateRange:
    """User-selected range; a missing endpoint means "today". start <= end is not checked."""
    start: Optional[dt.date] = None
    end: Optional[dt.date] = None


@dataclass(frozen=True)
class CacheEntry:
    """When a dataset value was fetched, when it expires, and the key it was fetched under."""
    fetched_at: dt.datetime
    expires_at: dt.datetime
    key: CacheKey = None


@dataclass(frozen=True)
class DatasetError:
    """Failure recorded against a single dataset."""
    message: str
    occurred_at: dt.datetime


@dataclass(frozen=True)
class Dataset:
    """Immutable snapshot of one dataset as held by the store."""
    name: DatasetName
    value: Any = None
    loading: bool = False
    error: Optional[DatasetError] = None
    cache_entry: Optional[CacheEntry] = None
    pending_key: CacheKey = None  # key of the fetch in flight while loading

    @property
    def last_fetched_at(self) -> Optional[dt.datetime]:
        return self.cache_entry.fetched_at if self.cache_entry else None

    @property
    def cache_key(self) -> CacheKey:
        return self.cache_entry.key if self.cache_entry else None

    def evolve(self, **changes) -> "Dataset":
        return replace(self, **changes)


_FLAG_ALIASES = {
    "needsLastData": "needs_last_data",
    "needsDailyData": "needs_daily_data",
    "needsMonthlyData": "needs_monthly_data",
    "needsForecastData": "needs_forecast_data",
}


@dataclass(frozen=True)
class LoadingFlags:
    """
    Per-call fetch overrides.

    ``None`` means "needs fetch"; only an explicit ``False`` suppresses the
    corresponding fetch. The period average has no flag and is always fetched.
    """
    needs_last_data: Optional[bool] = None
    needs_daily_data: Optional[bool] = None
    needs_monthly_data: Optional[bool] = None
    needs_forecast_data: Optional[bool] = None

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "LoadingFlags":
        """Build flags from snake_case or camelCase keys; unknown keys are ignored."""
        if not data:
            return cls()
        values = {}
        for key, value in data.items():
            field = _FLAG_ALIASES.get(key, key)
            if field in cls.__dataclass_fields__:
                values[field] = value
        return cls(**values)

    @staticmethod
    def _wants(flag: Optional[bool]) -> bool:
        return flag is not False

    @property
    def wants_latest(self) -> bool:
        return self._wants(self.needs_last_data)

    @property
    def wants_daily(self) -> bool:
        return self._wants(self.needs_daily_data)

    @property
    def wants_monthly(self) -> bool:
        return self._wants(self.needs_monthly_data)

    @property
    def wants_forecast(self) -> bool:
        return self._wants(self.needs_forecast_data)


@dataclass(frozen=True)
class FetchSuccess:
    """A dataset fetch that resolved with a payload."""
    name: DatasetName
    value: Any
    ok: bool = True


@dataclass(frozen=True)
class FetchFailure:
    """A dataset fetch that rejected; `message` is user-facing."""
    name: DatasetName
    message: str
    ok: bool = False


FetchOutcome = Union[FetchSuccess, FetchFailure]
