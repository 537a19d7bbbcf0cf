"""SQL-backed water data source.

Reads raw gauge rows from a ``senselog`` table (``recorded_at``, ``surface``,
``distance``) and forecast rows from ``senselog_forecast`` (``forecast_for``,
``surface``). Monthly averages are computed in SQL; hourly buckets are
grouped in Python so the same queries run on Postgres and on SQLite (used in
tests). Timestamps are stored naive, in the gauge's local time.
"""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from statistics import fmean
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import DateTime, Float, Integer, bindparam, create_engine, text
from sqlalchemy.engine import Engine

from waterbender.data_sources.models import (
    ForecastReading,
    HourlyReading,
    LatestReading,
    MonthlyReading,
    PeriodAverage,
    PeriodPoint,
)
from waterbender.data_sources.senselog_client import (
    DEFAULT_FORECAST_HOURS,
    MAX_RANGE_DAYS,
    MIN_YEAR,
    clamp_forecast_hours,
    parse_api_date,
    validate_date_range,
    validate_year,
)
from waterbender.params import RequestParams
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="postgres_data_source")


def _mean(values: Iterable[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    return fmean(present) if present else None


class PostgresWaterDataSource:
    """Serve dashboard datasets straight from the telemetry database."""

    def __init__(
        self,
        engine: Engine,
        *,
        readings_table: str = "senselog",
        forecast_table: str = "senselog_forecast",
        max_range_days: int = MAX_RANGE_DAYS,
        min_year: int = MIN_YEAR,
        forecast_hours: int = DEFAULT_FORECAST_HOURS,
        clock: Callable[[], dt.datetime] = dt.datetime.now,
    ) -> None:
        """Bind to an engine; table names come from configuration, never from users."""
        self.engine = engine
        self.readings_table = readings_table
        self.forecast_table = forecast_table
        self.max_range_days = max_range_days
        self.min_year = min_year
        self.forecast_hours = forecast_hours
        self._clock = clock

    @classmethod
    def from_url(cls, database_url: str, **kwargs) -> "PostgresWaterDataSource":
        """Create an engine from a URL and build the data source."""
        engine = create_engine(database_url, future=True)
        return cls(engine, **kwargs)

    def _readings_between(self, start: dt.datetime, end: dt.datetime) -> List[Tuple[dt.datetime, Optional[float]]]:
        """Rows with start <= recorded_at < end."""
        stmt = (
            text(
                f"SELECT recorded_at, surface FROM {self.readings_table} "
                "WHERE recorded_at >= :start AND recorded_at < :end ORDER BY recorded_at"
            )
            .bindparams(bindparam("start", type_=DateTime()), bindparam("end", type_=DateTime()))
            .columns(recorded_at=DateTime(), surface=Float())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt, {"start": start, "end": end}).all()
        return [(row.recorded_at, row.surface) for row in rows]

    def fetch_latest(self) -> LatestReading:
        stmt = text(
            f"SELECT recorded_at, surface, distance FROM {self.readings_table} "
            "ORDER BY recorded_at DESC LIMIT 1"
        ).columns(recorded_at=DateTime(), surface=Float(), distance=Float())
        with self.engine.connect() as conn:
            row = conn.execute(stmt).first()
        if row is None:
            raise LookupError("No sensor data available")
        return LatestReading(surface=row.surface, distance=row.distance, recorded_at=row.recorded_at)

    def fetch_average(self, params: RequestParams) -> PeriodAverage:
        validate_date_range(params.start_date, params.end_date, max_days=self.max_range_days)
        start = dt.datetime.combine(parse_api_date(params.start_date), dt.time.min)
        end = dt.datetime.combine(parse_api_date(params.end_date) + dt.timedelta(days=1), dt.time.min)
        rows = self._readings_between(start, end)

        buckets: Dict[Tuple[dt.date, int], List[Optional[float]]] = defaultdict(list)
        for recorded_at, surface in rows:
            buckets[(recorded_at.date(), recorded_at.hour)].append(surface)
        points = [
            PeriodPoint(date=day, hour=hour, surface=_mean(values))
            for (day, hour), values in sorted(buckets.items())
        ]
        logger.debug("Aggregated period average", extra={"rows": len(rows), "points": len(points)})
        return PeriodAverage(average_surface=_mean(surface for _, surface in rows), points=points)

    def fetch_daily(self) -> List[HourlyReading]:
        today = self._clock().date()
        start = dt.datetime.combine(today, dt.time.min)
        rows = self._readings_between(start, start + dt.timedelta(days=1))
        if not rows:
            raise LookupError("No daily sensor data available")
        by_hour: Dict[int, List[Optional[float]]] = defaultdict(list)
        for recorded_at, surface in rows:
            by_hour[recorded_at.hour].append(surface)
        return [HourlyReading(hour=hour, surface=_mean(values)) for hour, values in sorted(by_hour.items())]

    def fetch_monthly(self, year: str) -> List[MonthlyReading]:
        target_year = validate_year(year, min_year=self.min_year, today=self._clock().date())
        stmt = (
            text(
                f"SELECT COUNT(*) AS readings, AVG(surface) AS surface FROM {self.readings_table} "
                "WHERE recorded_at >= :start AND recorded_at < :end"
            )
            .bindparams(bindparam("start", type_=DateTime()), bindparam("end", type_=DateTime()))
            .columns(readings=Integer(), surface=Float())
        )
        readings: List[MonthlyReading] = []
        # one bounded AVG per calendar month
        with self.engine.connect() as conn:
            for month in range(1, 13):
                start = dt.datetime(target_year, month, 1)
                end = dt.datetime(target_year + month // 12, month % 12 + 1, 1)
                row = conn.execute(stmt, {"start": start, "end": end}).one()
                if row.readings:
                    readings.append(MonthlyReading(month=month, value=row.surface))
        if not readings:
            raise LookupError(f"No monthly data available for year {target_year}")
        return readings

    def fetch_forecast(self) -> List[ForecastReading]:
        limit = clamp_forecast_hours(self.forecast_hours)
        stmt = (
            text(
                f"SELECT forecast_for, surface FROM {self.forecast_table} "
                "WHERE forecast_for >= :now AND surface IS NOT NULL ORDER BY forecast_for LIMIT :limit"
            )
            .bindparams(bindparam("now", type_=DateTime()))
            .columns(forecast_for=DateTime(), surface=Float())
        )
        now = self._clock().replace(minute=0, second=0, microsecond=0)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt, {"now": now, "limit": limit}).all()
        if not rows:
            raise LookupError("No forecast data available")
        return [
            ForecastReading(date=row.forecast_for.date(), hour=row.forecast_for.hour, surface=row.surface)
            for row in rows
        ]
