"""Shape dataset payloads into labelled series for the dashboard charts."""
from __future__ import annotations

import calendar
import datetime as dt
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from waterbender.data_sources.models import (
    ForecastReading,
    HourlyReading,
    MonthlyReading,
    PeriodAverage,
)

DEFAULT_FORECAST_HORIZON = 12


@dataclass(frozen=True)
class ChartPoint:
    label: str
    value: Optional[float]
    hour: Optional[int] = None
    date: Optional[dt.date] = None
    is_forecast: bool = False
    is_next_day: bool = False


def format_hour(hour: int) -> str:
    return f"{int(hour):02d}:00"


def build_daily_series(
    daily: Optional[Iterable[HourlyReading]],
    forecast: Optional[Iterable[ForecastReading]],
    today: dt.date,
    horizon: int = DEFAULT_FORECAST_HORIZON,
) -> List[ChartPoint]:
    """
    Today's actual readings followed by the forecast for the next `horizon` hours.

    Forecast slots start at the hour after the last actual reading and roll
    into tomorrow past midnight; slots with no matching forecast row are
    skipped. Without actual readings there is nothing to anchor on, so the
    series is empty.
    """
    actual = sorted(daily or [], key=lambda r: r.hour)
    if not actual:
        return []
    series = [ChartPoint(label=format_hour(r.hour), value=r.surface, hour=r.hour, date=today) for r in actual]

    by_slot: Dict[Tuple[dt.date, int], ForecastReading] = {}
    for reading in forecast or []:
        by_slot.setdefault((reading.date, reading.hour), reading)
    if not by_slot:
        return series

    last_hour = actual[-1].hour
    tomorrow = today + dt.timedelta(days=1)
    for step in range(1, horizon + 1):
        is_next_day = last_hour + step >= 24
        slot = (tomorrow if is_next_day else today, (last_hour + step) % 24)
        reading = by_slot.get(slot)
        if reading is None:
            continue
        series.append(
            ChartPoint(
                label=format_hour(reading.hour),
                value=reading.surface,
                hour=reading.hour,
                date=reading.date,
                is_forecast=True,
                is_next_day=is_next_day,
            )
        )
    return series


def build_period_series(average: Optional[PeriodAverage]) -> List[ChartPoint]:
    """Hourly points of the selected period, labelled like ``27 Aug 00:00``."""
    if average is None:
        return []
    points = sorted(average.points, key=lambda p: (p.date, p.hour))
    return [
        ChartPoint(
            label=f"{p.date.day} {calendar.month_abbr[p.date.month]} {format_hour(p.hour)}",
            value=p.surface,
            hour=p.hour,
            date=p.date,
        )
        for p in points
    ]


def build_monthly_series(monthly: Optional[Iterable[MonthlyReading]]) -> List[ChartPoint]:
    """One point per month, labelled with the English month name."""
    readings = sorted((r for r in monthly or [] if 1 <= r.month <= 12), key=lambda r: r.month)
    return [ChartPoint(label=calendar.month_name[r.month], value=r.value) for r in readings]
