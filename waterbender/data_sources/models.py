"""Normalized payload shapes shared by every water data source."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class LatestReading:
    """Most recent gauge reading."""
    surface: Optional[float]
    distance: Optional[float] = None
    recorded_at: Optional[dt.datetime] = None


@dataclass
class PeriodPoint:
    """Hourly average inside a selected period."""
    date: dt.date
    hour: int
    surface: Optional[float]


@dataclass
class PeriodAverage:
    """Average surface for a date range plus its hourly breakdown."""
    average_surface: Optional[float]
    points: List[PeriodPoint] = field(default_factory=list)


@dataclass
class HourlyReading:
    """One hour of today's readings."""
    hour: int
    surface: Optional[float]


@dataclass
class MonthlyReading:
    """Aggregate for one calendar month (1-12)."""
    month: int
    value: Optional[float]


@dataclass
class ForecastReading:
    """Predicted surface for a given date and hour."""
    date: dt.date
    hour: int
    surface: float
