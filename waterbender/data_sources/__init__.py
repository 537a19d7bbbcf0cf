"""Pluggable backends for the five dashboard datasets."""

from .base import CallableWaterDataSource, WaterDataSource
from .factory import build_data_source
from .models import (
    ForecastReading,
    HourlyReading,
    LatestReading,
    MonthlyReading,
    PeriodAverage,
    PeriodPoint,
)
from .senselog_client import SenselogApiError

__all__ = [
    "build_data_source",
    "CallableWaterDataSource",
    "WaterDataSource",
    "ForecastReading",
    "HourlyReading",
    "LatestReading",
    "MonthlyReading",
    "PeriodAverage",
    "PeriodPoint",
    "SenselogApiError",
]
