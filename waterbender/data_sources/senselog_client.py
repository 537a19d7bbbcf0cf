"""Helpers for fetching water-level data from the senselog REST API."""
from __future__ import annotations

import datetime as dt
from typing import Any, List, Optional

import requests

from waterbender.data_sources.models import (
    ForecastReading,
    HourlyReading,
    LatestReading,
    MonthlyReading,
    PeriodAverage,
    PeriodPoint,
)
from waterbender.params import RequestParams
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="senselog_client")

session = requests.Session()

SENSELOG_BASE_URL = "https://opr-poins-mobile-01-kpd.azurewebsites.net/api"
LATEST_PATH = "/senselog/Get_Last_Senselog"
AVERAGE_PATH = "/senselog/Get_Avg_Senselog"
DAILY_PATH = "/senselog/Get_TodayTrans_WaterBender"
MONTHLY_PATH = "/senselog/Get_MonthlyTrans_WaterBender"
FORECAST_PATH = "/senselog/Get_Forecast_WaterBender"

DEFAULT_TIMEOUT = 30.0
DEFAULT_FORECAST_TIMEOUT = 15.0
DEFAULT_FORECAST_HOURS = 48
MIN_FORECAST_HOURS = 1
MAX_FORECAST_HOURS = 48
MIN_YEAR = 2020
MAX_RANGE_DAYS = 365


class SenselogApiError(RuntimeError):
    """The senselog API answered with an error status or an unusable body."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def parse_api_date(value: str) -> dt.date:
    """Parse the unpadded ``Y-M-D`` form used in query strings."""
    try:
        year, month, day = (int(part) for part in str(value).split("-"))
        return dt.date(year, month, day)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid date '{value}'. Expected Y-M-D") from exc


def validate_date_range(start_date: str, end_date: str, *, max_days: int = MAX_RANGE_DAYS) -> None:
    """Raise ValueError unless both dates parse, start <= end and the span fits `max_days`."""
    if not start_date or not end_date:
        raise ValueError("Both startDate and endDate are required")
    start = parse_api_date(start_date)
    end = parse_api_date(end_date)
    if start > end:
        raise ValueError("Start date must be before or equal to end date")
    if (end - start).days > max_days:
        raise ValueError(f"Date range cannot exceed {max_days} days")


def validate_year(year: Any, *, min_year: int = MIN_YEAR, today: Optional[dt.date] = None) -> int:
    """Return `year` as int if it lies within [min_year, current year + 1]."""
    if year in (None, ""):
        raise ValueError("Year parameter is required")
    max_year = (today or dt.date.today()).year + 1
    try:
        year_num = int(year)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid year: {year}. Must be between {min_year} and {max_year}") from exc
    if year_num < min_year or year_num > max_year:
        raise ValueError(f"Invalid year: {year}. Must be between {min_year} and {max_year}")
    return year_num


def clamp_forecast_hours(hours: Any = DEFAULT_FORECAST_HOURS) -> int:
    """Coerce `hours` into [1, 48], falling back to the default for junk input."""
    try:
        hours_num = int(hours) or DEFAULT_FORECAST_HOURS
    except (TypeError, ValueError):
        hours_num = DEFAULT_FORECAST_HOURS
    return max(MIN_FORECAST_HOURS, min(MAX_FORECAST_HOURS, hours_num))


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("Message") or body.get("message")
        if message:
            return str(message)
    return f"HTTP Error {resp.status_code}"


def _get(path: str, *, base_url: str, timeout: float, params: Optional[dict] = None) -> dict:
    """GET a senselog endpoint and return the decoded JSON body."""
    url = f"{base_url.rstrip('/')}{path}"
    logger.debug("GET senselog endpoint", extra={"url": url, "params": params})
    resp = session.get(url, params=params, timeout=timeout)
    if not 200 <= resp.status_code < 300:
        message = _error_message(resp)
        logger.warning("Senselog API error", extra={"url": url, "status": resp.status_code, "error": message})
        raise SenselogApiError(message, status_code=resp.status_code)
    try:
        body = resp.json()
    except ValueError as exc:
        raise SenselogApiError("Malformed response from senselog API", status_code=resp.status_code) from exc
    if not body:
        raise SenselogApiError("No response received from server", status_code=resp.status_code)
    return body


def _require_data(body: dict, message: str) -> Any:
    data = body.get("Data") if isinstance(body, dict) else None
    if not data:
        raise SenselogApiError(message)
    return data


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_row_date(value: Any) -> dt.date:
    """Accept ``YYYY-MM-DD`` or an ISO timestamp as returned in `Tanggal` fields."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value)[:10])


def _parse_row_datetime(value: Any) -> Optional[dt.datetime]:
    if not value:
        return None
    try:
        return dt.datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable reading timestamp", extra={"value": value})
        return None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

def fetch_latest(*, base_url: str = SENSELOG_BASE_URL, timeout: float = DEFAULT_TIMEOUT) -> LatestReading:
    """Fetch the most recent gauge reading."""
    body = _get(LATEST_PATH, base_url=base_url, timeout=timeout)
    data = _require_data(body, "No sensor data available")
    row = data[0] if isinstance(data, list) else data
    reading = LatestReading(
        surface=_to_float(row.get("Surface")),
        distance=_to_float(row.get("Distance")),
        recorded_at=_parse_row_datetime(row.get("Tanggal") or row.get("timestamp")),
    )
    logger.info("Fetched latest reading", extra={"surface": reading.surface})
    return reading


def fetch_average(
    params: RequestParams,
    *,
    base_url: str = SENSELOG_BASE_URL,
    timeout: float = DEFAULT_TIMEOUT,
    max_days: int = MAX_RANGE_DAYS,
) -> PeriodAverage:
    """Fetch the average surface and hourly breakdown for a date range."""
    validate_date_range(params.start_date, params.end_date, max_days=max_days)
    body = _get(
        AVERAGE_PATH,
        base_url=base_url,
        timeout=timeout,
        params={"startDate": params.start_date, "endDate": params.end_date},
    )
    groups = body.get("Data") or []
    average = _to_float(groups[0].get("Rata_Rata_Surface")) if groups else None

    points: List[PeriodPoint] = []
    for group in groups:
        for item in group.get("Data") or []:
            points.append(
                PeriodPoint(
                    date=_parse_row_date(item["Tanggal"]),
                    hour=int(item.get("Jam", 0)),
                    surface=_to_float(item.get("Rata_Rata_Surface")),
                )
            )
    logger.info(
        "Fetched period average",
        extra={"start_date": params.start_date, "end_date": params.end_date, "points": len(points)},
    )
    return PeriodAverage(average_surface=average, points=points)


def fetch_daily(*, base_url: str = SENSELOG_BASE_URL, timeout: float = DEFAULT_TIMEOUT) -> List[HourlyReading]:
    """Fetch today's hourly readings."""
    body = _get(DAILY_PATH, base_url=base_url, timeout=timeout)
    data = _require_data(body, "No daily sensor data available")
    readings = [
        HourlyReading(
            hour=int(item["Jam"]),
            surface=_to_float(item.get("Surface", item.get("Rata_Rata_Surface"))),
        )
        for item in data
    ]
    logger.info("Fetched daily readings", extra={"readings": len(readings)})
    return readings


def fetch_monthly(
    year: Any,
    *,
    base_url: str = SENSELOG_BASE_URL,
    timeout: float = DEFAULT_TIMEOUT,
    min_year: int = MIN_YEAR,
) -> List[MonthlyReading]:
    """Fetch monthly aggregates for `year`."""
    target_year = validate_year(year, min_year=min_year)
    body = _get(MONTHLY_PATH, base_url=base_url, timeout=timeout, params={"year": target_year})
    data = _require_data(body, f"No monthly data available for year {target_year}")
    readings = [MonthlyReading(month=int(item["Bln"]), value=_to_float(item.get("MonthTrans"))) for item in data]
    logger.info("Fetched monthly readings", extra={"year": target_year, "months": len(readings)})
    return readings


def _is_valid_forecast_row(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    jam = item.get("Jam")
    surface = item.get("Surface")
    return (
        isinstance(jam, int) and not isinstance(jam, bool)
        and isinstance(surface, (int, float)) and not isinstance(surface, bool)
        and bool(item.get("Tanggal"))
    )


def fetch_forecast(
    hours: Any = DEFAULT_FORECAST_HOURS,
    *,
    base_url: str = SENSELOG_BASE_URL,
    timeout: float = DEFAULT_FORECAST_TIMEOUT,
) -> List[ForecastReading]:
    """Fetch forecast predictions, keeping well-formed rows ordered by date/hour, at most `hours` of them."""
    limit = clamp_forecast_hours(hours)
    body = _get(FORECAST_PATH, base_url=base_url, timeout=timeout)
    data = _require_data(body, "No forecast data available")
    rows = data if isinstance(data, list) else []

    valid = []
    for item in rows:
        if _is_valid_forecast_row(item):
            valid.append(item)
        else:
            logger.warning("Dropping malformed forecast row", extra={"row": item})

    readings = sorted(
        (
            ForecastReading(date=_parse_row_date(item["Tanggal"]), hour=item["Jam"], surface=float(item["Surface"]))
            for item in valid
        ),
        key=lambda r: (r.date, r.hour),
    )[:limit]
    logger.info(
        "Fetched forecast",
        extra={"requested_hours": limit, "raw_rows": len(rows), "valid_rows": len(readings)},
    )
    return readings


def check_service_health(*, base_url: str = SENSELOG_BASE_URL, timeout: float = DEFAULT_TIMEOUT) -> dict:
    """Probe the API through the latest-reading endpoint."""
    checked_at = dt.datetime.now(dt.timezone.utc).isoformat()
    try:
        reading = fetch_latest(base_url=base_url, timeout=timeout)
    except (requests.RequestException, SenselogApiError, ValueError) as exc:
        return {"status": "unhealthy", "message": str(exc), "timestamp": checked_at, "last_reading": False}
    return {
        "status": "healthy",
        "message": "Water monitoring service is operational",
        "timestamp": checked_at,
        "last_reading": reading.surface is not None,
    }
