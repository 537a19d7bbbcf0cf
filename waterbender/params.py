"""Turn user-selected dates into the query parameters the senselog API expects."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RequestParams:
    """Normalized request parameters for one orchestration round."""
    start_date: str
    end_date: str
    year: str

    @property
    def range_key(self) -> tuple[str, str]:
        return (self.start_date, self.end_date)


def _format_endpoint(value: dt.date) -> str:
    return f"{value.year}-{value.month + 1}-{value.day}"


def _format_today(value: dt.date) -> str:
    return f"{value.year}-{value.month}-{value.day}"


def build_params(
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
    *,
    today: Optional[dt.date] = None,
) -> RequestParams:
    """
    Build `startDate`/`endDate`/`year` for the remote API.

    Supplied endpoints are written as ``Y-(M+1)-D``; a missing endpoint falls
    back to today written as ``Y-M-D``. Neither form is zero padded. The year
    bucket comes from `start`, or today when `start` is missing.
    """
    today = today or dt.date.today()
    start_date = _format_endpoint(start) if start else _format_today(today)
    end_date = _format_endpoint(end) if end else _format_today(today)
    year = f"{(start or today).year:04d}"
    return RequestParams(start_date=start_date, end_date=end_date, year=year)
