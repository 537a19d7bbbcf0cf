"""Decide whether a dataset's cached value can be reused or must be re-fetched."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from waterbender.domain import CacheEntry, CacheKey, Dataset, DatasetName, LoadingFlags
from waterbender.params import RequestParams
from utils.logging_utils import get_tagged_logger

if TYPE_CHECKING:
    from waterbender.config import Settings
    from waterbender.store import DashboardStore

logger = get_tagged_logger(__name__, tag="cache_policy")


def is_fresh(entry: Optional[CacheEntry], requested_key: CacheKey, now: dt.datetime) -> bool:
    """Return True when `entry` exists, was fetched under `requested_key` and has not expired."""
    if entry is None:
        return False
    if entry.key != requested_key:
        return False
    return now < entry.expires_at


@dataclass(frozen=True)
class CachePolicy:
    """Expiry horizons per dataset plus the key each dataset is cached under."""
    latest_ttl: dt.timedelta = dt.timedelta(seconds=60)
    average_ttl: dt.timedelta = dt.timedelta(seconds=300)
    daily_ttl: dt.timedelta = dt.timedelta(seconds=300)
    monthly_ttl: dt.timedelta = dt.timedelta(seconds=3600)
    forecast_ttl: dt.timedelta = dt.timedelta(seconds=300)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "CachePolicy":
        return cls(
            latest_ttl=dt.timedelta(seconds=settings.latest_ttl_seconds),
            average_ttl=dt.timedelta(seconds=settings.average_ttl_seconds),
            daily_ttl=dt.timedelta(seconds=settings.daily_ttl_seconds),
            monthly_ttl=dt.timedelta(seconds=settings.monthly_ttl_seconds),
            forecast_ttl=dt.timedelta(seconds=settings.forecast_ttl_seconds),
        )

    def ttl_for(self, name: DatasetName) -> dt.timedelta:
        return {
            DatasetName.LATEST: self.latest_ttl,
            DatasetName.AVERAGE: self.average_ttl,
            DatasetName.DAILY: self.daily_ttl,
            DatasetName.MONTHLY: self.monthly_ttl,
            DatasetName.FORECAST: self.forecast_ttl,
        }[name]

    @staticmethod
    def key_for(name: DatasetName, params: RequestParams) -> CacheKey:
        """Average is keyed by the date pair, monthly by year; the rest are pure TTL windows."""
        if name is DatasetName.AVERAGE:
            return params.range_key
        if name is DatasetName.MONTHLY:
            return params.year
        return None

    def entry_for(self, name: DatasetName, params: RequestParams, now: dt.datetime) -> CacheEntry:
        return CacheEntry(
            fetched_at=now,
            expires_at=now + self.ttl_for(name),
            key=self.key_for(name, params),
        )

    def is_dataset_fresh(self, dataset: Dataset, params: RequestParams, now: dt.datetime) -> bool:
        return is_fresh(dataset.cache_entry, self.key_for(dataset.name, params), now)

    def loading_flags(self, store: "DashboardStore", params: RequestParams, now: dt.datetime) -> LoadingFlags:
        """
        Translate per-dataset freshness into the flags `FetchOrchestrator.load` consumes.

        A dataset already being fetched under the same key counts as covered,
        so a second appear during a round does not issue a duplicate request.
        """
        def needs(name: DatasetName) -> bool:
            dataset = store.get_dataset(name)
            if dataset.loading and dataset.pending_key == self.key_for(name, params):
                return False
            return not self.is_dataset_fresh(dataset, params, now)

        flags = LoadingFlags(
            needs_last_data=needs(DatasetName.LATEST),
            needs_daily_data=needs(DatasetName.DAILY),
            needs_monthly_data=needs(DatasetName.MONTHLY),
            needs_forecast_data=needs(DatasetName.FORECAST),
        )
        logger.debug(
            "Evaluated dataset freshness",
            extra={
                "needs_last_data": flags.needs_last_data,
                "needs_daily_data": flags.needs_daily_data,
                "needs_monthly_data": flags.needs_monthly_data,
                "needs_forecast_data": flags.needs_forecast_data,
                "year": params.year,
            },
        )
        return flags
