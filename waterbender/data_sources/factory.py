"""Factory helpers for choosing a water data source at startup."""

from __future__ import annotations

from functools import partial

from waterbender import config
from waterbender.data_sources import senselog_client
from waterbender.data_sources.base import CallableWaterDataSource, WaterDataSource
from utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__, tag="data_sources/factory")


DEFAULT_SOURCE_NAME = "senselog"


def build_data_source(settings: config.Settings | None = None) -> WaterDataSource:
    """Instantiate the configured water data source."""
    settings = settings or config.settings
    source = (settings.data_source or DEFAULT_SOURCE_NAME).lower()

    if source == "senselog":
        base_url = settings.api_base_url
        timeout = settings.request_timeout_seconds
        logger.info("Using senselog REST data source", extra={"base_url": base_url})
        return CallableWaterDataSource(
            latest=partial(senselog_client.fetch_latest, base_url=base_url, timeout=timeout),
            average=partial(
                senselog_client.fetch_average,
                base_url=base_url,
                timeout=timeout,
                max_days=settings.max_range_days,
            ),
            daily=partial(senselog_client.fetch_daily, base_url=base_url, timeout=timeout),
            monthly=partial(
                senselog_client.fetch_monthly,
                base_url=base_url,
                timeout=timeout,
                min_year=settings.min_year,
            ),
            forecast=partial(
                senselog_client.fetch_forecast,
                settings.forecast_hours,
                base_url=base_url,
                timeout=settings.forecast_timeout_seconds,
            ),
        )

    if source == "postgres":
        from .postgres_source import PostgresWaterDataSource

        db_url = settings.database_url
        if not db_url:
            raise ValueError("database_url must be set for the postgres data source")
        logger.info("Using postgres data source", extra={"db_url": mask_db_url(db_url)})
        db = PostgresWaterDataSource.from_url(
            db_url,
            max_range_days=settings.max_range_days,
            min_year=settings.min_year,
            forecast_hours=settings.forecast_hours,
        )
        return CallableWaterDataSource(
            latest=db.fetch_latest,
            average=db.fetch_average,
            daily=db.fetch_daily,
            monthly=db.fetch_monthly,
            forecast=db.fetch_forecast,
        )

    raise ValueError(f"Unknown data source '{source}'")
