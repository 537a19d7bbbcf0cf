"""Issue the minimal set of concurrent dataset fetches and settle them into the store."""
from __future__ import annotations

import asyncio
import datetime as dt
from typing import Any, Callable, List, Mapping, Optional, Sequence, Set, Union

import requests

from waterbender.cache_policy import CachePolicy
from waterbender.data_sources.base import WaterDataSource
from waterbender.domain import (
    FETCH_ORDER,
    DatasetName,
    DateRange,
    FetchFailure,
    FetchOutcome,
    FetchSuccess,
    LoadingFlags,
)
from waterbender.params import RequestParams, build_params
from waterbender.store import DashboardStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="orchestrator")

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred while fetching water data"

FlagsLike = Union[LoadingFlags, Mapping[str, Any], None]


def extract_error_message(error: BaseException) -> str:
    """Prefer the API's own message, then the exception text, then a generic fallback."""
    response = getattr(error, "response", None)
    if isinstance(response, requests.Response):
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and (body.get("message") or body.get("Message")):
            return str(body.get("message") or body.get("Message"))
    message = str(error)
    return message or DEFAULT_ERROR_MESSAGE


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class FetchOrchestrator:
    """
    Coordinates one orchestration round at a time against a `DashboardStore`.

    `load` and `refresh_all` are fire-and-forget: they must be called from a
    running event loop, mark every issued dataset as loading before returning,
    and hand back a future that resolves to the list of `FetchOutcome` once all
    issued fetches have settled. Awaiting it is optional.
    """

    def __init__(
        self,
        store: DashboardStore,
        data_source: WaterDataSource,
        *,
        policy: Optional[CachePolicy] = None,
        clock: Callable[[], dt.datetime] = _utcnow,
        today: Optional[Callable[[], dt.date]] = None,
    ) -> None:
        self.store = store
        self.data_source = data_source
        self.policy = policy or CachePolicy()
        self._clock = clock
        self._today = today
        self._inflight: Set[asyncio.Task] = set()

    def build_params(self, date_range: Optional[DateRange] = None) -> RequestParams:
        date_range = date_range or DateRange()
        today = self._today() if self._today else None
        return build_params(date_range.start, date_range.end, today=today)

    @staticmethod
    def plan(flags: FlagsLike = None) -> List[DatasetName]:
        """Datasets a `load` round will fetch for `flags`, in issue order."""
        if not isinstance(flags, LoadingFlags):
            flags = LoadingFlags.from_mapping(flags)
        wanted = {
            DatasetName.AVERAGE: True,
            DatasetName.LATEST: flags.wants_latest,
            DatasetName.MONTHLY: flags.wants_monthly,
            DatasetName.DAILY: flags.wants_daily,
            DatasetName.FORECAST: flags.wants_forecast,
        }
        return [name for name in FETCH_ORDER if wanted[name]]

    def load(self, date_range: Optional[DateRange] = None, flags: FlagsLike = None) -> asyncio.Future:
        """Fetch the period average plus every dataset whose flag is not explicitly False."""
        params = self.build_params(date_range)
        names = self.plan(flags)
        logger.info(
            "Dashboard load",
            extra={"datasets": [n.value for n in names], "start_date": params.start_date, "end_date": params.end_date},
        )
        return self._issue(names, params)

    def refresh_all(self, date_range: Optional[DateRange] = None) -> asyncio.Future:
        """Fetch all five datasets regardless of cache freshness."""
        params = self.build_params(date_range)
        logger.info(
            "Dashboard full refresh",
            extra={"start_date": params.start_date, "end_date": params.end_date},
        )
        return self._issue(list(FETCH_ORDER), params)

    def _issue(self, names: Sequence[DatasetName], params: RequestParams) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        # every loading flag goes up before any fetch can settle
        generations = {
            name: self.store.set_loading(name, self.policy.key_for(name, params)) for name in names
        }
        tasks = []
        for name in names:
            task = loop.create_task(self._fetch_one(name, params, generations[name]))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            tasks.append(task)
        return asyncio.gather(*tasks)

    async def _call(self, name: DatasetName, params: RequestParams) -> Any:
        if name is DatasetName.LATEST:
            return await self.data_source.fetch_latest()
        if name is DatasetName.AVERAGE:
            return await self.data_source.fetch_average(params)
        if name is DatasetName.DAILY:
            return await self.data_source.fetch_daily()
        if name is DatasetName.MONTHLY:
            return await self.data_source.fetch_monthly(params.year)
        return await self.data_source.fetch_forecast()

    async def _fetch_one(self, name: DatasetName, params: RequestParams, generation: int) -> FetchOutcome:
        try:
            value = await self._call(name, params)
        except Exception as exc:
            message = extract_error_message(exc)
            logger.warning(
                "Dataset fetch failed",
                extra={"dataset": name.value, "error": message, "generation": generation},
            )
            self.store.commit_error(name, message, generation=generation)
            return FetchFailure(name=name, message=message)

        entry = self.policy.entry_for(name, params, self._clock())
        committed = self.store.commit_success(name, value, entry, generation=generation)
        logger.debug(
            "Dataset fetch settled",
            extra={"dataset": name.value, "generation": generation, "committed": committed},
        )
        return FetchSuccess(name=name, value=value)

    async def wait_idle(self) -> None:
        """Wait for every in-flight fetch, including ones whose futures were dropped."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight))
