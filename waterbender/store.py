"""Owned, observable state container for the five dashboard datasets."""
from __future__ import annotations

import datetime as dt
from typing import Any, Callable, Dict, List, Optional

from waterbender.cache_policy import is_fresh
from waterbender.domain import CacheEntry, CacheKey, Dataset, DatasetError, DatasetName
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="dashboard_store")

Subscriber = Callable[[DatasetName, Dataset], None]


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class DashboardStore:
    """
    Holds one immutable `Dataset` per name and swaps it on every write.

    Writes target a single dataset; readers always get a whole snapshot of a
    dataset, never a mix of old and new fields. Every `set_loading` bumps a
    per-dataset generation. When `discard_stale` is on, a commit that carries
    an older generation than the latest issued one is dropped so a slow
    response from a previous round cannot overwrite a newer one.

    All writes are expected on the event-loop thread; no locking is done.
    """

    def __init__(self, *, discard_stale: bool = True, clock: Callable[[], dt.datetime] = _utcnow) -> None:
        self.discard_stale = discard_stale
        self._clock = clock
        self._datasets: Dict[DatasetName, Dataset] = {}
        self._generations: Dict[DatasetName, int] = {}
        self._subscribers: List[Subscriber] = []
        self._init_datasets()

    def _init_datasets(self) -> None:
        self._datasets = {name: Dataset(name=name) for name in DatasetName}
        self._generations = {name: 0 for name in DatasetName}

    # ----- subscriptions -----

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register `callback(name, dataset)` for every write; returns an unsubscribe callable."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, name: DatasetName) -> None:
        dataset = self._datasets[name]
        for callback in list(self._subscribers):
            try:
                callback(name, dataset)
            except Exception:
                logger.exception("Dashboard subscriber failed", extra={"dataset": name.value})

    def _write(self, name: DatasetName, dataset: Dataset) -> None:
        self._datasets[name] = dataset
        self._publish(name)

    # ----- reads -----

    def get_dataset(self, name: DatasetName) -> Dataset:
        return self._datasets[DatasetName(name)]

    def snapshot(self) -> Dict[DatasetName, Dataset]:
        return dict(self._datasets)

    def generation(self, name: DatasetName) -> int:
        return self._generations[DatasetName(name)]

    def is_loading(self, name: Optional[DatasetName] = None) -> bool:
        if name is not None:
            return self.get_dataset(name).loading
        return any(ds.loading for ds in self._datasets.values())

    def latest_error(self) -> Optional[DatasetError]:
        """Most recent error across datasets, for the error banner."""
        errors = [ds.error for ds in self._datasets.values() if ds.error is not None]
        if not errors:
            return None
        return max(errors, key=lambda err: err.occurred_at)

    def is_forecast_cache_valid(self, now: Optional[dt.datetime] = None) -> bool:
        forecast = self._datasets[DatasetName.FORECAST]
        return is_fresh(forecast.cache_entry, None, now or self._clock())

    # ----- writes -----

    def set_loading(self, name: DatasetName, pending_key: CacheKey = None) -> int:
        """Mark a fetch for `pending_key` as issued and return its generation."""
        name = DatasetName(name)
        self._generations[name] += 1
        self._write(name, self._datasets[name].evolve(loading=True, pending_key=pending_key))
        return self._generations[name]

    def _is_stale(self, name: DatasetName, generation: Optional[int]) -> bool:
        if generation is None or not self.discard_stale:
            return False
        if generation < self._generations[name]:
            logger.info(
                "Discarding out-of-order settlement",
                extra={"dataset": name.value, "generation": generation, "current": self._generations[name]},
            )
            return True
        return False

    def commit_success(
        self,
        name: DatasetName,
        value: Any,
        cache_entry: CacheEntry,
        generation: Optional[int] = None,
    ) -> bool:
        """Store a fetched value with fresh cache metadata; returns False if discarded."""
        name = DatasetName(name)
        if self._is_stale(name, generation):
            return False
        self._write(
            name,
            self._datasets[name].evolve(value=value, loading=False, error=None, cache_entry=cache_entry),
        )
        return True

    def commit_error(
        self,
        name: DatasetName,
        error: str | DatasetError,
        generation: Optional[int] = None,
    ) -> bool:
        """Record a failure; the previous value and cache entry are left in place."""
        name = DatasetName(name)
        if self._is_stale(name, generation):
            return False
        if not isinstance(error, DatasetError):
            error = DatasetError(message=str(error), occurred_at=self._clock())
        self._write(name, self._datasets[name].evolve(loading=False, error=error))
        return True

    def clear_error(self, name: Optional[DatasetName] = None) -> None:
        """Dismiss error flags without touching cached values."""
        names = [DatasetName(name)] if name is not None else list(DatasetName)
        for target in names:
            if self._datasets[target].error is not None:
                self._write(target, self._datasets[target].evolve(error=None))

    def reset(self) -> None:
        """Return every dataset to its empty initial state (logout)."""
        logger.info("Resetting dashboard store")
        generations = dict(self._generations)
        self._init_datasets()
        # settlements issued before the reset must not repopulate the store
        self._generations = {name: gen + 1 for name, gen in generations.items()}
        for name in DatasetName:
            self._publish(name)
