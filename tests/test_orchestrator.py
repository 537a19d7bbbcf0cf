import asyncio
import datetime as dt
import unittest

import requests

from waterbender.cache_policy import CachePolicy
from waterbender.domain import DatasetName, DateRange, FetchFailure, FetchSuccess, LoadingFlags
from waterbender.orchestrator import DEFAULT_ERROR_MESSAGE, FetchOrchestrator, extract_error_message
from waterbender.store import DashboardStore

from tests.fakes import FakeDataSource

NOW = dt.datetime(2024, 3, 10, 12, 0, tzinfo=dt.timezone.utc)
TODAY = dt.date(2024, 3, 10)


class TestFetchOrchestrator(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.store = DashboardStore(clock=lambda: NOW)
        self.source = FakeDataSource()
        self.orchestrator = FetchOrchestrator(
            self.store,
            self.source,
            policy=CachePolicy(),
            clock=lambda: NOW,
            today=lambda: TODAY,
        )

    def _called(self):
        return [name for name, _ in self.source.calls]

    async def test_load_without_flags_fetches_all_five_in_order(self):
        outcomes = await self.orchestrator.load()

        self.assertEqual(
            self._called(),
            [DatasetName.AVERAGE, DatasetName.LATEST, DatasetName.MONTHLY, DatasetName.DAILY, DatasetName.FORECAST],
        )
        self.assertTrue(all(isinstance(o, FetchSuccess) for o in outcomes))
        for name in DatasetName:
            dataset = self.store.get_dataset(name)
            self.assertEqual(dataset.value, self.source.values[name])
            self.assertFalse(dataset.loading)
            self.assertEqual(dataset.last_fetched_at, NOW)

    async def test_all_flags_false_fetches_only_average(self):
        flags = LoadingFlags(
            needs_last_data=False, needs_daily_data=False, needs_monthly_data=False, needs_forecast_data=False
        )
        await self.orchestrator.load(DateRange(dt.date(2024, 3, 10), dt.date(2024, 3, 12)), flags)

        self.assertEqual(self._called(), [DatasetName.AVERAGE])
        params = self.source.calls[0][1][0]
        self.assertEqual((params.start_date, params.end_date, params.year), ("2024-4-10", "2024-4-12", "2024"))
        self.assertEqual(self.store.get_dataset(DatasetName.AVERAGE).cache_key, ("2024-4-10", "2024-4-12"))

    async def test_only_forecast_flag_set(self):
        flags = {"needs_last_data": False, "needs_daily_data": False, "needs_monthly_data": False, "needs_forecast_data": True}
        await self.orchestrator.load(None, flags)
        self.assertEqual(self._called(), [DatasetName.AVERAGE, DatasetName.FORECAST])

    async def test_undefined_flags_mean_fetch(self):
        await self.orchestrator.load(None, {"needsLastData": False})
        self.assertEqual(
            self._called(),
            [DatasetName.AVERAGE, DatasetName.MONTHLY, DatasetName.DAILY, DatasetName.FORECAST],
        )

    async def test_monthly_uses_year_of_start(self):
        await self.orchestrator.load(DateRange(dt.date(2023, 5, 1), None))
        monthly_args = dict(self.source.calls)[DatasetName.MONTHLY]
        self.assertEqual(monthly_args, ("2023",))

    async def test_loading_flags_set_before_any_fetch_runs(self):
        for name in DatasetName:
            self.source.gates[name] = asyncio.Event()

        pending = self.orchestrator.load()
        # nothing has been awaited yet
        self.assertEqual(self.source.calls, [])
        for name in DatasetName:
            self.assertTrue(self.store.is_loading(name))

        for gate in self.source.gates.values():
            gate.set()
        await pending
        self.assertFalse(self.store.is_loading())

    async def test_failure_is_isolated_per_dataset(self):
        self.source.failures[DatasetName.DAILY] = RuntimeError("Network down")

        outcomes = await self.orchestrator.load()

        by_name = {o.name: o for o in outcomes}
        self.assertIsInstance(by_name[DatasetName.DAILY], FetchFailure)
        self.assertEqual(by_name[DatasetName.DAILY].message, "Network down")
        daily = self.store.get_dataset(DatasetName.DAILY)
        self.assertEqual(daily.error.message, "Network down")
        self.assertFalse(daily.loading)
        for name in (DatasetName.LATEST, DatasetName.AVERAGE, DatasetName.MONTHLY, DatasetName.FORECAST):
            self.assertEqual(self.store.get_dataset(name).value, self.source.values[name])
            self.assertIsNone(self.store.get_dataset(name).error)

    async def test_failure_keeps_previous_value(self):
        await self.orchestrator.load()
        self.source.failures[DatasetName.LATEST] = RuntimeError("timeout")

        await self.orchestrator.refresh_all()

        latest = self.store.get_dataset(DatasetName.LATEST)
        self.assertEqual(latest.value, {"surface": 1.5})
        self.assertEqual(latest.error.message, "timeout")

    async def test_refresh_all_ignores_freshness_and_can_repeat(self):
        await self.orchestrator.refresh_all()
        await self.orchestrator.refresh_all()
        self.assertEqual(len(self.source.calls), 10)
        self.assertFalse(self.store.is_loading())

    async def test_forecast_failure_leaves_daily_untouched(self):
        self.source.failures[DatasetName.FORECAST] = RuntimeError("Forecast service unavailable")

        await self.orchestrator.load()

        daily = self.store.get_dataset(DatasetName.DAILY)
        forecast = self.store.get_dataset(DatasetName.FORECAST)
        self.assertEqual(daily.value, self.source.values[DatasetName.DAILY])
        self.assertFalse(daily.loading)
        self.assertIsNone(daily.error)
        self.assertEqual(forecast.error.message, "Forecast service unavailable")
        self.assertFalse(forecast.loading)
        self.assertIsNone(forecast.value)

    async def test_concurrent_refresh_all_settles_to_one_response(self):
        first_values = dict(self.source.values)
        gate = asyncio.Event()
        for name in DatasetName:
            self.source.gates[name] = gate

        first = self.orchestrator.refresh_all()
        await asyncio.sleep(0)
        self.source.gates.clear()
        second_values = {name: {"round": 2, "dataset": name.value} for name in DatasetName}
        self.source.values = dict(second_values)
        second = self.orchestrator.refresh_all()

        gate.set()
        await asyncio.gather(first, second)

        self.assertEqual(len(self.source.calls), 10)
        self.assertFalse(self.store.is_loading())
        for name in DatasetName:
            dataset = self.store.get_dataset(name)
            self.assertIn(dataset.value, (first_values[name], second_values[name]))
            self.assertIsNone(dataset.error)

    async def test_out_of_order_settlement_is_discarded(self):
        slow = asyncio.Event()
        self.source.gates[DatasetName.AVERAGE] = slow
        first = self.orchestrator.load(DateRange(dt.date(2024, 1, 1), dt.date(2024, 1, 2)))
        await asyncio.sleep(0)

        self.source.gates.pop(DatasetName.AVERAGE)
        self.source.values[DatasetName.AVERAGE] = {"average": 9.9}
        await self.orchestrator.load(DateRange(dt.date(2024, 2, 1), dt.date(2024, 2, 2)))
        self.assertEqual(self.store.get_dataset(DatasetName.AVERAGE).value, {"average": 9.9})

        slow.set()
        await first
        average = self.store.get_dataset(DatasetName.AVERAGE)
        self.assertEqual(average.value, {"average": 9.9})
        self.assertEqual(average.cache_key, ("2024-3-1", "2024-3-2"))

    async def test_wait_idle_covers_dropped_futures(self):
        gate = asyncio.Event()
        self.source.gates[DatasetName.FORECAST] = gate
        self.orchestrator.refresh_all()
        await asyncio.sleep(0)
        self.assertTrue(self.store.is_loading(DatasetName.FORECAST))

        gate.set()
        await self.orchestrator.wait_idle()
        self.assertFalse(self.store.is_loading())

    def test_plan_orders_datasets(self):
        self.assertEqual(FetchOrchestrator.plan(LoadingFlags(needs_daily_data=False)), [
            DatasetName.AVERAGE, DatasetName.LATEST, DatasetName.MONTHLY, DatasetName.FORECAST,
        ])


class TestExtractErrorMessage(unittest.TestCase):
    def _http_error(self, body: bytes) -> requests.HTTPError:
        resp = requests.Response()
        resp.status_code = 400
        resp._content = body
        return requests.HTTPError("400 Client Error", response=resp)

    def test_prefers_api_message(self):
        err = self._http_error(b'{"message": "Invalid year"}')
        self.assertEqual(extract_error_message(err), "Invalid year")

    def test_falls_back_to_exception_text(self):
        err = self._http_error(b"not json")
        self.assertEqual(extract_error_message(err), "400 Client Error")

    def test_generic_message_when_empty(self):
        self.assertEqual(extract_error_message(RuntimeError()), DEFAULT_ERROR_MESSAGE)


if __name__ == "__main__":
    unittest.main()
