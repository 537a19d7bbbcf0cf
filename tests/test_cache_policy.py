import datetime as dt
import unittest

from waterbender.cache_policy import CachePolicy, is_fresh
from waterbender.config import Settings
from waterbender.domain import CacheEntry, DatasetName
from waterbender.params import build_params
from waterbender.store import DashboardStore

NOW = dt.datetime(2024, 3, 10, 12, 0, tzinfo=dt.timezone.utc)


def _entry(minutes_left: int, key=None) -> CacheEntry:
    return CacheEntry(fetched_at=NOW - dt.timedelta(minutes=1), expires_at=NOW + dt.timedelta(minutes=minutes_left), key=key)


class TestIsFresh(unittest.TestCase):
    def test_absent_entry_is_stale(self):
        self.assertFalse(is_fresh(None, None, NOW))

    def test_unexpired_matching_key_is_fresh(self):
        self.assertTrue(is_fresh(_entry(5, key="2024"), "2024", NOW))

    def test_key_mismatch_is_stale(self):
        self.assertFalse(is_fresh(_entry(5, key="2024"), "2023", NOW))

    def test_expiry_boundary_is_stale(self):
        entry = CacheEntry(fetched_at=NOW - dt.timedelta(minutes=5), expires_at=NOW)
        self.assertFalse(is_fresh(entry, None, NOW))
        self.assertTrue(is_fresh(entry, None, NOW - dt.timedelta(seconds=1)))


class TestCachePolicy(unittest.TestCase):
    def setUp(self):
        self.policy = CachePolicy()
        self.params = build_params(dt.date(2024, 3, 10), dt.date(2024, 3, 12))

    def test_keys_per_dataset(self):
        self.assertEqual(self.policy.key_for(DatasetName.AVERAGE, self.params), ("2024-4-10", "2024-4-12"))
        self.assertEqual(self.policy.key_for(DatasetName.MONTHLY, self.params), "2024")
        for name in (DatasetName.LATEST, DatasetName.DAILY, DatasetName.FORECAST):
            self.assertIsNone(self.policy.key_for(name, self.params))

    def test_entry_for_uses_dataset_ttl(self):
        entry = self.policy.entry_for(DatasetName.MONTHLY, self.params, NOW)
        self.assertEqual(entry.fetched_at, NOW)
        self.assertEqual(entry.expires_at, NOW + dt.timedelta(hours=1))
        self.assertEqual(entry.key, "2024")

    def test_from_settings(self):
        policy = CachePolicy.from_settings(Settings(latest_ttl_seconds=5, forecast_ttl_seconds=7))
        self.assertEqual(policy.ttl_for(DatasetName.LATEST), dt.timedelta(seconds=5))
        self.assertEqual(policy.ttl_for(DatasetName.FORECAST), dt.timedelta(seconds=7))

    def test_loading_flags_for_empty_store_request_everything(self):
        flags = self.policy.loading_flags(DashboardStore(), self.params, NOW)
        self.assertTrue(flags.needs_last_data)
        self.assertTrue(flags.needs_daily_data)
        self.assertTrue(flags.needs_monthly_data)
        self.assertTrue(flags.needs_forecast_data)

    def test_loading_flags_skip_fresh_datasets(self):
        store = DashboardStore()
        for name in DatasetName:
            store.commit_success(name, object(), self.policy.entry_for(name, self.params, NOW))

        flags = self.policy.loading_flags(store, self.params, NOW + dt.timedelta(seconds=30))
        self.assertFalse(flags.needs_last_data)
        self.assertFalse(flags.needs_daily_data)
        self.assertFalse(flags.needs_monthly_data)
        self.assertFalse(flags.needs_forecast_data)

    def test_monthly_refetched_when_year_changes(self):
        store = DashboardStore()
        store.commit_success(DatasetName.MONTHLY, [], self.policy.entry_for(DatasetName.MONTHLY, self.params, NOW))

        other_year = build_params(dt.date(2023, 3, 10), dt.date(2023, 3, 12))
        flags = self.policy.loading_flags(store, other_year, NOW)
        self.assertTrue(flags.needs_monthly_data)

    def test_in_flight_fetch_with_same_key_is_not_requested_again(self):
        store = DashboardStore()
        for name in DatasetName:
            store.set_loading(name, self.policy.key_for(name, self.params))

        flags = self.policy.loading_flags(store, self.params, NOW)
        self.assertFalse(flags.needs_last_data)
        self.assertFalse(flags.needs_daily_data)
        self.assertFalse(flags.needs_monthly_data)
        self.assertFalse(flags.needs_forecast_data)

    def test_in_flight_monthly_for_other_year_is_requested(self):
        store = DashboardStore()
        store.set_loading(DatasetName.MONTHLY, "2023")
        flags = self.policy.loading_flags(store, self.params, NOW)
        self.assertTrue(flags.needs_monthly_data)

    def test_expired_latest_is_refetched(self):
        store = DashboardStore()
        store.commit_success(DatasetName.LATEST, object(), self.policy.entry_for(DatasetName.LATEST, self.params, NOW))
        flags = self.policy.loading_flags(store, self.params, NOW + dt.timedelta(seconds=61))
        self.assertTrue(flags.needs_last_data)


if __name__ == "__main__":
    unittest.main()
