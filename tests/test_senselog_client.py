import datetime as dt
import unittest

from waterbender.data_sources import senselog_client
from waterbender.data_sources.senselog_client import SenselogApiError
from waterbender.params import RequestParams


class DummyResp:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class DummySession:
    def __init__(self, resp):
        self.resp = resp
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        return self.resp


class SenselogClientTestCase(unittest.TestCase):
    base_url = "http://senselog.test/api"

    def setUp(self):
        self._orig_session = senselog_client.session

    def tearDown(self):
        senselog_client.session = self._orig_session

    def _use(self, payload, status_code=200) -> DummySession:
        fake = DummySession(DummyResp(payload, status_code))
        senselog_client.session = fake
        return fake


class TestFetchEndpoints(SenselogClientTestCase):
    def test_fetch_latest(self):
        fake = self._use({"Data": [{"Surface": "1.75", "Distance": 3.2, "Tanggal": "2024-03-10T08:00:00"}]})
        reading = senselog_client.fetch_latest(base_url=self.base_url, timeout=5)

        self.assertEqual(reading.surface, 1.75)
        self.assertEqual(reading.distance, 3.2)
        self.assertEqual(reading.recorded_at, dt.datetime(2024, 3, 10, 8, 0))
        self.assertEqual(fake.calls[0]["url"], "http://senselog.test/api/senselog/Get_Last_Senselog")
        self.assertEqual(fake.calls[0]["timeout"], 5)

    def test_fetch_average_passes_dates_and_flattens_points(self):
        fake = self._use({
            "Data": [
                {
                    "Rata_Rata_Surface": 1.4,
                    "Data": [
                        {"Tanggal": "2024-04-10T00:00:00", "Jam": 0, "Rata_Rata_Surface": 1.3},
                        {"Tanggal": "2024-04-10T00:00:00", "Jam": 1, "Rata_Rata_Surface": 1.5},
                    ],
                }
            ]
        })
        params = RequestParams(start_date="2024-4-10", end_date="2024-4-12", year="2024")
        result = senselog_client.fetch_average(params, base_url=self.base_url)

        self.assertEqual(fake.calls[0]["params"], {"startDate": "2024-4-10", "endDate": "2024-4-12"})
        self.assertEqual(result.average_surface, 1.4)
        self.assertEqual([(p.date, p.hour, p.surface) for p in result.points], [
            (dt.date(2024, 4, 10), 0, 1.3),
            (dt.date(2024, 4, 10), 1, 1.5),
        ])

    def test_fetch_average_rejects_invalid_range_before_calling(self):
        fake = self._use({"Data": []})
        with self.assertRaises(ValueError):
            senselog_client.fetch_average(
                RequestParams(start_date="2024-13-1", end_date="2024-13-31", year="2024"), base_url=self.base_url
            )
        with self.assertRaises(ValueError):
            senselog_client.fetch_average(
                RequestParams(start_date="2024-5-2", end_date="2024-5-1", year="2024"), base_url=self.base_url
            )
        self.assertEqual(fake.calls, [])

    def test_fetch_daily(self):
        self._use({"Data": [{"Jam": 7, "Surface": 1.1}, {"Jam": 8, "Rata_Rata_Surface": 1.2}]})
        readings = senselog_client.fetch_daily(base_url=self.base_url)
        self.assertEqual([(r.hour, r.surface) for r in readings], [(7, 1.1), (8, 1.2)])

    def test_fetch_monthly_validates_year(self):
        fake = self._use({"Data": [{"Bln": 1, "MonthTrans": 12.5}, {"Bln": 2, "MonthTrans": None}]})
        readings = senselog_client.fetch_monthly("2024", base_url=self.base_url)

        self.assertEqual(fake.calls[0]["params"], {"year": 2024})
        self.assertEqual([(r.month, r.value) for r in readings], [(1, 12.5), (2, None)])
        with self.assertRaises(ValueError):
            senselog_client.fetch_monthly("2019", base_url=self.base_url)

    def test_fetch_forecast_filters_sorts_and_truncates(self):
        self._use({
            "Data": [
                {"Tanggal": "2024-03-11", "Jam": 1, "Surface": 1.9},
                {"Tanggal": "2024-03-10", "Jam": 23, "Surface": 1.8},
                {"Tanggal": "2024-03-10", "Jam": "22", "Surface": 1.7},
                {"Tanggal": "2024-03-10", "Jam": 22, "Surface": None},
                {"Jam": 21, "Surface": 1.6},
                {"Tanggal": "2024-03-11", "Jam": 0, "Surface": 2},
            ]
        })
        readings = senselog_client.fetch_forecast(2, base_url=self.base_url)

        self.assertEqual([(r.date, r.hour, r.surface) for r in readings], [
            (dt.date(2024, 3, 10), 23, 1.8),
            (dt.date(2024, 3, 11), 0, 2.0),
        ])

    def test_error_status_uses_api_message(self):
        self._use({"Message": "Invalid year parameter"}, status_code=400)
        with self.assertRaises(SenselogApiError) as ctx:
            senselog_client.fetch_daily(base_url=self.base_url)
        self.assertEqual(str(ctx.exception), "Invalid year parameter")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_error_status_without_body(self):
        self._use(ValueError("no json"), status_code=502)
        with self.assertRaises(SenselogApiError) as ctx:
            senselog_client.fetch_latest(base_url=self.base_url)
        self.assertEqual(str(ctx.exception), "HTTP Error 502")

    def test_empty_data_raises(self):
        self._use({"Data": []})
        with self.assertRaises(SenselogApiError):
            senselog_client.fetch_daily(base_url=self.base_url)


class TestValidation(unittest.TestCase):
    def test_parse_api_date_accepts_unpadded(self):
        self.assertEqual(senselog_client.parse_api_date("2024-4-1"), dt.date(2024, 4, 1))

    def test_range_limit(self):
        senselog_client.validate_date_range("2024-1-1", "2024-12-31")
        with self.assertRaises(ValueError):
            senselog_client.validate_date_range("2023-1-1", "2024-6-1")
        with self.assertRaises(ValueError):
            senselog_client.validate_date_range("", "2024-6-1")

    def test_validate_year_bounds(self):
        today = dt.date(2024, 6, 1)
        self.assertEqual(senselog_client.validate_year("2025", today=today), 2025)
        with self.assertRaises(ValueError):
            senselog_client.validate_year("2026", today=today)
        with self.assertRaises(ValueError):
            senselog_client.validate_year("abcd", today=today)

    def test_clamp_forecast_hours(self):
        self.assertEqual(senselog_client.clamp_forecast_hours(100), 48)
        self.assertEqual(senselog_client.clamp_forecast_hours(-3), 1)
        self.assertEqual(senselog_client.clamp_forecast_hours("junk"), 48)
        self.assertEqual(senselog_client.clamp_forecast_hours(12), 12)


class TestServiceHealth(SenselogClientTestCase):
    def test_healthy(self):
        self._use({"Data": [{"Surface": 1.0}]})
        health = senselog_client.check_service_health(base_url=self.base_url)
        self.assertEqual(health["status"], "healthy")
        self.assertTrue(health["last_reading"])

    def test_unhealthy(self):
        self._use({"Message": "down"}, status_code=503)
        health = senselog_client.check_service_health(base_url=self.base_url)
        self.assertEqual(health["status"], "unhealthy")
        self.assertEqual(health["message"], "down")


if __name__ == "__main__":
    unittest.main()
