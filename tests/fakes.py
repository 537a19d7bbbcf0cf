from waterbender.domain import DatasetName


class FakeDataSource:
    """Records calls; each dataset can be held open with a gate or made to fail."""

    def __init__(self):
        self.calls = []
        self.gates = {}
        self.failures = {}
        self.values = {
            DatasetName.LATEST: {"surface": 1.5},
            DatasetName.AVERAGE: {"average": 1.2},
            DatasetName.DAILY: [{"hour": 1}],
            DatasetName.MONTHLY: [{"month": 1}],
            DatasetName.FORECAST: [{"hour": 2}],
        }

    async def _serve(self, name, *args):
        self.calls.append((name, args))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.failures:
            raise self.failures[name]
        return self.values[name]

    async def fetch_latest(self):
        return await self._serve(DatasetName.LATEST)

    async def fetch_average(self, params):
        return await self._serve(DatasetName.AVERAGE, params)

    async def fetch_daily(self):
        return await self._serve(DatasetName.DAILY)

    async def fetch_monthly(self, year):
        return await self._serve(DatasetName.MONTHLY, year)

    async def fetch_forecast(self):
        return await self._serve(DatasetName.FORECAST)
