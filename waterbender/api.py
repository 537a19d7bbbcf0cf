"""HTTP API for the water-level dashboard."""

import asyncio
import dataclasses
import datetime as dt
import hmac
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel

from .auth import AuthenticationError, login
from .cache_policy import CachePolicy
from .charts import ChartPoint, build_daily_series, build_monthly_series, build_period_series
from .config import settings
from .dashboard import DashboardController, Route
from .data_sources import build_data_source
from .data_sources.base import WaterDataSource
from .data_sources.factory import DEFAULT_SOURCE_NAME
from .data_sources.senselog_client import check_service_health
from .domain import Dataset, DatasetError, DatasetName
from .orchestrator import FetchOrchestrator
from .session_manager import SessionContext, create_session, delete_session, session_exists
from .session_store import AuthSession
from .store import DashboardStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="waterbender/api")


def require_api_key(x_api_key: str | None = Header(default=None)):
    """Validate X-API-Key against the static api_key setting, if one is configured."""
    if not settings.api_key:
        logger.debug("No API key configured; allowing all requests")
        return
    if not x_api_key:
        logger.debug("No API key provided")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing API key")
    if hmac.compare_digest(str(x_api_key), str(settings.api_key)):
        return
    logger.debug("Invalid API key provided")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


router = APIRouter(dependencies=[Depends(require_api_key)])


class RecordingNavigator:
    """Navigator for HTTP clients: remembers where the client should be."""

    def __init__(self, route: Route = Route.SPLASH) -> None:
        self.route = route

    def go_to(self, route: Route) -> None:
        self.route = route

    def reset_to(self, route: Route) -> None:
        self.route = route


@dataclasses.dataclass
class DashboardEntry:
    store: DashboardStore
    orchestrator: FetchOrchestrator
    navigator: RecordingNavigator


class DashboardRegistry:
    """
    One store/orchestrator pair per logged-in session.

    Entries whose session has expired are swept on every lookup, so state for
    sessions that time out without a logout does not accumulate.
    """

    def __init__(
        self,
        data_source: WaterDataSource,
        *,
        policy: Optional[CachePolicy] = None,
        discard_stale: bool = True,
        is_alive: Callable[[str], bool] = session_exists,
    ) -> None:
        self.data_source = data_source
        self.policy = policy or CachePolicy()
        self.discard_stale = discard_stale
        self._is_alive = is_alive
        self._entries: Dict[str, DashboardEntry] = {}

    def sweep(self, keep: Optional[str] = None) -> int:
        """Drop entries for sessions that no longer exist; returns how many were dropped."""
        expired = [sid for sid in self._entries if sid != keep and not self._is_alive(sid)]
        for sid in expired:
            self._entries.pop(sid, None)
        if expired:
            logger.info("Dropped dashboards of expired sessions", extra={"count": len(expired)})
        return len(expired)

    def entry_for(self, session_id: Optional[str]) -> DashboardEntry:
        key = session_id or ""
        self.sweep(keep=key)
        entry = self._entries.get(key)
        if entry is None:
            store = DashboardStore(discard_stale=self.discard_stale)
            orchestrator = FetchOrchestrator(store, self.data_source, policy=self.policy)
            entry = DashboardEntry(store=store, orchestrator=orchestrator, navigator=RecordingNavigator())
            self._entries[key] = entry
        return entry

    def drop(self, session_id: Optional[str]) -> Optional[DashboardEntry]:
        return self._entries.pop(session_id or "", None)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


REGISTRY = DashboardRegistry(
    build_data_source(settings),
    policy=CachePolicy.from_settings(settings),
    discard_stale=settings.discard_stale_settlements,
)


class LoginRequest(BaseModel):
    """Incoming credentials."""
    username: str
    password: str


class LoginResponse(BaseModel):
    session_id: str
    username: str
    display_name: str
    user: Any = None
    route: Route = Route.DASHBOARD


class RouteResponse(BaseModel):
    route: Route


class DateRangeRequest(BaseModel):
    """Selected period; either end may be omitted."""
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None


class DatasetErrorView(BaseModel):
    dataset: Optional[DatasetName] = None
    message: str
    occurred_at: dt.datetime


class DatasetView(BaseModel):
    name: DatasetName
    value: Any = None
    loading: bool
    error: Optional[DatasetErrorView] = None
    last_fetched_at: Optional[dt.datetime] = None
    expires_at: Optional[dt.datetime] = None
    cache_key: Any = None


class DashboardSnapshot(BaseModel):
    """Everything a client needs to render the dashboard."""
    datasets: Dict[DatasetName, DatasetView]
    is_loading: bool
    is_forecast_cache_valid: bool
    latest_error: Optional[DatasetErrorView] = None
    route: Route


class ChartPointView(BaseModel):
    label: str
    value: Optional[float] = None
    hour: Optional[int] = None
    date: Optional[dt.date] = None
    is_forecast: bool = False
    is_next_day: bool = False


class ChartsResponse(BaseModel):
    daily: List[ChartPointView]
    period: List[ChartPointView]
    monthly: List[ChartPointView]


def _plain(value: Any) -> Any:
    """Turn payload dataclasses into JSON-friendly structures."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _error_view(error: Optional[DatasetError], name: Optional[DatasetName] = None) -> Optional[DatasetErrorView]:
    if error is None:
        return None
    return DatasetErrorView(dataset=name, message=error.message, occurred_at=error.occurred_at)


def _dataset_view(dataset: Dataset) -> DatasetView:
    entry = dataset.cache_entry
    return DatasetView(
        name=dataset.name,
        value=_plain(dataset.value),
        loading=dataset.loading,
        error=_error_view(dataset.error, dataset.name),
        last_fetched_at=entry.fetched_at if entry else None,
        expires_at=entry.expires_at if entry else None,
        cache_key=_plain(entry.key) if entry else None,
    )


def _latest_error_view(store: DashboardStore) -> Optional[DatasetErrorView]:
    latest = store.latest_error()
    if latest is None:
        return None
    name = next((d.name for d in store.snapshot().values() if d.error is latest), None)
    return _error_view(latest, name)


def _snapshot(entry: DashboardEntry) -> DashboardSnapshot:
    store = entry.store
    return DashboardSnapshot(
        datasets={name: _dataset_view(ds) for name, ds in store.snapshot().items()},
        is_loading=store.is_loading(),
        is_forecast_cache_valid=store.is_forecast_cache_valid(),
        latest_error=_latest_error_view(store),
        route=entry.navigator.route,
    )


async def _check_data_source(data_source: WaterDataSource) -> Dict[str, Any]:
    """Health check through the latest-reading fetch of any backend."""
    checked_at = dt.datetime.now(dt.timezone.utc).isoformat()
    try:
        reading = await data_source.fetch_latest()
    except Exception as exc:
        logger.warning("Data source health check failed", extra={"error": str(exc)})
        return {"status": "unhealthy", "message": str(exc), "timestamp": checked_at, "last_reading": False}
    return {
        "status": "healthy",
        "message": "Water monitoring service is operational",
        "timestamp": checked_at,
        "last_reading": getattr(reading, "surface", None) is not None,
    }


def _redirect_to_login() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"message": "Authentication required", "redirect": Route.LOGIN.value},
    )


def _controller(session_id: Optional[str]) -> tuple[DashboardController, DashboardEntry]:
    """Build a controller for the session; unauthenticated callers get 401 with a login redirect."""
    entry = REGISTRY.entry_for(session_id)
    controller = DashboardController(entry.store, entry.orchestrator, SessionContext(session_id), entry.navigator)
    if not controller.ensure_authenticated():
        REGISTRY.drop(session_id)
        raise _redirect_to_login()
    entry.navigator.reset_to(Route.DASHBOARD)
    return controller, entry


@router.post("/login", response_model=LoginResponse)
def login_route(req: LoginRequest):
    """Authenticate and open a dashboard session."""
    try:
        result = login(req.username, req.password)
    except AuthenticationError as exc:
        logger.info("Login failed", extra={"error": str(exc)})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))

    session_id = create_session(
        AuthSession(username=result.username, display_name=result.display_name, user=result.user, token=result.token)
    )
    logger.info("Session created", extra={"username": result.username})
    return LoginResponse(
        session_id=session_id,
        username=result.username,
        display_name=result.display_name,
        user=result.user,
    )


@router.post("/logout", response_model=RouteResponse)
async def logout_route(x_session_id: str | None = Header(default=None)):
    """Drop the session and its dashboard state."""
    entry = REGISTRY.drop(x_session_id)
    if entry is not None:
        controller = DashboardController(entry.store, entry.orchestrator, SessionContext(x_session_id), entry.navigator)
        controller.on_logout()
    if x_session_id:
        delete_session(x_session_id)
    return RouteResponse(route=Route.LOGIN)


@router.post("/dashboard/appear", response_model=DashboardSnapshot)
async def dashboard_appear(
    req: Optional[DateRangeRequest] = None,
    wait: bool = Query(default=False),
    x_session_id: str | None = Header(default=None),
):
    """Fetch whatever is stale for the selected period."""
    req = req or DateRangeRequest()
    controller, entry = _controller(x_session_id)
    pending = controller.on_appear(req.start_date, req.end_date)
    if wait and pending is not None:
        await pending
    return _snapshot(entry)


@router.post("/dashboard/refresh", response_model=DashboardSnapshot)
async def dashboard_refresh(
    req: Optional[DateRangeRequest] = None,
    wait: bool = Query(default=False),
    x_session_id: str | None = Header(default=None),
):
    """Re-fetch all datasets regardless of cache state."""
    req = req or DateRangeRequest()
    controller, entry = _controller(x_session_id)
    pending = controller.on_refresh(req.start_date, req.end_date)
    if wait and pending is not None:
        await pending
    return _snapshot(entry)


@router.get("/dashboard", response_model=DashboardSnapshot)
async def dashboard_state(x_session_id: str | None = Header(default=None)):
    """Current dashboard state without issuing any fetch."""
    _, entry = _controller(x_session_id)
    return _snapshot(entry)


@router.get("/dashboard/charts", response_model=ChartsResponse)
async def dashboard_charts(x_session_id: str | None = Header(default=None)):
    """Chart-ready series built from the stored datasets."""
    _, entry = _controller(x_session_id)
    store = entry.store

    def points(series: List[ChartPoint]) -> List[ChartPointView]:
        return [ChartPointView(**dataclasses.asdict(p)) for p in series]

    return ChartsResponse(
        daily=points(
            build_daily_series(
                store.get_dataset(DatasetName.DAILY).value,
                store.get_dataset(DatasetName.FORECAST).value,
                dt.date.today(),
            )
        ),
        period=points(build_period_series(store.get_dataset(DatasetName.AVERAGE).value)),
        monthly=points(build_monthly_series(store.get_dataset(DatasetName.MONTHLY).value)),
    )


@router.delete("/dashboard/error", response_model=DashboardSnapshot)
async def dismiss_error(
    dataset: Optional[DatasetName] = Query(default=None),
    x_session_id: str | None = Header(default=None),
):
    """Dismiss the error banner for one dataset, or all of them."""
    controller, entry = _controller(x_session_id)
    controller.on_dismiss_error(dataset)
    return _snapshot(entry)


@router.get("/health")
async def service_health():
    """Report whether the configured data source is answering."""
    if (settings.data_source or DEFAULT_SOURCE_NAME).lower() == DEFAULT_SOURCE_NAME:
        return await asyncio.to_thread(
            check_service_health, base_url=settings.api_base_url, timeout=settings.request_timeout_seconds
        )
    return await _check_data_source(REGISTRY.data_source)
