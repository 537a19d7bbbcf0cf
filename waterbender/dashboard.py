"""Screen-level flow: splash routing, the authentication gate and dashboard actions."""
from __future__ import annotations

import asyncio
import datetime as dt
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from waterbender.cache_policy import CachePolicy
from waterbender.domain import DatasetName, DateRange
from waterbender.orchestrator import FetchOrchestrator
from waterbender.store import DashboardStore
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="dashboard")


class Route(str, Enum):
    SPLASH = "splash"
    LOGIN = "login"
    DASHBOARD = "dashboard"


class Navigator(Protocol):
    def go_to(self, route: Route) -> None:
        """Push `route` on top of the current one."""

    def reset_to(self, route: Route) -> None:
        """Replace the navigation stack with `route`."""


class SessionProvider(Protocol):
    def is_authenticated(self) -> bool:
        ...

    def current_user(self) -> Optional[Any]:
        ...


def resolve_start_route(session: SessionProvider, navigator: Navigator) -> Route:
    """Send an authenticated user straight to the dashboard, everyone else to login."""
    route = Route.DASHBOARD if session.is_authenticated() else Route.LOGIN
    navigator.reset_to(route)
    return route


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class DashboardController:
    """Wire user actions on the dashboard to the orchestrator and store."""

    def __init__(
        self,
        store: DashboardStore,
        orchestrator: FetchOrchestrator,
        session: SessionProvider,
        navigator: Navigator,
        policy: Optional[CachePolicy] = None,
        *,
        clock: Callable[[], dt.datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.session = session
        self.navigator = navigator
        self.policy = policy or orchestrator.policy
        self._clock = clock

    def ensure_authenticated(self) -> bool:
        if self.session.is_authenticated() and self.session.current_user():
            return True
        logger.info("Unauthenticated dashboard access; redirecting to login")
        self.navigator.reset_to(Route.LOGIN)
        return False

    def on_appear(self, start: Optional[dt.date] = None, end: Optional[dt.date] = None) -> Optional[asyncio.Future]:
        """Load whatever is stale for the selected range. Returns None when the gate fails."""
        if not self.ensure_authenticated():
            return None
        date_range = DateRange(start=start, end=end)
        params = self.orchestrator.build_params(date_range)
        flags = self.policy.loading_flags(self.store, params, self._clock())
        return self.orchestrator.load(date_range, flags)

    def on_refresh(self, start: Optional[dt.date] = None, end: Optional[dt.date] = None) -> Optional[asyncio.Future]:
        """Pull-to-refresh: re-fetch all five datasets."""
        if not self.ensure_authenticated():
            return None
        return self.orchestrator.refresh_all(DateRange(start=start, end=end))

    def on_dismiss_error(self, name: Optional[DatasetName] = None) -> None:
        self.store.clear_error(name)

    def on_logout(self) -> None:
        self.store.reset()
        self.navigator.reset_to(Route.LOGIN)
