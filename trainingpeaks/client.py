"""
TrainingPeaks Client
====================
Facade wiring the browser login, the session store, the HTTP engine,
token refresh and the endpoint helpers.

Usage::

    from trainingpeaks import TrainingPeaksClient

    client = TrainingPeaksClient()
    client.login("athlete@example.com", "secret")
    outcome = client.list_workouts("2024-01-01", "2024-01-31")
    if outcome.success:
        for workout in outcome.data:
            print(workout["title"])
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from .api import UsersApi, WorkoutsApi
from .api.endpoints import DateLike
from .auth import InMemorySessionStore, SessionStore, TokenRefresher, WebLoginFlow
from .config import ClientConfig
from .errors import AuthNoActiveSessionError
from .http_client import HttpClient, HttpOutcome
from .models import Credentials, Session, User

logger = logging.getLogger(__name__)


class TrainingPeaksClient:
    """
    Args:
        config:        ``ClientConfig`` (validated on construction)
        session_store: where the Session lives; in-memory by default
        login_flow:    replaces the Playwright ``WebLoginFlow``
        http_client:   replaces the ``HttpClient`` built from ``config``
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        session_store: Optional[SessionStore] = None,
        *,
        login_flow: Optional[WebLoginFlow] = None,
        http_client: Optional[HttpClient] = None,
    ):
        self.config = (config or ClientConfig()).validate()
        self.session_store = session_store if session_store is not None else InMemorySessionStore()
        self.http = http_client or HttpClient(self.config, self.session_store)
        self.refresher = TokenRefresher(self.http, self.session_store, self.config)
        self.http.set_refresher(self.refresher)
        self.login_flow = login_flow or WebLoginFlow(self.config)
        self.users = UsersApi(self.http, self.config)
        self.workouts = WorkoutsApi(self.http, self.config)

    # -----------------------------------------------------------------------
    # Authentication
    # -----------------------------------------------------------------------
    async def alogin(self, username: str, password: str) -> Session:
        """Browser login; the new Session replaces any stored one.

        Raises:
            ValueError: blank username or password (no browser is started).
            WebAuthenticationError: the login attempt failed.
        """
        credentials = Credentials(username, password)
        session = await self.login_flow.login(credentials)
        self.session_store.set(session)
        logger.info(f"[CLIENT] Logged in user_id={session.user.id}")
        return session

    def login(self, username: str, password: str) -> Session:
        """Synchronous wrapper around :meth:`alogin`."""
        return asyncio.run(self.alogin(username, password))

    def logout(self) -> None:
        self.session_store.clear()
        logger.info("[CLIENT] Logged out")

    def is_authenticated(self) -> bool:
        session = self.session_store.get()
        return session is not None and not session.token.is_expired()

    def get_current_user(self) -> Optional[User]:
        session = self.session_store.get()
        return session.user if session is not None else None

    def get_user_id(self) -> Optional[str]:
        user = self.get_current_user()
        return user.id if user is not None else None

    def refresh_session(self) -> HttpOutcome:
        return self.refresher.refresh()

    def _ensure_fresh(self) -> None:
        if self.refresher.needs_refresh():
            logger.info("[CLIENT] Token close to expiry, refreshing")
            self.refresher.refresh()

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------
    def fetch_user(self) -> HttpOutcome:
        """GET the profile from the API (``data`` is a ``User``)."""
        self._ensure_fresh()
        return self.users.get_user()

    # -----------------------------------------------------------------------
    # Workouts
    # -----------------------------------------------------------------------
    def _athlete(self, athlete_id) -> Optional[str]:
        return str(athlete_id) if athlete_id is not None else self.get_user_id()

    def _no_session(self) -> HttpOutcome:
        return HttpOutcome.failed(AuthNoActiveSessionError())

    def list_workouts(self, start: DateLike, end: DateLike, athlete_id=None) -> HttpOutcome:
        athlete = self._athlete(athlete_id)
        if athlete is None:
            return self._no_session()
        self._ensure_fresh()
        return self.workouts.list_workouts(athlete, start, end)

    def get_workout(self, workout_id, athlete_id=None) -> HttpOutcome:
        athlete = self._athlete(athlete_id)
        if athlete is None:
            return self._no_session()
        self._ensure_fresh()
        return self.workouts.get_workout(athlete, workout_id)

    def create_workout(self, data: Dict[str, Any], athlete_id=None) -> HttpOutcome:
        athlete = self._athlete(athlete_id)
        if athlete is None:
            return self._no_session()
        self._ensure_fresh()
        return self.workouts.create_workout(athlete, data)

    def update_workout(self, workout_id, data: Dict[str, Any], athlete_id=None) -> HttpOutcome:
        athlete = self._athlete(athlete_id)
        if athlete is None:
            return self._no_session()
        self._ensure_fresh()
        return self.workouts.update_workout(athlete, workout_id, data)

    def delete_workout(self, workout_id, athlete_id=None) -> HttpOutcome:
        athlete = self._athlete(athlete_id)
        if athlete is None:
            return self._no_session()
        self._ensure_fresh()
        return self.workouts.delete_workout(athlete, workout_id)

    def close(self) -> None:
        self.http.close()
