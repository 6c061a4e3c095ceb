"""
Network Interceptor
===================
Passive listener that recovers the bearer token and user id from the
platform's own background API traffic during a browser login.

The login page never hands the token to the form; the web app fetches it
from ``/users/v3/token`` right after sign-in, then loads the profile from
``/users/v3/user``.  Both responses are read here and written into the
attempt's ``InterceptedCapture``.

Lifetime is explicit: ``attach(page)`` before the first navigation,
``detach()`` when the attempt ends.  Nothing is returned from the event
callbacks; results surface only through the capture buffer.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional

from ..api import endpoints
from ..models import AuthToken, InterceptedCapture
from ..utils import mask_token

logger = logging.getLogger(__name__)

TOKEN_PATH_FRAGMENT = endpoints.TOKEN_PATH
USER_PATH_FRAGMENT = endpoints.USER_PATH


class NetworkInterceptor:
    """Fills one ``InterceptedCapture`` from matching page responses.

    Args:
        capture:      attempt-scoped buffer, allocated by the caller
        token_expiry: expiry window stamped on captured tokens (the token
                      response does not report one reliably)
        log_network:  debug-log every API request/response seen
        log_browser:  forward the page console to the debug log
    """

    def __init__(
        self,
        capture: InterceptedCapture,
        token_expiry: timedelta,
        *,
        log_network: bool = False,
        log_browser: bool = False,
    ):
        self.capture = capture
        self.token_expiry = token_expiry
        self.log_network = log_network
        self.log_browser = log_browser
        self._page = None

    # -----------------------------------------------------------------------
    # Subscription lifetime
    # -----------------------------------------------------------------------
    @property
    def attached(self) -> bool:
        return self._page is not None

    def attach(self, page) -> None:
        if self._page is not None:
            raise RuntimeError("NetworkInterceptor is already attached to a page")
        page.on("request", self.on_request)
        page.on("response", self.on_response)
        if self.log_browser:
            page.on("console", self.on_console)
        self._page = page
        logger.debug("[INTERCEPT] Listeners attached")

    def detach(self) -> None:
        """Remove listeners.  Safe to call twice or after the page closed."""
        page, self._page = self._page, None
        if page is None:
            return
        for event, handler in (
            ("request", self.on_request),
            ("response", self.on_response),
            ("console", self.on_console),
        ):
            try:
                page.remove_listener(event, handler)
            except (KeyError, ValueError):
                pass
        logger.debug("[INTERCEPT] Listeners detached")

    # -----------------------------------------------------------------------
    # Event callbacks
    # -----------------------------------------------------------------------
    def on_request(self, request) -> None:
        if self.log_network and _is_api_url(request.url):
            logger.debug(f"[INTERCEPT] -> {request.method} {request.url}")

    def on_console(self, message) -> None:
        logger.debug(f"[INTERCEPT] Browser console: {message.text}")

    async def on_response(self, response) -> None:
        url = response.url
        if self.log_network and _is_api_url(url):
            logger.debug(f"[INTERCEPT] <- {response.status} {url}")

        if TOKEN_PATH_FRAGMENT in url:
            handler = self.handle_token_payload
        elif USER_PATH_FRAGMENT in url:
            handler = self.handle_user_payload
        else:
            return

        if not response.ok:
            logger.warning(f"[INTERCEPT] Ignoring {response.status} from {url}")
            return

        try:
            payload = await response.json()
        except Exception as exc:
            # Many unrelated responses match the fragments; none may abort the flow.
            logger.warning(f"[INTERCEPT] Unparseable body from {url}: {exc}")
            return

        handler(payload)

    # -----------------------------------------------------------------------
    # Payload handling
    # -----------------------------------------------------------------------
    def handle_token_payload(self, payload: Any) -> Optional[AuthToken]:
        """Store the token of ``{token: {access_token, refresh_token?}}``."""
        body = payload.get("token") if isinstance(payload, dict) else None
        access = body.get("access_token") if isinstance(body, dict) else None
        if not isinstance(access, str) or not access:
            logger.debug("[INTERCEPT] Token response without access_token ignored")
            return None

        refresh = body.get("refresh_token")
        token = AuthToken.bearer(
            access,
            self.token_expiry,
            refresh if isinstance(refresh, str) and refresh else None,
        )
        self.capture.token = token
        logger.info(
            f"[INTERCEPT] Token captured token={mask_token(access)} "
            f"refreshable={token.can_refresh}"
        )
        return token

    def handle_user_payload(self, payload: Any) -> Optional[str]:
        """Store the user id of ``{user: {userId, ...}}``."""
        user = payload.get("user") if isinstance(payload, dict) else None
        user_id = user.get("userId") if isinstance(user, dict) else None
        if not user_id or isinstance(user_id, bool):
            logger.debug("[INTERCEPT] User response without userId ignored")
            return None

        self.capture.user_id = str(user_id)
        name = user.get("fullName") or " ".join(
            part for part in (user.get("firstName"), user.get("lastName"))
            if isinstance(part, str) and part
        )
        if isinstance(name, str) and name:
            self.capture.user_name = name
        avatar = user.get("personPhotoUrl") or user.get("avatar")
        if isinstance(avatar, str) and avatar:
            self.capture.avatar = avatar
        logger.info(f"[INTERCEPT] User captured user_id={self.capture.user_id}")
        return self.capture.user_id


def _is_api_url(url: str) -> bool:
    return "/api/" in url or "/users/" in url or "/fitness/" in url
