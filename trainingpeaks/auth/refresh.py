"""
Token Refresh
=============
Exchanges the stored refresh token for a new access token via
``POST <api>/users/v3/token/refresh``.

A successful refresh replaces the stored Session with a new one carrying
the new token and the same user.  A failed refresh leaves the store
untouched so the caller can fall back to a full browser login.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Any, Callable, Optional

from ..errors import AuthNoActiveSessionError, ErrorCodes, ValidationError
from ..http_client import HttpOutcome
from ..models import AuthToken, parse_datetime, utcnow
from ..utils import mask_token

logger = logging.getLogger(__name__)

REFRESH_COOLDOWN_SECONDS = 30.0


def token_from_refresh_payload(
    payload: Any,
    default_expiry: timedelta,
    previous_refresh_token: Optional[str] = None,
) -> AuthToken:
    """Parse ``{token: {access_token, token_type?, expires?, expires_in?, refresh_token?}}``.

    Expiry comes from ``expires`` (ISO timestamp), else ``expires_in``
    (seconds, when positive), else ``default_expiry``.

    Raises:
        ValueError: no access token in the payload.
    """
    body = payload.get("token") if isinstance(payload, dict) else None
    if not isinstance(body, dict) or not body.get("access_token"):
        raise ValueError("refresh response has no token.access_token")

    expires_at = None
    if isinstance(body.get("expires"), str):
        try:
            expires_at = parse_datetime(body["expires"])
        except ValueError:
            expires_at = None
    if expires_at is None:
        expires_in = body.get("expires_in")
        if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool) and expires_in > 0:
            expires_at = utcnow() + timedelta(seconds=expires_in)
        else:
            expires_at = utcnow() + default_expiry

    return AuthToken(
        access_token=body["access_token"],
        token_type=body.get("token_type") or "Bearer",
        expires_at=expires_at,
        refresh_token=body.get("refresh_token") or previous_refresh_token,
    )


class TokenRefresher:
    """Refreshes the token held by ``session_store`` through ``http_client``.

    Args:
        http_client:   ``HttpClient`` used for the refresh POST
        session_store: store whose Session is read and superseded
        config:        ``ClientConfig`` (refresh URL, default expiry)
        cooldown:      minimum seconds between two refresh attempts
        clock:         monotonic time source
    """

    def __init__(
        self,
        http_client,
        session_store,
        config,
        *,
        cooldown: float = REFRESH_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.http_client = http_client
        self.session_store = session_store
        self.config = config
        self.cooldown = cooldown
        self._clock = clock
        self._last_attempt: Optional[float] = None

    def needs_refresh(self) -> bool:
        session = self.session_store.get()
        return (
            session is not None
            and session.token.can_refresh
            and session.token.should_refresh(self.config.refresh_window)
        )

    def refresh(self):
        """Refresh now.  Returns the ``HttpOutcome`` (data = new Session)."""
        session = self.session_store.get()
        url = self.config.refresh_url
        if session is None:
            return HttpOutcome.failed(AuthNoActiveSessionError(url=url, method="POST"))
        if not session.token.can_refresh:
            logger.warning("[AUTH] Token refresh skipped: no refresh token stored")
            return HttpOutcome.failed(AuthNoActiveSessionError(
                "No refresh token available",
                code=ErrorCodes.AUTH_TOKEN_REFRESH_FAILED,
                url=url, method="POST",
            ))

        now = self._clock()
        if self._last_attempt is not None and now - self._last_attempt < self.cooldown:
            logger.warning(
                f"[AUTH] Token refresh skipped: last attempt {now - self._last_attempt:.1f}s ago"
            )
            return HttpOutcome.failed(AuthNoActiveSessionError(
                "Token refresh attempted too recently",
                code=ErrorCodes.AUTH_TOKEN_REFRESH_FAILED,
                url=url, method="POST",
            ))
        self._last_attempt = now

        logger.info(f"[AUTH] Refreshing token user_id={session.user.id}")
        outcome = self.http_client.post(
            url,
            {"refresh_token": session.token.refresh_token},
            skip_auth=True,
            validate=lambda data: token_from_refresh_payload(
                data, self.config.token_expiry, session.token.refresh_token
            ),
        )
        if not outcome.success:
            logger.error(f"[AUTH] Token refresh failed: {outcome.error}")
            return outcome

        token = outcome.data
        # The store may have been cleared or replaced meanwhile.
        current = self.session_store.get()
        if current is None or current.user.id != session.user.id:
            logger.warning("[AUTH] Session changed during refresh, discarding new token")
            return HttpOutcome.failed(ValidationError(
                "Session changed during token refresh", url=url, method="POST",
            ))

        refreshed = current.with_token(token)
        self.session_store.set(refreshed)
        logger.info(
            f"[AUTH] Token refreshed token={mask_token(token.access_token)} "
            f"expires_at={token.expires_at.isoformat()}"
        )
        return HttpOutcome.ok(refreshed, cookies=outcome.cookies, status=outcome.status)
