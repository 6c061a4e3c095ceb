"""Builds the immutable ``Session`` from a completed capture buffer."""

from __future__ import annotations

from typing import Optional

from ..errors import AuthenticationDataMissingError
from ..models import InterceptedCapture, Session, User


def synthesize_session(capture: InterceptedCapture, *, fallback_name: Optional[str] = None) -> Session:
    """Turn ``capture`` into a ``Session``, or fail if anything is missing.

    Pure: no I/O, no retries.  A Session is only ever returned whole.

    Args:
        capture:       buffer filled by ``NetworkInterceptor``
        fallback_name: display name when the user payload carried none
                       (the login flow passes the username)

    Raises:
        AuthenticationDataMissingError: token or user id absent.
    """
    missing = capture.missing_fields()
    if missing:
        raise AuthenticationDataMissingError(missing)

    user = User(
        id=capture.user_id,
        name=capture.user_name or fallback_name or "",
        avatar=capture.avatar,
    )
    return Session(token=capture.token, user=user)
