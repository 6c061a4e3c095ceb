"""
Domain Values
=============
Immutable value types exchanged between the login flow, the session store
and the HTTP client.

    - ``Credentials``         — transient username/password pair
    - ``AuthToken``           — bearer token recovered from intercepted traffic
    - ``User``                — minimal user record
    - ``Session``             — token + user, the unit handed to the HTTP layer
    - ``InterceptedCapture``  — attempt-scoped mutable buffer filled during login

``Session`` is only ever built whole (see ``auth.synthesizer``); stores
replace it wholesale and never patch it in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Credentials:
    """Username/password for one login call.  Never persisted or logged."""
    username: str
    password: str = field(repr=False)

    def __post_init__(self):
        if not isinstance(self.username, str) or not self.username.strip():
            raise ValueError("username must be a non-empty string")
        if not isinstance(self.password, str) or not self.password.strip():
            raise ValueError("password must be a non-empty string")


# ---------------------------------------------------------------------------
# Token / user / session
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AuthToken:
    access_token: str
    token_type: str
    expires_at: datetime
    refresh_token: Optional[str] = field(default=None, repr=False)

    def __repr__(self) -> str:
        return (
            f"AuthToken(token_type={self.token_type!r}, "
            f"expires_at={self.expires_at.isoformat()!r}, "
            f"can_refresh={self.can_refresh})"
        )

    @classmethod
    def bearer(
        cls,
        access_token: str,
        expires_in: timedelta,
        refresh_token: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> "AuthToken":
        """Build a Bearer token expiring ``expires_in`` from ``now``."""
        return cls(
            access_token=access_token,
            token_type="Bearer",
            expires_at=(now or utcnow()) + expires_in,
            refresh_token=refresh_token,
        )

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def should_refresh(self, window: timedelta, now: Optional[datetime] = None) -> bool:
        """True once the token is inside ``window`` of its expiry."""
        return (now or utcnow()) >= self.expires_at - window

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_at": self.expires_at.isoformat(),
            "refresh_token": self.refresh_token,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthToken":
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type") or "Bearer",
            expires_at=parse_datetime(data["expires_at"]),
            refresh_token=data.get("refresh_token"),
        )


@dataclass(frozen=True)
class User:
    id: str
    name: str = ""
    avatar: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar,
            "preferences": self.preferences,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            avatar=data.get("avatar"),
            preferences=data.get("preferences"),
        )


@dataclass(frozen=True)
class Session:
    token: AuthToken
    user: User

    def with_token(self, token: AuthToken) -> "Session":
        """A new Session for the same user carrying ``token``."""
        return replace(self, token=token)

    def to_dict(self) -> Dict[str, Any]:
        return {"token": self.token.to_dict(), "user": self.user.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            token=AuthToken.from_dict(data["token"]),
            user=User.from_dict(data["user"]),
        )


# ---------------------------------------------------------------------------
# Capture buffer
# ---------------------------------------------------------------------------

@dataclass
class InterceptedCapture:
    """Mutable accumulator owned by exactly one login attempt.

    Written by ``NetworkInterceptor`` callbacks, read once the flow ends.
    """
    token: Optional[AuthToken] = None
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    avatar: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.token is not None and bool(self.user_id)

    def missing_fields(self) -> List[str]:
        missing = []
        if self.token is None:
            missing.append("token")
        if not self.user_id:
            missing.append("user_id")
        return missing
