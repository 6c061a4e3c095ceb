"""Users v3 API: the signed-in user's profile."""

from __future__ import annotations

import logging
from typing import Any

from ..models import User
from . import endpoints

logger = logging.getLogger(__name__)


def parse_user(data: Any) -> User:
    """``{user: {userId, fullName?, firstName?, lastName?, personPhotoUrl?}}`` → ``User``."""
    if not isinstance(data, dict) or not isinstance(data.get("user"), dict):
        raise ValueError("expected an object with a 'user' object")
    user = data["user"]
    user_id = user.get("userId")
    if not user_id or isinstance(user_id, bool):
        raise ValueError("user.userId is missing")

    name = user.get("fullName") or " ".join(
        part for part in (user.get("firstName"), user.get("lastName"))
        if isinstance(part, str) and part
    )
    return User(
        id=str(user_id),
        name=name if isinstance(name, str) else "",
        avatar=user.get("personPhotoUrl") or None,
        preferences=user.get("settings") if isinstance(user.get("settings"), dict) else None,
    )


class UsersApi:

    def __init__(self, http_client, config):
        self.http_client = http_client
        self.config = config

    def get_user(self):
        """GET the profile.  ``HttpOutcome.data`` is a ``User`` on success."""
        logger.debug("[CLIENT] Fetching user profile")
        return self.http_client.get(
            endpoints.user_url(self.config.api_base_url),
            headers=endpoints.platform_headers(self.config.app_url),
            requires_auth=True,
            validate=parse_user,
        )
