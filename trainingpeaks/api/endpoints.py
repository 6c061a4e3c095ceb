"""
URL builders and default headers for the platform's private APIs.

    users v3    <api>/users/v3/{token, user, token/refresh}
    fitness v6  <api>/fitness/v6/athletes/{athleteId}/workouts[/...]
"""

import re
from datetime import date
from typing import Dict, Union

USERS_VERSION = "v3"
FITNESS_VERSION = "v6"

_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateLike = Union[date, str]


def platform_headers(app_url: str) -> Dict[str, str]:
    """Headers the web app sends on its cross-site API calls."""
    origin = app_url.rstrip("/")
    return {
        "Origin": origin,
        "Referer": f"{origin}/",
        "Sec-Fetch-Dest": "empty",
        "Sec-Fetch-Mode": "cors",
        "Sec-Fetch-Site": "same-site",
    }


def format_day(value: DateLike) -> str:
    """``date`` or ``YYYY-MM-DD`` string → ``YYYY-MM-DD``."""
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, str) and _DAY_RE.match(value):
        return value
    raise ValueError(f"Expected a date or YYYY-MM-DD string, got {value!r}")


def _segment(value) -> str:
    text = str(value).strip()
    if not text or "/" in text:
        raise ValueError(f"Invalid path segment: {value!r}")
    return text


# ---------------------------------------------------------------------------
# Users v3
# ---------------------------------------------------------------------------

USERS_PATH = f"/users/{USERS_VERSION}"
TOKEN_PATH = f"{USERS_PATH}/token"
USER_PATH = f"{USERS_PATH}/user"
TOKEN_REFRESH_PATH = f"{TOKEN_PATH}/refresh"


def users_url(api_base_url: str) -> str:
    return f"{api_base_url.rstrip('/')}{USERS_PATH}"


def token_url(api_base_url: str) -> str:
    return f"{api_base_url.rstrip('/')}{TOKEN_PATH}"


def user_url(api_base_url: str) -> str:
    return f"{api_base_url.rstrip('/')}{USER_PATH}"


def token_refresh_url(api_base_url: str) -> str:
    return f"{api_base_url.rstrip('/')}{TOKEN_REFRESH_PATH}"


# ---------------------------------------------------------------------------
# Fitness v6
# ---------------------------------------------------------------------------

def workouts_url(api_base_url: str, athlete_id) -> str:
    return (
        f"{api_base_url.rstrip('/')}/fitness/{FITNESS_VERSION}"
        f"/athletes/{_segment(athlete_id)}/workouts"
    )


def workouts_range_url(api_base_url: str, athlete_id, start: DateLike, end: DateLike) -> str:
    return f"{workouts_url(api_base_url, athlete_id)}/{format_day(start)}/{format_day(end)}"


def workout_url(api_base_url: str, athlete_id, workout_id) -> str:
    return f"{workouts_url(api_base_url, athlete_id)}/{_segment(workout_id)}"
