"""
Workouts API
============
CRUD for an athlete's calendar workouts (fitness v6).

Every method returns an ``HttpOutcome``.  Bad arguments (empty ids,
malformed dates) raise ``ValueError`` before any request is sent.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from . import endpoints
from .endpoints import DateLike

logger = logging.getLogger(__name__)


def parse_workout_list(data: Any) -> List[Dict[str, Any]]:
    """The list endpoint must return an array of objects with ``workoutId``."""
    if not isinstance(data, list):
        raise ValueError(f"expected a list of workouts, got {type(data).__name__}")
    for index, item in enumerate(data):
        if not isinstance(item, dict) or "workoutId" not in item:
            raise ValueError(f"workout #{index} has no workoutId")
    return data


def parse_workout(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict) or "workoutId" not in data:
        raise ValueError("expected a workout object with workoutId")
    return data


class WorkoutsApi:

    def __init__(self, http_client, config):
        self.http_client = http_client
        self.config = config

    @property
    def _headers(self) -> Dict[str, str]:
        return endpoints.platform_headers(self.config.app_url)

    def list_workouts(self, athlete_id, start: DateLike, end: DateLike):
        url = endpoints.workouts_range_url(self.config.api_base_url, athlete_id, start, end)
        if endpoints.format_day(start) > endpoints.format_day(end):
            raise ValueError("start must not be after end")
        logger.debug(f"[CLIENT] Listing workouts athlete_id={athlete_id} {start}..{end}")
        return self.http_client.get(
            url, headers=self._headers, requires_auth=True, validate=parse_workout_list,
        )

    def get_workout(self, athlete_id, workout_id):
        return self.http_client.get(
            endpoints.workout_url(self.config.api_base_url, athlete_id, workout_id),
            headers=self._headers, requires_auth=True, validate=parse_workout,
        )

    def create_workout(self, athlete_id, data: Dict[str, Any]):
        if not isinstance(data, dict):
            raise TypeError("workout data must be a dict")
        payload = dict(data)
        payload.setdefault("athleteId", _numeric(athlete_id))
        logger.info(f"[CLIENT] Creating workout athlete_id={athlete_id}")
        return self.http_client.post(
            endpoints.workouts_url(self.config.api_base_url, athlete_id),
            payload, headers=self._headers, requires_auth=True,
        )

    def update_workout(self, athlete_id, workout_id, data: Dict[str, Any]):
        if not isinstance(data, dict):
            raise TypeError("workout data must be a dict")
        payload = dict(data)
        payload.setdefault("workoutId", _numeric(workout_id))
        payload.setdefault("athleteId", _numeric(athlete_id))
        logger.info(f"[CLIENT] Updating workout workout_id={workout_id}")
        return self.http_client.put(
            endpoints.workout_url(self.config.api_base_url, athlete_id, workout_id),
            payload, headers=self._headers, requires_auth=True,
        )

    def delete_workout(self, athlete_id, workout_id):
        logger.info(f"[CLIENT] Deleting workout workout_id={workout_id}")
        return self.http_client.delete(
            endpoints.workout_url(self.config.api_base_url, athlete_id, workout_id),
            headers=self._headers, requires_auth=True,
        )


def _numeric(value):
    """Ids are numeric on the wire; keep strings that aren't."""
    text = str(value)
    return int(text) if text.isdigit() else value
