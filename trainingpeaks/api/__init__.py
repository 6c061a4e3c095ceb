"""Endpoint helpers for the platform's private JSON APIs."""

from .users import UsersApi, parse_user
from .workouts import WorkoutsApi, parse_workout, parse_workout_list

__all__ = [
    "UsersApi",
    "WorkoutsApi",
    "parse_user",
    "parse_workout",
    "parse_workout_list",
]
