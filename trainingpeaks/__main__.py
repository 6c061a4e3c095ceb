#!/usr/bin/env python3
"""
Command-line interface for the TrainingPeaks client
===================================================
Signs in through the browser once, keeps the session in a JSON file and
reuses it for API calls until it expires.

All configuration flows through ``ClientConfig.from_env()``; a ``.env``
file next to the project or in the CWD is loaded first.

Run with: python -m trainingpeaks <command>
"""

import argparse
import getpass
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from .client import TrainingPeaksClient
from .config import ClientConfig
from .errors import ConfigurationError, WebAuthenticationError
from .auth.session_store import FileSessionStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Setup helpers
# ---------------------------------------------------------------------------

def _load_env() -> None:
    """Load .env (credentials, config) before anything reads the environment."""
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()  # tries CWD


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )


def resolve_credentials(username=None, password=None, *, interactive=True):
    """Flags first, then ``TRAININGPEAKS_USERNAME``/``_PASSWORD``, then a prompt.

    Returns:
        ``(username, password)``; either may be empty if the user declined.
    """
    username = username or os.environ.get("TRAININGPEAKS_USERNAME", "")
    password = password or os.environ.get("TRAININGPEAKS_PASSWORD", "")
    if interactive and not username:
        username = input("TrainingPeaks username: ").strip()
    if interactive and not password:
        password = getpass.getpass("TrainingPeaks password: ")
    return username, password


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _fail(outcome) -> int:
    error = outcome.error
    print(f"Error: {error} [{error.code}]", file=sys.stderr)
    return 1


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_login(client: TrainingPeaksClient, args) -> int:
    username, password = resolve_credentials(
        args.username, args.password, interactive=not args.no_input,
    )
    if not username or not password:
        print("Error: username and password are required", file=sys.stderr)
        return 1
    try:
        session = client.login(username, password)
    except WebAuthenticationError as exc:
        print(f"Login failed ({exc.stage or 'unknown stage'}): {exc}", file=sys.stderr)
        return 1
    print(f"Logged in as {session.user.name or session.user.id} (user id {session.user.id})")
    print(f"Token expires at {session.token.expires_at.isoformat()}")
    return 0


def cmd_logout(client: TrainingPeaksClient, args) -> int:
    client.logout()
    print("Logged out")
    return 0


def cmd_whoami(client: TrainingPeaksClient, args) -> int:
    if args.remote:
        outcome = client.fetch_user()
        if not outcome.success:
            return _fail(outcome)
        _print_json(outcome.data.to_dict())
        return 0

    user = client.get_current_user()
    if user is None:
        print("Not logged in", file=sys.stderr)
        return 1
    _print_json(user.to_dict())
    if not client.is_authenticated():
        print("Warning: stored token has expired", file=sys.stderr)
    return 0


def cmd_workouts_list(client: TrainingPeaksClient, args) -> int:
    outcome = client.list_workouts(args.start, args.end, athlete_id=args.athlete)
    if not outcome.success:
        return _fail(outcome)
    if args.json:
        _print_json(outcome.data)
        return 0
    for workout in outcome.data:
        day = str(workout.get("workoutDay", ""))[:10]
        print(f"{workout['workoutId']:>12}  {day}  {workout.get('title') or '(untitled)'}")
    print(f"{len(outcome.data)} workout(s)")
    return 0


def cmd_workouts_get(client: TrainingPeaksClient, args) -> int:
    outcome = client.get_workout(args.workout_id, athlete_id=args.athlete)
    if not outcome.success:
        return _fail(outcome)
    _print_json(outcome.data)
    return 0


def cmd_workouts_delete(client: TrainingPeaksClient, args) -> int:
    outcome = client.delete_workout(args.workout_id, athlete_id=args.athlete)
    if not outcome.success:
        return _fail(outcome)
    print(f"Deleted workout {args.workout_id}")
    return 0


# ---------------------------------------------------------------------------
# Flag-driven entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trainingpeaks",
        description="TrainingPeaks client - browser login and workout API access",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m trainingpeaks login                      # Prompts for missing credentials
  python -m trainingpeaks whoami
  python -m trainingpeaks workouts list --start 2024-01-01 --end 2024-01-31
  python -m trainingpeaks workouts delete 123456789
        """,
    )
    parser.add_argument("--session-file", default="tp_session.json",
                        help="Session JSON file (default: tp_session.json)")
    parser.add_argument("--headed", action="store_true",
                        help="Show the browser window during login")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Sign in through the browser")
    login.add_argument("--username", help="Defaults to $TRAININGPEAKS_USERNAME")
    login.add_argument("--password", help="Defaults to $TRAININGPEAKS_PASSWORD")
    login.add_argument("--no-input", action="store_true", help="Never prompt")
    login.set_defaults(handler=cmd_login)

    sub.add_parser("logout", help="Forget the stored session").set_defaults(handler=cmd_logout)

    whoami = sub.add_parser("whoami", help="Show the signed-in user")
    whoami.add_argument("--remote", action="store_true", help="Fetch the profile from the API")
    whoami.set_defaults(handler=cmd_whoami)

    workouts = sub.add_parser("workouts", help="Workout calendar operations")
    workouts_sub = workouts.add_subparsers(dest="workouts_command", required=True)

    wl = workouts_sub.add_parser("list", help="List workouts between two dates")
    wl.add_argument("--start", required=True, help="YYYY-MM-DD")
    wl.add_argument("--end", required=True, help="YYYY-MM-DD")
    wl.add_argument("--json", action="store_true", help="Print raw JSON")
    wl.set_defaults(handler=cmd_workouts_list)

    wg = workouts_sub.add_parser("get", help="Show one workout")
    wg.add_argument("workout_id")
    wg.set_defaults(handler=cmd_workouts_get)

    wd = workouts_sub.add_parser("delete", help="Delete one workout")
    wd.add_argument("workout_id")
    wd.set_defaults(handler=cmd_workouts_delete)

    for p in (wl, wg, wd):
        p.add_argument("--athlete", help="Athlete id (default: signed-in user)")

    return parser


def main(argv=None) -> int:
    """Parse argv, build the client, run one command.  Returns the exit code."""
    _load_env()
    args = build_parser().parse_args(argv)

    try:
        config = ClientConfig.from_env(headless=False if args.headed else None)
        _configure_logging(args.verbose or config.debug)
        if args.verbose or config.debug:
            config.log_summary()
        client = TrainingPeaksClient(config, FileSessionStore(args.session_file))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    try:
        return args.handler(client, args)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        client.close()


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
