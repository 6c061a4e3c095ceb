"""
Tests for the HTTP execution engine.

The transport (``requests.Session``) is a mock; no test touches the network.
Sleeps are recorded instead of slept unless a test measures elapsed time.
"""

import time
from unittest.mock import MagicMock

import pytest
import requests

from conftest import json_response, make_session
from trainingpeaks.auth.session_store import InMemorySessionStore
from trainingpeaks.config import ClientConfig
from trainingpeaks.errors import (
    AuthNoActiveSessionError,
    ErrorCodes,
    HttpError,
    NetworkError,
    ValidationError,
)
from trainingpeaks.http_client import HttpClient, HttpOutcome
from trainingpeaks.utils import RetryPolicy

API = "https://tpapi.trainingpeaks.com"


def _client(transport, store=None, *, policy=None, sleeps=None, config=None):
    return HttpClient(
        config or ClientConfig(),
        store,
        session=transport,
        retry_policy=policy or RetryPolicy(max_retries=3, base_delay=1.0, max_delay=10.0,
                                           jitter=False),
        sleep=(sleeps.append if sleeps is not None else (lambda _: None)),
    )


def _sent_headers(transport, call=0):
    return transport.request.call_args_list[call].kwargs["headers"]


# ====================================================================
# Token injection
# ====================================================================

class TestBearerInjection:

    def test_injects_stored_token(self, transport):
        transport.request.return_value = json_response(200, {"ok": True})
        client = _client(transport, InMemorySessionStore(make_session(access="abc")))

        outcome = client.get(f"{API}/users/v3/user")

        assert outcome.success
        assert outcome.data == {"ok": True}
        assert _sent_headers(transport)["Authorization"] == "Bearer abc"

    def test_caller_authorization_wins_case_insensitive(self, transport):
        transport.request.return_value = json_response(200, {})
        client = _client(transport, InMemorySessionStore(make_session(access="abc")))

        client.get(f"{API}/x", headers={"authorization": "Bearer mine"})

        headers = _sent_headers(transport)
        assert headers == {"authorization": "Bearer mine"}

    def test_no_store_sends_without_token(self, transport):
        transport.request.return_value = json_response(200, {})
        client = _client(transport, None)

        assert client.get(f"{API}/public").success
        assert "Authorization" not in _sent_headers(transport)

    def test_skip_auth(self, transport):
        transport.request.return_value = json_response(200, {})
        client = _client(transport, InMemorySessionStore(make_session()))

        client.post(f"{API}/x", {"a": 1}, skip_auth=True)

        assert "Authorization" not in _sent_headers(transport)
        assert transport.request.call_args.kwargs["json"] == {"a": 1}

    def test_token_read_before_every_attempt(self, transport):
        store = InMemorySessionStore(make_session(access="old"))
        transport.request.side_effect = [
            json_response(503),
            json_response(200, {}),
        ]
        client = _client(transport, store)

        def swap(_delay):
            store.set(make_session(access="new"))
        client._sleep = swap

        assert client.get(f"{API}/x").success
        assert _sent_headers(transport, 0)["Authorization"] == "Bearer old"
        assert _sent_headers(transport, 1)["Authorization"] == "Bearer new"


class TestNoActiveSession:

    def test_protected_call_without_session(self, transport):
        client = _client(transport, InMemorySessionStore())

        outcome = client.get(f"{API}/fitness/v6/athletes/1/workouts", requires_auth=True)

        assert outcome.success is False
        assert isinstance(outcome.error, AuthNoActiveSessionError)
        assert outcome.error.status == 401
        assert outcome.status == 401
        assert outcome.data is None
        transport.request.assert_not_called()


# ====================================================================
# Retry behaviour
# ====================================================================

class TestRetry:

    def test_three_503_then_success(self, transport):
        sleeps = []
        transport.request.side_effect = [
            json_response(503, reason="Service Unavailable"),
            json_response(503, reason="Service Unavailable"),
            json_response(503, reason="Service Unavailable"),
            json_response(200, {"workoutId": 1}),
        ]
        client = _client(transport, None, sleeps=sleeps)

        outcome = client.get(f"{API}/x")

        assert outcome.success
        assert outcome.data == {"workoutId": 1}
        assert transport.request.call_count == 4
        assert sleeps == [1.0, 2.0, 4.0]

    def test_elapsed_time_covers_delays(self, transport):
        transport.request.side_effect = [
            json_response(503),
            json_response(503),
            json_response(503),
            json_response(200, {}),
        ]
        policy = RetryPolicy(max_retries=3, base_delay=0.02, max_delay=1.0, jitter=False)
        client = HttpClient(ClientConfig(), None, session=transport, retry_policy=policy)

        started = time.monotonic()
        outcome = client.get(f"{API}/x")
        elapsed = time.monotonic() - started

        assert outcome.success
        assert elapsed >= policy.calculate_delay(0) + policy.calculate_delay(1)

    def test_budget_exhausted(self, transport):
        sleeps = []
        transport.request.return_value = json_response(500, {"message": "boom"})
        client = _client(transport, None, sleeps=sleeps,
                         policy=RetryPolicy(max_retries=2, base_delay=1.0, jitter=False))

        outcome = client.get(f"{API}/x")

        assert not outcome.success
        assert isinstance(outcome.error, HttpError)
        assert str(outcome.error) == "Server error: boom"
        assert transport.request.call_count == 3
        assert sleeps == [1.0, 2.0]

    def test_delays_respect_ceiling(self, transport):
        sleeps = []
        transport.request.return_value = json_response(502)
        client = _client(transport, None, sleeps=sleeps,
                         policy=RetryPolicy(max_retries=5, base_delay=1.0, max_delay=3.0,
                                            jitter=False))
        client.get(f"{API}/x")
        assert sleeps == [1.0, 2.0, 3.0, 3.0, 3.0]

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_errors_not_retried(self, transport, status):
        sleeps = []
        transport.request.return_value = json_response(status)
        client = _client(transport, None, sleeps=sleeps)

        outcome = client.get(f"{API}/x")

        assert not outcome.success
        assert outcome.error.status == status
        assert transport.request.call_count == 1
        assert sleeps == []

    def test_rate_limit_retried(self, transport):
        transport.request.side_effect = [json_response(429), json_response(200, [])]
        client = _client(transport, None)
        assert client.get(f"{API}/x").success
        assert transport.request.call_count == 2

    def test_network_errors_retried_then_reported(self, transport):
        transport.request.side_effect = requests.ConnectionError("refused")
        client = _client(transport, None)

        outcome = client.get(f"{API}/x")

        assert isinstance(outcome.error, NetworkError)
        assert outcome.error.status == 0
        assert outcome.error.code == ErrorCodes.NETWORK_CONNECTION_FAILED
        assert transport.request.call_count == 4

    def test_timeout_classified(self, transport):
        transport.request.side_effect = requests.Timeout("slow")
        client = _client(transport, None, policy=RetryPolicy(max_retries=0))

        outcome = client.get(f"{API}/x", timeout_ms=1500)

        assert outcome.error.code == ErrorCodes.NETWORK_TIMEOUT
        assert "1500ms" in str(outcome.error)
        assert transport.request.call_args.kwargs["timeout"] == 1.5

    def test_zero_retries(self, transport):
        transport.request.return_value = json_response(503)
        client = _client(transport, None, policy=RetryPolicy(max_retries=0))
        assert not client.get(f"{API}/x").success
        assert transport.request.call_count == 1


# ====================================================================
# 401 refresh-and-replay
# ====================================================================

class TestRefreshOnUnauthorized:

    def test_refresh_then_replay(self, transport):
        store = InMemorySessionStore(make_session(access="stale"))
        transport.request.side_effect = [json_response(401), json_response(200, {"ok": 1})]
        client = _client(transport, store)
        refresher = MagicMock()

        def refresh():
            store.set(make_session(access="fresh"))
            return HttpOutcome.ok(store.get())
        refresher.refresh.side_effect = refresh
        client.set_refresher(refresher)

        outcome = client.get(f"{API}/x")

        assert outcome.success
        refresher.refresh.assert_called_once()
        assert _sent_headers(transport, 1)["Authorization"] == "Bearer fresh"

    def test_only_one_refresh(self, transport):
        store = InMemorySessionStore(make_session())
        transport.request.return_value = json_response(401)
        client = _client(transport, store)
        refresher = MagicMock()
        refresher.refresh.return_value = HttpOutcome.ok(None)
        client.set_refresher(refresher)

        outcome = client.get(f"{API}/x")

        assert outcome.error.status == 401
        refresher.refresh.assert_called_once()
        assert transport.request.call_count == 2

    def test_failed_refresh_returns_401(self, transport):
        transport.request.return_value = json_response(401)
        client = _client(transport, InMemorySessionStore(make_session()))
        refresher = MagicMock()
        refresher.refresh.return_value = HttpOutcome.failed(HttpError("nope", status=400))
        client.set_refresher(refresher)

        outcome = client.get(f"{API}/x")

        assert outcome.error.status == 401
        assert transport.request.call_count == 1

    def test_no_refresh_with_caller_token(self, transport):
        transport.request.return_value = json_response(401)
        client = _client(transport, InMemorySessionStore(make_session()))
        refresher = MagicMock()
        client.set_refresher(refresher)

        client.get(f"{API}/x", headers={"Authorization": "Bearer mine"})

        refresher.refresh.assert_not_called()


# ====================================================================
# Outcome shape and misuse
# ====================================================================

class TestOutcome:

    def test_cookies_returned(self, transport):
        transport.request.return_value = json_response(200, {}, cookies={"ajs": "1"})
        outcome = _client(transport, None).get(f"{API}/x")
        assert outcome.cookies == {"ajs": "1"}

    def test_empty_body(self, transport):
        transport.request.return_value = json_response(204)
        outcome = _client(transport, None).delete(f"{API}/x")
        assert outcome.success
        assert outcome.data is None
        assert outcome.status == 204

    def test_relative_url_joined_to_api_base(self, transport):
        transport.request.return_value = json_response(200, {})
        _client(transport, None).get("/users/v3/user")
        args = transport.request.call_args.args
        assert args == ("GET", f"{API}/users/v3/user")

    def test_query_params_passed(self, transport):
        transport.request.return_value = json_response(200, {})
        _client(transport, None).get(f"{API}/x", params={"a": 1})
        assert transport.request.call_args.kwargs["params"] == {"a": 1}

    def test_validation_failure(self, transport):
        transport.request.return_value = json_response(200, {"unexpected": True})
        client = _client(transport, None)

        def expect_list(data):
            if not isinstance(data, list):
                raise ValueError("expected a list")
            return data

        outcome = client.get(f"{API}/x", validate=expect_list)

        assert not outcome.success
        assert isinstance(outcome.error, ValidationError)
        assert outcome.error.status == 200
        assert transport.request.call_count == 1

    def test_validator_transforms(self, transport):
        transport.request.return_value = json_response(200, [1, 2])
        outcome = _client(transport, None).get(f"{API}/x", validate=len)
        assert outcome.data == 2

    def test_unknown_method_raises(self, transport):
        with pytest.raises(ValueError):
            _client(transport, None).request("FETCH", f"{API}/x")

    def test_empty_url_raises(self, transport):
        with pytest.raises(ValueError):
            _client(transport, None).get("  ")

    def test_hostless_url_raises_without_retry(self):
        sleeps = []
        client = HttpClient(ClientConfig(), None, session=requests.Session(),
                            retry_policy=RetryPolicy(max_retries=3, jitter=False),
                            sleep=sleeps.append)

        with pytest.raises(ValueError, match="No host supplied"):
            client.get("http://")

        assert sleeps == []

    @pytest.mark.parametrize("exc", [
        requests.exceptions.InvalidURL("bad url"),
        requests.exceptions.MissingSchema("no schema"),
        requests.exceptions.InvalidSchema("no adapter"),
        requests.exceptions.InvalidHeader("bad header"),
        requests.exceptions.InvalidJSONError("not serialisable"),
    ])
    def test_rejected_request_construction_raises(self, transport, exc):
        sleeps = []
        transport.request.side_effect = exc

        with pytest.raises(ValueError) as exc_info:
            _client(transport, None, sleeps=sleeps).get(f"{API}/x")

        assert exc_info.value.__cause__ is exc
        assert transport.request.call_count == 1
        assert sleeps == []

    def test_cookies_dropped_when_not_persisted(self, transport):
        transport.cookies.set("sid", "1")
        transport.request.return_value = json_response(200, {})
        client = _client(transport, None, config=ClientConfig(persist_cookies=False))
        client.get(f"{API}/x")
        assert len(transport.cookies) == 0
