"""
Tests for the network interceptor: payload parsing and listener lifetime.
"""

import logging
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from trainingpeaks.auth.interceptor import NetworkInterceptor
from trainingpeaks.models import InterceptedCapture, utcnow

TOKEN_URL = "https://tpapi.trainingpeaks.com/users/v3/token"
USER_URL = "https://tpapi.trainingpeaks.com/users/v3/user"


def _response(url, body=None, *, ok=True, status=200, json_error=None):
    response = MagicMock()
    response.url = url
    response.ok = ok
    response.status = status
    response.json = AsyncMock(return_value=body, side_effect=json_error)
    return response


@pytest.fixture
def capture():
    return InterceptedCapture()


@pytest.fixture
def interceptor(capture):
    return NetworkInterceptor(capture, timedelta(hours=23))


# ====================================================================
# Payload handling
# ====================================================================

class TestTokenPayload:

    def test_access_and_refresh(self, interceptor, capture):
        interceptor.handle_token_payload({"token": {"access_token": "abc", "refresh_token": "r1"}})
        assert capture.token.access_token == "abc"
        assert capture.token.refresh_token == "r1"
        assert capture.token.token_type == "Bearer"

    def test_default_expiry_window(self, interceptor, capture):
        interceptor.handle_token_payload({"token": {"access_token": "abc"}})
        remaining = capture.token.expires_at - utcnow()
        assert timedelta(hours=22, minutes=59) < remaining <= timedelta(hours=23)
        assert capture.token.refresh_token is None

    @pytest.mark.parametrize("payload", [
        {},
        {"token": None},
        {"token": {"access_token": ""}},
        {"token": {"refresh_token": "r1"}},
        ["token"],
        "abc",
    ])
    def test_unexpected_shapes_ignored(self, interceptor, capture, payload):
        assert interceptor.handle_token_payload(payload) is None
        assert capture.token is None


class TestUserPayload:

    def test_numeric_id_coerced(self, interceptor, capture):
        assert interceptor.handle_user_payload({"user": {"userId": 123}}) == "123"
        assert capture.user_id == "123"

    def test_string_zero_id_kept(self, interceptor, capture):
        assert interceptor.handle_user_payload({"user": {"userId": "0"}}) == "0"

    def test_name_and_avatar(self, interceptor, capture):
        interceptor.handle_user_payload({"user": {
            "userId": 7, "firstName": "Ada", "lastName": "Lovelace",
            "personPhotoUrl": "https://img/7.png",
        }})
        assert capture.user_name == "Ada Lovelace"
        assert capture.avatar == "https://img/7.png"

    @pytest.mark.parametrize("payload", [
        {}, {"user": {}}, {"user": {"userId": None}}, {"user": {"userId": 0}},
        {"user": {"userId": ""}}, {"user": "123"}, None,
    ])
    def test_unexpected_shapes_ignored(self, interceptor, capture, payload):
        assert interceptor.handle_user_payload(payload) is None
        assert capture.user_id is None


# ====================================================================
# Response events
# ====================================================================

class TestOnResponse:

    @pytest.mark.asyncio
    async def test_routes_by_url_fragment(self, interceptor, capture):
        await interceptor.on_response(_response(TOKEN_URL, {"token": {"access_token": "abc"}}))
        await interceptor.on_response(_response(USER_URL, {"user": {"userId": 123}}))
        assert capture.is_complete

    @pytest.mark.asyncio
    async def test_unrelated_urls_not_parsed(self, interceptor, capture):
        response = _response("https://app.trainingpeaks.com/main.js")
        await interceptor.on_response(response)
        response.json.assert_not_awaited()
        assert capture.missing_fields() == ["token", "user_id"]

    @pytest.mark.asyncio
    async def test_non_json_body_logged_and_ignored(self, interceptor, capture, caplog):
        response = _response(TOKEN_URL, json_error=ValueError("Unexpected token <"))
        with caplog.at_level(logging.WARNING):
            await interceptor.on_response(response)
        assert capture.token is None
        assert "Unparseable body" in caplog.text

    @pytest.mark.asyncio
    async def test_error_status_ignored(self, interceptor, capture):
        response = _response(TOKEN_URL, {"token": {"access_token": "abc"}}, ok=False, status=500)
        await interceptor.on_response(response)
        response.json.assert_not_awaited()
        assert capture.token is None

    @pytest.mark.asyncio
    async def test_later_token_supersedes(self, interceptor, capture):
        await interceptor.on_response(_response(TOKEN_URL, {"token": {"access_token": "one"}}))
        await interceptor.on_response(_response(TOKEN_URL, {"token": {"access_token": "two"}}))
        assert capture.token.access_token == "two"

    @pytest.mark.asyncio
    async def test_token_not_logged(self, interceptor, caplog):
        with caplog.at_level(logging.DEBUG):
            await interceptor.on_response(
                _response(TOKEN_URL, {"token": {"access_token": "verysecretaccesstoken"}})
            )
        assert "verysecretaccesstoken" not in caplog.text

    @pytest.mark.asyncio
    async def test_no_token_characters_logged(self, interceptor, caplog):
        with caplog.at_level(logging.DEBUG):
            await interceptor.on_response(
                _response(TOKEN_URL, {"token": {"access_token": "Qx7vSECRETw9Zk"}})
            )
        assert "Qx7v" not in caplog.text
        assert "w9Zk" not in caplog.text
        assert "*** (len=14)" in caplog.text


# ====================================================================
# Subscription lifetime
# ====================================================================

class TestLifetime:

    def test_attach_and_detach(self, interceptor):
        page = MagicMock()
        interceptor.attach(page)
        events = [c.args[0] for c in page.on.call_args_list]
        assert events == ["request", "response"]
        assert interceptor.attached

        interceptor.detach()
        removed = [c.args[0] for c in page.remove_listener.call_args_list]
        assert "request" in removed and "response" in removed
        assert not interceptor.attached

    def test_detach_twice_is_noop(self, interceptor):
        page = MagicMock()
        interceptor.attach(page)
        interceptor.detach()
        interceptor.detach()
        assert page.remove_listener.call_count == 3

    def test_double_attach_rejected(self, interceptor):
        interceptor.attach(MagicMock())
        with pytest.raises(RuntimeError):
            interceptor.attach(MagicMock())

    def test_console_forwarding_optional(self, capture):
        page = MagicMock()
        NetworkInterceptor(capture, timedelta(hours=1), log_browser=True).attach(page)
        assert "console" in [c.args[0] for c in page.on.call_args_list]
