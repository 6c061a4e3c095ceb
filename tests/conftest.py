"""Shared fixtures: sessions, fake HTTP responses and Playwright doubles."""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import requests

from trainingpeaks.models import AuthToken, Session, User


def make_session(access="abc", refresh="r1", user_id="123", expires_in=timedelta(hours=23)):
    return Session(
        token=AuthToken.bearer(access, expires_in, refresh),
        user=User(id=user_id, name="Test Athlete"),
    )


def json_response(status=200, body=None, reason="", cookies=None):
    """A real ``requests.Response`` carrying ``body`` as JSON."""
    resp = requests.Response()
    resp.status_code = status
    resp.reason = reason
    resp._content = b"" if body is None else json.dumps(body).encode("utf-8")
    resp.headers["Content-Type"] = "application/json"
    for name, value in (cookies or {}).items():
        resp.cookies.set(name, value)
    return resp


def make_playwright(page):
    """``async_playwright``-shaped factory whose browser yields ``page``."""
    browser = MagicMock()
    browser.close = AsyncMock()
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    browser.new_context = AsyncMock(return_value=context)

    pw = MagicMock()
    pw.chromium.launch = AsyncMock(return_value=browser)

    factory = MagicMock()
    instance = MagicMock()
    factory.return_value = instance
    instance.__aenter__ = AsyncMock(return_value=pw)
    instance.__aexit__ = AsyncMock(return_value=False)
    return factory, pw, browser


@pytest.fixture
def session():
    return make_session()


@pytest.fixture
def transport():
    """Stand-in for ``requests.Session``; set ``request.side_effect``."""
    fake = MagicMock(spec=requests.Session)
    fake.headers = {}
    fake.cookies = requests.cookies.RequestsCookieJar()
    return fake
