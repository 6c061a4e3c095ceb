"""
Client Configuration
====================
Single source of truth for ALL client defaults and runtime limits.

The login flow, the HTTP engine, the token refresher and the CLI all read
from one ``ClientConfig``.  Environment variables (``TRAININGPEAKS_*``)
populate it via ``ClientConfig.from_env()``; the CLI loads a ``.env`` file
first so those variables can live on disk.

Every timeout here is in milliseconds.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from datetime import timedelta
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from .api import endpoints
from .errors import ConfigurationError
from .utils import RetryPolicy

logger = logging.getLogger(__name__)

ENV_PREFIX = "TRAININGPEAKS_"


# ---------------------------------------------------------------------------
# Canonical defaults, the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    # URLs
    "login_url": "https://home.trainingpeaks.com/login",
    "app_url": "https://app.trainingpeaks.com",
    "api_base_url": "https://tpapi.trainingpeaks.com",
    # Timeouts (ms)
    "timeout": 30000,                 # default HTTP request timeout
    "web_auth_timeout": 30000,        # navigation / username field / app URL wait
    "element_wait_timeout": 5000,     # per-candidate wait for fallback selectors
    "consent_timeout": 5000,          # cookie banner is optional; keep it short
    "browser_launch_timeout": 30000,
    "page_wait_timeout": 2000,        # grace period after reaching the app
    # Token
    "token_default_expiration": 23 * 60 * 60 * 1000,  # platform omits expiry
    "token_refresh_window": 5 * 60 * 1000,
    # Browser
    "headless": True,
    "executable_path": None,
    # Retry
    "retry_attempts": 3,
    "retry_delay": 1000,
    "retry_backoff": 2.0,
    "retry_max_delay": 10000,
    "retry_jitter": True,
    # Misc
    "persist_cookies": True,
    "debug": False,
    "log_network": False,
    "log_browser": False,
}

# env suffix -> (field name, parser)
_ENV_FIELDS = {
    "LOGIN_URL": ("login_url", str),
    "APP_URL": ("app_url", str),
    "API_BASE_URL": ("api_base_url", str),
    "TIMEOUT": ("timeout", int),
    "WEB_AUTH_TIMEOUT": ("web_auth_timeout", int),
    "ELEMENT_WAIT_TIMEOUT": ("element_wait_timeout", int),
    "CONSENT_TIMEOUT": ("consent_timeout", int),
    "BROWSER_LAUNCH_TIMEOUT": ("browser_launch_timeout", int),
    "BROWSER_PAGE_WAIT_TIMEOUT": ("page_wait_timeout", int),
    "TOKEN_DEFAULT_EXPIRATION": ("token_default_expiration", int),
    "TOKEN_REFRESH_WINDOW": ("token_refresh_window", int),
    "BROWSER_HEADLESS": ("headless", "bool"),
    "BROWSER_EXECUTABLE_PATH": ("executable_path", str),
    "RETRY_ATTEMPTS": ("retry_attempts", int),
    "RETRY_DELAY": ("retry_delay", int),
    "RETRY_BACKOFF": ("retry_backoff", float),
    "RETRY_MAX_DELAY": ("retry_max_delay", int),
    "RETRY_JITTER": ("retry_jitter", "bool"),
    "PERSIST_COOKIES": ("persist_cookies", "bool"),
    "DEBUG": ("debug", "bool"),
    "LOG_NETWORK": ("log_network", "bool"),
    "LOG_BROWSER": ("log_browser", "bool"),
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_env_value(name: str, raw: str, parser) -> Any:
    """Parse one env value; ``None`` means "keep the default"."""
    raw = raw.strip()
    if parser == "bool":
        lowered = raw.lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        logger.warning(f"[CONFIG] Ignoring {name}={raw!r}: expected a boolean")
        return None
    if parser is str:
        return raw or None
    try:
        return parser(raw)
    except ValueError:
        logger.warning(f"[CONFIG] Ignoring {name}={raw!r}: not a number")
        return None


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value or "")
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


@dataclass
class ClientConfig:
    """
    Unified configuration consumed by every client subsystem.

    Populate via:
      - ``ClientConfig()``                      → all defaults
      - ``ClientConfig(headless=False)``        → override one value
      - ``ClientConfig.from_env(debug=True)``   → environment, then overrides
    """

    # ---- URLs ----
    login_url: str = _DEFAULTS["login_url"]
    app_url: str = _DEFAULTS["app_url"]
    api_base_url: str = _DEFAULTS["api_base_url"]

    # ---- Timeouts (ms) ----
    timeout: int = _DEFAULTS["timeout"]
    web_auth_timeout: int = _DEFAULTS["web_auth_timeout"]
    element_wait_timeout: int = _DEFAULTS["element_wait_timeout"]
    consent_timeout: int = _DEFAULTS["consent_timeout"]
    browser_launch_timeout: int = _DEFAULTS["browser_launch_timeout"]
    page_wait_timeout: int = _DEFAULTS["page_wait_timeout"]

    # ---- Token ----
    token_default_expiration: int = _DEFAULTS["token_default_expiration"]
    token_refresh_window: int = _DEFAULTS["token_refresh_window"]

    # ---- Browser ----
    headless: bool = _DEFAULTS["headless"]
    executable_path: Optional[str] = _DEFAULTS["executable_path"]

    # ---- Retry ----
    retry_attempts: int = _DEFAULTS["retry_attempts"]
    retry_delay: int = _DEFAULTS["retry_delay"]
    retry_backoff: float = _DEFAULTS["retry_backoff"]
    retry_max_delay: int = _DEFAULTS["retry_max_delay"]
    retry_jitter: bool = _DEFAULTS["retry_jitter"]

    # ---- HTTP ----
    default_headers: Dict[str, str] = field(default_factory=lambda: {
        "Accept": "application/json",
        "Content-Type": "application/json",
    })
    persist_cookies: bool = _DEFAULTS["persist_cookies"]

    # ---- Debug ----
    debug: bool = _DEFAULTS["debug"]
    log_network: bool = _DEFAULTS["log_network"]
    log_browser: bool = _DEFAULTS["log_browser"]

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, **overrides) -> "ClientConfig":
        """Build config from ``TRAININGPEAKS_*`` variables; ``overrides`` win."""
        env = os.environ if environ is None else environ
        known = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}

        for suffix, (name, parser) in _ENV_FIELDS.items():
            raw = env.get(ENV_PREFIX + suffix)
            if raw is None:
                continue
            parsed = _parse_env_value(ENV_PREFIX + suffix, raw, parser)
            if parsed is not None:
                values[name] = parsed

        for name, value in overrides.items():
            if name not in known:
                raise ConfigurationError(f"Unknown configuration option: {name}")
            if value is not None:
                values[name] = value

        return cls(**values)

    def validate(self) -> "ClientConfig":
        """Reject impossible settings.  Returns ``self`` for chaining."""
        for name in ("login_url", "app_url", "api_base_url"):
            value = getattr(self, name)
            if not _is_http_url(value):
                raise ConfigurationError(
                    f"{name} must be an http(s) URL, got {value!r}",
                    context={"field": name},
                )

        for name in (
            "timeout", "web_auth_timeout", "element_wait_timeout",
            "consent_timeout", "browser_launch_timeout", "page_wait_timeout",
            "token_default_expiration", "token_refresh_window",
            "retry_delay", "retry_max_delay",
        ):
            if getattr(self, name) < 0:
                raise ConfigurationError(
                    f"{name} must not be negative", context={"field": name}
                )

        if self.retry_attempts < 0:
            raise ConfigurationError("retry_attempts must not be negative")
        if self.retry_backoff < 1:
            raise ConfigurationError("retry_backoff must be >= 1")
        if self.retry_max_delay < self.retry_delay:
            raise ConfigurationError("retry_max_delay must be >= retry_delay")
        return self

    # -----------------------------------------------------------------------
    # Derived values
    # -----------------------------------------------------------------------
    @property
    def app_url_pattern(self) -> str:
        """Glob the page URL must match once login completes."""
        return f"{self.app_url.rstrip('/')}/**"

    @property
    def users_base_url(self) -> str:
        return endpoints.users_url(self.api_base_url)

    @property
    def token_url(self) -> str:
        return endpoints.token_url(self.api_base_url)

    @property
    def user_url(self) -> str:
        return endpoints.user_url(self.api_base_url)

    @property
    def refresh_url(self) -> str:
        return endpoints.token_refresh_url(self.api_base_url)

    @property
    def token_expiry(self) -> timedelta:
        return timedelta(milliseconds=self.token_default_expiration)

    @property
    def refresh_window(self) -> timedelta:
        return timedelta(milliseconds=self.token_refresh_window)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.retry_attempts,
            base_delay=self.retry_delay / 1000.0,
            max_delay=self.retry_max_delay / 1000.0,
            exponential_base=self.retry_backoff,
            jitter=self.retry_jitter,
        )

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("TRAININGPEAKS CLIENT CONFIG")
        logger.info("=" * 60)
        logger.info(f"  Login URL:        {self.login_url}")
        logger.info(f"  App URL:          {self.app_url}")
        logger.info(f"  API Base URL:     {self.api_base_url}")
        logger.info(f"  Request Timeout:  {self.timeout}ms")
        logger.info(f"  Web Auth Timeout: {self.web_auth_timeout}ms")
        logger.info(f"  Element Wait:     {self.element_wait_timeout}ms")
        logger.info(f"  Headless:         {self.headless}")
        if self.executable_path:
            logger.info(f"  Browser Binary:   {self.executable_path}")
        logger.info(f"  Token Expiry:     {self.token_expiry} (default window)")
        logger.info(
            f"  Retry:            {self.retry_attempts} retries, "
            f"{self.retry_delay}ms x{self.retry_backoff} (max {self.retry_max_delay}ms, "
            f"jitter={'on' if self.retry_jitter else 'off'})"
        )
        if self.debug:
            logger.info(f"  Debug:            on (network={self.log_network}, browser={self.log_browser})")
        logger.info("=" * 60)
