"""
Error Taxonomy
==============
Closed set of failures raised (login flow) or returned (HTTP layer) by the
client.

Two branches hang off ``TrainingPeaksError``:

    - ``WebAuthenticationError`` and its subclasses — raised by the
      browser-driven login flow.  Callers catch the base class; the
      subclass and ``stage`` tell them *where* the attempt died.
    - ``ApiError`` and its subclasses — never raised across the HTTP
      client boundary.  They travel inside ``HttpOutcome.error`` so callers
      branch on type / status instead of parsing strings.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


# ---------------------------------------------------------------------------
# Stable error codes
# ---------------------------------------------------------------------------

class ErrorCodes:
    AUTH_FAILED = "AUTH_1001"
    AUTH_TOKEN_EXPIRED = "AUTH_1002"
    AUTH_TOKEN_INVALID = "AUTH_1003"
    AUTH_TOKEN_REFRESH_FAILED = "AUTH_1004"
    AUTH_NO_ACTIVE_SESSION = "AUTH_1005"
    AUTH_INVALID_CREDENTIALS = "AUTH_1006"
    AUTH_DATA_MISSING = "AUTH_1007"
    AUTH_FORBIDDEN = "AUTH_1008"

    BROWSER_LAUNCH_FAILED = "BROWSER_1101"
    BROWSER_NAVIGATION_TIMEOUT = "BROWSER_1102"
    BROWSER_ELEMENT_NOT_FOUND = "BROWSER_1103"

    RESOURCE_NOT_FOUND = "RESOURCE_3001"

    NETWORK_TIMEOUT = "NETWORK_4001"
    NETWORK_CONNECTION_FAILED = "NETWORK_4002"
    NETWORK_REQUEST_FAILED = "NETWORK_4003"
    NETWORK_RATE_LIMITED = "NETWORK_4004"
    NETWORK_SERVER_ERROR = "NETWORK_4005"
    NETWORK_BAD_GATEWAY = "NETWORK_4006"
    NETWORK_SERVICE_UNAVAILABLE = "NETWORK_4007"

    VALIDATION_FAILED = "VALIDATION_5001"

    CONFIG_INVALID = "CONFIG_6001"


class TrainingPeaksError(Exception):
    """Root of every error this package defines."""

    code: str = ErrorCodes.AUTH_FAILED

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context: Dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        return self.message


class ConfigurationError(TrainingPeaksError):
    code = ErrorCodes.CONFIG_INVALID


# ---------------------------------------------------------------------------
# Login flow errors (raised)
# ---------------------------------------------------------------------------

class WebAuthenticationError(TrainingPeaksError):
    """A browser login attempt failed.

    ``stage`` names the login-flow state the attempt was in when it died
    (e.g. ``"navigating"``, ``"submitting"``).
    """

    code = ErrorCodes.AUTH_FAILED

    def __init__(self, message: str, *, stage: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.stage = stage
        self.context.setdefault("stage", stage)


class BrowserLaunchError(WebAuthenticationError):
    code = ErrorCodes.BROWSER_LAUNCH_FAILED

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("stage", "launching")
        super().__init__(message, **kwargs)


class NavigationTimeoutError(WebAuthenticationError):
    code = ErrorCodes.BROWSER_NAVIGATION_TIMEOUT

    def __init__(self, url: str, timeout_ms: int, **kwargs):
        kwargs.setdefault("stage", "navigating")
        super().__init__(
            f"Timed out after {timeout_ms}ms waiting for {url}", **kwargs
        )
        self.url = url
        self.timeout_ms = timeout_ms
        self.context.update(url=url, timeout_ms=timeout_ms)


class ElementNotFoundError(WebAuthenticationError):
    """No candidate of a selector fallback chain became visible."""

    code = ErrorCodes.BROWSER_ELEMENT_NOT_FOUND

    def __init__(self, selectors: Iterable[str], *, field: str = "element", **kwargs):
        self.selectors: List[str] = list(selectors)
        self.field = field
        super().__init__(
            f"{field} not found. Tried selectors: {', '.join(self.selectors)}",
            **kwargs,
        )
        self.context.update(field=field, selectors=self.selectors)


class InvalidCredentialsError(WebAuthenticationError):
    """
    The platform rendered an inline login error.

    ``platform_message`` keeps the element text verbatim; the exception
    message is the same text with surrounding whitespace stripped.
    """

    code = ErrorCodes.AUTH_INVALID_CREDENTIALS

    def __init__(self, platform_message: str, **kwargs):
        kwargs.setdefault("stage", "submitting")
        super().__init__(platform_message.strip() or platform_message, **kwargs)
        self.platform_message = platform_message


class AuthenticationDataMissingError(WebAuthenticationError):
    """The flow finished but the interceptor never saw a token or user id."""

    code = ErrorCodes.AUTH_DATA_MISSING

    def __init__(self, missing: Iterable[str], **kwargs):
        self.missing: List[str] = list(missing)
        kwargs.setdefault("stage", "done")
        super().__init__(
            "Failed to retrieve authentication data from login flow "
            f"(missing: {', '.join(self.missing)})",
            **kwargs,
        )
        self.context["missing"] = self.missing


# ---------------------------------------------------------------------------
# HTTP layer errors (returned inside HttpOutcome)
# ---------------------------------------------------------------------------

class ApiError(TrainingPeaksError):
    """Classified failure of one HTTP call."""

    code = ErrorCodes.NETWORK_REQUEST_FAILED

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
        method: str = "",
        status: int = 0,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.url = url
        self.method = method
        self.status = status
        self.context.update(url=url, method=method, status=status)


class NetworkError(ApiError):
    """The server was never reached (DNS, refused, reset, timeout)."""

    code = ErrorCodes.NETWORK_CONNECTION_FAILED


class HttpError(ApiError):
    """The server answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        status_text: str = "",
        response_data: Any = None,
        **kwargs,
    ):
        super().__init__(message, status=status, **kwargs)
        self.status_text = status_text
        self.response_data = response_data
        self.context["status_text"] = status_text


class ValidationError(ApiError):
    """A 2xx body did not have the shape the endpoint promises."""

    code = ErrorCodes.VALIDATION_FAILED


class AuthNoActiveSessionError(ApiError):
    code = ErrorCodes.AUTH_NO_ACTIVE_SESSION

    def __init__(self, message: str = "No active session", **kwargs):
        kwargs.setdefault("status", 401)
        super().__init__(message, **kwargs)


# ---------------------------------------------------------------------------
# Classification helpers
# ---------------------------------------------------------------------------

_STATUS_MAP = {
    400: ("Bad Request", ErrorCodes.VALIDATION_FAILED),
    401: ("Authentication failed", ErrorCodes.AUTH_TOKEN_INVALID),
    403: ("Access forbidden", ErrorCodes.AUTH_FORBIDDEN),
    404: ("Resource not found", ErrorCodes.RESOURCE_NOT_FOUND),
    408: ("Request timeout", ErrorCodes.NETWORK_TIMEOUT),
    409: ("Conflict", ErrorCodes.VALIDATION_FAILED),
    422: ("Validation error", ErrorCodes.VALIDATION_FAILED),
    429: ("Rate limit exceeded", ErrorCodes.NETWORK_RATE_LIMITED),
    500: ("Server error", ErrorCodes.NETWORK_SERVER_ERROR),
    502: ("Bad gateway", ErrorCodes.NETWORK_BAD_GATEWAY),
    503: ("Service unavailable", ErrorCodes.NETWORK_SERVICE_UNAVAILABLE),
    504: ("Request timeout", ErrorCodes.NETWORK_TIMEOUT),
}


def extract_error_message(data: Any) -> Optional[str]:
    """Pull a human message out of an error body, if it has one."""
    if not isinstance(data, dict):
        return None
    for key in ("message", "error", "detail", "description"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def classify_http_status(
    status: int,
    status_text: str = "",
    data: Any = None,
    *,
    url: str = "",
    method: str = "",
) -> HttpError:
    """Build the ``HttpError`` for a non-2xx response."""
    prefix, code = _STATUS_MAP.get(
        status, (f"HTTP Error {status}", ErrorCodes.NETWORK_REQUEST_FAILED)
    )
    detail = extract_error_message(data) or status_text or "no details"
    return HttpError(
        f"{prefix}: {detail}",
        status=status,
        status_text=status_text,
        response_data=data,
        code=code,
        url=url,
        method=method,
    )


def is_retryable(error: Optional[BaseException], retry_on: Iterable[int] = (408, 429)) -> bool:
    """True for transient failures: network errors, 5xx and whitelisted 4xx."""
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, HttpError):
        return error.status >= 500 or error.status in set(retry_on)
    return False
