"""
HTTP Execution Engine
=====================
Issues authenticated JSON requests against the platform APIs.

Every call:
  1. Reads the current ``Session`` from the configured store and injects
     ``Authorization: Bearer <token>`` unless the caller already set one.
  2. Runs the transport call (``requests.Session``) under the call timeout.
  3. On a network failure, a 5xx or a whitelisted 4xx, waits per the
     ``RetryPolicy`` and tries again until the budget is spent.
  4. Returns an ``HttpOutcome``.  Ordinary failures never raise out of
     this module; only malformed calls (unknown verb, empty or invalid
     URL, bad header, unserialisable body) raise ``ValueError``.

A ``TokenRefresher`` may be attached; an authenticated call answered with
401 then gets exactly one refresh-and-replay.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

import requests

from .config import ClientConfig
from .errors import (
    ApiError,
    AuthNoActiveSessionError,
    ErrorCodes,
    NetworkError,
    ValidationError,
    classify_http_status,
)
from .utils import (
    RetryPolicy,
    generate_request_id,
    has_header,
    merge_headers,
    render_curl,
)

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

# Raised by requests while preparing a call that can never succeed.
_MALFORMED_CALL_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidHeader,
    requests.exceptions.InvalidJSONError,
)


# ---------------------------------------------------------------------------
# Per-call values
# ---------------------------------------------------------------------------

@dataclass
class RequestDescriptor:
    """One logical call.  Built per request, discarded afterwards."""
    url: str
    method: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    params: Optional[Dict[str, Any]] = None
    timeout_ms: int = 30000
    requires_auth: bool = False
    skip_auth: bool = False
    request_id: str = field(default_factory=generate_request_id)


@dataclass
class RetryState:
    """Loop state of one call's retry cycle."""
    attempt: int = 0
    next_delay: float = 0.0
    refreshed: bool = False


@dataclass
class HttpOutcome:
    """Tagged result: success carries ``data``, failure carries ``error``."""
    success: bool
    data: Any = None
    error: Optional[ApiError] = None
    cookies: Dict[str, str] = field(default_factory=dict)
    status: int = 0

    @classmethod
    def ok(cls, data: Any, *, cookies: Optional[Dict[str, str]] = None, status: int = 200) -> "HttpOutcome":
        return cls(success=True, data=data, cookies=dict(cookies or {}), status=status)

    @classmethod
    def failed(cls, error: ApiError, *, cookies: Optional[Dict[str, str]] = None) -> "HttpOutcome":
        return cls(
            success=False, data=None, error=error,
            cookies=dict(cookies or {}), status=error.status,
        )


def _parse_body(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class HttpClient:
    """
    Retrying JSON client bound to one session store.

    Args:
        config:        ``ClientConfig`` (timeouts, retry, default headers)
        session_store: store read before every attempt for the bearer token
        session:       ``requests.Session`` to send through (one is created
                       if omitted; its cookie jar carries cookies between calls)
        retry_policy:  overrides ``config.retry_policy()``
        base_url:      prefix for relative URLs (default: API base URL)
        sleep:         delay function, ``time.sleep`` unless replaced
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        session_store=None,
        *,
        session: Optional[requests.Session] = None,
        retry_policy: Optional[RetryPolicy] = None,
        base_url: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or ClientConfig()
        self.session_store = session_store
        self.retry_policy = retry_policy or self.config.retry_policy()
        self.base_url = (base_url if base_url is not None else self.config.api_base_url).rstrip("/")
        self.refresher = None
        self._session = session or self._create_session()
        self._sleep = sleep

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(self.config.default_headers)
        return session

    def set_refresher(self, refresher) -> None:
        """Enable one refresh-and-replay on 401 for authenticated calls."""
        self.refresher = refresher

    def close(self) -> None:
        self._session.close()

    # -----------------------------------------------------------------------
    # Verb shortcuts
    # -----------------------------------------------------------------------
    def get(self, url: str, **options) -> HttpOutcome:
        return self.request("GET", url, **options)

    def post(self, url: str, data: Any = None, **options) -> HttpOutcome:
        return self.request("POST", url, data, **options)

    def put(self, url: str, data: Any = None, **options) -> HttpOutcome:
        return self.request("PUT", url, data, **options)

    def patch(self, url: str, data: Any = None, **options) -> HttpOutcome:
        return self.request("PATCH", url, data, **options)

    def delete(self, url: str, **options) -> HttpOutcome:
        return self.request("DELETE", url, **options)

    # -----------------------------------------------------------------------
    # Core
    # -----------------------------------------------------------------------
    def request(
        self,
        method: str,
        url: str,
        data: Any = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
        requires_auth: bool = False,
        skip_auth: bool = False,
        validate: Optional[Callable[[Any], Any]] = None,
    ) -> HttpOutcome:
        """
        Execute one call with retries.

        Args:
            method:        HTTP verb
            url:           absolute URL, or a path joined onto ``base_url``
            data:          JSON-serialisable body
            headers:       per-call headers (an ``Authorization`` here wins)
            params:        query string parameters
            timeout_ms:    per-attempt timeout (default ``config.timeout``)
            requires_auth: fail with ``AuthNoActiveSessionError`` instead of
                           sending when no session is stored
            skip_auth:     never inject a bearer token
            validate:      called with the parsed body of a 2xx; may return
                           a transformed value, raises ``ValueError`` /
                           ``TypeError`` / ``KeyError`` on a shape mismatch

        Returns:
            HttpOutcome

        Raises:
            ValueError: unknown method, empty URL, or a request that
                requests rejects before sending (invalid URL, bad header,
                body not JSON-serialisable)
        """
        descriptor = self._build_descriptor(
            method, url, data, headers, params, timeout_ms, requires_auth, skip_auth,
        )
        state = RetryState()

        while True:
            outcome = self._attempt(descriptor)

            if outcome.success:
                return self._validated(descriptor, outcome, validate)

            error = outcome.error

            if (
                error.status == 401
                and self.refresher is not None
                and not descriptor.skip_auth
                and not state.refreshed
                and not has_header(descriptor.headers, "Authorization")
                and not isinstance(error, AuthNoActiveSessionError)
            ):
                state.refreshed = True
                logger.info(f"[HTTP] {descriptor.request_id} 401 received, refreshing token")
                if self.refresher.refresh().success:
                    continue

            if not self.retry_policy.should_retry(error, state.attempt):
                if state.attempt:
                    logger.warning(
                        f"[RETRY] {descriptor.request_id} giving up after "
                        f"{state.attempt + 1} attempts: {error}"
                    )
                return outcome

            state.next_delay = self.retry_policy.calculate_delay(state.attempt)
            state.attempt += 1
            logger.warning(
                f"[RETRY] {descriptor.request_id} {descriptor.method} {descriptor.url} "
                f"failed ({error}); attempt={state.attempt}/{self.retry_policy.max_retries} "
                f"delay={state.next_delay:.2f}s"
            )
            self._sleep(state.next_delay)

    def _build_descriptor(
        self, method, url, data, headers, params, timeout_ms, requires_auth, skip_auth,
    ) -> RequestDescriptor:
        verb = (method or "").upper()
        if verb not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method!r}")
        if not url or not url.strip():
            raise ValueError("URL must not be empty")
        if not url.startswith(("http://", "https://")):
            url = f"{self.base_url}/{url.lstrip('/')}"
        return RequestDescriptor(
            url=url,
            method=verb,
            headers=dict(headers or {}),
            body=data,
            params=params,
            timeout_ms=self.config.timeout if timeout_ms is None else timeout_ms,
            requires_auth=requires_auth,
            skip_auth=skip_auth,
        )

    def _auth_headers(self, descriptor: RequestDescriptor) -> Optional[Dict[str, str]]:
        """Bearer header for this attempt; ``None`` means "no session"."""
        if descriptor.skip_auth or has_header(descriptor.headers, "Authorization"):
            return {}
        session = self.session_store.get() if self.session_store is not None else None
        if session is None:
            return None
        return {"Authorization": f"{session.token.token_type} {session.token.access_token}"}

    def _attempt(self, descriptor: RequestDescriptor) -> HttpOutcome:
        auth = self._auth_headers(descriptor)
        if auth is None:
            if descriptor.requires_auth:
                logger.warning(f"[HTTP] {descriptor.request_id} no active session for {descriptor.url}")
                return HttpOutcome.failed(
                    AuthNoActiveSessionError(url=descriptor.url, method=descriptor.method)
                )
            auth = {}

        headers = merge_headers(descriptor.headers, auth)
        logger.debug(f"[HTTP] {descriptor.request_id} {descriptor.method} {descriptor.url}")
        if self.config.log_network:
            logger.debug(
                f"[HTTP] {descriptor.request_id} "
                f"{render_curl(descriptor.method, descriptor.url, merge_headers(self._session.headers, headers), descriptor.body, descriptor.params)}"
            )

        try:
            response = self._session.request(
                descriptor.method,
                descriptor.url,
                headers=headers,
                params=descriptor.params,
                json=descriptor.body,
                timeout=descriptor.timeout_ms / 1000.0,
            )
        except _MALFORMED_CALL_ERRORS as exc:
            logger.error(f"[HTTP] {descriptor.request_id} malformed request {descriptor.url}: {exc}")
            raise ValueError(f"Malformed request to {descriptor.url}: {exc}") from exc
        except requests.Timeout as exc:
            return HttpOutcome.failed(NetworkError(
                f"Request timed out after {descriptor.timeout_ms}ms",
                code=ErrorCodes.NETWORK_TIMEOUT,
                url=descriptor.url, method=descriptor.method,
                context={"cause": str(exc)},
            ))
        except requests.ConnectionError as exc:
            return HttpOutcome.failed(NetworkError(
                f"Connection failed: {exc}",
                url=descriptor.url, method=descriptor.method,
            ))
        except requests.RequestException as exc:
            return HttpOutcome.failed(NetworkError(
                f"Request failed: {exc}",
                code=ErrorCodes.NETWORK_REQUEST_FAILED,
                url=descriptor.url, method=descriptor.method,
            ))
        finally:
            if not self.config.persist_cookies:
                self._session.cookies.clear()

        cookies = requests.utils.dict_from_cookiejar(response.cookies)
        body = _parse_body(response)
        logger.debug(
            f"[HTTP] {descriptor.request_id} <- {response.status_code} {descriptor.url}"
        )

        if 200 <= response.status_code < 300:
            return HttpOutcome.ok(body, cookies=cookies, status=response.status_code)

        return HttpOutcome.failed(
            classify_http_status(
                response.status_code,
                response.reason or "",
                body,
                url=descriptor.url,
                method=descriptor.method,
            ),
            cookies=cookies,
        )

    def _validated(self, descriptor, outcome: HttpOutcome, validate) -> HttpOutcome:
        if validate is None:
            return outcome
        try:
            data = validate(outcome.data)
        except (ValueError, TypeError, KeyError) as exc:
            logger.warning(f"[HTTP] {descriptor.request_id} unexpected response shape: {exc}")
            return HttpOutcome.failed(
                ValidationError(
                    f"Unexpected response shape: {exc}",
                    url=descriptor.url,
                    method=descriptor.method,
                    status=outcome.status,
                ),
                cookies=outcome.cookies,
            )
        return HttpOutcome.ok(data, cookies=outcome.cookies, status=outcome.status)
