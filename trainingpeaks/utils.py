"""
Utility functions and classes for the TrainingPeaks client.
"""

import json
import random
import shlex
import uuid
from typing import Any, Dict, Iterable, Mapping, Optional
from urllib.parse import urlencode

from .errors import is_retryable


class RetryPolicy:
    """
    Exponential backoff with an upper ceiling and optional jitter.
    """

    # 4xx statuses treated as transient in addition to every 5xx
    RETRYABLE_CLIENT_STATUSES = (408, 429)

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retry_on: Iterable[int] = RETRYABLE_CLIENT_STATUSES,
    ):
        """
        Initialize the retry policy.

        Args:
            max_retries: Retries allowed after the first attempt
            base_delay: Delay before the first retry, in seconds
            max_delay: Ceiling every computed delay is clamped to
            exponential_base: Backoff multiplier per attempt
            jitter: Scale each delay by a random factor in [0.5, 1.0]
            retry_on: Client-error statuses that are still retried
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = tuple(retry_on)

    def calculate_delay(self, attempt: int, apply_jitter: Optional[bool] = None) -> float:
        """
        Calculate delay for given retry attempt.

        Args:
            attempt: Current attempt number (0-indexed)
            apply_jitter: Override ``self.jitter`` for this call

        Returns:
            Delay in seconds
        """
        delay = self.base_delay * (self.exponential_base ** attempt)

        if self.jitter if apply_jitter is None else apply_jitter:
            delay *= 0.5 + random.random() * 0.5

        return max(0.0, min(delay, self.max_delay))

    def should_retry(self, error: Optional[BaseException], attempt: int) -> bool:
        """
        Determine if a failed attempt should be retried.

        Args:
            error: Classified error of the failed attempt
            attempt: Attempt number that just failed (0-indexed)

        Returns:
            True if should retry, False otherwise
        """
        if attempt >= self.max_retries:
            return False
        return is_retryable(error, self.retry_on)


# ---------------------------------------------------------------------------
# Browser identity
# ---------------------------------------------------------------------------

_UA_PLATFORMS = [
    "Macintosh; Intel Mac OS X 10_15_7",
    "Macintosh; Intel Mac OS X 14_0_0",
    "Macintosh; Intel Mac OS X 14_1_0",
    "Windows NT 10.0; Win64; x64",
    "Windows NT 11.0; Win64; x64",
    "X11; Linux x86_64",
]

_UA_CHROME = ["120.0.0.0", "121.0.0.0", "122.0.0.0", "123.0.0.0", "124.0.0.0"]
_UA_FIREFOX = ["120.0", "121.0", "122.0", "123.0", "124.0"]
_UA_SAFARI = ["17.0", "17.1", "17.2", "17.3", "17.4"]


def generate_user_agent() -> str:
    """Return a realistic desktop User-Agent string."""
    platform = random.choice(_UA_PLATFORMS)
    family = random.choice(("chrome", "firefox", "safari"))

    if family == "firefox":
        version = random.choice(_UA_FIREFOX)
        return f"Mozilla/5.0 ({platform}; rv:{version}) Gecko/20100101 Firefox/{version}"
    if family == "safari":
        version = random.choice(_UA_SAFARI)
        return (
            f"Mozilla/5.0 ({platform}) AppleWebKit/605.1.15 "
            f"(KHTML, like Gecko) Version/{version} Safari/605.1.15"
        )
    version = random.choice(_UA_CHROME)
    return (
        f"Mozilla/5.0 ({platform}) AppleWebKit/537.36 "
        f"(KHTML, like Gecko) Chrome/{version} Safari/537.36"
    )


def generate_request_id() -> str:
    """Short id to correlate the log lines of one request."""
    return uuid.uuid4().hex[:12]


# ---------------------------------------------------------------------------
# Header helpers
# ---------------------------------------------------------------------------

def get_header(headers: Optional[Mapping[str, str]], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    if not headers:
        return None
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def has_header(headers: Optional[Mapping[str, str]], name: str) -> bool:
    return get_header(headers, name) is not None


def merge_headers(*layers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Merge header dicts left to right; later layers win regardless of case."""
    merged: Dict[str, str] = {}
    for layer in layers:
        for key, value in (layer or {}).items():
            for existing in [k for k in merged if k.lower() == key.lower()]:
                del merged[existing]
            merged[key] = value
    return merged


def mask_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Copy of ``headers`` with credentials replaced by ``***``."""
    masked = {}
    for key, value in (headers or {}).items():
        lowered = key.lower()
        if lowered == "authorization":
            scheme = value.split(" ", 1)[0] if " " in value else ""
            masked[key] = f"{scheme} ***".strip()
        elif lowered == "cookie":
            masked[key] = "***"
        else:
            masked[key] = value
    return masked


def mask_token(token: Optional[str]) -> str:
    """Log-safe stand-in for a token: ``***`` and its length, no characters."""
    if not token:
        return "<none>"
    return f"*** (len={len(token)})"


def render_curl(
    method: str,
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    body: Any = None,
    params: Optional[Mapping[str, Any]] = None,
) -> str:
    """Render a request as a cURL command for debug logs (secrets masked)."""
    if params:
        url = f"{url}{'&' if '?' in url else '?'}{urlencode(params, doseq=True)}"

    parts = ["curl", "-X", method.upper(), shlex.quote(url)]
    for key, value in mask_headers(headers).items():
        parts.extend(["-H", shlex.quote(f"{key}: {value}")])
    if body is not None:
        payload = body if isinstance(body, str) else json.dumps(body)
        parts.extend(["--data-raw", shlex.quote(payload)])
    return " ".join(parts)
