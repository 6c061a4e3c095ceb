"""
Selector Resolver
=================
Ordered fallback chains for the login form.

The platform's markup is not stable across deployments: ``data-cy``
attributes, ids, names and semantic HTML each work on some versions.
Chains go from specific to generic.  Only the first candidate of a chain
may wait the caller's full timeout; the rest use a short wait so a miss
doesn't cost the full timeout per candidate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Sequence

from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeout

from ..errors import ElementNotFoundError

logger = logging.getLogger(__name__)

FALLBACK_TIMEOUT_MS = 5000


@dataclass(frozen=True)
class SelectorCandidate:
    selector: str
    timeout_ms: int = FALLBACK_TIMEOUT_MS


@dataclass(frozen=True)
class ResolvedSelector:
    selector: str
    handle: Any


def chain(selectors: Sequence[str], *, first_timeout_ms: int,
          fallback_timeout_ms: int = FALLBACK_TIMEOUT_MS) -> List[SelectorCandidate]:
    """Build a chain where only the first candidate gets ``first_timeout_ms``."""
    return [
        SelectorCandidate(sel, first_timeout_ms if i == 0 else fallback_timeout_ms)
        for i, sel in enumerate(selectors)
    ]


# ---------------------------------------------------------------------------
# Login form selector banks
# ---------------------------------------------------------------------------

CONSENT_SELECTOR = "#onetrust-accept-btn-handler"

USERNAME_SELECTOR = '[data-cy="username"]'

# Password field selectors (tried in order)
PASSWORD_SELECTORS: List[str] = [
    '[data-cy="password"]',
    "#Password",
    'input[name="Password"]',
    'input[type="password"]',
]

# Submit button selectors
SUBMIT_SELECTORS: List[str] = [
    "#btnSubmit",
    'button[type="submit"]',
    'input[type="submit"]',
    '[data-cy="submit"]',
    'button:has-text("Sign In")',
    'button:has-text("Login")',
]

# Inline error regions shown after a rejected submit.  Older markup
# variants are kept alongside the current one.
ERROR_SELECTORS: List[str] = [
    '[data-cy="invalid_credentials_message"]',
    ".error-message",
    ".alert-danger",
]


class SelectorResolver:
    """Resolves the first visible candidate of a chain on one page."""

    def __init__(self, page: Page):
        self.page = page

    async def try_resolve(self, candidate: SelectorCandidate):
        """Return a handle if ``candidate`` becomes visible in time, else None."""
        try:
            return await self.page.wait_for_selector(
                candidate.selector, timeout=candidate.timeout_ms, state="visible"
            )
        except PlaywrightTimeout:
            return None

    async def resolve(self, candidates: Sequence[SelectorCandidate], *,
                      field: str = "element", stage: str = "") -> ResolvedSelector:
        """Try each candidate in order; stop at the first that resolves.

        Raises:
            ElementNotFoundError: every candidate timed out.  The error
            lists all of them, in the order they were tried.
        """
        tried: List[str] = []
        for candidate in candidates:
            tried.append(candidate.selector)
            handle = await self.try_resolve(candidate)
            if handle is not None:
                if len(tried) > 1:
                    logger.debug(
                        f"[AUTH] {field} resolved by fallback #{len(tried)}: {candidate.selector}"
                    )
                return ResolvedSelector(candidate.selector, handle)
            logger.debug(f"[AUTH] {field} selector missed: {candidate.selector}")

        logger.error(f"[AUTH] Could not find {field} field ({len(tried)} selectors tried)")
        raise ElementNotFoundError(tried, field=field, stage=stage)
