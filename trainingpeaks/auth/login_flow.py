"""
Web Login Flow
==============
Playwright-driven sign-in for the TrainingPeaks web app.

The platform has no public token endpoint, so the client signs in the way
a user does and listens to the app's own API traffic for the token:

    Idle → Launching → Navigating → ConsentHandling → CredentialEntry
         → Submitting → AwaitingCompletion → Done

Any state may end in Failed.  The browser is closed on every exit path.

Security:
    - Credentials are never logged or printed.
    - Only URLs, stage names and masked tokens appear in logs.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeout
from playwright.async_api import async_playwright

from ..config import ClientConfig
from ..errors import (
    BrowserLaunchError,
    InvalidCredentialsError,
    NavigationTimeoutError,
    WebAuthenticationError,
)
from ..models import Credentials, InterceptedCapture, Session
from ..utils import generate_user_agent
from .interceptor import NetworkInterceptor
from .selectors import (
    CONSENT_SELECTOR,
    ERROR_SELECTORS,
    PASSWORD_SELECTORS,
    SUBMIT_SELECTORS,
    USERNAME_SELECTOR,
    SelectorCandidate,
    SelectorResolver,
    chain,
)
from .synthesizer import synthesize_session

logger = logging.getLogger(__name__)


class LoginStage(str, Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    NAVIGATING = "navigating"
    CONSENT_HANDLING = "consent_handling"
    CREDENTIAL_ENTRY = "credential_entry"
    SUBMITTING = "submitting"
    AWAITING_COMPLETION = "awaiting_completion"
    DONE = "done"
    FAILED = "failed"


class WebLoginFlow:
    """Runs one browser login attempt per ``login()`` call.

    Usage::

        flow = WebLoginFlow(ClientConfig.from_env())
        session = await flow.login(Credentials("athlete", "secret"))

    Args:
        config:             ``ClientConfig`` (URLs, timeouts, browser options)
        playwright_factory: returns the Playwright async context manager;
                            ``async_playwright`` unless replaced
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        playwright_factory: Callable = async_playwright,
    ):
        self.config = config or ClientConfig()
        self._playwright_factory = playwright_factory
        self._stage = LoginStage.IDLE

    @property
    def stage(self) -> LoginStage:
        """State reached by the current or last attempt."""
        return self._stage

    def _enter(self, stage: LoginStage) -> None:
        self._stage = stage
        logger.debug(f"[AUTH] stage={stage.value}")

    # -----------------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------------
    async def login(self, credentials: Credentials) -> Session:
        """Sign in and return the Session recovered from network traffic.

        Raises:
            WebAuthenticationError: the attempt failed.  Subclasses tell
            which way (``InvalidCredentialsError``, ``ElementNotFoundError``,
            ``NavigationTimeoutError``, ``BrowserLaunchError``,
            ``AuthenticationDataMissingError``); ``stage`` tells where.
        """
        capture = InterceptedCapture()
        interceptor = NetworkInterceptor(
            capture,
            self.config.token_expiry,
            log_network=self.config.log_network or self.config.debug,
            log_browser=self.config.log_browser,
        )
        self._stage = LoginStage.IDLE
        logger.info(f"[AUTH] Starting web login: {self.config.login_url}")

        try:
            async with self._playwright_factory() as playwright:
                browser = await self._launch(playwright)
                try:
                    page = await self._open_page(browser)
                    # Listeners go on before the first navigation.
                    interceptor.attach(page)
                    await self._navigate(page)
                    await self._handle_consent(page)
                    await self._enter_credentials(page, credentials)
                    await self._submit(page)
                    await self._await_completion(page)
                    self._enter(LoginStage.DONE)
                    session = synthesize_session(capture, fallback_name=credentials.username)
                finally:
                    interceptor.detach()
                    await self._close(browser)
        except WebAuthenticationError as exc:
            failed_in = exc.stage or self._stage.value
            self._stage = LoginStage.FAILED
            logger.error(f"[AUTH] Login failed stage={failed_in} code={exc.code}: {exc}")
            raise
        except PlaywrightError as exc:
            failed_in = self._stage.value
            self._stage = LoginStage.FAILED
            logger.error(f"[AUTH] Browser automation error stage={failed_in}: {exc}")
            raise WebAuthenticationError(
                f"Login failed during {failed_in}: {exc}", stage=failed_in,
            ) from exc
        except Exception as exc:
            failed_in = self._stage.value
            self._stage = LoginStage.FAILED
            logger.error(f"[AUTH] Unexpected error stage={failed_in}: {exc!r}")
            raise WebAuthenticationError(
                f"Login failed during {failed_in}: {exc}", stage=failed_in,
            ) from exc

        logger.info(f"[AUTH] Login successful user_id={session.user.id}")
        return session

    # -----------------------------------------------------------------------
    # Stages
    # -----------------------------------------------------------------------
    async def _launch(self, playwright):
        self._enter(LoginStage.LAUNCHING)
        try:
            return await playwright.chromium.launch(
                headless=self.config.headless,
                executable_path=self.config.executable_path,
                timeout=self.config.browser_launch_timeout,
            )
        except PlaywrightError as exc:
            raise BrowserLaunchError(f"Failed to launch browser: {exc}") from exc

    async def _open_page(self, browser) -> Page:
        context = await browser.new_context(user_agent=generate_user_agent())
        return await context.new_page()

    async def _navigate(self, page: Page) -> None:
        self._enter(LoginStage.NAVIGATING)
        url = self.config.login_url
        logger.info(f"[AUTH] Navigating to login page: {url[:80]}")
        try:
            await page.goto(url, wait_until="networkidle", timeout=self.config.web_auth_timeout)
        except PlaywrightTimeout as exc:
            raise NavigationTimeoutError(url, self.config.web_auth_timeout) from exc

    async def _handle_consent(self, page: Page) -> None:
        """Dismiss the cookie banner if one shows up.  Absence is fine."""
        self._enter(LoginStage.CONSENT_HANDLING)
        try:
            await page.wait_for_selector(
                CONSENT_SELECTOR, state="visible", timeout=self.config.consent_timeout
            )
            await page.click(CONSENT_SELECTOR)
            logger.debug("[AUTH] Cookie consent accepted")
        except PlaywrightError:
            logger.debug("[AUTH] No cookie banner found, continuing")

    async def _enter_credentials(self, page: Page, credentials: Credentials) -> None:
        self._enter(LoginStage.CREDENTIAL_ENTRY)
        stage = LoginStage.CREDENTIAL_ENTRY.value
        resolver = SelectorResolver(page)

        username = await resolver.resolve(
            [SelectorCandidate(USERNAME_SELECTOR, self.config.web_auth_timeout)],
            field="username", stage=stage,
        )
        await page.fill(username.selector, credentials.username)
        logger.info("[AUTH] Username filled")

        password = await resolver.resolve(
            chain(
                PASSWORD_SELECTORS,
                first_timeout_ms=self.config.element_wait_timeout,
                fallback_timeout_ms=self.config.element_wait_timeout,
            ),
            field="password", stage=stage,
        )
        await page.fill(password.selector, credentials.password)
        logger.info("[AUTH] Password filled")

    async def _submit(self, page: Page) -> None:
        self._enter(LoginStage.SUBMITTING)
        resolver = SelectorResolver(page)
        submit = await resolver.resolve(
            chain(
                SUBMIT_SELECTORS,
                first_timeout_ms=self.config.element_wait_timeout,
                fallback_timeout_ms=self.config.element_wait_timeout,
            ),
            field="submit button", stage=LoginStage.SUBMITTING.value,
        )
        await page.click(submit.selector)
        logger.info("[AUTH] Submit clicked")

        try:
            await page.wait_for_load_state("networkidle", timeout=self.config.web_auth_timeout)
        except PlaywrightTimeout:
            logger.warning("[AUTH] Network did not go idle after submit, continuing")

        message = await self._inline_error(page)
        if message:
            raise InvalidCredentialsError(message)

    async def _inline_error(self, page: Page) -> Optional[str]:
        """Text of the first visible, non-empty login error region."""
        for selector in ERROR_SELECTORS:
            element = await page.query_selector(selector)
            if element is None or not await element.is_visible():
                continue
            text = (await element.text_content()) or ""
            if text.strip():
                logger.warning(f"[AUTH] Platform reported a login error via {selector}")
                return text
        return None

    async def _await_completion(self, page: Page) -> None:
        self._enter(LoginStage.AWAITING_COMPLETION)
        pattern = self.config.app_url_pattern
        try:
            await page.wait_for_url(pattern, timeout=self.config.web_auth_timeout)
        except PlaywrightTimeout as exc:
            raise NavigationTimeoutError(
                pattern, self.config.web_auth_timeout,
                stage=LoginStage.AWAITING_COMPLETION.value,
            ) from exc
        logger.info("[AUTH] Reached the app, waiting for API calls to settle")
        # Token and user responses may still be in flight.
        await page.wait_for_timeout(self.config.page_wait_timeout)

    async def _close(self, browser) -> None:
        try:
            await browser.close()
            logger.debug("[AUTH] Browser closed")
        except PlaywrightError as exc:
            logger.warning(f"[AUTH] Error while closing browser: {exc}")
