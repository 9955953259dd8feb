"""
Browser Session
===============

Owns the automation channel for one pipeline run: a Chromium reached over CDP
on Browserless.io (or launched locally for development), its context, and the
single working page. The session also carries the gate state and the
out-of-band challenge solver.
"""

import asyncio
import logging
from typing import Optional

from playwright.async_api import async_playwright

from errors import ChannelConnectionError, SessionNotReady
from probate_config import ScraperSettings
from schemas import SessionState

logger = logging.getLogger(__name__)

SOLVE_COMMAND = "Browserless.solveCaptcha"
CHALLENGE_FOUND_EVENT = "Browserless.captchaFound"


class PortalSession:
    """A live browser connection plus the page all portal work happens on"""

    def __init__(
        self,
        settings: ScraperSettings,
        page,
        context=None,
        browser=None,
        playwright=None,
        cdp=None,
    ):
        self.settings = settings
        self.page = page
        self.context = context
        self.browser = browser
        self.playwright = playwright
        self.cdp = cdp
        self.state = SessionState.GATED
        self.challenges_detected = 0
        self.challenge_found = asyncio.Event()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ── gate state ───────────────────────────────────────────────────────────

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY

    def mark_ready(self):
        self.state = SessionState.READY

    def require_ready(self):
        if not self.is_ready:
            raise SessionNotReady("Session has not passed the portal gate yet")

    # ── challenge solving ────────────────────────────────────────────────────

    def _on_challenge_found(self, params=None):
        self.challenges_detected += 1
        self.challenge_found.set()
        logger.info(f"🧩 Remote browser reported a verification challenge: {params}")

    async def attach_challenge_listener(self):
        """Open the CDP session used for solving and subscribe to detections"""
        if self.cdp is None and self.context is not None:
            self.cdp = await self.context.new_cdp_session(self.page)
        if self.cdp is not None:
            self.cdp.on(CHALLENGE_FOUND_EVENT, self._on_challenge_found)

    async def solve_challenge(self, timeout_s: float) -> bool:
        """
        Ask the remote browser to solve the challenge on the current page.

        Returns True when the solver reports success. A missing or failing
        solver is not an error here; the gate decides from the page state.
        """
        if self.cdp is None:
            if self.settings.local_browser and not self.settings.headless:
                logger.info("Challenge detected. Please solve it in the browser window.")
            else:
                logger.warning("No challenge solver available on this channel")
            return False

        try:
            result = await asyncio.wait_for(
                self.cdp.send(SOLVE_COMMAND, {"appearedTimeout": int(timeout_s * 1000)}),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Challenge solver did not answer within {timeout_s:.0f}s")
            return False
        except Exception as e:
            logger.warning(f"⚠️ Challenge solver failed: {e}")
            return False

        solved = bool(result and result.get("solved"))
        logger.info(f"Challenge solver result: solved={solved} ({(result or {}).get('message', '')})")
        return solved

    # ── cleanup ──────────────────────────────────────────────────────────────

    async def close(self):
        """Release the page, context, browser and driver"""
        try:
            if self.cdp is not None:
                await self.cdp.detach()
        except Exception as e:
            logger.debug(f"Error detaching CDP session: {e}")
        self.cdp = None

        try:
            if self.browser is not None:
                await self.browser.close()
            elif self.page is not None:
                await self.page.close()
        except Exception as e:
            logger.debug(f"Error during browser cleanup: {e}")
        finally:
            self.browser = None
            self.context = None
            self.page = None

        try:
            if self.playwright is not None:
                await self.playwright.stop()
        except Exception as e:
            logger.debug(f"Error stopping playwright: {e}")
        self.playwright = None


def describe_connection_error(message: str, api_key: Optional[str] = None) -> str:
    """Turn a raw CDP connect failure into a short, key-free explanation"""
    if api_key:
        message = message.replace(api_key, "API_KEY_HIDDEN")
    if "ENOTFOUND" in message or "getaddrinfo" in message:
        return "Cannot reach Browserless.io - check your internet connection or API key."
    if "401" in message or "403" in message or "Unauthorized" in message:
        return "Browserless.io rejected your API key. Check that BROWSERLESS_API_KEY is valid."
    if "timeout" in message.lower() or "ETIMEDOUT" in message:
        return "Connection to Browserless.io timed out. Try again."
    return f"Browserless.io connection failed: {message[:200]}"


async def connect_session(settings: ScraperSettings) -> PortalSession:
    """
    Establish the automation channel and return a GATED session.

    Raises ConfigurationError when no API key is configured for remote mode and
    ChannelConnectionError when the browser cannot be reached.
    """
    endpoint = None if settings.local_browser else settings.ws_endpoint()

    playwright = None
    browser = None
    try:
        playwright = await async_playwright().start()
        if settings.local_browser:
            logger.info(f"Launching local Chromium (headless={settings.headless})")
            browser = await playwright.chromium.launch(
                headless=settings.headless,
                args=["--no-sandbox", "--disable-dev-shm-usage"],
            )
            context = await browser.new_context(
                user_agent=settings.user_agent,
                viewport={"width": 1920, "height": 1080},
            )
        else:
            logger.info(f"Connecting to Browserless.io at {settings.redacted_endpoint()}...")
            browser = await playwright.chromium.connect_over_cdp(
                endpoint, timeout=settings.page_timeout_ms * 2
            )
            context = browser.contexts[0] if browser.contexts else await browser.new_context()

        page = context.pages[0] if context.pages else await context.new_page()
        page.set_default_timeout(settings.page_timeout_ms)
        page.set_default_navigation_timeout(settings.page_timeout_ms)
    except Exception as e:
        if browser is not None:
            try:
                await browser.close()
            except Exception as close_err:
                logger.debug(f"Error closing half-open browser: {close_err}")
        if playwright is not None:
            await playwright.stop()
        raise ChannelConnectionError(
            describe_connection_error(str(e), settings.browserless_api_key)
        ) from e

    session = PortalSession(settings, page, context=context, browser=browser, playwright=playwright)
    if not settings.local_browser:
        try:
            await session.attach_challenge_listener()
        except Exception as e:
            logger.warning(f"⚠️ Could not open CDP session for challenge solving: {e}")

    logger.info("✅ Browser session connected")
    return session
