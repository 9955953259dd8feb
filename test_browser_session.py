import asyncio

import pytest

import browser_session
from browser_session import PortalSession, connect_session, describe_connection_error
from conftest import FakeCDP, FakeContext, FakePage
from errors import ChannelConnectionError, ConfigurationError
from probate_config import ScraperSettings
from schemas import SessionState


class FakeBrowser:
    def __init__(self, contexts=None, fail_close=False):
        self.contexts = contexts or []
        self.fail_close = fail_close
        self.closed = False

    async def close(self):
        self.closed = True
        if self.fail_close:
            raise RuntimeError("browser already gone")


class FakeChromium:
    def __init__(self, browser=None, error=None):
        self.browser = browser
        self.error = error
        self.endpoints = []

    async def connect_over_cdp(self, endpoint, timeout=None):
        self.endpoints.append(endpoint)
        if self.error is not None:
            raise self.error
        return self.browser


class FakeDriver:
    def __init__(self, chromium):
        self.chromium = chromium
        self.stopped = False

    async def stop(self):
        self.stopped = True


class FakeStarter:
    """Stands in for ``async_playwright()``"""

    def __init__(self, driver=None, error=None):
        self.driver = driver
        self.error = error
        self.started = False

    async def start(self):
        self.started = True
        if self.error is not None:
            raise self.error
        return self.driver


class RemoteContext(FakeContext):
    def __init__(self, page):
        super().__init__()
        self.pages = [page]
        self.cdp = FakeCDP()

    async def new_cdp_session(self, page):
        return self.cdp


def use_driver(monkeypatch, starter):
    monkeypatch.setattr(browser_session, "async_playwright", lambda: starter)
    return starter


# ── connection errors ────────────────────────────────────────────────────────

@pytest.mark.parametrize("raw, expected", [
    ("getaddrinfo ENOTFOUND production-sfo.browserless.io", "Cannot reach Browserless.io"),
    ("WebSocket error: 401 Unauthorized", "rejected your API key"),
    ("Timeout 30000ms exceeded", "timed out"),
    ("socket hang up", "connection failed: socket hang up"),
])
def test_describe_connection_error(raw, expected):
    assert expected in describe_connection_error(raw)


def test_describe_connection_error_hides_api_key():
    message = describe_connection_error("connect refused wss://host/?token=secret-key", "secret-key")

    assert "secret-key" not in message
    assert "API_KEY_HIDDEN" in message


async def test_connect_without_key_fails_before_starting_driver(monkeypatch):
    starter = use_driver(monkeypatch, FakeStarter())
    settings = ScraperSettings(browserless_api_key=None)

    with pytest.raises(ConfigurationError):
        await connect_session(settings)

    assert not starter.started


async def test_connect_failure_is_wrapped_and_cleaned_up(monkeypatch, settings):
    chromium = FakeChromium(error=RuntimeError("401 Unauthorized for token=test-key"))
    driver = FakeDriver(chromium)
    use_driver(monkeypatch, FakeStarter(driver))

    with pytest.raises(ChannelConnectionError) as excinfo:
        await connect_session(settings)

    assert "rejected your API key" in str(excinfo.value)
    assert "test-key" not in str(excinfo.value)
    assert driver.stopped


async def test_missing_driver_is_a_connection_error(monkeypatch, settings):
    use_driver(monkeypatch, FakeStarter(error=RuntimeError("Executable doesn't exist")))

    with pytest.raises(ChannelConnectionError) as excinfo:
        await connect_session(settings)

    assert "Executable doesn't exist" in str(excinfo.value)


async def test_connect_returns_gated_session_with_solver(monkeypatch, settings):
    page = FakePage()
    context = RemoteContext(page)
    chromium = FakeChromium(browser=FakeBrowser([context]))
    use_driver(monkeypatch, FakeStarter(FakeDriver(chromium)))

    session = await connect_session(settings)

    assert session.page is page
    assert session.state is SessionState.GATED
    assert session.cdp is context.cdp
    assert "Browserless.captchaFound" in context.cdp.listeners
    assert chromium.endpoints == [settings.ws_endpoint()]

# ── challenge solver ─────────────────────────────────────────────────────────

class SlowCDP(FakeCDP):
    async def send(self, method, params=None):
        await asyncio.sleep(1)


class BrokenCDP(FakeCDP):
    async def send(self, method, params=None):
        raise RuntimeError("solver crashed")


async def test_solve_challenge_reports_success(session):
    assert await session.solve_challenge(1) is True
    assert session.cdp.sent == [("Browserless.solveCaptcha", {"appearedTimeout": 1000})]


@pytest.mark.parametrize("cdp", [SlowCDP(), BrokenCDP(), FakeCDP({"solved": False}), None])
async def test_solve_challenge_failures_return_false(session, cdp):
    session.cdp = cdp

    assert await session.solve_challenge(0.01) is False


def test_challenge_notification_is_counted(session):
    session._on_challenge_found({"type": "hcaptcha"})

    assert session.challenges_detected == 1
    assert session.challenge_found.is_set()

# ── cleanup ──────────────────────────────────────────────────────────────────

class FailingDetachCDP(FakeCDP):
    async def detach(self):
        raise RuntimeError("target closed")


async def test_close_releases_everything_even_when_steps_fail(settings):
    browser = FakeBrowser(fail_close=True)
    driver = FakeDriver(FakeChromium())
    session = PortalSession(settings, FakePage(), browser=browser, playwright=driver, cdp=FailingDetachCDP())

    await session.close()

    assert browser.closed
    assert driver.stopped
    assert (session.cdp, session.browser, session.page, session.playwright) == (None, None, None, None)


async def test_close_without_browser_closes_page(settings):
    page = FakePage()
    cdp = FakeCDP()

    async with PortalSession(settings, page, cdp=cdp):
        pass

    assert page.closed
    assert cdp.detached
