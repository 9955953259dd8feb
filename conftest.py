"""
Shared test fixtures: a scripted stand-in for the Playwright page, context and
CDP session so portal flows run against canned HTML without a browser.
"""

from typing import Dict, List, Optional

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from browser_session import PortalSession
from probate_config import ScraperSettings

BASE = "https://portal.test"
WELCOME_URL = f"{BASE}/Home/Welcome"
CHALLENGE_URL = f"{BASE}/Home/Captcha"
SEARCH_URL = f"{BASE}/File/FileSearch"
HISTORY_URL = f"{BASE}/File/FileHistory?id=1"


class FakeResponse:
    def __init__(self, url: str, body: bytes = b"", content_type: str = "text/html"):
        self.url = url
        self.headers = {"content-type": content_type}
        self._body = body

    async def body(self) -> bytes:
        return self._body


class FakeElement:
    def __init__(self, navigate_to: Optional[str] = None, value: str = "", on_click=None):
        self.page = None
        self.navigate_to = navigate_to
        self.value = value
        self.on_click = on_click
        self.clicks = 0
        self.selected = None

    async def click(self):
        self.clicks += 1
        if self.on_click is not None:
            self.on_click()
        if self.navigate_to is not None:
            self.page.url = self.navigate_to

    async def fill(self, value: str):
        self.value = value

    async def select_option(self, value=None, label=None):
        self.selected = value if value is not None else label

    async def input_value(self) -> str:
        return self.value


class Screen:
    """What the fake page shows at one URL"""

    def __init__(self, html: str = "", elements: Optional[Dict[str, FakeElement]] = None,
                 response: Optional[FakeResponse] = None, viewer_source: Optional[str] = None,
                 reload_responses: Optional[List[FakeResponse]] = None):
        self.html = html
        self.elements = elements or {}
        self.response = response
        self.viewer_source = viewer_source
        self.reload_responses = reload_responses or []


class FakePage:
    def __init__(self, url: str = "about:blank"):
        self.url = url
        self.screens: Dict[str, Screen] = {}
        self.redirects: Dict[str, str] = {}
        self.visits: List[str] = []
        self.handlers: Dict[str, list] = {}
        self.reloads = 0
        self.closed = False

    def add_screen(self, url: str, html: str = "", elements: Optional[Dict[str, FakeElement]] = None, **kwargs) -> Screen:
        screen = Screen(html, elements, **kwargs)
        for element in screen.elements.values():
            element.page = self
        self.screens[url] = screen
        return screen

    @property
    def current(self) -> Screen:
        return self.screens.get(self.url) or Screen()

    async def goto(self, url, wait_until=None, timeout=None):
        self.visits.append(url)
        self.url = self.redirects.get(url, url)
        return self.current.response or FakeResponse(self.url)

    async def content(self) -> str:
        return self.current.html

    async def query_selector(self, selector):
        return self.current.elements.get(selector)

    async def wait_for_selector(self, selector, timeout=None):
        for part in selector.split(", "):
            element = self.current.elements.get(part)
            if element is not None:
                return element
        raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")

    async def wait_for_load_state(self, state="load", timeout=None):
        return None

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.handlers.get(event, []).remove(handler)

    async def reload(self, wait_until=None, timeout=None):
        self.reloads += 1
        for response in self.current.reload_responses:
            for handler in list(self.handlers.get("response", [])):
                handler(response)

    async def evaluate(self, script):
        return self.current.viewer_source

    async def close(self):
        self.closed = True

    def set_default_timeout(self, timeout):
        pass

    def set_default_navigation_timeout(self, timeout):
        pass


class _EventInfo:
    def __init__(self, page):
        self._page = page

    @property
    def value(self):
        async def _get():
            return self._page
        return _get()


class _ExpectPage:
    def __init__(self, context):
        self.context = context

    async def __aenter__(self):
        return _EventInfo(self.context.popup)

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeContext:
    def __init__(self, aux_pages: Optional[List[FakePage]] = None, popup: Optional[FakePage] = None):
        self.aux_pages = list(aux_pages or [])
        self.opened: List[FakePage] = []
        self.popup = popup

    async def new_page(self):
        page = self.aux_pages.pop(0) if self.aux_pages else FakePage()
        self.opened.append(page)
        return page

    def expect_page(self, timeout=None):
        return _ExpectPage(self)


class FakeCDP:
    """CDP session whose solve command returns a canned result"""

    def __init__(self, result=None, on_send=None):
        self.result = result if result is not None else {"solved": True}
        self.on_send = on_send
        self.sent: List[tuple] = []
        self.listeners: Dict[str, list] = {}
        self.detached = False

    async def send(self, method, params=None):
        self.sent.append((method, params))
        if self.on_send is not None:
            self.on_send()
        return self.result

    def on(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    async def detach(self):
        self.detached = True


@pytest.fixture
def settings() -> ScraperSettings:
    return ScraperSettings(
        browserless_api_key="test-key",
        base_url=BASE,
        request_delay_ms=0,
        retry_step_ms=0,
        max_retries=2,
        page_timeout_ms=1000,
        challenge_timeout_s=0.05,
        challenge_poll_s=0.01,
    )


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def context() -> FakeContext:
    return FakeContext()


@pytest.fixture
def session(settings, page, context) -> PortalSession:
    return PortalSession(settings, page, context=context, cdp=FakeCDP())


@pytest.fixture
def ready_session(session) -> PortalSession:
    session.mark_ready()
    return session
