"""
Pytest fixtures for PDF render service tests.

Playwright is replaced by in-memory fakes so tests never start Chromium.
The fakes record what the service asked for (launch args, viewport,
content, pdf options) and count how many pages are open at once.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pdf_render_service.app import create_app
from pdf_render_service.config import RenderSettings

FAKE_PDF = b"%PDF-1.7\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF\n"


@dataclass
class FakeBehavior:
    """Knobs tests turn to make the fake browser misbehave."""
    launch_error: Optional[Exception] = None
    launch_delay: float = 0.0
    pdf_bytes: bytes = FAKE_PDF
    content_delay: float = 0.0
    content_error: Optional[Exception] = None
    font_delay: float = 0.0
    pdf_delay: float = 0.0
    pdf_error: Optional[Exception] = None
    crash_on_pdf: bool = False


class FakePage:
    def __init__(self, context: "FakeContext"):
        self.context = context
        self.behavior = context.browser.behavior
        self.media = None
        self.html = None
        self.wait_until = None
        self.content_timeout = None
        self.nav_timeout = None
        self.default_timeout = None
        self.routes: List = []
        self.evaluated: List[str] = []
        self.pdf_kwargs: Optional[Dict] = None

    def set_default_navigation_timeout(self, timeout):
        self.nav_timeout = timeout

    def set_default_timeout(self, timeout):
        self.default_timeout = timeout

    async def emulate_media(self, media=None):
        self.media = media

    async def route(self, pattern, handler):
        self.routes.append((pattern, handler))

    async def set_content(self, html, wait_until=None, timeout=None):
        self.html = html
        self.wait_until = wait_until
        self.content_timeout = timeout
        if self.behavior.content_delay:
            # Playwright bounds set_content by the default navigation timeout
            bound_ms = timeout if timeout is not None else self.nav_timeout
            if bound_ms and self.behavior.content_delay * 1000 > bound_ms:
                await asyncio.sleep(bound_ms / 1000)
                raise PlaywrightTimeoutError(f"Timeout {bound_ms}ms exceeded.")
            await asyncio.sleep(self.behavior.content_delay)
        if self.behavior.content_error:
            raise self.behavior.content_error

    async def evaluate(self, script):
        self.evaluated.append(script)
        if "document.fonts" in script and self.behavior.font_delay:
            await asyncio.sleep(self.behavior.font_delay)
        return True

    async def pdf(self, **kwargs):
        self.pdf_kwargs = kwargs
        if self.behavior.pdf_delay:
            await asyncio.sleep(self.behavior.pdf_delay)
        if self.behavior.crash_on_pdf:
            self.context.browser.crash()
            raise PlaywrightError("Target page, context or browser has been closed")
        if self.behavior.pdf_error:
            raise self.behavior.pdf_error
        return self.behavior.pdf_bytes


class FakeContext:
    def __init__(self, browser: "FakeBrowser", options: Dict):
        self.browser = browser
        self.options = options
        self.pages: List[FakePage] = []
        self.closed = False

    async def new_page(self):
        page = FakePage(self)
        self.pages.append(page)
        return page

    async def close(self):
        if not self.closed:
            self.closed = True
            self.browser.driver.open_pages -= 1


class FakeBrowser:
    def __init__(self, driver: "FakeDriver", launch_kwargs: Dict):
        self.driver = driver
        self.behavior = driver.behavior
        self.launch_kwargs = launch_kwargs
        self.connected = True
        self.close_calls = 0
        self.contexts: List[FakeContext] = []
        self._handlers: Dict[str, List[Callable]] = {}

    def on(self, event, handler):
        self._handlers.setdefault(event, []).append(handler)

    def is_connected(self):
        return self.connected

    async def new_context(self, **kwargs):
        if not self.connected:
            raise PlaywrightError("Browser has been closed")
        context = FakeContext(self, kwargs)
        self.contexts.append(context)
        self.driver.open_pages += 1
        self.driver.max_open_pages = max(self.driver.max_open_pages, self.driver.open_pages)
        return context

    async def close(self):
        self.close_calls += 1
        if self.connected:
            self.crash()

    def crash(self):
        """Simulate the Chromium process going away."""
        self.connected = False
        for handler in self._handlers.get("disconnected", []):
            handler(self)

    @property
    def pages(self) -> List[FakePage]:
        return [page for context in self.contexts for page in context.pages]


class FakeChromium:
    def __init__(self, driver: "FakeDriver"):
        self.driver = driver

    async def launch(self, **kwargs):
        self.driver.launch_calls.append(kwargs)
        if self.driver.behavior.launch_error:
            raise self.driver.behavior.launch_error
        if self.driver.behavior.launch_delay:
            await asyncio.sleep(self.driver.behavior.launch_delay)
        browser = FakeBrowser(self.driver, kwargs)
        self.driver.browsers.append(browser)
        return browser


class FakePlaywright:
    def __init__(self, driver: "FakeDriver"):
        self.chromium = FakeChromium(driver)
        self.stop_calls = 0

    async def stop(self):
        self.stop_calls += 1


class FakeDriver:
    """Stands in for playwright.async_api.async_playwright()."""

    def __init__(self):
        self.behavior = FakeBehavior()
        self.playwright = FakePlaywright(self)
        self.start_calls = 0
        self.launch_calls: List[Dict] = []
        self.browsers: List[FakeBrowser] = []
        self.open_pages = 0
        self.max_open_pages = 0

    def async_playwright(self):
        return self

    async def start(self):
        self.start_calls += 1
        return self.playwright

    @property
    def browser(self) -> FakeBrowser:
        return self.browsers[-1]

    @property
    def pages(self) -> List[FakePage]:
        return [page for browser in self.browsers for page in browser.pages]


@pytest.fixture
def fake_driver():
    """Patch Playwright's entry point with the in-memory fake."""
    driver = FakeDriver()
    with patch("pdf_render_service.browser.async_playwright", new=driver.async_playwright):
        yield driver


@pytest.fixture
def make_settings():
    """Build settings with short timeouts suitable for tests."""
    def _make(**overrides) -> RenderSettings:
        values = {
            "pdf_concurrency": 2,
            "pdf_nav_timeout": 1000,
            "pdf_content_timeout": 1000,
            "pdf_protocol_timeout": 1000,
            "pdf_render_timeout": 5000,
            "pdf_font_timeout": 1000,
            "pdf_image_timeout": 1000,
            "cors_origins": "*",
            "pdf_eager_launch": False,
        }
        values.update(overrides)
        return RenderSettings(**values)
    return _make


@pytest.fixture
def make_client(fake_driver, make_settings):
    """Start an app (lifespan included) for the given settings overrides."""
    clients = []

    def _make(raise_server_exceptions: bool = True, **overrides) -> TestClient:
        app = create_app(make_settings(**overrides))
        test_client = TestClient(app, raise_server_exceptions=raise_server_exceptions)
        test_client.__enter__()
        clients.append(test_client)
        return test_client

    yield _make

    for test_client in clients:
        test_client.__exit__(None, None, None)


@pytest.fixture
def client(make_client):
    """Test client with default test settings."""
    return make_client()
