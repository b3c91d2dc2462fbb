"""
Browser lifecycle management.

Owns the single shared Chromium process used by every render. The
browser is launched lazily (or eagerly at startup), reused across
requests, relaunched after it disconnects, and closed exactly once on
shutdown.
"""

import asyncio
import logging
from enum import Enum
from typing import List, Optional

from playwright.async_api import Browser, Playwright, async_playwright

from .errors import LaunchError

logger = logging.getLogger(__name__)


class BrowserState(str, Enum):
    """Lifecycle state of the shared browser handle."""
    ABSENT = "absent"
    LAUNCHING = "launching"
    READY = "ready"
    DEAD = "dead"
    CLOSED = "closed"


class BrowserManager:
    """
    Lock-guarded owner of the shared Chromium handle.

    Concurrent acquire_browser() calls during a (re)launch wait on the
    same lock and share the single browser it produces.
    """

    def __init__(
        self,
        headless: bool = True,
        executable_path: Optional[str] = None,
        args: Optional[List[str]] = None,
        launch_timeout: int = 60000,
    ):
        """
        Initialize browser manager.

        Args:
            headless: Run Chromium without a visible window
            executable_path: Explicit Chromium binary; None uses Playwright's bundled build
            args: Extra Chromium command-line arguments
            launch_timeout: Launch timeout in milliseconds
        """
        self.headless = headless
        self.executable_path = executable_path
        self.args = list(args or [])
        self.launch_timeout = launch_timeout

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._state = BrowserState.ABSENT
        self._lock = asyncio.Lock()
        self.launch_count = 0

    @classmethod
    def from_settings(cls, settings) -> "BrowserManager":
        return cls(
            headless=settings.playwright_headless,
            executable_path=settings.pdf_executable_path,
            args=settings.browser_args_list,
            launch_timeout=settings.pdf_protocol_timeout,
        )

    @property
    def state(self) -> BrowserState:
        return self._state

    def _is_live(self, browser: Optional[Browser]) -> bool:
        return (
            browser is not None
            and self._state is BrowserState.READY
            and browser.is_connected()
        )

    async def acquire_browser(self) -> Browser:
        """
        Return a connected browser, launching one if needed.

        Raises:
            LaunchError: Chromium could not be started, or the manager is shut down
        """
        browser = self._browser
        if self._is_live(browser):
            return browser

        async with self._lock:
            if self._state is BrowserState.CLOSED:
                raise LaunchError("Browser manager is shut down")

            # Another caller may have relaunched while we waited for the lock
            browser = self._browser
            if self._is_live(browser):
                return browser

            if browser is not None:
                await self._discard(browser)

            return await self._launch()

    async def _launch(self) -> Browser:
        previous_state = self._state
        self._state = BrowserState.LAUNCHING
        logger.info(
            f"Launching Chromium (headless={self.headless}, "
            f"executable={self.executable_path or 'bundled'}, previous_state={previous_state.value})"
        )

        launch_kwargs = {
            "headless": self.headless,
            "args": self.args,
            "timeout": self.launch_timeout,
        }
        if self.executable_path:
            launch_kwargs["executable_path"] = self.executable_path

        try:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            browser = await self._playwright.chromium.launch(**launch_kwargs)
        except Exception as e:
            self._state = BrowserState.ABSENT
            logger.error(f"Chromium launch failed: {e}")
            raise LaunchError("Failed to launch browser", detail=str(e)) from e
        except BaseException:
            # Cancelled mid-launch; nothing was cached
            self._state = BrowserState.ABSENT
            raise

        browser.on("disconnected", self._on_disconnected)
        self._browser = browser
        self._state = BrowserState.READY
        self.launch_count += 1
        logger.info(f"Chromium ready (launch #{self.launch_count})")
        return browser

    def _on_disconnected(self, browser: Browser) -> None:
        if browser is not self._browser or self._state is BrowserState.CLOSED:
            return
        logger.warning("Chromium disconnected; it will be relaunched on the next render")
        self._state = BrowserState.DEAD

    def invalidate(self, browser: Browser) -> None:
        """
        Mark a handle as dead so the next acquire relaunches.

        Ignored when the handle has already been replaced.
        """
        if browser is not self._browser or self._state is not BrowserState.READY:
            return
        logger.warning("Browser handle invalidated after a crash")
        self._state = BrowserState.DEAD

    async def _discard(self, browser: Browser) -> None:
        self._browser = None
        try:
            await browser.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing dead browser: {e}")

    async def shutdown(self) -> None:
        """
        Close the browser and stop the Playwright driver.

        Idempotent and safe to call when nothing was launched.
        """
        async with self._lock:
            if self._state is BrowserState.CLOSED:
                return
            self._state = BrowserState.CLOSED

            browser, self._browser = self._browser, None
            playwright, self._playwright = self._playwright, None

            if browser is not None:
                try:
                    await browser.close()
                    logger.info("Chromium closed")
                except Exception as e:
                    logger.error(f"Error closing Chromium: {e}")

            if playwright is not None:
                try:
                    await playwright.stop()
                except Exception as e:
                    logger.error(f"Error stopping Playwright driver: {e}")
