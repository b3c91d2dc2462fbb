"""
Render worker: one HTML document in, one PDF out.

Each call gets its own browser context and page, configured for print,
and closes both before returning on every exit path.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .errors import (
    BrowserCrashError,
    ExportError,
    InvalidInputError,
    RenderError,
    RenderTimeoutError,
)
from .html_helpers import ResourcePolicy, has_css_page_size, normalize_html, viewport_for

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"

FONTS_READY_JS = "() => document.fonts ? document.fonts.ready.then(() => true) : true"

# Lazy images outside the viewport never load on their own, so force them eager first
IMAGES_READY_JS = """() => Promise.all(
    Array.from(document.images, (img) => {
        img.loading = 'eager';
        return img.decode ? img.decode().catch(() => null) : null;
    })
).then(() => document.images.length)"""

ZERO_MARGIN = {"top": "0", "right": "0", "bottom": "0", "left": "0"}


@dataclass
class RenderOptions:
    """Page-format hints for a single render."""
    page_format: str = "A4"
    landscape: bool = False
    print_background: bool = True


class RenderWorker:
    """
    Turns HTML into PDF bytes on a page borrowed from a shared browser.

    Timeouts are in milliseconds. A font or image timeout of 0 skips
    that readiness wait.
    """

    def __init__(
        self,
        nav_timeout: int = 30000,
        content_timeout: int = 30000,
        protocol_timeout: int = 60000,
        font_timeout: int = 5000,
        image_timeout: int = 10000,
        wait_until: str = "domcontentloaded",
        resource_policy: Optional[ResourcePolicy] = None,
    ):
        self.nav_timeout = nav_timeout
        self.content_timeout = content_timeout
        self.protocol_timeout = protocol_timeout
        self.font_timeout = font_timeout
        self.image_timeout = image_timeout
        self.wait_until = wait_until
        self.resource_policy = resource_policy or ResourcePolicy()

    @classmethod
    def from_settings(cls, settings) -> "RenderWorker":
        return cls(
            nav_timeout=settings.pdf_nav_timeout,
            content_timeout=settings.pdf_content_timeout,
            protocol_timeout=settings.pdf_protocol_timeout,
            font_timeout=settings.pdf_font_timeout,
            image_timeout=settings.pdf_image_timeout,
            wait_until=settings.pdf_wait_until,
            resource_policy=ResourcePolicy.from_lists(
                settings.block_resource_types_list,
                settings.block_url_patterns_list,
            ),
        )

    async def render(self, browser: Browser, html: str, options: Optional[RenderOptions] = None) -> bytes:
        """
        Render HTML to PDF.

        Args:
            browser: Connected browser to open the page in
            html: HTML document or fragment
            options: Page-format hints

        Returns:
            PDF bytes

        Raises:
            InvalidInputError: html is not a non-empty string
            RenderTimeoutError: a navigation, load or readiness wait exceeded its bound
            BrowserCrashError: the browser disconnected mid-render
            ExportError: page.pdf() failed or returned something that is not a PDF
        """
        if not isinstance(html, str) or not html.strip():
            raise InvalidInputError("HTML content is required")
        options = options or RenderOptions()
        document = normalize_html(html)

        context: Optional[BrowserContext] = None
        stage = "opening page"
        try:
            context = await browser.new_context(
                viewport=viewport_for(options.page_format, options.landscape)
            )
            page = await context.new_page()
            page.set_default_navigation_timeout(self.nav_timeout)
            page.set_default_timeout(self.protocol_timeout)
            await page.emulate_media(media="print")

            if not self.resource_policy.is_empty:
                await page.route("**/*", self._route_request)

            stage = "loading content"
            # Playwright applies the navigation timeout; content_timeout bounds the whole load
            await self._bounded(page.set_content(document, wait_until=self.wait_until), self.content_timeout)

            stage = "waiting for fonts"
            await self._wait_for(page, FONTS_READY_JS, self.font_timeout)

            stage = "waiting for images"
            await self._wait_for(page, IMAGES_READY_JS, self.image_timeout)

            stage = "exporting PDF"
            pdf_bytes = await self._export(page, document, options)

        except RenderError:
            raise
        except (PlaywrightTimeoutError, asyncio.TimeoutError) as e:
            raise RenderTimeoutError(f"Timed out while {stage}", detail=_first_line(e)) from e
        except PlaywrightError as e:
            if not browser.is_connected():
                raise BrowserCrashError(f"Browser disconnected while {stage}", detail=_first_line(e)) from e
            if stage == "exporting PDF":
                raise ExportError("PDF export failed", detail=_first_line(e)) from e
            raise RenderError(f"Rendering failed while {stage}", detail=_first_line(e)) from e
        finally:
            if context is not None:
                await self._close(context)

        return pdf_bytes

    async def _route_request(self, route, request) -> None:
        if self.resource_policy.allows(request.resource_type, request.url):
            await route.continue_()
        else:
            logger.debug(f"Blocked {request.resource_type} request: {request.url[:200]}")
            await route.abort()

    async def _bounded(self, awaitable, timeout_ms: int):
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)

    async def _wait_for(self, page: Page, script: str, timeout_ms: int) -> None:
        if timeout_ms <= 0:
            return
        await self._bounded(page.evaluate(script), timeout_ms)

    async def _export(self, page: Page, document: str, options: RenderOptions) -> bytes:
        page_size = "@page" if has_css_page_size(document) else options.page_format
        logger.debug(f"Exporting PDF (page size from {page_size}, landscape={options.landscape})")
        pdf_bytes = await page.pdf(
            format=options.page_format,
            landscape=options.landscape,
            print_background=options.print_background,
            prefer_css_page_size=True,
            margin=ZERO_MARGIN,
        )
        if not pdf_bytes or not pdf_bytes.startswith(PDF_MAGIC):
            raise ExportError("Browser returned an empty or invalid PDF")
        return pdf_bytes

    async def _close(self, context: BrowserContext) -> None:
        # Shielded so a second cancellation cannot leave the page open
        try:
            await asyncio.shield(context.close())
        except PlaywrightError as e:
            logger.debug(f"Ignoring error while closing page: {_first_line(e)}")


def _first_line(error: Exception) -> str:
    text = str(error).strip()
    return text.splitlines()[0] if text else type(error).__name__
