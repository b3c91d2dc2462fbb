"""
Render orchestration: gate -> browser -> worker.

Every render is admitted by the concurrency gate, runs on the shared
browser under an overall time bound, and is logged with its input size
and elapsed time whether it succeeds or fails.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .browser import BrowserManager
from .errors import BrowserCrashError, RenderError, RenderTimeoutError
from .gate import ConcurrencyGate
from .renderer import RenderOptions, RenderWorker

logger = logging.getLogger(__name__)


@dataclass
class RenderResult:
    """PDF produced by a single render."""
    pdf: bytes
    elapsed_ms: float

    @property
    def size(self) -> int:
        return len(self.pdf)


class PdfRenderService:
    """Owns the gate, the browser manager and the worker for one process."""

    def __init__(
        self,
        gate: ConcurrencyGate,
        browser_manager: BrowserManager,
        worker: RenderWorker,
        render_timeout: int = 90000,
    ):
        self.gate = gate
        self.browser_manager = browser_manager
        self.worker = worker
        self.render_timeout = render_timeout

    @classmethod
    def from_settings(cls, settings) -> "PdfRenderService":
        return cls(
            gate=ConcurrencyGate(settings.pdf_concurrency),
            browser_manager=BrowserManager.from_settings(settings),
            worker=RenderWorker.from_settings(settings),
            render_timeout=settings.pdf_render_timeout,
        )

    async def render(self, html: str, options: Optional[RenderOptions] = None) -> RenderResult:
        """
        Render HTML to PDF, waiting for a gate slot first.

        The overall bound covers browser acquisition and the render
        itself, not time spent queued at the gate.

        Raises:
            RenderError: any render failure (subclass tells which)
        """
        html_chars = len(html) if isinstance(html, str) else 0
        queued_at = time.monotonic()

        async with self.gate.slot():
            started = time.monotonic()
            queue_ms = (started - queued_at) * 1000
            logger.info(
                f"Starting PDF render (html_chars={html_chars}, queued_ms={queue_ms:.0f}, "
                f"active={self.gate.active}/{self.gate.max_concurrency})"
            )
            try:
                pdf_bytes = await asyncio.wait_for(
                    self._render_on_browser(html, options),
                    timeout=self.render_timeout / 1000,
                )
            except asyncio.TimeoutError as e:
                elapsed_ms = (time.monotonic() - started) * 1000
                error = RenderTimeoutError(f"Render exceeded {self.render_timeout}ms")
                logger.error(f"PDF render failed [{error.code}] (html_chars={html_chars}, elapsed_ms={elapsed_ms:.0f})")
                raise error from e
            except RenderError as e:
                elapsed_ms = (time.monotonic() - started) * 1000
                logger.error(
                    f"PDF render failed [{e.code}] (html_chars={html_chars}, elapsed_ms={elapsed_ms:.0f}): "
                    f"{e.to_dict()['detail']}"
                )
                raise
            except Exception:
                elapsed_ms = (time.monotonic() - started) * 1000
                logger.exception(f"PDF render crashed (html_chars={html_chars}, elapsed_ms={elapsed_ms:.0f})")
                raise

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"PDF render completed (html_chars={html_chars}, pdf_bytes={len(pdf_bytes)}, "
            f"elapsed_ms={elapsed_ms:.0f})"
        )
        return RenderResult(pdf=pdf_bytes, elapsed_ms=elapsed_ms)

    async def _render_on_browser(self, html: str, options: Optional[RenderOptions]) -> bytes:
        browser = await self.browser_manager.acquire_browser()
        try:
            return await self.worker.render(browser, html, options)
        except BrowserCrashError:
            # Not retried here; the next request gets a fresh browser
            self.browser_manager.invalidate(browser)
            raise

    def status(self) -> Dict[str, Any]:
        """Snapshot for the health endpoint. Never launches the browser."""
        return {
            "ok": True,
            "ts": datetime.now(timezone.utc).isoformat(),
            "active_renders": self.gate.active,
            "queued_renders": self.gate.waiting,
            "max_concurrent": self.gate.max_concurrency,
            "browser": self.browser_manager.state.value,
        }

    async def shutdown(self) -> None:
        await self.browser_manager.shutdown()
