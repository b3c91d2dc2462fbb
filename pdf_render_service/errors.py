"""
Render failure taxonomy.

Each error carries the machine-readable code and HTTP status the API
returns for it, so the façade maps failures without type switches.
"""

from typing import Any, Dict, Optional


class RenderError(Exception):
    """Base class for failures while producing a PDF."""

    code = "render_failed"
    status_code = 500

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON error body."""
        detail = f"{self.message}: {self.detail}" if self.detail else self.message
        return {"error": self.code, "detail": detail}


class InvalidInputError(RenderError):
    """The request does not carry a usable HTML document."""

    code = "invalid_input"
    status_code = 400


class PayloadTooLargeError(RenderError):
    """The request body exceeds the configured size limit."""

    code = "payload_too_large"
    status_code = 413


class LaunchError(RenderError):
    """The browser process could not be started."""

    code = "browser_launch_failed"


class BrowserCrashError(RenderError):
    """The browser disconnected while a render was in flight."""

    code = "browser_crashed"


class RenderTimeoutError(RenderError):
    """A navigation, load, readiness or overall render bound was exceeded."""

    code = "render_timeout"


class ExportError(RenderError):
    """page.pdf() failed or produced something that is not a PDF."""

    code = "pdf_export_failed"
